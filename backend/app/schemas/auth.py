"""
认证相关的 Pydantic 请求/响应模型
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserRegisterRequest(BaseModel):
    """注册请求"""
    email: str = Field(..., max_length=255, description="邮箱")
    name: Optional[str] = Field(default=None, max_length=100, description="显示名称")
    password: str = Field(..., description="密码（至少 6 位）")

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("请输入有效的邮箱地址")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError("密码至少需要 6 位")
        return value


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
