"""
用户设置相关的 Pydantic 请求/响应模型
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.ai_generator import PROVIDER_REGISTRY


class UserSettingsResponse(BaseModel):
    ai_service: str
    token_limit_monthly: int
    email_notifications: bool
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserSettingsUpdateRequest(BaseModel):
    """更新用户设置（只更新传入的字段）"""
    ai_service: Optional[str] = Field(default=None, description="AI 服务：gpt-4 / claude / gemini")
    token_limit_monthly: Optional[int] = Field(default=None, ge=0, description="月度 token 上限")
    email_notifications: Optional[bool] = Field(default=None, description="是否接收每日提案邮件")

    @field_validator("ai_service")
    @classmethod
    def _check_ai_service(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in PROVIDER_REGISTRY:
            raise ValueError(f"不支持的 AI 服务: {value}")
        return value


class ProviderOption(BaseModel):
    key: str
    name: str


class LanguageOption(BaseModel):
    code: str
    name: str
    icon: str


class SettingsOptionsResponse(BaseModel):
    """设置页可选项"""
    providers: list[ProviderOption]
    languages: list[LanguageOption]
