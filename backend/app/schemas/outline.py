"""
文章大纲相关的 Pydantic 请求/响应模型
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.models.article import decode_keywords


# ==================== 请求模型 ====================

class OutlineGenerateRequest(BaseModel):
    """生成大纲请求"""
    count: int = Field(default=10, ge=1, le=20, description="生成数量（1-20）")


class OutlineRateRequest(BaseModel):
    """给站点下的大纲评分"""
    outline_id: int = Field(..., description="大纲 ID")
    rating: int = Field(..., ge=1, le=100, description="评分（1-100）")


class OutlineUpdateRequest(BaseModel):
    """编辑大纲（只更新传入的字段）"""
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    outline: Optional[str] = Field(default=None, min_length=1)
    seo_keywords: Optional[list[str]] = None
    user_rating: Optional[int] = Field(default=None, ge=1, le=100)


class OutlineExportRequest(BaseModel):
    """导出大纲：指定 ID 优先，其次按站点，都不传则导出全部"""
    outline_ids: Optional[list[int]] = None
    site_id: Optional[int] = None


# ==================== 响应模型 ====================

class OutlineArticleBrief(BaseModel):
    """大纲下已生成的文章概况"""
    id: int
    language: str
    user_rating: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OutlineResponse(BaseModel):
    id: int
    site_id: int
    title: str
    outline: str
    seo_keywords: list[str] = []
    user_rating: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    articles: list[OutlineArticleBrief] = []

    model_config = {"from_attributes": True}

    @field_validator("seo_keywords", mode="before")
    @classmethod
    def _decode_keywords(cls, value):
        if isinstance(value, str):
            return decode_keywords(value)
        return value or []


class OutlineGenerateResponse(BaseModel):
    outlines: list[OutlineResponse]
    tokens_used: int
    # 与已有标题重复而被丢弃的数量
    duplicates_removed: int = 0
