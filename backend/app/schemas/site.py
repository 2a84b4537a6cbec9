"""
站点相关的 Pydantic 请求/响应模型
"""

from datetime import datetime
from typing import Annotated, Optional
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, Field

from app.schemas.outline import OutlineResponse


def _validate_url(value: str) -> Optional[str]:
    value = value.strip()
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("请输入有效的 URL")
    return value


def _validate_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("请输入站点名称")
    return value


SiteName = Annotated[str, Field(max_length=200), AfterValidator(_validate_name)]
SiteUrlStr = Annotated[str, Field(max_length=500), AfterValidator(_validate_url)]


# ==================== 请求模型 ====================

class SiteCreateRequest(BaseModel):
    """创建站点请求"""
    name: SiteName = Field(..., description="站点名称")
    url: Optional[SiteUrlStr] = Field(default=None, description="站点 URL")
    description: Optional[str] = Field(default=None, description="站点介绍")


class SiteUpdateRequest(BaseModel):
    """更新站点请求（只更新传入的字段）"""
    name: Optional[SiteName] = None
    url: Optional[SiteUrlStr] = None
    description: Optional[str] = None
    content_policy: Optional[str] = None


# ==================== 响应模型 ====================

class SiteUrlResponse(BaseModel):
    id: int
    url: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SiteResponse(BaseModel):
    """站点（列表用，不含大纲）"""
    id: int
    name: str
    url: Optional[str] = None
    description: Optional[str] = None
    content_policy: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    site_urls: list[SiteUrlResponse] = []

    model_config = {"from_attributes": True}


class SiteDetailResponse(SiteResponse):
    """站点详情（含大纲及其文章概况）"""
    outlines: list[OutlineResponse] = []


class CrawlResponse(BaseModel):
    message: str
    urls: list[SiteUrlResponse]


class PolicyResponse(BaseModel):
    site: SiteResponse
    content_policy: str
    tokens_used: int
