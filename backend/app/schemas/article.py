"""
文章相关的 Pydantic 请求/响应模型
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.core.languages import DEFAULT_LANGUAGE


# ==================== 请求模型 ====================

class ArticleGenerateRequest(BaseModel):
    """根据大纲生成单篇文章"""
    outline_id: int = Field(..., description="大纲 ID")
    language: str = Field(default=DEFAULT_LANGUAGE, min_length=1, max_length=10, description="语言代码")
    user_instructions: Optional[str] = Field(default=None, description="补充要求")


class ArticleBulkGenerateRequest(BaseModel):
    """批量生成：每个大纲 × 每种语言各生成一篇"""
    outline_ids: list[int] = Field(..., min_length=1, description="大纲 ID 列表")
    languages: list[str] = Field(..., min_length=1, description="语言代码列表")
    user_instructions: Optional[str] = None


class ArticleRateRequest(BaseModel):
    article_id: int
    rating: int = Field(..., ge=1, le=100, description="评分（1-100）")


class ArticleUpdateRequest(BaseModel):
    """编辑文章（只更新传入的字段）"""
    content: Optional[str] = Field(default=None, min_length=1)
    user_instructions: Optional[str] = None
    user_rating: Optional[int] = Field(default=None, ge=1, le=100)


class ExportOptionsRequest(BaseModel):
    include_metadata: bool = True
    include_content: bool = True
    include_ratings: bool = True


class ArticleExportRequest(BaseModel):
    """导出文章：指定 ID 优先，其次按站点，都不传则导出全部"""
    article_ids: Optional[list[int]] = None
    site_id: Optional[int] = None
    format: Literal["standard", "wordpress", "drupal"] = "standard"
    options: Optional[ExportOptionsRequest] = None


# ==================== 响应模型 ====================

class ArticleSiteBrief(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class ArticleOutlineBrief(BaseModel):
    id: int
    title: str
    site: ArticleSiteBrief

    model_config = {"from_attributes": True}


class ArticleResponse(BaseModel):
    id: int
    outline_id: int
    language: str
    content: str
    user_instructions: Optional[str] = None
    user_rating: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    outline: ArticleOutlineBrief

    model_config = {"from_attributes": True}


class ArticleGenerateResponse(BaseModel):
    article: ArticleResponse
    tokens_used: int


class BulkItemResult(BaseModel):
    outline_id: int
    language: str
    status: Literal["success", "skipped", "error"]
    article_id: Optional[int] = None
    reason: Optional[str] = None


class BulkSummary(BaseModel):
    total: int
    success: int
    skipped: int
    errors: int


class ArticleBulkGenerateResponse(BaseModel):
    results: list[BulkItemResult]
    summary: BulkSummary
    total_tokens_used: int
