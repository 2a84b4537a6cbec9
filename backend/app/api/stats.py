"""
统计相关 API 路由
提供仪表盘数据
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.token_manager import TokenManager
from app.database.connection import get_db
from app.models.article import Article, ArticleOutline
from app.models.site import Site
from app.models.user import User
from app.schemas.stats import DashboardStats

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/stats", tags=["统计数据"])


@router.get("/dashboard", response_model=DashboardStats, summary="仪表盘统计")
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    获取仪表盘统计数据
    包含站点数、大纲数、文章数以及 token 用量
    """
    user_id = current_user.id

    # ========== 内容统计 ==========
    result = await db.execute(
        select(func.count(Site.id)).where(Site.user_id == user_id)
    )
    sites_count = result.scalar() or 0

    result = await db.execute(
        select(func.count(ArticleOutline.id))
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(Site.user_id == user_id)
    )
    outlines_count = result.scalar() or 0

    result = await db.execute(
        select(func.count(Article.id))
        .join(ArticleOutline, Article.outline_id == ArticleOutline.id)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(Site.user_id == user_id)
    )
    articles_count = result.scalar() or 0

    # ========== 用量统计 ==========
    summary = await TokenManager(db).get_usage_summary(user_id)

    return DashboardStats(
        sites_count=sites_count,
        outlines_count=outlines_count,
        articles_count=articles_count,
        total_tokens=summary["total_tokens"],
        monthly_tokens=summary["monthly_tokens"],
        token_limit=summary["token_limit"],
    )
