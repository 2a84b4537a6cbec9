"""
API 公共依赖
当前用户解析、资源归属校验、配额检查，以及可在测试中替换的外部协作者
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ai_generator import ProviderFactory, UnsupportedProviderError, create_provider
from app.core.ai_providers.base import BaseAIProvider
from app.core.email_service import EmailService
from app.core.security import decode_access_token
from app.core.site_crawler import SiteCrawler
from app.core.token_manager import TokenManager
from app.database.connection import get_db
from app.models.article import Article, ArticleOutline
from app.models.site import Site
from app.models.user import User, UserSettings

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


# ==================== 当前用户 ====================

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """解析 Bearer 令牌，返回当前用户；失败统一 401"""
    credentials_exception = HTTPException(
        status_code=401,
        detail="未登录或登录已过期",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    subject = decode_access_token(token)
    if subject is None or not subject.isdigit():
        raise credentials_exception

    user = await db.get(User, int(subject))
    if user is None:
        raise credentials_exception
    return user


# ==================== 外部协作者（测试中通过 dependency_overrides 替换） ====================

def get_provider_factory() -> ProviderFactory:
    return create_provider


def get_site_crawler() -> SiteCrawler:
    return SiteCrawler()


def get_email_service() -> EmailService:
    return EmailService()


# ==================== 归属校验（不区分“不存在”和“无权访问”） ====================

async def get_owned_site(db: AsyncSession, site_id: int, user_id: int) -> Site:
    result = await db.execute(
        select(Site).where(Site.id == site_id, Site.user_id == user_id)
    )
    site = result.scalar_one_or_none()
    if site is None:
        raise HTTPException(status_code=404, detail="站点不存在")
    return site


async def get_owned_outline(db: AsyncSession, outline_id: int, user_id: int) -> ArticleOutline:
    result = await db.execute(
        select(ArticleOutline)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(ArticleOutline.id == outline_id, Site.user_id == user_id)
    )
    outline = result.scalar_one_or_none()
    if outline is None:
        raise HTTPException(status_code=404, detail="文章大纲不存在")
    return outline


async def get_owned_article(db: AsyncSession, article_id: int, user_id: int) -> Article:
    result = await db.execute(
        select(Article)
        .join(ArticleOutline, Article.outline_id == ArticleOutline.id)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(Article.id == article_id, Site.user_id == user_id)
    )
    article = result.scalar_one_or_none()
    if article is None:
        raise HTTPException(status_code=404, detail="文章不存在")
    return article


# ==================== 生成前置检查 ====================

async def require_user_settings(db: AsyncSession, user_id: int) -> UserSettings:
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    user_settings = result.scalar_one_or_none()
    if user_settings is None:
        raise HTTPException(status_code=400, detail="用户设置不存在")
    return user_settings


async def require_quota(token_manager: TokenManager, user_id: int) -> None:
    if not await token_manager.check_limit(user_id):
        raise HTTPException(status_code=429, detail="本月 token 用量已达上限")


def build_provider(factory: ProviderFactory, ai_service: str) -> BaseAIProvider:
    try:
        return factory(ai_service)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ==================== 共享密钥 ====================

def bearer_matches(authorization: Optional[str], secret: str) -> bool:
    """校验 Authorization: Bearer <secret>"""
    if not authorization:
        return False
    return hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode())
