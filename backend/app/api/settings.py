"""
用户设置相关 API 路由
AI 服务选择、月度 token 上限、每日提案邮件开关
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.config import settings
from app.core.ai_generator import get_provider_display_name, get_supported_providers
from app.core.languages import get_supported_languages
from app.database.connection import get_db
from app.models.user import User, UserSettings
from app.schemas.settings import (
    SettingsOptionsResponse,
    UserSettingsResponse,
    UserSettingsUpdateRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/settings", tags=["用户设置"])


async def _get_or_create_settings(db: AsyncSession, user: User) -> UserSettings:
    """旧账号没有设置记录时按默认值补建"""
    if user.settings is None:
        user.settings = UserSettings(
            ai_service=settings.DEFAULT_AI_SERVICE,
            token_limit_monthly=settings.DEFAULT_TOKEN_LIMIT,
            email_notifications=True,
        )
        await db.flush()
    return user.settings


@router.get("", response_model=UserSettingsResponse, summary="获取用户设置")
async def get_settings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _get_or_create_settings(db, current_user)


@router.put("", response_model=UserSettingsResponse, summary="更新用户设置")
async def update_settings(
    data: UserSettingsUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_settings = await _get_or_create_settings(db, current_user)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in update_data.items():
        setattr(user_settings, key, value)
    await db.flush()
    await db.refresh(user_settings)

    logger.info(f"用户设置已更新: user_id={current_user.id}, fields={list(update_data.keys())}")
    return user_settings


@router.get("/options", response_model=SettingsOptionsResponse, summary="设置可选项")
async def get_options():
    """可选的 AI 服务与文章语言"""
    return SettingsOptionsResponse(
        providers=[
            {"key": key, "name": get_provider_display_name(key)}
            for key in get_supported_providers()
        ],
        languages=get_supported_languages(),
    )
