"""
认证相关 API 路由
注册、登录（OAuth2 密码模式）、当前用户
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_email_service
from app.config import settings
from app.core.email_service import EmailSendError, EmailService
from app.core.security import create_access_token, get_password_hash, verify_password
from app.database.connection import get_db
from app.models.user import User, UserSettings
from app.schemas.auth import TokenResponse, UserRegisterRequest, UserResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["认证"])


@router.post("/register", response_model=UserResponse, status_code=201, summary="注册")
async def register(
    data: UserRegisterRequest,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """创建用户及默认设置，并尽力发送欢迎邮件"""
    result = await db.execute(select(User).where(User.email == data.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="该邮箱已被注册")

    user = User(
        email=data.email,
        name=data.name,
        hashed_password=get_password_hash(data.password),
        settings=UserSettings(
            ai_service=settings.DEFAULT_AI_SERVICE,
            token_limit_monthly=settings.DEFAULT_TOKEN_LIMIT,
            email_notifications=True,
        ),
    )
    db.add(user)
    await db.flush()
    logger.info(f"新用户注册: id={user.id}, email={user.email}")

    if email_service.is_configured:
        try:
            await email_service.send_welcome_email(user.email, user.name or user.email)
        except EmailSendError as e:
            logger.warning(f"欢迎邮件发送失败: {e}")

    return user


@router.post("/token", response_model=TokenResponse, summary="登录")
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(User).where(User.email == form_data.username.strip().lower())
    )
    user = result.scalar_one_or_none()
    if user is None or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="邮箱或密码错误",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(access_token=create_access_token(str(user.id)))


@router.get("/me", response_model=UserResponse, summary="当前用户")
async def read_me(current_user: User = Depends(get_current_user)):
    return current_user
