"""
用户模型
用户账号 + 每个用户一条的设置记录（AI 服务、月度配额、邮件通知）
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, utcnow


class User(Base):
    """用户表"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # 登录邮箱（唯一）
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    # 显示名称
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default=None)
    # bcrypt 哈希后的密码
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    # 创建时间
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    settings = relationship(
        "UserSettings",
        back_populates="user",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class UserSettings(Base):
    """用户设置表"""
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), unique=True, nullable=False
    )
    # 使用的 AI 服务：gpt-4 / claude / gemini
    ai_service: Mapped[str] = mapped_column(String(50), nullable=False, default="gpt-4")
    # 月度 token 上限
    token_limit_monthly: Mapped[int] = mapped_column(Integer, nullable=False, default=100000)
    # 是否接收每日提案邮件
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    user = relationship("User", back_populates="settings")
