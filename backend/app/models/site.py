"""
站点模型
用户登记的站点，以及爬取得到的站内 URL 列表
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, utcnow


class Site(Base):
    """站点表"""
    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # 所属用户
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    # 站点名称
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # 站点 URL（爬取起点）
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, default=None)
    # 站点说明（自由文本）
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    # AI 生成的内容方针，生成前为空
    content_policy: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    site_urls = relationship(
        "SiteUrl",
        back_populates="site",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SiteUrl.id",
    )
    outlines = relationship(
        "ArticleOutline",
        back_populates="site",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ArticleOutline.created_at.desc()",
    )


class SiteUrl(Base):
    """站内 URL 表（每次爬取整体替换）"""
    __tablename__ = "site_urls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    site = relationship("Site", back_populates="site_urls")
