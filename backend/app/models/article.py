"""
文章模型
文章大纲（标题 + 概要 + SEO 关键词）与按语言生成的文章正文
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, utcnow

KEYWORD_SEPARATOR = ","


def encode_keywords(keywords: Optional[list[str]]) -> str:
    """关键词列表 -> 数据库中存储的逗号分隔字符串"""
    if not keywords:
        return ""
    cleaned = [k.strip() for k in keywords if k and k.strip()]
    return KEYWORD_SEPARATOR.join(cleaned)


def decode_keywords(raw: Optional[str]) -> list[str]:
    """数据库中的逗号分隔字符串 -> 关键词列表"""
    if not raw:
        return []
    return [k.strip() for k in raw.split(KEYWORD_SEPARATOR) if k.strip()]


class ArticleOutline(Base):
    """文章大纲表"""
    __tablename__ = "article_outlines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id"), nullable=False, index=True
    )
    # 文章标题
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    # 文章概要
    outline: Mapped[str] = mapped_column(Text, nullable=False)
    # SEO 关键词（逗号分隔，只通过 encode_keywords / decode_keywords 读写）
    seo_keywords: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # 用户评分 1-100
    user_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    site = relationship("Site", back_populates="outlines", lazy="selectin")
    articles = relationship(
        "Article",
        back_populates="outline",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Article.id",
    )


class Article(Base):
    """文章表（同一大纲 + 语言最多一篇）"""
    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("outline_id", "language", name="uq_article_outline_language"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    outline_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("article_outlines.id"), nullable=False, index=True
    )
    # 语言代码，如 ja / en / zh-cn
    language: Mapped[str] = mapped_column(String(10), nullable=False)
    # 文章正文（Markdown）
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # 生成时用户追加的指示
    user_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    # 用户评分 1-100
    user_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    outline = relationship("ArticleOutline", back_populates="articles", lazy="selectin")
