"""
Token 使用量模型
只追加、不修改的用量流水，按用户 / 服务 / 时间聚合
"""

from datetime import datetime

from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, utcnow


class TokenUsage(Base):
    """Token 用量流水表"""
    __tablename__ = "token_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    # AI 服务名：gpt-4 / claude / gemini
    ai_service: Mapped[str] = mapped_column(String(50), nullable=False)
    # 本次消耗的 token 数
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 记录时间
    usage_date: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )
