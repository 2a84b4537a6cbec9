"""
SQLAlchemy ORM 基类
所有模型都继承自此 Base
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """返回当前 UTC 时间（naive，与 SQLite 中存储的时间保持同一基准）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """声明式基类"""
    pass
