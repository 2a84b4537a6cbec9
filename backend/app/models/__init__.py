"""
模型包初始化
在此处导入所有模型，确保 SQLAlchemy Base.metadata 能注册全部表。
init_db() 只需 import app.models 即可触发所有模型注册。
"""

from app.models.user import User, UserSettings  # noqa: F401
from app.models.site import Site, SiteUrl  # noqa: F401
from app.models.article import ArticleOutline, Article  # noqa: F401
from app.models.usage import TokenUsage  # noqa: F401
