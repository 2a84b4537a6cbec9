"""
应用配置管理
使用 pydantic-settings 从环境变量和 .env 文件加载配置
"""

import os
from typing import Optional
from pydantic_settings import BaseSettings

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Settings(BaseSettings):
    """全局配置"""

    # ========== 基础配置 ==========
    APP_NAME: str = "SEO 文章生成平台"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 18900
    # 管理画面地址（写入提醒邮件中的链接）
    APP_BASE_URL: Optional[str] = None

    # ========== 数据库配置 ==========
    # SQLite 数据库文件路径
    DATABASE_PATH: str = os.path.join(_BACKEND_DIR, "data", "seo_articles.db")
    # 显式指定时优先使用（例如切换到其他数据库）
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """异步 SQLite 连接字符串"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"sqlite+aiosqlite:///{self.DATABASE_PATH}"

    # ========== 认证配置 ==========
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # ========== AI 提供商配置 ==========
    # OpenAI（用户设置中的服务名为 gpt-4）
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4"

    # Claude / Anthropic
    CLAUDE_API_KEY: Optional[str] = None
    CLAUDE_BASE_URL: str = "https://api.anthropic.com"
    CLAUDE_MODEL: str = "claude-sonnet-4-5"

    # Google Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # ========== 用量配额 ==========
    DEFAULT_AI_SERVICE: str = "gpt-4"
    DEFAULT_TOKEN_LIMIT: int = 100000

    # ========== 邮件配置 ==========
    EMAIL_SERVER_HOST: Optional[str] = None
    EMAIL_SERVER_PORT: int = 587
    EMAIL_SERVER_USER: Optional[str] = None
    EMAIL_SERVER_PASSWORD: Optional[str] = None
    EMAIL_FROM: str = "noreply@example.com"

    # ========== 每日提案任务 ==========
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Asia/Tokyo"
    DAILY_PROPOSAL_HOUR: int = 9
    DAILY_PROPOSAL_MINUTE: int = 0
    DAILY_PROPOSAL_COUNT: int = 3

    # 定时触发端点的共享密钥（未设置时不校验）
    CRON_SECRET: Optional[str] = None
    # 手动触发端点的管理员密钥（未设置时拒绝所有请求）
    ADMIN_SECRET: Optional[str] = None

    # ========== CORS 配置 ==========
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    model_config = {
        "env_file": os.path.join(_BACKEND_DIR, ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# 全局配置单例
settings = Settings()
