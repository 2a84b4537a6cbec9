"""
测试公共夹具
内存 SQLite + 依赖覆盖：AI 提供商、邮件、爬虫全部替换为可控的假实现
"""

from typing import Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_email_service, get_provider_factory, get_site_crawler
from app.core.ai_generator import PROVIDER_REGISTRY, UnsupportedProviderError
from app.core.ai_providers.base import BaseAIProvider
from app.core.email_service import EmailSendError
from app.core.security import create_access_token, get_password_hash
from app.core.site_crawler import CrawlResult
from app.database.connection import get_db, get_session_factory
from app.main import app
from app.models.base import Base
from app.models.user import User, UserSettings


# ==================== 假 AI 提供商 ====================

class FakeProvider(BaseAIProvider):
    """按队列返回预设文本，每次调用计 tokens_per_call 个 token"""

    def __init__(self, backend: "FakeAIBackend", name: str):
        super().__init__(api_key="test-key", base_url="http://fake-ai", model="fake")
        self._backend = backend
        self._name = name

    @property
    def provider_name(self) -> str:
        return self._name

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        self._backend.calls.append(
            {"provider": self._name, "system": system_prompt, "user": user_prompt}
        )
        if self._backend.fail:
            raise RuntimeError("upstream exploded")
        text = self._backend.responses.pop(0) if self._backend.responses else "# 默认正文\n\n内容"
        self._add_usage(self._backend.tokens_per_call, text)
        return text


class FakeAIBackend:
    """ProviderFactory 的假实现，记录创建与调用"""

    def __init__(self):
        self.responses: list[str] = []
        self.tokens_per_call = 100
        self.fail = False
        self.calls: list[dict] = []
        self.created: list[str] = []

    def __call__(self, name: str) -> BaseAIProvider:
        if name not in PROVIDER_REGISTRY:
            raise UnsupportedProviderError(name)
        self.created.append(name)
        return FakeProvider(self, name)


# ==================== 假邮件服务 / 爬虫 ====================

class FakeEmailService:
    def __init__(self):
        self.configured = True
        self.fail = False
        self.sent: list[dict] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def _record(self, kind: str, to: str, **payload) -> None:
        if self.fail:
            raise EmailSendError("邮件发送失败")
        self.sent.append({"kind": kind, "to": to, **payload})

    async def send_daily_proposals(self, to, user_name, site_name, proposals, dashboard_url=None):
        await self._record("daily", to, site_name=site_name, proposals=proposals)

    async def send_welcome_email(self, to, user_name):
        await self._record("welcome", to)


class FakeCrawler:
    def __init__(self):
        self.result = CrawlResult(urls=[])
        self.crawled: list[str] = []

    async def crawl_site(self, url: str) -> CrawlResult:
        self.crawled.append(url)
        return self.result


# ==================== 数据库 ====================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """直接操作数据库的会话（用于准备数据与断言）"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_ai() -> FakeAIBackend:
    return FakeAIBackend()


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def fake_crawler() -> FakeCrawler:
    return FakeCrawler()


@pytest.fixture
async def client(session_factory, fake_ai, fake_email, fake_crawler):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_provider_factory] = lambda: fake_ai
    app.dependency_overrides[get_email_service] = lambda: fake_email
    app.dependency_overrides[get_site_crawler] = lambda: fake_crawler

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== 用户 ====================

async def create_user(
    session_factory,
    email: str = "owner@example.com",
    *,
    ai_service: str = "gpt-4",
    token_limit: int = 100000,
    email_notifications: bool = True,
    with_settings: bool = True,
    name: Optional[str] = "站长",
) -> User:
    async with session_factory() as session:
        user = User(
            email=email,
            name=name,
            hashed_password=get_password_hash("secret123"),
        )
        if with_settings:
            user.settings = UserSettings(
                ai_service=ai_service,
                token_limit_monthly=token_limit,
                email_notifications=email_notifications,
            )
        session.add(user)
        await session.commit()
        return user


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
async def user(session_factory) -> User:
    return await create_user(session_factory)


@pytest.fixture
def headers(user) -> dict[str, str]:
    return auth_header(user)


@pytest.fixture
async def other_user(session_factory) -> User:
    return await create_user(session_factory, "intruder@example.com")
