"""
AI 提供商工厂
按用户设置中的服务名创建对应的提供商实例

每次生成请求都新建实例，实例上的 token 计数只反映本次请求的调用。
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from app.config import settings
from app.core.ai_providers.base import BaseAIProvider
from app.core.ai_providers.claude_provider import ClaudeProvider
from app.core.ai_providers.gemini_provider import GeminiProvider
from app.core.ai_providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class UnsupportedProviderError(ValueError):
    """未知的 AI 服务名"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"不支持的 AI 服务: '{name}'。"
            f"可用的服务: {', '.join(PROVIDER_REGISTRY.keys())}"
        )


@dataclass(frozen=True)
class ProviderSpec:
    provider_cls: type[BaseAIProvider]
    display_name: str
    # 对应 Settings 中的配置前缀
    settings_prefix: str


PROVIDER_REGISTRY: dict[str, ProviderSpec] = {
    "gpt-4": ProviderSpec(OpenAIProvider, "OpenAI GPT-4", "OPENAI"),
    "claude": ProviderSpec(ClaudeProvider, "Anthropic Claude", "CLAUDE"),
    "gemini": ProviderSpec(GeminiProvider, "Google Gemini", "GEMINI"),
}

# 工厂函数签名，路由通过依赖注入获取，测试中可替换为假实现
ProviderFactory = Callable[[str], BaseAIProvider]


def create_provider(
    name: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> BaseAIProvider:
    """
    创建 AI 提供商实例

    Args:
        name: 服务名（gpt-4 / claude / gemini）
        transport: 可选的 httpx 传输层

    Raises:
        UnsupportedProviderError: 服务名不在支持列表中
    """
    spec = PROVIDER_REGISTRY.get(name)
    if spec is None:
        raise UnsupportedProviderError(name)

    prefix = spec.settings_prefix
    api_key = getattr(settings, f"{prefix}_API_KEY") or ""
    if not api_key:
        logger.warning(f"{name} 未配置 API Key，请在 .env 文件中设置 {prefix}_API_KEY")

    return spec.provider_cls(
        api_key=api_key,
        base_url=getattr(settings, f"{prefix}_BASE_URL"),
        model=getattr(settings, f"{prefix}_MODEL"),
        transport=transport,
    )


def get_supported_providers() -> list[str]:
    return list(PROVIDER_REGISTRY.keys())


def get_provider_display_name(name: str) -> str:
    spec = PROVIDER_REGISTRY.get(name)
    return spec.display_name if spec else name
