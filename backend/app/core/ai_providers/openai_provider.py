"""
OpenAI 提供商适配器（用户设置中的 gpt-4）
"""

from app.core.ai_providers.openai_compatible_provider import OpenAICompatibleProvider


class OpenAIProvider(OpenAICompatibleProvider):
    """OpenAI Chat Completions 适配器，支持 JSON 模式"""

    supports_structured_output = True

    @property
    def provider_name(self) -> str:
        return "gpt-4"
