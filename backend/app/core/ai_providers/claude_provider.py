"""
Claude / Anthropic 提供商适配器
支持 Anthropic 原生 Messages API 和 OpenAI 兼容代理两种模式：
- base_url 含 anthropic.com → 使用 Anthropic 原生格式
- 其他地址 → 自动切换为 OpenAI 兼容格式（适配统一代理）
"""

from typing import Optional

from app.core.ai_providers.openai_compatible_provider import OpenAICompatibleProvider


class ClaudeProvider(OpenAICompatibleProvider):
    """Anthropic Claude API 适配器（自动检测代理模式）"""

    @property
    def provider_name(self) -> str:
        return "claude"

    @property
    def _use_native_api(self) -> bool:
        """是否使用 Anthropic 原生 API 格式"""
        return "anthropic.com" in self.base_url

    def _chat_url(self) -> str:
        if not self._use_native_api:
            return super()._chat_url()
        return f"{self.base_url}/v1/messages"

    def _build_headers(self) -> dict[str, str]:
        if not self._use_native_api:
            return super()._build_headers()
        return {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }

    def _build_chat_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> dict:
        if not self._use_native_api:
            # 代理不保证支持 response_format，统一走文本块格式
            return super()._build_chat_payload(
                system_prompt,
                user_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
                json_mode=False,
            )
        return {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
        }

    @staticmethod
    def _extract_content(data: dict) -> str:
        # OpenAI 兼容代理格式
        if "choices" in data:
            return data["choices"][0]["message"]["content"] or ""
        # Anthropic 原生格式: content[].text
        return "".join(
            block.get("text", "")
            for block in data["content"]
            if block.get("type", "text") == "text"
        )

    @staticmethod
    def _extract_usage(data: dict) -> Optional[int]:
        usage = data.get("usage") or {}
        if "total_tokens" in usage:
            return usage["total_tokens"]
        total = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
        return total or None
