"""
OpenAI 兼容 API 通用提供商适配器
适用于所有兼容 OpenAI Chat Completions API 格式的大模型服务
"""

import asyncio
import logging
from typing import Optional

import httpx

from app.core.ai_providers.base import BaseAIProvider

logger = logging.getLogger(__name__)

# 可重试的 HTTP 状态码（服务端临时故障）
_RETRYABLE_STATUS_CODES = {500, 502, 503, 504, 429}
_MAX_RETRIES = 3
_BASE_DELAY = 2  # 秒，指数退避基数


class OpenAICompatibleProvider(BaseAIProvider):
    """
    OpenAI 兼容 API 通用适配器
    所有使用 /chat/completions 端点的提供商都可以继承此类，
    覆盖 provider_name 以及需要时的 _build_chat_payload / _extract_content。
    """

    # 退避基数，测试中可置 0
    retry_base_delay: float = _BASE_DELAY

    @property
    def provider_name(self) -> str:
        raise NotImplementedError

    def _build_headers(self) -> dict[str, str]:
        """构建 OpenAI 兼容的请求头"""
        return {
            "Authorization": f"Bearer {self.api_key}",
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
        """构建 OpenAI 兼容的请求体"""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _chat_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    @staticmethod
    def _extract_content(data: dict) -> str:
        return data["choices"][0]["message"]["content"] or ""

    @staticmethod
    def _extract_usage(data: dict) -> Optional[int]:
        usage = data.get("usage") or {}
        return usage.get("total_tokens")

    @staticmethod
    def _describe_failure(exc: httpx.HTTPError) -> tuple[bool, str]:
        """返回 (是否可重试, 日志描述)"""
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            return status in _RETRYABLE_STATUS_CODES, f"HTTP {status}: {exc.response.text[:500]}"
        if isinstance(exc, (httpx.ConnectError, httpx.ReadTimeout)):
            return True, f"{type(exc).__name__}: {exc}"
        return False, f"{type(exc).__name__}: {exc}"

    async def _post_with_retry(self, url: str, payload: dict, headers: dict) -> dict:
        """
        POST 请求，临时故障（429 / 5xx / 连接失败 / 读超时）按指数退避重试
        最多 _MAX_RETRIES 次，其余错误立即抛出
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._client() as client:
                    response = await client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                    return response.json()
            except httpx.HTTPError as e:
                retryable, description = self._describe_failure(e)
                if not retryable or attempt >= _MAX_RETRIES:
                    logger.error(f"[{self.provider_name}] 调用失败（第{attempt}次）: {description}")
                    raise
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"[{self.provider_name}] 第{attempt}次调用失败 ({description[:80]})，"
                    f"{delay}s 后重试"
                )
                await asyncio.sleep(delay)

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """通用聊天接口（OpenAI 兼容格式）"""
        payload = self._build_chat_payload(
            system_prompt,
            user_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            json_mode=json_mode,
        )
        data = await self._post_with_retry(
            self._chat_url(), payload, self._build_headers()
        )
        try:
            text = self._extract_content(data)
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"[{self.provider_name}] 响应格式异常: {str(data)[:500]}")
            raise ValueError(f"{self.provider_name} 返回了无法解析的响应") from e

        self._add_usage(self._extract_usage(data), text)
        return text
