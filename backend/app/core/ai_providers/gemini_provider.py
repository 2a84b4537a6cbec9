"""
Google Gemini 提供商适配器
通过 Gemini 的 OpenAI 兼容端点调用，同时兼容 Gemini 原生返回格式
"""

import json
from typing import Optional

from app.core.ai_providers.openai_compatible_provider import OpenAICompatibleProvider


class GeminiProvider(OpenAICompatibleProvider):
    """Google Gemini API 适配器"""

    @property
    def provider_name(self) -> str:
        return "gemini"

    def _build_chat_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> dict:
        """Gemini 2.5+ 系列为 Thinking 模型，内部推理会消耗 token，
        需要更大的 max_tokens 预算以确保输出内容完整。

        部分 API 代理不支持 Gemini 的 system 角色消息，
        因此将 system prompt 合并到 user 消息中。
        """
        combined_user_prompt = (
            f"{system_prompt}\n\n{user_prompt}" if system_prompt else user_prompt
        )
        return {
            "model": self.model,
            "messages": [
                {"role": "user", "content": combined_user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max(max_tokens, 16384),
        }

    @staticmethod
    def _extract_content(data: dict) -> str:
        """从响应中提取文本内容，兼容 OpenAI 格式和 Gemini 原生格式"""
        # OpenAI 兼容格式: choices[0].message.content
        if "choices" in data:
            return data["choices"][0]["message"]["content"] or ""
        # Gemini 原生格式: response.candidates[0].content.parts[0].text
        resp = data.get("response", data)
        candidates = resp.get("candidates", [])
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            texts = [p["text"] for p in parts if "text" in p]
            if texts:
                return "".join(texts)
        raise KeyError(
            f"无法从 Gemini 响应中提取内容: {json.dumps(data, ensure_ascii=False)[:500]}"
        )

    @staticmethod
    def _extract_usage(data: dict) -> Optional[int]:
        usage = data.get("usage") or {}
        if usage.get("total_tokens"):
            return usage["total_tokens"]
        metadata = data.get("usageMetadata") or {}
        return metadata.get("totalTokenCount")
