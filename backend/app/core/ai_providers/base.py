"""
AI 提供商基类
所有 AI 提供商适配器都继承此抽象基类

基类负责：提示词构建、大纲解析、token 计数
子类只需实现 chat()，并在每次调用后通过 _add_usage() 累计 token
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from app.core.languages import get_language_name


@dataclass
class SiteInfo:
    """生成内容方针所需的站点信息"""
    name: str
    url: Optional[str] = None
    description: Optional[str] = None
    urls: list[str] = field(default_factory=list)


@dataclass
class OutlineDraft:
    """AI 生成的文章大纲"""
    title: str
    outline: str
    seo_keywords: list[str]


def estimate_tokens(text: str) -> int:
    """提供商未返回用量时的估算：约 4 个字符 1 个 token"""
    return math.ceil(len(text or "") / 4)


class BaseAIProvider(ABC):
    """AI 提供商抽象基类（每个请求新建实例，token 计数不跨请求）"""

    # 是否支持 JSON 结构化输出
    supports_structured_output: bool = False

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._transport = transport
        self._token_usage = 0

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """提供商名称"""
        ...

    @abstractmethod
    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """单轮对话，返回模型输出文本"""
        ...

    def _client(self, timeout: float = 180.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout, trust_env=False, transport=self._transport
        )

    def _add_usage(self, reported: Optional[int], text: str) -> None:
        """累计 token：优先使用 API 返回的用量，缺失时按字符数估算"""
        if reported:
            self._token_usage += int(reported)
        else:
            self._token_usage += estimate_tokens(text)

    def get_token_usage(self) -> int:
        """本实例自创建以来累计消耗的 token"""
        return self._token_usage

    # ==================== 能力集 ====================

    async def generate_content_policy(self, site_info: SiteInfo) -> str:
        """根据站点信息生成 SEO 内容方针"""
        text = await self.chat(
            self._build_policy_system_prompt(),
            self._build_policy_prompt(site_info),
            max_tokens=1500,
            temperature=0.7,
        )
        return text.strip()

    async def generate_article_outlines(
        self,
        policy: str,
        count: int,
        existing: Optional[list[str]] = None,
    ) -> list[OutlineDraft]:
        """
        根据内容方针生成 count 个文章大纲

        Args:
            policy: 内容方针
            count: 需要的大纲数量
            existing: 已有的大纲标题，用于避免重复

        Returns:
            解析成功的大纲，最多 count 个（格式不完整的块会被丢弃）
        """
        # 避免循环导入
        from app.core.ai_providers.outline_parser import parse_outline_text

        json_mode = self.supports_structured_output
        text = await self.chat(
            self._build_outline_system_prompt(),
            self._build_outline_prompt(policy, count, existing or [], json_mode),
            max_tokens=4000,
            temperature=0.8,
            json_mode=json_mode,
        )
        return parse_outline_text(text)[:count]

    async def generate_article_content(
        self,
        outline: OutlineDraft,
        language: str,
        user_instructions: Optional[str] = None,
    ) -> str:
        """根据大纲生成目标语言的长篇正文（Markdown）"""
        language_name = get_language_name(language)
        text = await self.chat(
            f"你是一位专业的内容写作者，请用{language_name}撰写经过 SEO 优化的高质量文章。",
            self._build_article_prompt(outline, language_name, user_instructions),
            max_tokens=8192,
            temperature=0.7,
        )
        return text.strip()

    # ==================== 提示词 ====================

    def _build_policy_system_prompt(self) -> str:
        return "你是一位 SEO 专家。请分析站点信息，制定行之有效的文章创作方针。"

    def _build_policy_prompt(self, site_info: SiteInfo) -> str:
        lines = [f"站点名称：{site_info.name}"]
        if site_info.url:
            lines.append(f"URL：{site_info.url}")
        if site_info.description:
            lines.append(f"站点介绍：{site_info.description}")
        if site_info.urls:
            lines.append(f"相关页面：{', '.join(site_info.urls)}")
        site_block = "\n".join(lines)

        return f"""请根据以下站点信息，制定一份 SEO 优化文章的创作方针。

{site_block}

方针需要包含以下内容：
1. 目标读者
2. 核心 SEO 关键词策略
3. 内容方向
4. 文章语气与风格
5. 需要重点关注的 SEO 要素"""

    def _build_outline_system_prompt(self) -> str:
        return "你是一位 SEO 内容策划。请产出高质量、互不重复的文章大纲。"

    def _build_outline_prompt(
        self, policy: str, count: int, existing: list[str], json_mode: bool
    ) -> str:
        existing_block = ""
        if existing:
            titles = "\n".join(existing)
            existing_block = f"\n已有的文章标题（请避免重复）：\n{titles}\n"

        if json_mode:
            format_block = """请严格按照以下 JSON 格式返回，不要返回任何其他内容：
{
    "outlines": [
        {
            "title": "文章标题",
            "outline": "文章概要（200-300字）",
            "seo_keywords": ["关键词1", "关键词2", "关键词3"]
        }
    ]
}"""
        else:
            format_block = """每个大纲请按以下格式输出，大纲之间用单独一行 --- 分隔：
---
标题: [文章标题]
概要: [文章概要（200-300字）]
SEO关键词: [关键词1, 关键词2, 关键词3]
---"""

        return f"""请根据以下文章创作方针，生成 {count} 个文章大纲：

{policy}
{existing_block}
{format_block}

请输出 {count} 个文章大纲。"""

    def _build_article_prompt(
        self,
        outline: OutlineDraft,
        language_name: str,
        user_instructions: Optional[str],
    ) -> str:
        extra = ""
        if user_instructions:
            extra = f"\n用户的补充要求：\n{user_instructions}\n"

        return f"""请根据以下文章大纲和 SEO 关键词，用{language_name}撰写一篇 20000 字以上的详细文章：

标题：{outline.title}
概要：{outline.outline}
SEO关键词：{', '.join(outline.seo_keywords)}
{extra}
要求：
- 使用 Markdown 格式
- 合理使用标题层级（H1、H2、H3 等）
- 自然地融入 SEO 关键词
- 内容易读、有价值
- 20000 字以上的详细内容
- 不要包含 AI 的说明文字或字数统计
- 只输出文章正文"""
