"""
文章大纲解析
AI 返回的大纲文本有两种格式：
1. 结构化 JSON（支持 JSON 模式的提供商）
2. 以 --- 分隔的文本块，每块包含 标题 / 概要 / SEO关键词 三个字段

任一块缺少字段时只丢弃该块，其余块照常返回。
"""

import json
import logging
import re
from typing import Optional

from app.core.ai_providers.base import OutlineDraft

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "---"

_TITLE_LABELS = ("标题", "タイトル", "Title")
_OUTLINE_LABELS = ("概要", "Outline", "Summary")
_KEYWORD_LABELS = ("SEO关键词", "SEOキーワード", "SEO Keywords", "关键词", "Keywords")

_KEYWORD_SPLIT = re.compile(r"[,，、]")


def split_keywords(raw: str) -> list[str]:
    """按逗号切分关键词并去除首尾空白、方括号"""
    raw = raw.strip().strip("[]")
    return [k.strip() for k in _KEYWORD_SPLIT.split(raw) if k.strip()]


def _match_label(line: str, labels: tuple[str, ...]) -> Optional[str]:
    """行首匹配字段标签，返回冒号之后的内容"""
    for label in labels:
        for colon in (":", "："):
            prefix = f"{label}{colon}"
            if line.lower().startswith(prefix.lower()):
                return line[len(prefix):].strip()
    return None


def _parse_block(block: str) -> Optional[OutlineDraft]:
    fields: dict[str, str] = {}
    current: Optional[str] = None

    for raw_line in block.splitlines():
        line = raw_line.strip().lstrip("*#- ").replace("**", "")
        if not line:
            continue
        for name, labels in (
            ("keywords", _KEYWORD_LABELS),
            ("title", _TITLE_LABELS),
            ("outline", _OUTLINE_LABELS),
        ):
            value = _match_label(line, labels)
            if value is not None:
                fields[name] = value
                current = name
                break
        else:
            # 没有标签的行视为上一个字段的续行
            if current == "outline":
                fields["outline"] = f"{fields['outline']}\n{line}".strip()

    title = fields.get("title", "").strip().strip("[]")
    outline = fields.get("outline", "").strip()
    keywords = split_keywords(fields.get("keywords", ""))

    if not title or not outline or not keywords:
        return None
    return OutlineDraft(title=title, outline=outline, seo_keywords=keywords)


def parse_outline_blocks(text: str) -> list[OutlineDraft]:
    """解析 --- 分隔的文本块"""
    blocks: list[str] = []
    current: list[str] = []
    for line in text.splitlines():
        if line.strip() == BLOCK_SEPARATOR:
            blocks.append("\n".join(current))
            current = []
        else:
            current.append(line)
    blocks.append("\n".join(current))

    outlines = []
    dropped = 0
    for block in blocks:
        if not block.strip():
            continue
        parsed = _parse_block(block)
        if parsed is None:
            dropped += 1
            continue
        outlines.append(parsed)

    if dropped:
        logger.warning(f"大纲解析: 丢弃 {dropped} 个格式不完整的文本块")
    return outlines


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _parse_outline_json(text: str) -> Optional[list[OutlineDraft]]:
    """解析 JSON 格式；不是 JSON 时返回 None 交给文本块解析"""
    candidate = _strip_code_fence(text)
    if not candidate or candidate[0] not in "[{":
        return None
    try:
        data = json.loads(candidate, strict=False)
    except json.JSONDecodeError:
        return None

    if isinstance(data, dict):
        data = data.get("outlines", data.get("articles"))
    if not isinstance(data, list):
        return None

    outlines = []
    for item in data:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        outline = str(item.get("outline") or item.get("summary") or "").strip()
        raw_keywords = item.get("seo_keywords", item.get("keywords", []))
        if isinstance(raw_keywords, str):
            keywords = split_keywords(raw_keywords)
        elif isinstance(raw_keywords, list):
            keywords = [str(k).strip() for k in raw_keywords if str(k).strip()]
        else:
            keywords = []
        if title and outline and keywords:
            outlines.append(OutlineDraft(title=title, outline=outline, seo_keywords=keywords))
    return outlines


def parse_outline_text(text: str) -> list[OutlineDraft]:
    """优先按 JSON 解析，失败时回退到 --- 文本块解析"""
    if not text:
        return []
    parsed = _parse_outline_json(text)
    if parsed is not None:
        return parsed
    return parse_outline_blocks(text)
