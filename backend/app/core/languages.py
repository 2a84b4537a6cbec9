"""
支持的文章语言
语言代码 -> 名称 / 图标，未知代码回退到默认语言
"""

DEFAULT_LANGUAGE = "ja"

SUPPORTED_LANGUAGES: dict[str, dict[str, str]] = {
    "ja": {"name": "日语", "icon": "日"},
    "en": {"name": "英语", "icon": "英"},
    "zh-cn": {"name": "中文（简体）", "icon": "简"},
    "zh-tw": {"name": "中文（繁体）", "icon": "繁"},
    "ko": {"name": "韩语", "icon": "韩"},
    "es": {"name": "西班牙语", "icon": "西"},
    "ar": {"name": "阿拉伯语", "icon": "阿"},
    "pt": {"name": "葡萄牙语", "icon": "葡"},
    "fr": {"name": "法语", "icon": "法"},
    "de": {"name": "德语", "icon": "德"},
    "ru": {"name": "俄语", "icon": "俄"},
    "it": {"name": "意大利语", "icon": "意"},
    "hi": {"name": "印地语", "icon": "印"},
}


def get_language_name(code: str) -> str:
    """生成正文时使用的目标语言名称"""
    entry = SUPPORTED_LANGUAGES.get((code or "").lower())
    if entry is None:
        entry = SUPPORTED_LANGUAGES[DEFAULT_LANGUAGE]
    return entry["name"]


def get_language_icon(code: str) -> str:
    entry = SUPPORTED_LANGUAGES.get((code or "").lower())
    return entry["icon"] if entry else code


def get_supported_languages() -> list[dict[str, str]]:
    return [
        {"code": code, "name": info["name"], "icon": info["icon"]}
        for code, info in SUPPORTED_LANGUAGES.items()
    ]
