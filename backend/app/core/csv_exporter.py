"""
CSV 导出
把文章 / 大纲记录序列化为 CSV 文本，支持标准格式与 WordPress / Drupal 导入格式

纯函数：调用方负责权限过滤与查询（文章需预加载 outline.site，大纲需预加载 site）
"""

import csv
import io
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from app.models.article import Article, ArticleOutline, decode_keywords, encode_keywords
from app.models.base import utcnow

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\s]+')


@dataclass
class ExportOptions:
    include_metadata: bool = True
    include_content: bool = True
    include_ratings: bool = True


def _cell(value: Any) -> str:
    """None 输出为空字段"""
    if value is None:
        return ""
    return str(value)


def _date(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else ""


def _keywords(outline: ArticleOutline) -> str:
    return encode_keywords(decode_keywords(outline.seo_keywords))


def _write_rows(header: list[str], rows: Iterable[list[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    content = output.getvalue()
    output.close()
    return content


def export_articles(
    articles: Iterable[Article], options: Optional[ExportOptions] = None
) -> str:
    """标准文章导出，列由 options 控制，最后一列始终是用户指示"""
    options = options or ExportOptions()

    header = ["站点名称", "文章标题", "语言", "创建日期"]
    if options.include_metadata:
        header += ["SEO关键词", "文章概要"]
    if options.include_ratings:
        header += ["大纲评分", "文章评分"]
    if options.include_content:
        header.append("文章正文")
    header.append("用户指示")

    rows = []
    for article in articles:
        outline = article.outline
        row = [outline.site.name, outline.title, article.language, _date(article.created_at)]
        if options.include_metadata:
            row += [_keywords(outline), outline.outline]
        if options.include_ratings:
            row += [outline.user_rating, article.user_rating]
        if options.include_content:
            row.append(article.content)
        row.append(article.user_instructions)
        rows.append(row)

    return _write_rows(header, rows)


def export_outlines(outlines: Iterable[ArticleOutline]) -> str:
    header = ["站点名称", "文章标题", "文章概要", "SEO关键词", "用户评分", "创建日期"]
    rows = [
        [
            outline.site.name,
            outline.title,
            outline.outline,
            _keywords(outline),
            outline.user_rating,
            _date(outline.created_at),
        ]
        for outline in outlines
    ]
    return _write_rows(header, rows)


def export_for_wordpress(articles: Iterable[Article]) -> str:
    """WordPress 导入插件使用的列名"""
    header = [
        "post_title", "post_content", "post_excerpt", "post_status",
        "post_type", "post_category", "tags_input", "post_date",
    ]
    rows = [
        [
            article.outline.title,
            article.content,
            article.outline.outline,
            "publish",
            "post",
            "",
            _keywords(article.outline),
            article.created_at.strftime("%Y-%m-%d %H:%M:%S") if article.created_at else "",
        ]
        for article in articles
    ]
    return _write_rows(header, rows)


def export_for_drupal(articles: Iterable[Article]) -> str:
    """Drupal Feeds 导入格式，created 为 Unix 时间戳（秒）"""
    header = ["title", "body", "summary", "status", "type", "tags", "created"]
    rows = []
    for article in articles:
        created = ""
        if article.created_at:
            # created_at 以 naive UTC 存储
            created = int(article.created_at.replace(tzinfo=timezone.utc).timestamp())
        rows.append([
            article.outline.title,
            article.content,
            article.outline.outline,
            "1",
            "article",
            _keywords(article.outline),
            created,
        ])
    return _write_rows(header, rows)


def sanitize_filename_part(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name.strip()).strip("_")


def generate_filename(
    kind: str, site_name: Optional[str] = None, fmt: str = "standard"
) -> str:
    """
    生成下载文件名：类型_站点名_格式_日期.csv

    Args:
        kind: articles / outlines
        site_name: 可选站点名
        fmt: 导出格式，standard 时不出现在文件名中
    """
    parts = ["文章" if kind == "articles" else "文章大纲"]
    if site_name:
        safe_name = sanitize_filename_part(site_name)
        if safe_name:
            parts.append(safe_name)
    if fmt and fmt != "standard":
        parts.append(fmt)
    parts.append(utcnow().date().isoformat())
    return "_".join(parts) + ".csv"
