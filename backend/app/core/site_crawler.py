"""
站点爬虫
从种子 URL 出发，按广度优先发现同域名下的页面 URL
只用于给内容方针提供参考页面，不是通用爬虫
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MAX_DEPTH = 2
MAX_URLS = 50
# 每层并发抓取的子链接上限
MAX_CONCURRENT_CHILDREN = 10
FETCH_TIMEOUT = 10.0

EXCLUDED_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".zip",
    ".jpg", ".jpeg", ".png", ".gif",
)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
}


@dataclass
class CrawlResult:
    urls: list[str] = field(default_factory=list)
    error: Optional[str] = None


def normalize_url(url: str) -> str:
    """
    规范化为 scheme://host/path，丢弃 query 和 fragment
    缺少协议时补全为 https://

    Raises:
        ValueError: URL 格式不合法
    """
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    parsed = urlparse(url)
    if not parsed.hostname or " " in parsed.netloc:
        raise ValueError(f"无效的 URL: {url}")
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path or '/'}"


def is_valid_url(url: str, base_url: str) -> bool:
    """同域名、http(s)、非二进制文件、无 fragment"""
    try:
        parsed = urlparse(url)
        base = urlparse(base_url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False
    if not parsed.hostname or parsed.hostname != base.hostname:
        return False
    if parsed.path.lower().endswith(EXCLUDED_EXTENSIONS):
        return False
    if parsed.fragment:
        return False
    return True


def filter_link(href: str, page_url: str, base_url: str) -> Optional[str]:
    """
    处理页面上的一个链接：相对地址解析 → 规范化 → 校验
    通过校验返回规范化后的 URL，否则返回 None
    """
    href = (href or "").strip()
    if not href or href.startswith(("mailto:", "javascript:", "tel:")):
        return None
    try:
        absolute = urljoin(page_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            return None
        normalized = normalize_url(absolute)
    except ValueError:
        return None
    return normalized if is_valid_url(normalized, base_url) else None


class SiteCrawler:
    """同域名 URL 发现"""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_depth: int = MAX_DEPTH,
        max_urls: int = MAX_URLS,
    ):
        self._transport = transport
        self.max_depth = max_depth
        self.max_urls = max_urls

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=FETCH_TIMEOUT,
            headers=_HEADERS,
            follow_redirects=True,
            trust_env=False,
            transport=self._transport,
        )

    async def _fetch_html(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        response = await client.get(url)
        if response.status_code != 200:
            logger.debug(f"抓取 {url} 返回 HTTP {response.status_code}，跳过")
            return None
        return response.text

    async def crawl_site(self, url: str) -> CrawlResult:
        """
        从种子 URL 开始爬取同域名页面

        Returns:
            CrawlResult: 收集到的 URL（含种子，最多 max_urls 个）；
                种子 URL 非法时 urls 为空并带 error
        """
        try:
            base_url = normalize_url(url)
        except ValueError as e:
            logger.warning(f"站点爬取失败: {e}")
            return CrawlResult(urls=[], error="无效的 URL 格式")

        visited: set[str] = set()
        found: list[str] = []

        async with self._client() as client:
            await self._crawl(client, base_url, base_url, 0, visited, found)

        logger.info(f"站点爬取完成: {base_url}，发现 {len(found)} 个 URL")
        return CrawlResult(urls=found[: self.max_urls])

    async def _crawl(
        self,
        client: httpx.AsyncClient,
        page_url: str,
        base_url: str,
        depth: int,
        visited: set[str],
        found: list[str],
    ) -> None:
        if page_url in visited or len(found) >= self.max_urls:
            return
        visited.add(page_url)
        found.append(page_url)

        # 最深一层只收录，不再展开
        if depth >= self.max_depth:
            return

        try:
            html = await self._fetch_html(client, page_url)
        except Exception as e:
            logger.debug(f"抓取 {page_url} 失败: {type(e).__name__}: {e}")
            return
        if html is None:
            return

        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as e:
            logger.debug(f"解析 {page_url} 失败: {e}")
            return

        children: list[str] = []
        for anchor in soup.find_all("a", href=True):
            link = filter_link(anchor["href"], page_url, base_url)
            if link and link not in visited and link not in children:
                children.append(link)
            if len(children) >= MAX_CONCURRENT_CHILDREN:
                break

        await asyncio.gather(
            *(
                self._crawl(client, child, base_url, depth + 1, visited, found)
                for child in children
            )
        )

    async def _fetch_soup(self, url: str) -> BeautifulSoup:
        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()
        return BeautifulSoup(response.text, "html.parser")

    async def get_page_title(self, url: str) -> str:
        """页面标题，失败返回空字符串"""
        try:
            soup = await self._fetch_soup(url)
        except Exception as e:
            logger.debug(f"获取页面标题失败 {url}: {e}")
            return ""
        return soup.title.get_text(strip=True) if soup.title else ""

    async def get_page_description(self, url: str) -> str:
        """
        页面描述，依次尝试：
        meta description → og:description → 第一个 <p>（截断到 200 字符）
        """
        try:
            soup = await self._fetch_soup(url)
        except Exception as e:
            logger.debug(f"获取页面描述失败 {url}: {e}")
            return ""

        meta = soup.find("meta", attrs={"name": "description"})
        if meta and meta.get("content", "").strip():
            return meta["content"].strip()

        og = soup.find("meta", attrs={"property": "og:description"})
        if og and og.get("content", "").strip():
            return og["content"].strip()

        paragraph = soup.find("p")
        if paragraph:
            text = paragraph.get_text(strip=True)
            if len(text) > 200:
                return text[:200] + "..."
            return text
        return ""
