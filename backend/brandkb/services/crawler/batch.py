"""Batched page fetching under a fixed fan-out and an inter-batch delay."""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from selectolax.parser import HTMLParser

from brandkb.services.cancellation import CancellationToken

from .constants import (
    ACCEPT_ENCODING_HEADER,
    ACCEPT_HEADER,
    ACCEPT_LANGUAGE_HEADER,
    BATCH_SIZE,
    FETCH_TIMEOUT,
)
from .models import CrawlResult

logger = logging.getLogger(__name__)

# Longest single sleep between cancellation checks
DELAY_SLICE = 1.0


def content_hash(body: bytes) -> str:
    return hashlib.sha256(body or b"").hexdigest()


def _node_text(node) -> str:
    if node is None:
        return ""
    try:
        text = node.text(strip=True)
    except Exception:
        return ""
    return str(text or "").strip()


def extract_metadata(html: str, url: str) -> Tuple[str, str, Optional[str]]:
    """Title, meta description and absolute canonical URL of an HTML page."""
    tree = HTMLParser(html or "")

    title = _node_text(tree.css_first("title"))

    meta_desc = ""
    meta_node = tree.css_first('meta[name="description"]')
    if meta_node:
        meta_desc = (meta_node.attributes.get("content") or "").strip()

    canonical = None
    link_node = tree.css_first('link[rel="canonical"]')
    if link_node:
        href = (link_node.attributes.get("href") or "").strip()
        if href:
            try:
                canonical = urljoin(url, href)
            except ValueError:
                canonical = None

    return title, meta_desc, canonical


class BatchCrawler:
    """Fetches URLs in fixed-size concurrent batches; one CrawlResult per URL."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        batch_size: int = BATCH_SIZE,
        timeout: float = FETCH_TIMEOUT,
        progress_callback: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.batch_size = max(1, batch_size)
        self.timeout = timeout
        self.progress_callback = progress_callback
        self._sleep = sleep

    def _log(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)

    @staticmethod
    def build_headers(user_agent: str) -> Dict[str, str]:
        return {
            "User-Agent": user_agent,
            "Accept": ACCEPT_HEADER,
            "Accept-Language": ACCEPT_LANGUAGE_HEADER,
            "Accept-Encoding": ACCEPT_ENCODING_HEADER,
        }

    async def crawl(
        self,
        urls: List[str],
        user_agent: str,
        crawl_delay: float = 0.0,
        token: Optional[CancellationToken] = None,
    ) -> List[CrawlResult]:
        token = token or CancellationToken()
        headers = self.build_headers(user_agent)
        results: List[CrawlResult] = []

        for start in range(0, len(urls), self.batch_size):
            token.raise_if_cancelled()
            batch = urls[start:start + self.batch_size]

            batch_results = await asyncio.gather(*(self._fetch(url, headers) for url in batch))
            results.extend(batch_results)

            ok = sum(1 for result in batch_results if result.ok)
            self._log(f"Crawled {min(start + self.batch_size, len(urls))}/{len(urls)} pages ({ok} ok in batch)")

            if crawl_delay > 0 and start + self.batch_size < len(urls):
                await self._delay(crawl_delay, token)

        return results

    async def _delay(self, seconds: float, token: CancellationToken) -> None:
        remaining = seconds
        while remaining > 0:
            token.raise_if_cancelled()
            step = min(remaining, DELAY_SLICE)
            await self._sleep(step)
            remaining -= step
        token.raise_if_cancelled()

    async def _fetch(self, url: str, headers: Dict[str, str]) -> CrawlResult:
        """Never raises: transport errors and timeouts become status 0 results."""
        fetch_time = datetime.now(timezone.utc)
        try:
            response = await self.client.get(
                url,
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except Exception as exc:
            logger.info("Fetch failed for %s: %s", url, exc)
            return CrawlResult(
                url=url,
                status_code=0,
                content_type="",
                body=b"",
                content_hash="",
                fetch_time=fetch_time,
                error=str(exc) or exc.__class__.__name__,
            )

        body = response.content or b""
        content_type = response.headers.get("content-type", "")
        result = CrawlResult(
            url=url,
            status_code=response.status_code,
            content_type=content_type,
            body=body,
            content_hash=content_hash(body) if body else "",
            fetch_time=fetch_time,
        )

        if response.status_code == 200 and body and "html" in content_type.lower():
            try:
                result.title, result.meta_description, result.canonical_url = extract_metadata(
                    response.text, str(response.url)
                )
            except Exception as exc:
                # metadata is best effort; the fetched body is still stored
                logger.info("Metadata extraction failed for %s: %s", url, exc)
        return result
