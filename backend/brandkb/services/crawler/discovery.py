"""URL discovery: expand seed URLs (sitemaps, homepage links) into a bounded candidate set."""

import gzip
import logging
import re
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

import httpx
from selectolax.parser import HTMLParser

from brandkb.services.cancellation import CancellationToken

from .constants import DEFAULT_MAX_PAGES, DISCOVERY_TIMEOUT, SITEMAP_SUFFIXES, SKIP_HREF_PREFIXES

logger = logging.getLogger(__name__)

LOC_PATTERN = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)


def _bare_host(host: str) -> str:
    host = (host or "").lower().split(":", 1)[0]
    return host[4:] if host.startswith("www.") else host


def same_domain(url: str, domain: str) -> bool:
    """True when url's host is the domain (www-insensitive) or one of its subdomains."""
    try:
        host = _bare_host(urlparse(url).netloc)
    except ValueError:
        return False
    target = _bare_host(domain)
    if not host or not target:
        return False
    return host == target or host.endswith("." + target)


def normalize_url(url: str) -> Optional[str]:
    """Drop the fragment and lowercase scheme/host; None for non-http(s) URLs."""
    try:
        url, _ = urldefrag((url or "").strip())
        parsed = urlparse(url)
    except ValueError:
        return None
    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https") or not parsed.netloc:
        return None
    return urlunparse((
        scheme,
        parsed.netloc.lower(),
        parsed.path or "/",
        parsed.params,
        parsed.query,
        "",
    ))


def is_sitemap_url(url: str) -> bool:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return path.endswith(SITEMAP_SUFFIXES)


def extract_sitemap_locs(content: str) -> List[str]:
    """Literal <loc> scan; tolerant of namespaces and broken XML."""
    locs = []
    for match in LOC_PATTERN.findall(content or ""):
        value = match.strip()
        if value.startswith("<![CDATA[") and value.endswith("]]>"):
            value = value[9:-3].strip()
        value = value.replace("&amp;", "&")
        if value:
            locs.append(value)
    return locs


def extract_links(html: str, base_url: str, domain: str) -> List[str]:
    """Same-domain anchor targets resolved against base_url, in document order."""
    links: List[str] = []
    if not html:
        return links

    tree = HTMLParser(html)
    for anchor in tree.css("a[href]"):
        href = (anchor.attributes.get("href") or "").strip()
        if not href or href.startswith("#"):
            continue
        if href.lower().startswith(SKIP_HREF_PREFIXES):
            continue
        try:
            resolved = normalize_url(urljoin(base_url, href))
        except ValueError:
            continue
        if resolved and same_domain(resolved, domain):
            links.append(resolved)
    return links


class UrlDiscoverer:
    """
    Expands seed URLs into a deduplicated, order-stable URL list.

    XML responses are treated as sitemaps (every <loc> is a candidate and
    nested sitemaps become further seeds); HTML responses contribute the seed
    itself plus its same-domain links. Nothing is added past ``max_pages``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = DISCOVERY_TIMEOUT,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.client = client
        self.timeout = timeout
        self.progress_callback = progress_callback
        self.sitemaps_parsed = 0

    @property
    def sitemap_found(self) -> bool:
        return self.sitemaps_parsed > 0

    def _log(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)

    async def discover(
        self,
        seed_urls: List[str],
        domain: str,
        max_pages: int = DEFAULT_MAX_PAGES,
        user_agent: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[str]:
        token = token or CancellationToken()
        # dicts keep insertion order
        discovered: Dict[str, None] = {}
        processed: Set[str] = set()
        queue: List[str] = []

        for seed in seed_urls:
            normalized = normalize_url(seed)
            if normalized and normalized not in queue:
                queue.append(normalized)

        def add(url: str) -> bool:
            if len(discovered) >= max_pages:
                return False
            normalized = normalize_url(url)
            if not normalized or not same_domain(normalized, domain):
                return True
            discovered.setdefault(normalized, None)
            return len(discovered) < max_pages

        headers = {"User-Agent": user_agent} if user_agent else None

        while queue and len(discovered) < max_pages:
            token.raise_if_cancelled()
            seed = queue.pop(0)
            if seed in processed:
                continue
            processed.add(seed)

            # a failing seed is skipped; the remaining seeds still run
            try:
                response = await self.client.get(seed, headers=headers, timeout=self.timeout)
                if not 200 <= response.status_code < 300:
                    self._log(f"Skipping {seed} ({response.status_code})")
                    continue
                self._expand(seed, response, domain, add, discovered, queue, processed)
            except Exception as exc:
                logger.info("Discovery failed for %s: %s", seed, exc)
                self._log(f"Skipping {seed} ({exc.__class__.__name__})")

        urls = list(discovered)[:max_pages]
        self._log(f"Discovered {len(urls)} URLs for {domain}")
        return urls

    def _expand(
        self,
        seed: str,
        response: httpx.Response,
        domain: str,
        add: Callable[[str], bool],
        discovered: Dict[str, None],
        queue: List[str],
        processed: Set[str],
    ) -> None:
        """Add a sitemap's <loc> entries, or an HTML page and its links, to ``discovered``."""
        content_type = response.headers.get("content-type", "").lower()
        if "xml" in content_type or (is_sitemap_url(seed) and "html" not in content_type):
            body = response.content
            if seed.lower().endswith(".gz") and body[:2] == b"\x1f\x8b":
                body = gzip.decompress(body)
            locs = extract_sitemap_locs(body.decode("utf-8", errors="ignore"))
            self.sitemaps_parsed += 1
            self._log(f"Sitemap {seed}: {len(locs)} entries")
            for loc in locs:
                if is_sitemap_url(loc):
                    nested = normalize_url(loc)
                    if nested and same_domain(nested, domain) and nested not in processed:
                        queue.append(nested)
                    continue
                if not add(loc):
                    return
        elif "html" in content_type:
            if not add(seed):
                return
            for link in extract_links(response.text, seed, domain):
                if not add(link):
                    break
            self._log(f"Page {seed}: {len(discovered)} URLs so far")
