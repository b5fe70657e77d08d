"""Normalize stored snapshots into main text + headings (page_contents)."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import trafilatura
from selectolax.parser import HTMLParser
from sqlalchemy import select
from sqlalchemy.orm import Session

from brandkb.models import PageContent, RawPage
from brandkb.models.base import utcnow
from brandkb.services.cancellation import CancellationToken
from brandkb.services.connectors.processors import upsert
from brandkb.services.storage.blob import BlobStore

logger = logging.getLogger(__name__)

MAX_HEADINGS = 50


def _node_text(node) -> str:
    try:
        return str(node.text(strip=True) or "").strip()
    except Exception:
        return ""


def extract_html(html: str) -> Tuple[str, str, List[Dict[str, str]]]:
    """(title, main text, headings) of an HTML document."""
    text = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        no_fallback=False,
    ) or ""

    tree = HTMLParser(html)
    title = ""
    title_node = tree.css_first("title")
    if title_node:
        title = _node_text(title_node)

    headings = []
    for node in tree.css("h1, h2, h3"):
        heading = _node_text(node)
        if heading and len(heading) < 300:
            headings.append({"level": node.tag, "text": heading})
            if len(headings) >= MAX_HEADINGS:
                break

    if not text:
        for tag in ["script", "style", "noscript"]:
            for node in tree.css(tag):
                node.decompose()
        if tree.body is not None:
            text = tree.body.text(separator=" ", strip=True)

    return title, text.strip(), headings


@dataclass
class NormalizeSummary:
    page_content_ids: List[str] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normalizedPages": len(self.page_content_ids),
            "pageContentIds": list(self.page_content_ids),
            "skipped": self.skipped,
            "failed": self.failed,
        }


class PageNormalizer:
    def __init__(self, session: Session, blob_store: BlobStore):
        self.session = session
        self.blob_store = blob_store

    def normalize_page(self, page: RawPage) -> Optional[str]:
        content_type = (page.content_type or "").lower()
        body = self.blob_store.get(page.storage_path)
        decoded = body.decode("utf-8", errors="replace")

        if "html" in content_type:
            title, text, headings = extract_html(decoded)
        elif content_type.startswith("text/") or "json" in content_type or "xml" in content_type:
            title, text, headings = "", decoded.strip(), []
        else:
            return None

        upsert(
            self.session,
            PageContent,
            [{
                "raw_page_id": page.id,
                "brand_id": page.brand_id,
                "url": page.canonical_url or page.url,
                "title": title or page.title,
                "headings": headings,
                "text": text,
                "word_count": len(text.split()),
                "updated_at": utcnow(),
            }],
            ("raw_page_id",),
        )
        self.session.commit()
        return self.session.scalar(select(PageContent.id).where(PageContent.raw_page_id == page.id))

    def normalize(
        self,
        brand_id: str,
        raw_page_ids: List[str],
        token: Optional[CancellationToken] = None,
    ) -> NormalizeSummary:
        token = token or CancellationToken()
        summary = NormalizeSummary()
        if not raw_page_ids:
            return summary

        pages = self.session.scalars(
            select(RawPage).where(RawPage.id.in_(raw_page_ids), RawPage.brand_id == brand_id)
        ).all()
        by_id = {page.id: page for page in pages}

        for raw_page_id in raw_page_ids:
            token.raise_if_cancelled()
            page = by_id.get(raw_page_id)
            if page is None:
                logger.warning("Raw page %s not found for brand %s", raw_page_id, brand_id)
                summary.skipped += 1
                continue
            try:
                page_content_id = self.normalize_page(page)
            except Exception as exc:
                self.session.rollback()
                summary.failed += 1
                logger.error("Failed to normalize %s: %s", page.url, exc)
                continue
            if page_content_id is None:
                summary.skipped += 1
            else:
                summary.page_content_ids.append(page_content_id)

        logger.info(
            "Normalized %d pages for brand %s (%d skipped, %d failed)",
            len(summary.page_content_ids), brand_id, summary.skipped, summary.failed,
        )
        return summary
