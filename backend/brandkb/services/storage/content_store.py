"""Content-addressed persistence of crawl results: blob + raw_pages row."""

import logging
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from brandkb.models import RawPage
from brandkb.services.cancellation import CancellationToken
from brandkb.services.crawler.constants import CONTENT_TYPE_EXTENSIONS, DEFAULT_EXTENSION
from brandkb.services.crawler.models import CrawlResult

from .blob import BlobStore

logger = logging.getLogger(__name__)


def extension_for(content_type: str) -> str:
    lowered = (content_type or "").lower()
    for fragment, extension in CONTENT_TYPE_EXTENSIONS:
        if fragment in lowered:
            return extension
    return DEFAULT_EXTENSION


def storage_key(brand_id: str, result: CrawlResult) -> str:
    """snapshots/{brandId}/{YYYY-MM-DD}/{sha256}.{ext}, dated by the UTC fetch day."""
    fetch_time = result.fetch_time
    if fetch_time.tzinfo is not None:
        fetch_time = fetch_time.astimezone(timezone.utc)
    day = fetch_time.date().isoformat()
    return f"snapshots/{brand_id}/{day}/{result.content_hash}.{extension_for(result.content_type)}"


@dataclass
class StorageSummary:
    raw_page_ids: List[str] = field(default_factory=list)
    stored: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.stored + self.skipped + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPages": self.total,
            "successfullyStored": self.stored,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class ContentStore:
    def __init__(self, session: Session, blob_store: BlobStore):
        self.session = session
        self.blob_store = blob_store

    @staticmethod
    def storable(result: CrawlResult) -> bool:
        return result.status_code == 200 and bool(result.body)

    def store(self, brand_id: str, result: CrawlResult, job_id: Optional[str] = None) -> str:
        """Write the blob (once per key) and insert a RawPage. Returns the new row id."""
        key = storage_key(brand_id, result)
        if not self.blob_store.exists(key):
            self.blob_store.put(key, result.body, result.content_type)

        page = RawPage(
            brand_id=brand_id,
            job_id=job_id,
            url=result.url,
            canonical_url=result.canonical_url or result.url,
            status_code=result.status_code,
            content_type=result.content_type,
            content_hash=result.content_hash,
            title=result.title or None,
            meta_description=result.meta_description or None,
            storage_path=key,
            content_length=result.content_length,
            fetch_time=result.fetch_time,
        )
        self.session.add(page)
        self.session.commit()
        return page.id

    def store_all(
        self,
        brand_id: str,
        results: List[CrawlResult],
        job_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> StorageSummary:
        token = token or CancellationToken()
        summary = StorageSummary()

        for result in results:
            if not self.storable(result):
                summary.skipped += 1
                continue

            token.raise_if_cancelled()
            try:
                summary.raw_page_ids.append(self.store(brand_id, result, job_id))
                summary.stored += 1
            except Exception as exc:
                self.session.rollback()
                summary.failed += 1
                logger.error("Failed to store %s for brand %s: %s", result.url, brand_id, exc)

        logger.info(
            "Stored %d/%d pages for brand %s (%d skipped, %d failed)",
            summary.stored, summary.total, brand_id, summary.skipped, summary.failed,
        )
        return summary
