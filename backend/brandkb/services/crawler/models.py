"""Data models for the onboarding crawler."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class RobotsPolicy:
    """Allow/deny and delay contract derived from a site's robots.txt."""
    allowed: bool = True
    crawl_delay: float = 0.0
    restrictions: List[str] = field(default_factory=list)  # disallowed path prefixes

    def permits(self, path: str) -> bool:
        """Advisory prefix check against the disallowed paths."""
        if not self.allowed:
            return False
        path = path or "/"
        return not any(path.startswith(prefix) for prefix in self.restrictions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "crawlDelay": self.crawl_delay,
            "restrictions": list(self.restrictions),
        }


@dataclass
class CrawlResult:
    """Outcome of fetching one URL. status_code 0 means the fetch itself failed."""
    url: str
    status_code: int
    content_type: str
    body: bytes
    content_hash: str
    fetch_time: datetime
    title: str = ""
    meta_description: str = ""
    canonical_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200 and bool(self.body)

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
