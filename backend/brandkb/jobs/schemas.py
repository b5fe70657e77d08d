"""Typed job payloads and results, keyed by job type."""
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError, field_validator

from brandkb.errors import PayloadValidationError
from brandkb.models import JobType


class _CamelModel(BaseModel):
    class Config:
        populate_by_name = True

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Payloads
# ============================================================================

class OnboardPayload(_CamelModel):
    seed_urls: List[str] = Field(default_factory=list, alias="seedUrls")
    max_pages: Optional[int] = Field(None, alias="maxPages", ge=1, le=10000)
    respect_robots: bool = Field(True, alias="respectRobots")
    crawl_delay: Optional[float] = Field(None, alias="crawlDelay", ge=0)
    user_agent: Optional[str] = Field(None, alias="userAgent")

    @field_validator("seed_urls")
    @classmethod
    def _http_seeds(cls, value: List[str]) -> List[str]:
        seeds = []
        for url in value:
            url = str(url or "").strip()
            if not url:
                continue
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"seed URL must be http(s): {url}")
            seeds.append(url)
        return seeds


class NormalizePayload(_CamelModel):
    raw_page_ids: List[str] = Field(default_factory=list, alias="rawPageIds")
    brand_id: Optional[str] = Field(None, alias="brandId")
    source: str = "manual"


class AnalyzePayload(_CamelModel):
    connectors: Optional[List[str]] = None
    domain: Optional[str] = None
    competitors: Optional[List[str]] = None

    @field_validator("connectors")
    @classmethod
    def _lower_names(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        names: List[str] = []
        for name in value:
            name = str(name or "").strip().lower()
            if name and name not in names:
                names.append(name)
        return names


PAYLOAD_SCHEMAS: Dict[JobType, Type[_CamelModel]] = {
    JobType.onboard: OnboardPayload,
    JobType.normalize: NormalizePayload,
    JobType.analyze: AnalyzePayload,
}


def validate_payload(job_type: JobType, raw: Optional[Dict[str, Any]]) -> _CamelModel:
    schema = PAYLOAD_SCHEMAS[job_type]
    try:
        return schema.model_validate(raw or {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors()
        )
        raise PayloadValidationError(job_type.value, details) from exc


# ============================================================================
# Results
# ============================================================================

class StorageSummaryResult(_CamelModel):
    total_pages: int = Field(0, alias="totalPages")
    successfully_stored: int = Field(0, alias="successfullyStored")
    skipped: int = 0
    failed: int = 0


class OnboardResult(_CamelModel):
    brand_id: str = Field(alias="brandId")
    crawled_pages: int = Field(0, alias="crawledPages")
    discovered_urls: int = Field(0, alias="discoveredUrls")
    raw_page_ids: List[str] = Field(default_factory=list, alias="rawPageIds")
    sitemap_found: bool = Field(False, alias="sitemapFound")
    robots_analysis: Dict[str, Any] = Field(default_factory=dict, alias="robotsAnalysis")
    storage_summary: StorageSummaryResult = Field(default_factory=StorageSummaryResult, alias="storageSummary")
    next_job_payload: Optional[Dict[str, Any]] = Field(None, alias="nextJobPayload")
    next_job_id: Optional[str] = Field(None, alias="nextJobId")


class NormalizeResult(_CamelModel):
    brand_id: str = Field(alias="brandId")
    normalized_pages: int = Field(0, alias="normalizedPages")
    page_content_ids: List[str] = Field(default_factory=list, alias="pageContentIds")
    skipped: int = 0
    failed: int = 0


class AnalyzeResult(_CamelModel):
    brand_id: str = Field(alias="brandId")
    results: List[Dict[str, Any]] = Field(default_factory=list)
    processed_data: Dict[str, Any] = Field(default_factory=dict, alias="processedData")
    summary: Dict[str, Any] = Field(default_factory=dict)
