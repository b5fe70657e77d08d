"""Runs one claimed job end to end and records its terminal state.

onboard:   robots -> discovery -> batch crawl -> content store -> normalize follow-up
normalize: stored snapshots -> page_contents
analyze:   connector fan-out -> derived tables
"""
import asyncio
import logging
import traceback
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from sqlalchemy.orm import Session

from brandkb.config import Settings, get_settings
from brandkb.errors import CrawlBlockedByRobots, JobCancelled
from brandkb.jobs.schemas import (
    AnalyzePayload,
    AnalyzeResult,
    NormalizePayload,
    NormalizeResult,
    OnboardPayload,
    OnboardResult,
    StorageSummaryResult,
    validate_payload,
)
from brandkb.jobs.store import JobStore
from brandkb.models import Job, JobType
from brandkb.models.base import utcnow
from brandkb.services.brands import BrandRegistry
from brandkb.services.cancellation import CancellationToken
from brandkb.services.connectors import ConnectorAggregator, ConnectorContext
from brandkb.services.crawler import BatchCrawler, RobotsPolicyResolver, UrlDiscoverer
from brandkb.services.normalize import PageNormalizer
from brandkb.services.storage import BlobStore, ContentStore, get_blob_store

logger = logging.getLogger(__name__)

FollowUp = Optional[Dict[str, Any]]


def site_domain(value: str) -> str:
    """'https://www.Example.com/path' -> 'www.example.com'."""
    value = (value or "").strip()
    if "://" not in value:
        value = f"https://{value}"
    return urlparse(value).netloc.lower().split("@")[-1]


class JobOrchestrator:
    def __init__(
        self,
        session: Session,
        blob_store: Optional[BlobStore] = None,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        aggregator: Optional[ConnectorAggregator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.blob_store = blob_store or get_blob_store(self.settings)
        self.client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self.settings.crawl_fetch_timeout_seconds, follow_redirects=True)
        )
        self._aggregator = aggregator
        self.sleep = sleep
        self.store = JobStore(session)
        self.brands = BrandRegistry(session)

    @property
    def aggregator(self) -> ConnectorAggregator:
        if self._aggregator is None:
            self._aggregator = ConnectorAggregator(self.settings)
        return self._aggregator

    def run(self, job_id: str) -> Dict[str, Any]:
        """Claim and execute. Returns {jobId, status, nextJobId}; never raises for job failures."""
        if not self.store.claim(job_id):
            logger.info("Job %s not claimable (already taken, finished or waiting on dependencies)", job_id)
            return {"jobId": job_id, "status": "skipped", "nextJobId": None}

        job = self.store.get(job_id)
        token = CancellationToken(
            probe=lambda: self.store.is_cancel_requested(job_id),
            probe_interval=self.settings.cancel_poll_interval_seconds,
        )
        logger.info("Running %s job %s for brand %s", job.type.value, job_id, job.brand_id)

        handlers = {
            JobType.onboard: self._run_onboard,
            JobType.normalize: self._run_normalize,
            JobType.analyze: self._run_analyze,
        }
        try:
            payload = validate_payload(job.type, job.payload)
            result, follow_up = handlers[job.type](job, payload, token)
            token.raise_if_cancelled()
            next_job = self.store.complete(job_id, result, follow_up)
        except CrawlBlockedByRobots as exc:
            self.store.fail(job_id, str(exc), {
                "error": str(exc),
                "robotsAnalysis": exc.robots_analysis,
                "crawledPages": 0,
            })
            return {"jobId": job_id, "status": "failed", "nextJobId": None}
        except JobCancelled as exc:
            self.session.rollback()
            self.store.fail(job_id, str(exc), {"error": str(exc), "failedAt": utcnow().isoformat()})
            return {"jobId": job_id, "status": "failed", "nextJobId": None}
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            self.session.rollback()
            message = str(exc) or exc.__class__.__name__
            self.store.fail(job_id, message, {
                "error": message,
                "traceback": traceback.format_exc(),
                "failedAt": utcnow().isoformat(),
            })
            return {"jobId": job_id, "status": "failed", "nextJobId": None}

        return {"jobId": job_id, "status": "complete", "nextJobId": next_job.id if next_job else None}

    def _buffered_progress(self, job_id: str) -> Tuple[Callable[[str], None], List[str]]:
        """Progress reporter for code running on the event loop; events are written later by _flush."""
        events: List[str] = []

        def report(message: str) -> None:
            logger.info("[job %s] %s", job_id, message)
            events.append(message)
        return report, events

    def _flush(self, job_id: str, events: List[str]) -> None:
        for message in events:
            self.store.log_event(job_id, message)
        if events:
            self.session.commit()
        del events[:]

    # ------------------------------------------------------------------
    # onboard
    # ------------------------------------------------------------------

    def _run_onboard(
        self, job: Job, payload: OnboardPayload, token: CancellationToken
    ) -> Tuple[Dict[str, Any], FollowUp]:
        brand = self.brands.get(job.brand_id)
        domain = site_domain(brand.domain)
        seeds = payload.seed_urls or [f"https://{domain}", f"https://{domain}/sitemap.xml"]
        max_pages = payload.max_pages or self.settings.default_max_pages
        user_agent = payload.user_agent or self.settings.crawler_user_agent
        progress, events = self._buffered_progress(job.id)

        async def crawl():
            async with self.client_factory() as client:
                resolver = RobotsPolicyResolver(client, self.settings.robots_timeout_seconds, progress)
                robots = await resolver.resolve(domain, user_agent)
                if payload.respect_robots and not robots.allowed:
                    raise CrawlBlockedByRobots(domain, robots.to_dict())
                token.raise_if_cancelled()

                discoverer = UrlDiscoverer(client, self.settings.discovery_timeout_seconds, progress)
                urls = await discoverer.discover(seeds, domain, max_pages, user_agent, token)
                if payload.respect_robots:
                    urls = [url for url in urls if robots.permits(urlparse(url).path)]

                delay = max(robots.crawl_delay, payload.crawl_delay or 0.0)
                crawler = BatchCrawler(
                    client,
                    batch_size=self.settings.crawl_batch_size,
                    timeout=self.settings.crawl_fetch_timeout_seconds,
                    progress_callback=progress,
                    sleep=self.sleep,
                )
                results = await crawler.crawl(urls, user_agent, delay, token)
                return robots, discoverer.sitemap_found, urls, results

        try:
            robots, sitemap_found, urls, results = asyncio.run(crawl())
        finally:
            self._flush(job.id, events)

        summary = ContentStore(self.session, self.blob_store).store_all(brand.id, results, job.id, token)
        next_payload = {"rawPageIds": summary.raw_page_ids, "brandId": brand.id, "source": "onboard"}

        result = OnboardResult(
            brand_id=brand.id,
            crawled_pages=sum(1 for r in results if r.ok),
            discovered_urls=len(urls),
            raw_page_ids=summary.raw_page_ids,
            sitemap_found=sitemap_found,
            robots_analysis=robots.to_dict(),
            storage_summary=StorageSummaryResult(**summary.to_dict()),
            next_job_payload={"type": JobType.normalize.value, **next_payload},
        )
        follow_up = {
            "type": JobType.normalize,
            "payload": next_payload,
            "priority": self.settings.normalize_job_priority,
        }
        return result.dump(), follow_up

    # ------------------------------------------------------------------
    # normalize
    # ------------------------------------------------------------------

    def _run_normalize(
        self, job: Job, payload: NormalizePayload, token: CancellationToken
    ) -> Tuple[Dict[str, Any], FollowUp]:
        summary = PageNormalizer(self.session, self.blob_store).normalize(job.brand_id, payload.raw_page_ids, token)
        result = NormalizeResult(
            brand_id=job.brand_id,
            normalized_pages=len(summary.page_content_ids),
            page_content_ids=summary.page_content_ids,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return result.dump(), None

    # ------------------------------------------------------------------
    # analyze
    # ------------------------------------------------------------------

    def _run_analyze(
        self, job: Job, payload: AnalyzePayload, token: CancellationToken
    ) -> Tuple[Dict[str, Any], FollowUp]:
        brand = self.brands.get(job.brand_id)
        ctx = ConnectorContext(
            domain=site_domain(payload.domain or brand.domain),
            brand_name=brand.name,
            competitors=list(payload.competitors if payload.competitors is not None else brand.competitors or []),
        )
        names = payload.connectors if payload.connectors is not None else self.settings.default_connector_names()
        token.raise_if_cancelled()

        response = self.aggregator.run(self.session, brand.id, names, ctx)
        result = AnalyzeResult(
            brand_id=brand.id,
            results=response["results"],
            processed_data=response["processedData"],
            summary=response["summary"],
        )
        return result.dump(), None
