"""Parallel fan-out over external data connectors with per-connector isolation."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from brandkb.config import Settings, get_settings

from .processors import PROCESSORS
from .semrush import SemrushConnector
from .serpapi import SerpApiConnector
from .similarweb import SimilarwebConnector
from .types import Connector, ConnectorContext, ConnectorResult

logger = logging.getLogger(__name__)

CONNECTORS = {
    SemrushConnector.name: SemrushConnector,
    SimilarwebConnector.name: SimilarwebConnector,
    SerpApiConnector.name: SerpApiConnector,
}


def build_connectors(settings: Settings) -> Dict[str, Connector]:
    return {name: cls(settings) for name, cls in CONNECTORS.items()}


def summarize(results: List[ConnectorResult]) -> Dict[str, Any]:
    total = len(results)
    successful = sum(1 for r in results if r.success)
    average = sum(r.execution_time_ms for r in results) / total if total else 0
    return {
        "total": total,
        "successful": successful,
        "failed": total - successful,
        "averageExecutionTimeMs": round(average, 2),
    }


class ConnectorAggregator:
    """
    Runs every requested connector concurrently and returns exactly one
    ConnectorResult per name, in request order. A connector that raises,
    times out or is unknown yields a failed result; nothing propagates.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connectors: Optional[Dict[str, Connector]] = None,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings or get_settings()
        self.connectors = connectors if connectors is not None else build_connectors(self.settings)
        self.client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self.settings.connector_timeout_seconds, follow_redirects=True)
        )
        self.timeout = self.settings.connector_timeout_seconds
        self.max_concurrency = max(1, self.settings.connector_max_concurrency)
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)

    async def collect(self, names: List[str], ctx: ConnectorContext) -> List[ConnectorResult]:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        async with self.client_factory() as client:
            tasks = [self._run_one(name, ctx, client, semaphore) for name in names]
            results = await asyncio.gather(*tasks)
        return list(results)

    async def _run_one(
        self,
        name: str,
        ctx: ConnectorContext,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
    ) -> ConnectorResult:
        connector = self.connectors.get(name)
        if connector is None:
            return ConnectorResult(connector=name, success=False, error=f"Unknown connector: {name}")

        async with semaphore:
            started = time.perf_counter()
            try:
                data = await asyncio.wait_for(connector.fetch(ctx, client), timeout=self.timeout)
            except asyncio.TimeoutError:
                error = f"timed out after {self.timeout:g}s"
                data = None
            except Exception as exc:
                error = str(exc) or exc.__class__.__name__
                data = None
            else:
                error = None
            elapsed_ms = int((time.perf_counter() - started) * 1000)

        if error is not None:
            logger.warning("Connector %s failed for %s: %s", name, ctx.domain, error)
            self._log(f"{name} failed: {error}")
            return ConnectorResult(connector=name, success=False, error=error, execution_time_ms=elapsed_ms)

        self._log(f"{name} completed in {elapsed_ms}ms")
        return ConnectorResult(connector=name, success=True, data=data, execution_time_ms=elapsed_ms)

    def process(self, session: Session, brand_id: str, results: List[ConnectorResult]) -> Dict[str, Any]:
        """Run the processor of every successful result; each one commits on its own."""
        processed: Dict[str, Any] = {
            "topicsGenerated": 0,
            "competitorsAdded": 0,
            "keywordsAnalyzed": 0,
            "errors": [],
        }
        for result in results:
            if not result.success:
                processed["errors"].append(f"{result.connector}: {result.error}")
                continue
            processor = PROCESSORS.get(result.connector)
            if processor is None:
                continue
            try:
                counts = processor(session, brand_id, result.data or {})
                session.commit()
            except Exception as exc:
                session.rollback()
                logger.error("Processing %s for brand %s failed: %s", result.connector, brand_id, exc)
                processed["errors"].append(f"Processing {result.connector}: {exc}")
                continue
            for key, value in counts.items():
                processed[key] = processed.get(key, 0) + value
        return processed

    def run(self, session: Session, brand_id: str, names: List[str], ctx: ConnectorContext) -> Dict[str, Any]:
        """Collect, process and summarize. Sync entry point for workers and routes."""
        self._log(f"Running connectors {', '.join(names) or '(none)'} for {ctx.domain}")
        results = asyncio.run(self.collect(names, ctx))
        processed = self.process(session, brand_id, results)
        return {
            "results": [r.to_dict() for r in results],
            "processedData": processed,
            "summary": summarize(results),
        }
