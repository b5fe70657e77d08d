"""Domain exceptions shared by the job pipeline, storage and connectors."""
from __future__ import annotations

from typing import Any, Dict, Optional


class JobNotFound(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class BrandNotFound(LookupError):
    def __init__(self, brand_id: str) -> None:
        super().__init__(f"Brand not found: {brand_id}")
        self.brand_id = brand_id


class InvalidJobTransition(RuntimeError):
    def __init__(self, job_id: str, expected: str, target: str) -> None:
        super().__init__(f"Job {job_id} cannot move to {target}: status is not {expected}")
        self.job_id = job_id
        self.expected = expected
        self.target = target


class DuplicateJob(RuntimeError):
    def __init__(self, idempotency_key: str, existing_job_id: Optional[str] = None) -> None:
        super().__init__(f"Job with idempotency key {idempotency_key!r} already exists")
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id


class PayloadValidationError(ValueError):
    def __init__(self, job_type: str, detail: str) -> None:
        super().__init__(f"Invalid {job_type} payload: {detail}")
        self.job_type = job_type
        self.detail = detail


class CrawlBlockedByRobots(RuntimeError):
    """robots.txt disallows the whole site and the job asked to respect it."""

    def __init__(self, domain: str, robots_analysis: Dict[str, Any]) -> None:
        super().__init__("Crawling blocked by robots.txt")
        self.domain = domain
        self.robots_analysis = robots_analysis


class JobCancelled(RuntimeError):
    def __init__(self, message: str = "Job cancelled") -> None:
        super().__init__(message)


class ConnectorError(RuntimeError):
    def __init__(self, connector: str, message: str) -> None:
        super().__init__(f"{connector}: {message}")
        self.connector = connector


class ConnectorConfigError(ConnectorError):
    pass


class RetryLimitReached(RuntimeError):
    def __init__(self, job_id: str, max_retries: int) -> None:
        super().__init__(f"Job {job_id} already retried {max_retries} times")
        self.job_id = job_id
        self.max_retries = max_retries
