"""Request-scoped collaborators, overridable in tests through dependency_overrides."""
from typing import Callable

from brandkb.config import get_settings
from brandkb.services.connectors import ConnectorAggregator


def get_enqueuer() -> Callable[[str], None]:
    from brandkb.workers.tasks import run_job

    def enqueue(job_id: str) -> None:
        run_job.delay(job_id)

    return enqueue


def get_aggregator() -> ConnectorAggregator:
    return ConnectorAggregator(get_settings())
