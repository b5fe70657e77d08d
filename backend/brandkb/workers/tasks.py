"""Celery tasks: execute one job, and sweep the queue for runnable jobs."""
import logging
from typing import Any, Dict

from brandkb.jobs.orchestrator import JobOrchestrator
from brandkb.jobs.store import JobStore
from brandkb.models.base import SessionLocal
from brandkb.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="brandkb.workers.tasks.run_job")
def run_job(job_id: str) -> Dict[str, Any]:
    """Claim and run a job. A job that cannot be claimed stays pending for the next sweep."""
    db = SessionLocal()
    try:
        outcome = JobOrchestrator(db).run(job_id)
    finally:
        db.close()

    # the follow-up may still be blocked if the sweep races us; claim() re-checks
    if outcome.get("nextJobId"):
        run_job.delay(outcome["nextJobId"])
    return outcome


@celery_app.task(name="brandkb.workers.tasks.dispatch_pending_jobs")
def dispatch_pending_jobs(limit: int = 0) -> Dict[str, Any]:
    """Enqueue runnable pending jobs, lowest priority value first."""
    db = SessionLocal()
    try:
        store = JobStore(db)
        job_ids = store.runnable_ids(limit or store.settings.dispatch_batch_size)
    finally:
        db.close()

    for job_id in job_ids:
        run_job.delay(job_id)
    if job_ids:
        logger.info("Dispatched %d pending jobs", len(job_ids))
    return {"dispatched": job_ids}
