"""Job persistence: creation, atomic state transitions and queue queries.

The jobs table is the single source of truth. Every status change is a
conditional UPDATE guarded by the expected current status, so two workers
racing for the same job cannot both win.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from brandkb.config import get_settings
from brandkb.errors import (
    DuplicateJob,
    InvalidJobTransition,
    JobNotFound,
    RetryLimitReached,
)
from brandkb.models import Job, JobLog, JobStatus, JobType, TERMINAL_STATUSES, job_dependencies
from brandkb.models.base import new_id, utcnow
from brandkb.jobs.schemas import validate_payload

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 5
CANCELLED_MESSAGE = "Job cancelled"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _unfinished_dependency():
    """EXISTS a dependency of the outer job that is not complete."""
    dep = aliased(Job)
    return (
        select(job_dependencies.c.depends_on_job_id)
        .join(dep, dep.id == job_dependencies.c.depends_on_job_id)
        .where(job_dependencies.c.job_id == Job.id, dep.status != JobStatus.complete)
        .correlate(Job.__table__)
        .exists()
    )


def _failed_dependency():
    dep = aliased(Job)
    return (
        select(job_dependencies.c.depends_on_job_id)
        .join(dep, dep.id == job_dependencies.c.depends_on_job_id)
        .where(job_dependencies.c.job_id == Job.id, dep.status == JobStatus.failed)
        .correlate(Job.__table__)
        .exists()
    )


class JobStore:
    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create(
        self,
        brand_id: str,
        job_type: JobType,
        payload: Optional[Dict[str, Any]] = None,
        priority: int = DEFAULT_PRIORITY,
        depends_on: Optional[Sequence[str]] = None,
        idempotency_key: Optional[str] = None,
        retries_from: Optional[str] = None,
        retry_count: int = 0,
        job_id: Optional[str] = None,
        commit: bool = True,
    ) -> Job:
        validated = validate_payload(job_type, payload)

        if job_id and self.find(job_id) is not None:
            raise DuplicateJob(job_id, job_id)

        if idempotency_key:
            existing = self.session.scalar(select(Job.id).where(Job.idempotency_key == idempotency_key))
            if existing:
                raise DuplicateJob(idempotency_key, existing)

        dependency_ids: List[str] = []
        for dep_id in depends_on or []:
            if dep_id not in dependency_ids:
                dependency_ids.append(dep_id)
        if dependency_ids:
            found = set(self.session.scalars(select(Job.id).where(Job.id.in_(dependency_ids))).all())
            missing = [dep_id for dep_id in dependency_ids if dep_id not in found]
            if missing:
                raise JobNotFound(missing[0])

        job = Job(
            id=job_id or new_id(),
            brand_id=brand_id,
            type=job_type,
            status=JobStatus.pending,
            priority=priority,
            payload=validated.dump(),
            idempotency_key=idempotency_key or None,
            retries_from=retries_from,
            retry_count=retry_count,
            max_retries=self.settings.job_max_retries,
            version=0,
            cancel_requested=False,
        )
        self.session.add(job)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            if idempotency_key:
                raise DuplicateJob(idempotency_key) from exc
            raise

        if dependency_ids:
            self.session.execute(
                job_dependencies.insert(),
                [{"job_id": job.id, "depends_on_job_id": dep_id} for dep_id in dependency_ids],
            )

        self.log_event(job.id, "Job created", metadata={
            "type": job_type.value,
            "priority": priority,
            "dependsOn": dependency_ids,
        })
        if commit:
            self.session.commit()
        logger.info("Created %s job %s for brand %s", job_type.value, job.id, brand_id)
        return job

    def find(self, job_id: str) -> Optional[Job]:
        # populate_existing: transitions are bulk UPDATEs that bypass the identity map
        return self.session.get(Job, job_id, populate_existing=True)

    def get(self, job_id: str) -> Job:
        job = self.find(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def dependency_ids(self, job_id: str) -> List[str]:
        rows = self.session.scalars(
            select(job_dependencies.c.depends_on_job_id).where(job_dependencies.c.job_id == job_id)
        ).all()
        return list(rows)

    def to_dict(self, job: Job) -> Dict[str, Any]:
        return {
            "id": job.id,
            "brandId": job.brand_id,
            "type": job.type.value,
            "status": job.status.value,
            "priority": job.priority,
            "payload": job.payload or {},
            "result": job.result,
            "dependsOn": self.dependency_ids(job.id),
            "errorMessage": job.error_message,
            "createdAt": _iso(job.created_at),
            "startedAt": _iso(job.started_at),
            "completedAt": _iso(job.completed_at),
            "retriesFrom": job.retries_from,
            "retryCount": job.retry_count,
            "maxRetries": job.max_retries,
            "cancelRequested": bool(job.cancel_requested),
        }

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def claim(self, job_id: str) -> bool:
        """pending -> running, only if every dependency is complete. True if this caller won."""
        now = utcnow()
        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status == JobStatus.pending,
                Job.cancel_requested.is_(False),
                ~_unfinished_dependency(),
            )
            .values(status=JobStatus.running, started_at=now, updated_at=now, version=Job.version + 1)
            .execution_options(synchronize_session=False)
        )
        claimed = self.session.execute(stmt).rowcount == 1
        if claimed:
            self.log_event(job_id, "Job claimed")
        self.session.commit()
        return claimed

    def complete(
        self,
        job_id: str,
        result: Dict[str, Any],
        follow_up: Optional[Dict[str, Any]] = None,
    ) -> Optional[Job]:
        """
        running -> complete. ``follow_up`` ({type, payload, priority}) is created
        in the same transaction, depending on this job; its id is written into
        the result as ``nextJobId``.
        """
        next_job = None
        result = dict(result)
        if follow_up is not None:
            job = self.get(job_id)
            next_job = self.create(
                brand_id=job.brand_id,
                job_type=follow_up["type"],
                payload=follow_up.get("payload"),
                priority=follow_up.get("priority", DEFAULT_PRIORITY),
                depends_on=[job_id],
                commit=False,
            )
            result["nextJobId"] = next_job.id

        now = utcnow()
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.running)
            .values(
                status=JobStatus.complete,
                result=result,
                error_message=None,
                completed_at=now,
                updated_at=now,
                version=Job.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            self.session.rollback()
            raise InvalidJobTransition(job_id, JobStatus.running.value, JobStatus.complete.value)

        self.log_event(job_id, "Job completed", metadata={"nextJobId": next_job.id if next_job else None})
        self.session.commit()
        logger.info("Job %s completed", job_id)
        return next_job

    def fail(
        self,
        job_id: str,
        message: str,
        result: Optional[Dict[str, Any]] = None,
        from_statuses: Sequence[JobStatus] = (JobStatus.running,),
    ) -> None:
        """running -> failed (or pending -> failed for cancellation). Always carries a message."""
        now = utcnow()
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_(list(from_statuses)))
            .values(
                status=JobStatus.failed,
                error_message=message or "Job failed",
                result=result,
                completed_at=now,
                updated_at=now,
                version=Job.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            self.session.rollback()
            raise InvalidJobTransition(job_id, "/".join(s.value for s in from_statuses), JobStatus.failed.value)

        self.log_event(job_id, f"Job failed: {message}", level="ERROR")
        self.session.commit()
        logger.warning("Job %s failed: %s", job_id, message)

    def request_cancel(self, job_id: str) -> Job:
        """Pending jobs fail immediately; running jobs are flagged and stop at their next checkpoint."""
        job = self.get(job_id)
        if job.status in TERMINAL_STATUSES:
            raise InvalidJobTransition(job_id, "pending/running", "cancelled")

        if job.status == JobStatus.pending:
            try:
                self.fail(job_id, CANCELLED_MESSAGE, {"error": CANCELLED_MESSAGE},
                          from_statuses=(JobStatus.pending,))
                return self.get(job_id)
            except InvalidJobTransition:
                # claimed in the meantime; fall through to flagging it
                pass

        self.session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.running)
            .values(cancel_requested=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.log_event(job_id, "Cancellation requested", level="WARNING")
        self.session.commit()
        return self.get(job_id)

    def is_cancel_requested(self, job_id: str) -> bool:
        return bool(self.session.scalar(select(Job.cancel_requested).where(Job.id == job_id)))

    def retry(self, job_id: str) -> Job:
        """Re-enqueue a failed job as a new job; pending dependents are re-pointed at it."""
        job = self.get(job_id)
        if job.status != JobStatus.failed:
            raise InvalidJobTransition(job_id, JobStatus.failed.value, "retry")
        if job.retry_count >= job.max_retries:
            raise RetryLimitReached(job_id, job.max_retries)

        retry_job = self.create(
            brand_id=job.brand_id,
            job_type=job.type,
            payload=job.payload,
            priority=job.priority,
            depends_on=self.dependency_ids(job_id),
            retries_from=job.id,
            retry_count=job.retry_count + 1,
            commit=False,
        )

        pending_dependents = select(Job.id).where(Job.status == JobStatus.pending)
        self.session.execute(
            update(job_dependencies)
            .where(
                job_dependencies.c.depends_on_job_id == job_id,
                job_dependencies.c.job_id.in_(pending_dependents),
            )
            .values(depends_on_job_id=retry_job.id)
        )
        self.log_event(job_id, "Job retried", metadata={"retryJobId": retry_job.id})
        self.session.commit()
        return retry_job

    # ------------------------------------------------------------------
    # Queue queries
    # ------------------------------------------------------------------

    def runnable_ids(self, limit: int = 10) -> List[str]:
        """Pending jobs whose dependencies are all complete, by priority then age."""
        stmt = (
            select(Job.id)
            .where(
                Job.status == JobStatus.pending,
                Job.cancel_requested.is_(False),
                ~_unfinished_dependency(),
            )
            .order_by(Job.priority.asc(), Job.created_at.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def list_jobs(
        self,
        brand_id: Optional[str] = None,
        job_type: Optional[JobType] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50,
    ) -> List[Job]:
        stmt = select(Job)
        if brand_id:
            stmt = stmt.where(Job.brand_id == brand_id)
        if job_type:
            stmt = stmt.where(Job.type == job_type)
        if status:
            stmt = stmt.where(Job.status == status)
        stmt = stmt.order_by(Job.created_at.desc()).limit(limit)
        return list(self.session.scalars(stmt).all())

    def stats(self, brand_id: Optional[str] = None) -> Dict[str, Any]:
        def scoped(stmt):
            return stmt.where(Job.brand_id == brand_id) if brand_id else stmt

        by_status = {status.value: 0 for status in JobStatus}
        for status, count in self.session.execute(
            scoped(select(Job.status, func.count(Job.id))).group_by(Job.status)
        ):
            by_status[status.value] = count

        by_type = {job_type.value: 0 for job_type in JobType}
        for job_type, count in self.session.execute(
            scoped(select(Job.type, func.count(Job.id))).group_by(Job.type)
        ):
            by_type[job_type.value] = count

        blocked = self.session.scalar(
            scoped(select(func.count(Job.id))).where(Job.status == JobStatus.pending, _failed_dependency())
        ) or 0
        waiting = self.session.scalar(
            scoped(select(func.count(Job.id))).where(Job.status == JobStatus.pending, _unfinished_dependency())
        ) or 0

        return {
            "total": sum(by_status.values()),
            "byStatus": by_status,
            "byType": by_type,
            "waitingOnDependencies": waiting,
            "blocked": blocked,
        }

    # ------------------------------------------------------------------
    # Job log
    # ------------------------------------------------------------------

    def log_event(
        self,
        job_id: str,
        message: str,
        level: str = "INFO",
        metadata: Optional[Dict[str, Any]] = None,
        commit: bool = False,
    ) -> None:
        self.session.add(JobLog(job_id=job_id, level=level, message=message, metadata_json=metadata or {}))
        if commit:
            self.session.commit()

    def logs(self, job_id: str, limit: int = 200) -> List[JobLog]:
        self.get(job_id)
        stmt = select(JobLog).where(JobLog.job_id == job_id).order_by(JobLog.id.asc()).limit(limit)
        return list(self.session.scalars(stmt).all())
