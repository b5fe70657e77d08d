"""Job model - persisted unit of asynchronous work with dependency edges."""
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Table, Text
import enum

from brandkb.models.base import Base, new_id, utcnow


class JobType(enum.Enum):
    onboard = "onboard"
    normalize = "normalize"
    analyze = "analyze"


class JobStatus(enum.Enum):
    pending = "pending"
    running = "running"
    complete = "complete"
    failed = "failed"


TERMINAL_STATUSES = (JobStatus.complete, JobStatus.failed)


job_dependencies = Table(
    "job_dependencies",
    Base.metadata,
    Column("job_id", String(36), ForeignKey("jobs.id"), primary_key=True),
    Column("depends_on_job_id", String(36), ForeignKey("jobs.id"), primary_key=True, index=True),
)


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)

    type = Column(Enum(JobType), nullable=False, index=True)
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.pending, index=True)
    priority = Column(Integer, nullable=False, default=5)  # lower runs first

    payload = Column(JSON, nullable=False, default=dict)
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Optimistic lock, bumped on every status transition
    version = Column(Integer, nullable=False, default=0)
    cancel_requested = Column(Boolean, nullable=False, default=False)

    idempotency_key = Column(String(255), nullable=True, unique=True)
    retries_from = Column(String(36), ForeignKey("jobs.id"), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class JobLog(Base):
    """Lifecycle event for a job (created, claimed, completed, failed...)."""
    __tablename__ = "job_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    level = Column(String(10), nullable=False, default="INFO")
    message = Column(Text, nullable=False)
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
