"""Job API routes - submission, status, logs, retry and cancellation."""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from brandkb.api.deps import get_enqueuer
from brandkb.api.errors import http_error
from brandkb.errors import (
    BrandNotFound,
    DuplicateJob,
    InvalidJobTransition,
    JobNotFound,
    PayloadValidationError,
    RetryLimitReached,
)
from brandkb.jobs.store import JobStore
from brandkb.models import JobStatus, JobType
from brandkb.models.base import get_db
from brandkb.services.brands import BrandRegistry

router = APIRouter()

DOMAIN_ERRORS = (
    BrandNotFound,
    DuplicateJob,
    InvalidJobTransition,
    JobNotFound,
    PayloadValidationError,
    RetryLimitReached,
)


# ============================================================================
# Pydantic Schemas
# ============================================================================

class JobSubmitRequest(BaseModel):
    brand_id: str = Field(alias="brandId")
    job_id: Optional[str] = Field(None, alias="jobId")
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, ge=1, le=10)
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", max_length=255)

    class Config:
        populate_by_name = True


class JobResponse(BaseModel):
    id: str
    brand_id: str = Field(alias="brandId")
    type: str
    status: str
    priority: int
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    created_at: Optional[str] = Field(None, alias="createdAt")
    started_at: Optional[str] = Field(None, alias="startedAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")
    retries_from: Optional[str] = Field(None, alias="retriesFrom")
    retry_count: int = Field(0, alias="retryCount")
    max_retries: int = Field(0, alias="maxRetries")
    cancel_requested: bool = Field(False, alias="cancelRequested")

    class Config:
        populate_by_name = True


class JobLogResponse(BaseModel):
    id: int
    level: str
    message: str
    metadata_json: Dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    created_at: datetime = Field(serialization_alias="createdAt")

    class Config:
        from_attributes = True


def _job_response(store: JobStore, job) -> JobResponse:
    return JobResponse.model_validate(store.to_dict(job))


def _submit(
    job_type: JobType,
    request: JobSubmitRequest,
    db: Session,
    enqueue: Callable[[str], None],
) -> JobResponse:
    store = JobStore(db)
    try:
        BrandRegistry(db).get(request.brand_id)
        job = store.create(
            brand_id=request.brand_id,
            job_type=job_type,
            payload=request.payload,
            priority=request.priority,
            depends_on=request.depends_on,
            idempotency_key=request.idempotency_key,
            job_id=request.job_id,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)

    if not request.depends_on:
        enqueue(job.id)
    return _job_response(store, job)


# ============================================================================
# Submission
# ============================================================================

@router.post("/onboard", response_model=JobResponse, status_code=201)
def submit_onboard(
    request: JobSubmitRequest,
    db: Session = Depends(get_db),
    enqueue: Callable[[str], None] = Depends(get_enqueuer),
):
    """Queue a crawl of the brand's site. Payload: seedUrls, maxPages, respectRobots, crawlDelay, userAgent."""
    return _submit(JobType.onboard, request, db, enqueue)


@router.post("/normalize", response_model=JobResponse, status_code=201)
def submit_normalize(
    request: JobSubmitRequest,
    db: Session = Depends(get_db),
    enqueue: Callable[[str], None] = Depends(get_enqueuer),
):
    return _submit(JobType.normalize, request, db, enqueue)


@router.post("/analyze", response_model=JobResponse, status_code=201)
def submit_analyze(
    request: JobSubmitRequest,
    db: Session = Depends(get_db),
    enqueue: Callable[[str], None] = Depends(get_enqueuer),
):
    return _submit(JobType.analyze, request, db, enqueue)


# ============================================================================
# Queries
# ============================================================================

@router.get("", response_model=List[JobResponse])
def list_jobs(
    brand_id: Optional[str] = Query(None, alias="brandId"),
    job_type: Optional[JobType] = Query(None, alias="type"),
    status: Optional[JobStatus] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    store = JobStore(db)
    jobs = store.list_jobs(brand_id=brand_id, job_type=job_type, status=status, limit=limit)
    return [_job_response(store, job) for job in jobs]


@router.get("/stats")
def job_stats(
    brand_id: Optional[str] = Query(None, alias="brandId"),
    db: Session = Depends(get_db),
):
    return JobStore(db).stats(brand_id=brand_id)


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, db: Session = Depends(get_db)):
    store = JobStore(db)
    try:
        job = store.get(job_id)
    except JobNotFound as exc:
        raise http_error(exc)
    return _job_response(store, job)


@router.get("/{job_id}/logs", response_model=List[JobLogResponse])
def get_job_logs(
    job_id: str,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        return JobStore(db).logs(job_id, limit=limit)
    except JobNotFound as exc:
        raise http_error(exc)


# ============================================================================
# Transitions
# ============================================================================

@router.post("/{job_id}:retry", response_model=JobResponse, status_code=201)
def retry_job(
    job_id: str,
    db: Session = Depends(get_db),
    enqueue: Callable[[str], None] = Depends(get_enqueuer),
):
    store = JobStore(db)
    try:
        retry = store.retry(job_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    enqueue(retry.id)
    return _job_response(store, retry)


@router.post("/{job_id}:cancel", response_model=JobResponse)
def cancel_job(job_id: str, db: Session = Depends(get_db)):
    store = JobStore(db)
    try:
        job = store.request_cancel(job_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc)
    return _job_response(store, job)
