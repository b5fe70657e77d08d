from fastapi import HTTPException

from brandkb.errors import (
    BrandNotFound,
    DuplicateJob,
    InvalidJobTransition,
    JobNotFound,
    PayloadValidationError,
    RetryLimitReached,
)


def http_error(exc: Exception) -> HTTPException:
    """Map a domain exception onto the HTTP status the routes expose."""
    if isinstance(exc, (JobNotFound, BrandNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateJob):
        return HTTPException(
            status_code=409,
            detail={"message": str(exc), "existingJobId": exc.existing_job_id},
        )
    if isinstance(exc, (InvalidJobTransition, RetryLimitReached)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PayloadValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    raise exc
