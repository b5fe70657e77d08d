from brandkb.models.base import Base
from brandkb.models.brand import Brand
from brandkb.models.job import Job, JobLog, JobStatus, JobType, TERMINAL_STATUSES, job_dependencies
from brandkb.models.content import PageContent, RawPage
from brandkb.models.derived import BrandConnectorSnapshot, BrandTopic, CompetitorMeta

__all__ = [
    "Base",
    "Brand",
    "Job", "JobLog", "JobStatus", "JobType", "TERMINAL_STATUSES", "job_dependencies",
    "RawPage", "PageContent",
    "BrandTopic", "CompetitorMeta", "BrandConnectorSnapshot",
]
