from brandkb.jobs.schemas import (
    AnalyzePayload,
    NormalizePayload,
    OnboardPayload,
    PAYLOAD_SCHEMAS,
    validate_payload,
)
from brandkb.jobs.store import JobStore
from brandkb.jobs.orchestrator import JobOrchestrator

__all__ = [
    "AnalyzePayload",
    "NormalizePayload",
    "OnboardPayload",
    "PAYLOAD_SCHEMAS",
    "validate_payload",
    "JobStore",
    "JobOrchestrator",
]
