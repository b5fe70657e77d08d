import pytest

from brandkb.errors import (
    DuplicateJob,
    InvalidJobTransition,
    JobNotFound,
    PayloadValidationError,
    RetryLimitReached,
)
from brandkb.jobs.store import JobStore
from brandkb.models import JobStatus, JobType


def _onboard(store, brand, **kwargs):
    return store.create(brand.id, JobType.onboard, {"seedUrls": ["https://acme.test"]}, **kwargs)


def test_create_persists_pending_job_with_validated_payload(db, brand):
    store = JobStore(db)
    job = store.create(brand.id, JobType.onboard, {"maxPages": 10})

    data = store.to_dict(store.get(job.id))
    assert data["status"] == "pending"
    assert data["type"] == "onboard"
    assert data["brandId"] == brand.id
    assert data["payload"] == {"maxPages": 10, "respectRobots": True, "seedUrls": []}
    assert data["result"] is None
    assert data["dependsOn"] == []
    assert data["startedAt"] is None


def test_create_rejects_invalid_payload_and_unknown_dependency(db, brand):
    store = JobStore(db)
    with pytest.raises(PayloadValidationError):
        store.create(brand.id, JobType.onboard, {"maxPages": -5})
    with pytest.raises(JobNotFound):
        store.create(brand.id, JobType.normalize, {}, depends_on=["does-not-exist"])


def test_duplicate_idempotency_key_is_rejected(db, brand):
    store = JobStore(db)
    first = _onboard(store, brand, idempotency_key="onboard-acme")
    with pytest.raises(DuplicateJob) as exc_info:
        _onboard(store, brand, idempotency_key="onboard-acme")
    assert exc_info.value.existing_job_id == first.id


def test_claim_is_won_exactly_once(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)

    assert store.claim(job.id) is True
    assert store.claim(job.id) is False

    claimed = store.get(job.id)
    assert claimed.status == JobStatus.running
    assert claimed.started_at is not None
    assert claimed.version == 1


def test_competing_sessions_cannot_both_claim(session_factory, brand):
    first, second = session_factory(), session_factory()
    try:
        job = _onboard(JobStore(first), brand)
        outcomes = [JobStore(first).claim(job.id), JobStore(second).claim(job.id)]
    finally:
        first.close()
        second.close()
    assert outcomes == [True, False]


def test_dependent_job_waits_for_dependency(db, brand):
    store = JobStore(db)
    parent = _onboard(store, brand)
    child = store.create(brand.id, JobType.normalize, {"rawPageIds": []}, depends_on=[parent.id])

    assert store.runnable_ids() == [parent.id]
    assert store.claim(child.id) is False

    assert store.claim(parent.id) is True
    assert store.claim(child.id) is False

    store.complete(parent.id, {"ok": True})
    assert store.runnable_ids() == [child.id]
    assert store.claim(child.id) is True


def test_runnable_ids_order_by_priority_then_age(db, brand):
    store = JobStore(db)
    normal = _onboard(store, brand)
    urgent = _onboard(store, brand, priority=1)
    later = _onboard(store, brand)
    assert store.runnable_ids() == [urgent.id, normal.id, later.id]
    assert store.runnable_ids(limit=1) == [urgent.id]


def test_complete_creates_follow_up_in_same_transition(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)
    store.claim(job.id)

    follow = store.complete(
        job.id,
        {"crawledPages": 1},
        follow_up={"type": JobType.normalize, "payload": {"rawPageIds": ["r1"]}, "priority": 4},
    )

    done = store.get(job.id)
    assert done.status == JobStatus.complete
    assert done.completed_at is not None
    assert done.result == {"crawledPages": 1, "nextJobId": follow.id}
    assert follow.type == JobType.normalize
    assert follow.priority == 4
    assert store.dependency_ids(follow.id) == [job.id]


def test_terminal_transitions_require_running(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)

    with pytest.raises(InvalidJobTransition):
        store.complete(job.id, {})

    store.claim(job.id)
    store.fail(job.id, "boom", {"error": "boom"})
    failed = store.get(job.id)
    assert failed.status == JobStatus.failed
    assert failed.error_message == "boom"

    with pytest.raises(InvalidJobTransition):
        store.complete(job.id, {})
    with pytest.raises(InvalidJobTransition):
        store.fail(job.id, "again")


def test_failed_dependency_blocks_dependents(db, brand):
    store = JobStore(db)
    parent = _onboard(store, brand)
    store.create(brand.id, JobType.normalize, {}, depends_on=[parent.id])
    store.claim(parent.id)
    store.fail(parent.id, "boom")

    stats = store.stats()
    assert stats["byStatus"] == {"pending": 1, "running": 0, "complete": 0, "failed": 1}
    assert stats["byType"]["onboard"] == 1
    assert stats["blocked"] == 1
    assert stats["waitingOnDependencies"] == 1
    assert store.runnable_ids() == []


def test_retry_creates_linked_job_and_repoints_dependents(db, brand):
    store = JobStore(db)
    parent = _onboard(store, brand)
    child = store.create(brand.id, JobType.normalize, {}, depends_on=[parent.id])
    store.claim(parent.id)
    store.fail(parent.id, "boom")

    retry = store.retry(parent.id)
    assert retry.retries_from == parent.id
    assert retry.retry_count == 1
    assert retry.status == JobStatus.pending
    assert retry.payload == store.get(parent.id).payload
    assert store.dependency_ids(child.id) == [retry.id]


def test_retry_rules(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)
    with pytest.raises(InvalidJobTransition):
        store.retry(job.id)

    current = job
    for _ in range(current.max_retries):
        store.claim(current.id)
        store.fail(current.id, "boom")
        current = store.retry(current.id)

    store.claim(current.id)
    store.fail(current.id, "boom")
    with pytest.raises(RetryLimitReached):
        store.retry(current.id)


def test_cancel_pending_fails_immediately(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)

    cancelled = store.request_cancel(job.id)
    assert cancelled.status == JobStatus.failed
    assert cancelled.error_message == "Job cancelled"
    assert store.claim(job.id) is False


def test_cancel_running_sets_flag(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)
    store.claim(job.id)

    flagged = store.request_cancel(job.id)
    assert flagged.status == JobStatus.running
    assert flagged.cancel_requested is True
    assert store.is_cancel_requested(job.id) is True

    store.fail(job.id, "Job cancelled")
    with pytest.raises(InvalidJobTransition):
        store.request_cancel(job.id)


def test_lifecycle_is_logged(db, brand):
    store = JobStore(db)
    job = _onboard(store, brand)
    store.claim(job.id)
    store.complete(job.id, {})

    messages = [entry.message for entry in store.logs(job.id)]
    assert messages == ["Job created", "Job claimed", "Job completed"]

    with pytest.raises(JobNotFound):
        store.logs("missing")
