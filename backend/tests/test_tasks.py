from brandkb.jobs.store import JobStore
from brandkb.models import JobType
from brandkb.workers import tasks


def _patch_queue(monkeypatch, session_factory):
    queued = []
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(tasks.run_job, "delay", queued.append)
    return queued


def test_dispatch_enqueues_runnable_jobs_only(monkeypatch, session_factory, db, brand):
    queued = _patch_queue(monkeypatch, session_factory)
    store = JobStore(db)
    low = store.create(brand.id, JobType.onboard, {}, priority=7)
    high = store.create(brand.id, JobType.onboard, {}, priority=2)
    store.create(brand.id, JobType.normalize, {}, depends_on=[high.id])

    outcome = tasks.dispatch_pending_jobs(limit=10)

    assert outcome == {"dispatched": [high.id, low.id]}
    assert queued == [high.id, low.id]


def test_run_job_enqueues_the_follow_up(monkeypatch, session_factory):
    queued = _patch_queue(monkeypatch, session_factory)

    class FakeOrchestrator:
        def __init__(self, session):
            self.session = session

        def run(self, job_id):
            return {"jobId": job_id, "status": "complete", "nextJobId": "next-1"}

    monkeypatch.setattr(tasks, "JobOrchestrator", FakeOrchestrator)

    outcome = tasks.run_job("job-1")

    assert outcome["status"] == "complete"
    assert queued == ["next-1"]
