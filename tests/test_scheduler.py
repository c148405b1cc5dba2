import asyncio
from datetime import timedelta

from app.models.document import DocumentStatus
from app.services.scheduler_service import SchedulerService, expire_overdue_documents
from app.utils.datetime_helpers import utcnow


def test_jobs_run_once_per_interval():
    calls = []
    scheduler = SchedulerService()
    scheduler.add_job("count", lambda: calls.append(1), interval_minutes=60)

    asyncio.run(scheduler.run_pending())
    asyncio.run(scheduler.run_pending())

    assert calls == [1]
    assert scheduler.jobs[0]["last_run"] is not None


def test_failing_job_does_not_stop_others():
    calls = []

    def broken():
        raise RuntimeError("boom")

    scheduler = SchedulerService()
    scheduler.add_job("broken", broken, interval_minutes=1)
    scheduler.add_job("count", lambda: calls.append(1), interval_minutes=1)

    asyncio.run(scheduler.run_pending())

    assert calls == [1]


def test_expiry_job(db, session_factory, documents, draft_document, users):
    documents.update(draft_document.id, users["owner"].id, expires_at=utcnow() - timedelta(minutes=5))
    documents.submit(draft_document.id, users["owner"].id)

    expired = expire_overdue_documents(session_factory)

    assert expired == [draft_document.id]
    db.expire_all()
    assert documents.get_document(draft_document.id).status == DocumentStatus.EXPIRED.value
