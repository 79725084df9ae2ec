"""
Tests for lawnops/workers/writeback_sync.py - posting approved assignments to Jobber.
"""
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lawnops.integrations.jobber import JobberClient
from lawnops.models.event_log import EventLog
from lawnops.workers.writeback_sync import (
    MAX_WRITEBACK_RETRIES,
    _heartbeat,
    _schedule_retry,
    get_jobber_client,
    sync_pending_writebacks,
    sync_writeback,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_request(attempts: int = 0, external_job_id: str | None = None):
    """Create a mock WritebackRequest."""
    request = MagicMock()
    request.id = uuid.uuid4()
    request.decision_id = uuid.uuid4()
    request.job_request_id = uuid.uuid4()
    request.business_id = uuid.uuid4()
    request.external_job_id = external_job_id
    request.attempts = attempts
    request.status = "pending"
    request.last_error = None
    request.next_attempt_at = None
    request.payload = {
        "crew_id": 3,
        "scheduled_date": "2026-06-02",
        "start_minute": 450,
        "duration_minutes": 69,
        "services": ["mowing"],
    }
    return request


def _make_job(job_id: uuid.UUID, assigned_date: date | None = date(2026, 6, 2)):
    job = MagicMock()
    job.id = job_id
    job.address = "123 Oak St, Austin, TX 78701"
    job.services = ["mowing"]
    job.assigned_date = assigned_date
    job.external_job_id = None
    return job


def _make_business(business_id: uuid.UUID):
    business = MagicMock()
    business.id = business_id
    business.timezone = "America/Chicago"
    return business


def _make_db(request, job=None, business=None):
    db = MagicMock()
    db.get = AsyncMock(side_effect=lambda model, pk: {
        request.job_request_id: job,
        request.business_id: business,
    }.get(pk))
    db.add = MagicMock()
    return db


@asynccontextmanager
async def mock_session(db):
    yield db


# ---------------------------------------------------------------------------
# sync_writeback
# ---------------------------------------------------------------------------

class TestSyncWriteback:
    async def test_success_marks_sent(self):
        """A created Jobber job is recorded on both the request and the job."""
        request = _make_request()
        job = _make_job(request.job_request_id)
        db = _make_db(request, job, _make_business(request.business_id))
        client = MagicMock()
        client.assign_visit = AsyncMock(return_value={
            "success": True, "job_id": "JOB_1", "visit_id": None, "error": None,
        })

        await sync_writeback(db, request, client)

        assert request.status == "sent"
        assert request.attempts == 1
        assert request.external_job_id == "JOB_1"
        assert job.external_job_id == "JOB_1"
        kwargs = client.assign_visit.call_args.kwargs
        assert kwargs["scheduled_date"] == date(2026, 6, 2)
        assert kwargs["start_minute"] == 450
        assert kwargs["title"] == "Mowing"
        assert kwargs["tz_name"] == "America/Chicago"
        logged = db.add.call_args.args[0]
        assert isinstance(logged, EventLog)
        assert logged.action == "writeback_sent"

    async def test_existing_jobber_job(self):
        request = _make_request(external_job_id="JOB_7")
        job = _make_job(request.job_request_id)
        db = _make_db(request, job, _make_business(request.business_id))
        client = MagicMock()
        client.assign_visit = AsyncMock(return_value={
            "success": True, "job_id": "JOB_7", "visit_id": "VISIT_1", "error": None,
        })

        await sync_writeback(db, request, client)

        assert client.assign_visit.call_args.kwargs["external_job_id"] == "JOB_7"
        assert request.status == "sent"

    async def test_failure_raises(self):
        request = _make_request()
        db = _make_db(request, _make_job(request.job_request_id), _make_business(request.business_id))
        client = MagicMock()
        client.assign_visit = AsyncMock(return_value={
            "success": False, "job_id": None, "visit_id": None, "error": "rate limited",
        })

        with pytest.raises(RuntimeError, match="rate limited"):
            await sync_writeback(db, request, client)

        assert request.status == "pending"

    async def test_missing_job(self):
        request = _make_request()
        db = _make_db(request, None, _make_business(request.business_id))
        client = MagicMock()
        client.assign_visit = AsyncMock()

        await sync_writeback(db, request, client)

        assert request.status == "failed"
        client.assign_visit.assert_not_called()

    async def test_no_assigned_date(self):
        request = _make_request()
        job = _make_job(request.job_request_id, assigned_date=None)
        db = _make_db(request, job, _make_business(request.business_id))
        client = MagicMock()
        client.assign_visit = AsyncMock()

        await sync_writeback(db, request, client)

        assert request.status == "failed"
        assert request.last_error == "Job has no assigned date"


# ---------------------------------------------------------------------------
# Retry scheduling
# ---------------------------------------------------------------------------

class TestScheduleRetry:
    def test_first_failure_waits_30s(self):
        request = _make_request(attempts=1)
        _schedule_retry(request, "timeout", NOW)
        assert request.status == "retrying"
        assert request.next_attempt_at == NOW + timedelta(seconds=30)
        assert request.last_error == "timeout"

    def test_backoff_grows(self):
        request = _make_request(attempts=3)
        _schedule_retry(request, "timeout", NOW)
        assert request.next_attempt_at == NOW + timedelta(seconds=600)

    def test_gives_up_after_max(self):
        request = _make_request(attempts=MAX_WRITEBACK_RETRIES)
        _schedule_retry(request, "timeout", NOW)
        assert request.status == "failed"
        assert request.last_error.startswith("Max retries (5) exhausted")


# ---------------------------------------------------------------------------
# Batch loop
# ---------------------------------------------------------------------------

class TestSyncPendingWritebacks:
    async def test_not_configured(self):
        with patch("lawnops.workers.writeback_sync.get_jobber_client", return_value=None):
            assert await sync_pending_writebacks() == 0

    async def test_nothing_due(self):
        db = MagicMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        db.execute = AsyncMock(return_value=result)
        db.commit = AsyncMock()

        with patch("lawnops.workers.writeback_sync.async_session_factory", return_value=mock_session(db)):
            assert await sync_pending_writebacks(client=MagicMock(), now=NOW) == 0
        db.commit.assert_not_called()

    async def test_failure_schedules_retry_and_continues(self):
        """One failing request does not stop the batch."""
        ok = _make_request(attempts=1)
        bad = _make_request(attempts=1)
        db = MagicMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [ok, bad]
        db.execute = AsyncMock(return_value=result)
        db.commit = AsyncMock()

        with (
            patch("lawnops.workers.writeback_sync.async_session_factory", return_value=mock_session(db)),
            patch(
                "lawnops.workers.writeback_sync.sync_writeback",
                new_callable=AsyncMock,
                side_effect=[None, RuntimeError("boom")],
            ) as mock_sync,
        ):
            attempted = await sync_pending_writebacks(client=MagicMock(), now=NOW)

        assert attempted == 2
        assert mock_sync.await_count == 2
        assert bad.status == "retrying"
        assert bad.last_error == "boom"
        db.commit.assert_awaited_once()


class TestClientAndHeartbeat:
    def test_client_needs_api_key(self):
        settings = MagicMock()
        settings.jobber_api_key = ""
        with patch("lawnops.workers.writeback_sync.get_settings", return_value=settings):
            assert get_jobber_client() is None

        settings.jobber_api_key = "jb_key"
        with patch("lawnops.workers.writeback_sync.get_settings", return_value=settings):
            client = get_jobber_client()
        assert isinstance(client, JobberClient)
        assert client.api_key == "jb_key"

    async def test_heartbeat(self, fake_redis):
        await _heartbeat()
        assert "lawnops:worker_health:writeback_sync" in fake_redis.store
