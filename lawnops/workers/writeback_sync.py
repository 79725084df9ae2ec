"""
Write-back worker - posts approved crew assignments to Jobber.
CRITICAL: This runs AFTER approval commits. Never in the approval request path.

Retry logic:
- On failure: retry up to 5 times with exponential backoff (30s, 2min, 10min, 30min, 2hr)
- After max retries: mark as permanently failed and log an error for the operator
- Heartbeat stored in Redis for health monitoring
"""
import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional
from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from lawnops.config import get_settings
from lawnops.database import async_session_factory
from lawnops.integrations.jobber import JobberClient
from lawnops.models.business import Business
from lawnops.models.event_log import EventLog
from lawnops.models.job_request import JobRequest
from lawnops.models.writeback_request import WritebackRequest

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30
BATCH_SIZE = 20
MAX_WRITEBACK_RETRIES = 5
WRITEBACK_RETRY_DELAYS = [30, 120, 600, 1800, 7200]  # 30s, 2m, 10m, 30m, 2h


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from lawnops.utils.dedup import get_redis
        redis = await get_redis()
        await redis.set(
            "lawnops:worker_health:writeback_sync",
            datetime.now(timezone.utc).isoformat(),
            ex=300,
        )
    except Exception as e:
        logger.debug("Heartbeat not recorded: %s", str(e))


async def run_writeback_sync():
    """Main loop - poll for approved assignments that still need to reach Jobber."""
    settings = get_settings()
    interval = settings.writeback_poll_interval_seconds or POLL_INTERVAL_SECONDS
    logger.info("Write-back worker started (poll every %ds)", interval)

    while True:
        try:
            await sync_pending_writebacks()
        except Exception as e:
            logger.error("Write-back sync error: %s", str(e))

        await _heartbeat()
        await asyncio.sleep(interval)


def get_jobber_client() -> Optional[JobberClient]:
    settings = get_settings()
    if not settings.jobber_api_key:
        return None
    return JobberClient(api_key=settings.jobber_api_key)


async def sync_pending_writebacks(client: Optional[JobberClient] = None, now: Optional[datetime] = None) -> int:
    """Send every pending write-back and every retry that is due. Returns how many were attempted."""
    now = now or datetime.now(timezone.utc)
    client = client or get_jobber_client()
    if client is None:
        logger.debug("Jobber not configured, write-back skipped")
        return 0

    async with async_session_factory() as db:
        result = await db.execute(
            select(WritebackRequest)
            .where(
                and_(
                    WritebackRequest.status.in_(["pending", "retrying"]),
                    or_(
                        WritebackRequest.next_attempt_at.is_(None),
                        WritebackRequest.next_attempt_at <= now,
                    ),
                )
            )
            .order_by(WritebackRequest.created_at)
            .limit(BATCH_SIZE)
        )
        requests = result.scalars().all()

        if not requests:
            return 0

        logger.info("Writing back %d approved assignments", len(requests))

        for request in requests:
            try:
                await sync_writeback(db, request, client)
            except Exception as e:
                _schedule_retry(request, str(e), now)

        await db.commit()
        return len(requests)


def _schedule_retry(request: WritebackRequest, error: str, now: datetime) -> None:
    attempts = request.attempts or 0
    logger.error(
        "Write-back failed for decision %s (attempt %d/%d): %s",
        str(request.decision_id)[:8], attempts, MAX_WRITEBACK_RETRIES, error,
    )
    request.last_error = error

    if attempts < MAX_WRITEBACK_RETRIES:
        delay = WRITEBACK_RETRY_DELAYS[min(attempts - 1 if attempts else 0, len(WRITEBACK_RETRY_DELAYS) - 1)]
        request.status = "retrying"
        request.next_attempt_at = now + timedelta(seconds=delay)
        logger.info(
            "Write-back retry scheduled for decision %s in %ds",
            str(request.decision_id)[:8], delay,
        )
    else:
        request.status = "failed"
        request.last_error = f"Max retries ({MAX_WRITEBACK_RETRIES}) exhausted: {error}"
        logger.error(
            "Write-back permanently failed for decision %s after %d attempts",
            str(request.decision_id)[:8], MAX_WRITEBACK_RETRIES,
            extra={"decision_id": str(request.decision_id)[:8]},
        )


async def sync_writeback(db: AsyncSession, request: WritebackRequest, client: JobberClient):
    """Post one approved assignment. Raises on failure so the caller schedules a retry."""
    request.attempts = (request.attempts or 0) + 1
    job = await db.get(JobRequest, request.job_request_id)
    business = await db.get(Business, request.business_id)

    if not job or not business:
        request.status = "failed"
        request.last_error = "Job request or business not found"
        return

    payload = request.payload or {}
    scheduled = job.assigned_date
    if scheduled is None:
        request.status = "failed"
        request.last_error = "Job has no assigned date"
        return

    services = ", ".join(payload.get("services") or job.services or []) or "Lawn service"
    result = await client.assign_visit(
        scheduled_date=scheduled,
        start_minute=payload.get("start_minute"),
        duration_minutes=payload.get("duration_minutes"),
        external_job_id=request.external_job_id or job.external_job_id,
        title=services.replace("_", " ").title(),
        instructions=f"Crew {payload.get('crew_id')} - {job.address or 'address on file'}",
        tz_name=business.timezone,
    )

    if not result.get("success"):
        raise RuntimeError(result.get("error") or "Jobber write-back failed")

    request.status = "sent"
    request.sent_at = datetime.now(timezone.utc)
    request.last_error = None
    if result.get("job_id") and not job.external_job_id:
        job.external_job_id = result["job_id"]
        request.external_job_id = result["job_id"]

    db.add(EventLog(
        business_id=business.id,
        job_request_id=job.id,
        decision_id=request.decision_id,
        action="writeback_sent",
        message="Assignment written back to Jobber",
        data={"jobber_job_id": result.get("job_id"), "jobber_visit_id": result.get("visit_id")},
    ))
