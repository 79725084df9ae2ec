"""
Tests for lawnops/agents/conductor.py - end-to-end inbound SMS processing.

Covers:
- First message persisted with inbound/outbound events and an audit row
- Redelivery caught by the Redis marker and by the durable event id
- Handoff: ticket, click-to-call token and the extra outbound message
- Booking creates a job request
- Lock contention fails closed and releases the dedup marker
- Send failures recorded on the outbound event
"""
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from factories import BUSINESS_ID, CUSTOMER_PHONE, add_business, make_message
from lawnops.agents.conductor import process_inbound_sms
from lawnops.agents.sms_intake import build_session_id
from lawnops.errors import InputError, NoActiveTenantError
from lawnops.models.click_to_call_token import ClickToCallToken
from lawnops.models.event_log import EventLog
from lawnops.models.handoff_ticket import HandoffTicket
from lawnops.models.job_request import JobRequest
from lawnops.models.sms_event import SmsEvent
from lawnops.models.sms_session import SmsSession
from lawnops.utils.locks import LockTimeoutError

SESSION_ID = build_session_id(str(BUSINESS_ID), CUSTOMER_PHONE)


async def _count(db, model, *criteria):
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar()


class TestFirstMessage:
    async def test_persists_session_and_events(self, db, fake_redis, mock_sms):
        business = await add_business(db)

        result = await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM0001"), business)

        assert result["session_id"] == SESSION_ID
        assert result["status"] == "active"
        assert result["state"] == "COLLECTING"
        assert result["outbound_count"] == 1

        assert await _count(db, SmsSession) == 1
        assert await _count(db, SmsEvent, SmsEvent.direction == "inbound") == 1
        assert await _count(db, SmsEvent, SmsEvent.direction == "outbound") == 1
        assert await _count(db, EventLog, EventLog.action == "sms_processed") == 1

        inbound = (await db.execute(select(SmsEvent).where(SmsEvent.direction == "inbound"))).scalar_one()
        assert inbound.event_id == "provider_sms_SM0001"
        assert inbound.state_before == "INTENT"
        assert inbound.state_after == "COLLECTING"

    async def test_sends_after_commit(self, db, fake_redis, mock_sms):
        """The reply goes to the customer from the business number."""
        business = await add_business(db)
        await process_inbound_sms(db, make_message("Hi, I need weekly mowing"), business)

        mock_sms.assert_awaited_once()
        kwargs = mock_sms.call_args.kwargs
        assert kwargs["to"] == CUSTOMER_PHONE
        assert kwargs["from_phone"] == business.sms_phone

        outbound = (await db.execute(select(SmsEvent).where(SmsEvent.direction == "outbound"))).scalar_one()
        assert outbound.delivery_status == "sent"
        assert outbound.provider_sid == "SM_test_123"

    async def test_normalizes_sender(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        result = await process_inbound_sms(
            db, make_message("Hi, I need weekly mowing", from_phone="(512) 555-9876"), business,
        )
        assert result["session_id"] == SESSION_ID


class TestDuplicates:
    async def test_redis_marker(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM_dup"), business)

        again = await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM_dup"), business)

        assert again["status"] == "duplicate"
        assert again["outbound_count"] == 0
        assert mock_sms.await_count == 1
        assert await _count(db, SmsEvent, SmsEvent.direction == "inbound") == 1

    async def test_durable_event_id(self, db, fake_redis, mock_sms):
        """With the Redis marker gone, the unique event id still stops a replay."""
        business = await add_business(db)
        await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM_dup"), business)
        fake_redis.store.clear()

        again = await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM_dup"), business)

        assert again["status"] == "duplicate"
        assert mock_sms.await_count == 1


class TestActions:
    async def test_handoff_creates_ticket_and_token(self, db, fake_redis, mock_sms):
        business = await add_business(db)

        result = await process_inbound_sms(db, make_message("Can I talk to a person?"), business)

        assert result["status"] == "handoff"
        assert result["actions"] == ["create_handoff_ticket", "generate_click_to_call_token"]
        assert await _count(db, HandoffTicket) == 1
        assert await _count(db, ClickToCallToken) == 1
        assert await _count(db, EventLog, EventLog.action == "handoff_created") == 1

        # Handoff reply plus the click-to-call link
        assert result["outbound_count"] == mock_sms.await_count
        assert mock_sms.await_count >= 2
        assert "/c/" in mock_sms.call_args_list[-1].kwargs["body"]

    async def test_message_after_handoff_is_forwarded(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        await process_inbound_sms(db, make_message("Can I talk to a person?", sid="SM1"), business)
        sends = mock_sms.await_count

        result = await process_inbound_sms(db, make_message("gate code is 1234", sid="SM2"), business)

        assert result["actions"] == ["forward_to_human"]
        assert mock_sms.await_count == sends
        assert await _count(db, EventLog, EventLog.action == "message_forwarded") == 1

    async def test_booking_creates_job_request(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        texts = ["Hi, I need weekly mowing at 123 Oak St", "medium", "yes", "2"]
        for i, text in enumerate(texts):
            result = await process_inbound_sms(db, make_message(text, sid=f"SM{i}"), business)

        assert result["state"] == "BOOKED"
        job = (await db.execute(select(JobRequest))).scalar_one()
        assert job.status == "new"
        assert job.source == "sms"
        assert str(job.sms_session_id) == SESSION_ID
        assert job.preferred_date.isoformat() == "2026-06-03"
        assert job.services == ["mowing"]

    async def test_stop_sends_nothing(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        await process_inbound_sms(db, make_message("Hi, I need weekly mowing", sid="SM1"), business)

        result = await process_inbound_sms(db, make_message("STOP", sid="SM2"), business)

        assert result["status"] == "opted_out"
        assert result["outbound_count"] == 0
        assert mock_sms.await_count == 1


class TestFailures:
    async def test_no_business(self, db, fake_redis, mock_sms):
        with pytest.raises(NoActiveTenantError):
            await process_inbound_sms(db, make_message("hello"), None)

    async def test_inactive_business(self, db, fake_redis, mock_sms):
        business = await add_business(db, is_active=False)
        with pytest.raises(NoActiveTenantError):
            await process_inbound_sms(db, make_message("hello"), business)

    async def test_bad_sender(self, db, fake_redis, mock_sms):
        business = await add_business(db)
        with pytest.raises(InputError) as exc:
            await process_inbound_sms(db, make_message("hello", from_phone="abc"), business)
        assert exc.value.code == "missing_from_phone"

    async def test_lock_held_fails_closed(self, db, fake_redis, mock_sms):
        """A busy session raises a retryable error and lets the redelivery through."""
        business = await add_business(db)
        fake_redis.store[f"lawnops:lock:session:{SESSION_ID}"] = "someone-else"

        with patch("lawnops.utils.locks.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(LockTimeoutError):
                await process_inbound_sms(db, make_message("hello", sid="SM_locked"), business)

        assert "lawnops:dedup:provider_sms_SM_locked" not in fake_redis.store
        mock_sms.assert_not_awaited()

    async def test_send_failure_recorded(self, db, fake_redis, mock_sms):
        """A failed send never rolls back the committed transition."""
        mock_sms.return_value = {
            "success": False, "sid": None, "status": "failed", "provider": "twilio",
            "segments": 1, "cost_usd": None, "error": "Unsubscribed recipient",
            "error_code": "21610", "encoding": "gsm7",
        }
        business = await add_business(db)

        result = await process_inbound_sms(db, make_message("Hi, I need weekly mowing"), business)

        assert result["state"] == "COLLECTING"
        outbound = (await db.execute(select(SmsEvent).where(SmsEvent.direction == "outbound"))).scalar_one()
        assert outbound.delivery_status == "failed"
        assert outbound.error_code == "21610"
