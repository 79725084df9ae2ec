"""
Inbound message deduplication - Redis fast path in front of the durable event id.

SMS providers deliver webhooks at least once. Every inbound message carries an
event id derived from the provider message id (provider_sms_{MessageSid}).
The Redis SET NX marker rejects redeliveries within the window without a DB
round trip; the unique sms_events.event_id column is the durable guarantee.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Dedup window in seconds (24 hours covers provider retry schedules)
DEDUP_WINDOW_SECONDS = 86400

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from lawnops.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_inbound_event_id(provider_message_id: Optional[str]) -> Optional[str]:
    """Event id for an inbound provider message, None when the provider gave no id."""
    if not provider_message_id:
        return None
    return f"provider_sms_{provider_message_id}"


async def is_duplicate_event(event_id: Optional[str]) -> bool:
    """
    Fast duplicate check for an inbound event id.
    Marks the id in Redis if unseen. Returns True if already seen.

    Redis failure returns False: the durable event-id check still runs.
    """
    if not event_id:
        return False

    key = f"lawnops:dedup:{event_id}"
    try:
        redis = await get_redis()
        was_set = await redis.set(key, "1", nx=True, ex=DEDUP_WINDOW_SECONDS)
        if was_set:
            return False
        logger.info("Duplicate inbound event detected: %s", event_id)
        return True
    except Exception as e:
        logger.warning("Redis dedup check failed for %s: %s. Falling back to event log.", event_id, str(e))
        return False


async def release_event(event_id: Optional[str]) -> None:
    """Drop the dedup marker so a failed attempt can be redelivered and retried."""
    if not event_id:
        return
    try:
        redis = await get_redis()
        await redis.delete(f"lawnops:dedup:{event_id}")
    except Exception as e:
        logger.warning("Redis dedup release failed for %s: %s", event_id, str(e))
