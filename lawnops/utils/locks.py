"""
Redis distributed locks - serialises read-modify-write on one SMS session.
Uses Redis SET NX with TTL for automatic expiration.

Two inbound messages from the same phone must never run the engine against
the same prior session. The lock fails closed: if Redis is unreachable or the
lock is held past the wait budget, LockTimeoutError is raised and the webhook
answers with a retryable status so the provider redelivers in order.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_WAIT_SECONDS = 5
LOCK_POLL_INTERVAL = 0.1  # 100ms

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout."""
    pass


@asynccontextmanager
async def session_lock(
    session_id: str,
    ttl: Optional[int] = None,
    wait: Optional[float] = None,
):
    """
    Acquire a distributed lock for one SMS session.

    Usage:
        async with session_lock(session_id):
            # load, run engine, persist
    """
    if ttl is None or wait is None:
        from lawnops.config import get_settings
        settings = get_settings()
        ttl = ttl if ttl is not None else settings.session_lock_ttl_seconds
        wait = wait if wait is not None else settings.session_lock_wait_seconds

    lock_key = f"lawnops:lock:session:{session_id}"
    lock_value = uuid.uuid4().hex  # Only release our own lock

    acquired = await _acquire_lock(lock_key, lock_value, ttl, wait)
    if not acquired:
        raise LockTimeoutError(
            f"Could not acquire lock for session {str(session_id)[:8]} within {wait}s"
        )
    try:
        yield
    finally:
        await _release_lock(lock_key, lock_value)


async def _acquire_lock(key: str, value: str, ttl: int, wait: float) -> bool:
    """Try to acquire a Redis lock with polling."""
    try:
        from lawnops.utils.dedup import get_redis
        redis = await get_redis()

        was_set = await redis.set(key, value, nx=True, ex=ttl)
        if was_set:
            return True

        elapsed = 0.0
        while elapsed < wait:
            await asyncio.sleep(LOCK_POLL_INTERVAL)
            elapsed += LOCK_POLL_INTERVAL
            was_set = await redis.set(key, value, nx=True, ex=ttl)
            if was_set:
                return True

        logger.warning("Lock acquisition timed out for %s", key)
        return False
    except Exception as e:
        logger.error("Redis lock error for %s: %s", key, str(e))
        return False


async def _release_lock(key: str, value: str) -> None:
    """Release a Redis lock only if we still own it (compare-and-delete)."""
    try:
        from lawnops.utils.dedup import get_redis
        redis = await get_redis()
        await redis.eval(_RELEASE_SCRIPT, 1, key, value)
    except Exception as e:
        logger.warning("Redis lock release error for %s: %s", key, str(e))
