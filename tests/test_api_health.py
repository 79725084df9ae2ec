"""
Tests for lawnops/api/health.py - liveness and readiness.
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

from lawnops.api.health import health_check, readiness_check


class TestHealthCheck:
    async def test_returns_healthy(self):
        """Liveness check always returns healthy with timestamp and version."""
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "1.0.0"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None


class TestReadinessCheck:
    async def test_all_healthy_returns_ready(self, db, fake_redis):
        fake_redis.store["lawnops:worker_health:writeback_sync"] = "2026-06-01T12:00:00+00:00"

        result = await readiness_check(db=db)

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True}
        assert result["workers"] == {"writeback_sync": "2026-06-01T12:00:00+00:00"}

    async def test_worker_never_reported(self, db, fake_redis):
        result = await readiness_check(db=db)
        assert result["workers"] == {"writeback_sync": None}

    async def test_db_failure_returns_degraded(self, fake_redis):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))

        result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False
        assert result["checks"]["redis"] is True

    async def test_redis_failure_returns_degraded(self, db):
        """Without Redis the session lock is unavailable, so the service is not ready."""
        with patch(
            "lawnops.utils.dedup.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("redis down"),
        ):
            result = await readiness_check(db=db)

        assert result["status"] == "degraded"
        assert result["checks"]["redis"] is False
        assert result["workers"] == {}
