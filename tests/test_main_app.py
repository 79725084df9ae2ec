"""
Tests for lawnops/main.py - FastAPI app creation, middleware, error mapping and lifespan.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from lawnops.errors import NotFoundError, StateConflictError, TokenExpiredError
from lawnops.main import CorrelationIdMiddleware, create_app, lifespan
from lawnops.utils.locks import LockTimeoutError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "app_base_url": "http://localhost:8000",
        "allowed_origins": "",
        "log_level": "WARNING",
        "dashboard_jwt_secret": "test_jwt_secret",
        "jobber_api_key": "",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


def _app(**overrides) -> FastAPI:
    with (
        patch("lawnops.main.get_settings", return_value=_make_mock_settings(**overrides)),
        patch("lawnops.main.configure_structured_logging"),
    ):
        return create_app()


# ---------------------------------------------------------------------------
# create_app
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_app_metadata(self):
        app = _app()
        assert isinstance(app, FastAPI)
        assert app.title == "LawnOps"
        assert app.version == "1.0.0"

    def test_configures_structured_logging(self):
        """create_app calls configure_structured_logging with the config log level."""
        with (
            patch("lawnops.main.get_settings", return_value=_make_mock_settings(log_level="DEBUG")),
            patch("lawnops.main.configure_structured_logging") as mock_log,
        ):
            create_app()

        mock_log.assert_called_once_with("DEBUG")

    def test_routes_mounted(self):
        route_paths = {getattr(route, "path", None) for route in _app().routes}
        for path in (
            "/health",
            "/health/ready",
            "/api/v1/webhook/twilio/sms",
            "/api/v1/handoff/tickets",
            "/c/{token}",
            "/api/v1/jobs/{job_id}/simulate",
            "/api/v1/decisions/{decision_id}/approve",
        ):
            assert path in route_paths


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


class TestErrorHandlers:
    def _client(self) -> TestClient:
        app = _app()

        @app.get("/boom/conflict")
        async def conflict():
            raise StateConflictError("Decision already approved", current_status="approved")

        @app.get("/boom/missing")
        async def missing():
            raise NotFoundError("Job request not found", code="job_not_found")

        @app.get("/boom/expired")
        async def expired():
            raise TokenExpiredError()

        @app.get("/boom/locked")
        async def locked():
            raise LockTimeoutError("session busy")

        return TestClient(app, raise_server_exceptions=False)

    def test_state_conflict_reports_current_status(self):
        response = self._client().get("/boom/conflict")
        assert response.status_code == 409
        assert response.json() == {
            "error": "Decision already approved",
            "code": "state_conflict",
            "current_status": "approved",
        }

    def test_not_found(self):
        response = self._client().get("/boom/missing")
        assert response.status_code == 404
        assert response.json()["code"] == "job_not_found"

    def test_expired_token(self):
        assert self._client().get("/boom/expired").status_code == 410

    def test_lock_timeout(self):
        response = self._client().get("/boom/locked")
        assert response.status_code == 503
        assert response.json()["code"] == "lock_timeout"
        assert response.headers["retry-after"] == "5"


# ---------------------------------------------------------------------------
# CorrelationIdMiddleware
# ---------------------------------------------------------------------------


class TestCorrelationIdMiddleware:
    def test_generates_correlation_id_when_missing(self):
        client = TestClient(_app(), raise_server_exceptions=False)
        response = client.get("/health")

        assert len(response.headers["x-correlation-id"]) == 32

    def test_uses_existing_correlation_id(self):
        app = FastAPI()
        app.add_middleware(CorrelationIdMiddleware)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        custom_cid = "abc123def456789012345678abcdef00"
        response = TestClient(app).get("/ping", headers={"X-Correlation-ID": custom_cid})

        assert response.headers["x-correlation-id"] == custom_cid


class TestCorsMiddleware:
    def test_allows_configured_origin(self):
        app = _app(allowed_origins="https://ops.greenacres.example, https://other.example")
        client = TestClient(app, raise_server_exceptions=False)
        response = client.options(
            "/health",
            headers={"Origin": "https://ops.greenacres.example", "Access-Control-Request-Method": "GET"},
        )
        assert response.headers["access-control-allow-origin"] == "https://ops.greenacres.example"


# ---------------------------------------------------------------------------
# lifespan
# ---------------------------------------------------------------------------


class TestLifespan:
    async def test_no_worker_without_jobber_key(self):
        with (
            patch("lawnops.main.get_settings", return_value=_make_mock_settings()),
            patch("lawnops.workers.writeback_sync.run_writeback_sync") as mock_worker,
        ):
            async with lifespan(MagicMock()):
                pass

        mock_worker.assert_not_called()

    async def test_worker_started_and_cancelled(self):
        """The write-back worker runs for the app's lifetime and is cancelled on shutdown."""
        started = asyncio.Event()

        async def fake_worker():
            started.set()
            await asyncio.sleep(3600)

        with (
            patch("lawnops.main.get_settings", return_value=_make_mock_settings(jobber_api_key="jb_key")),
            patch("lawnops.workers.writeback_sync.run_writeback_sync", side_effect=fake_worker) as mock_worker,
        ):
            async with lifespan(MagicMock()):
                await asyncio.wait_for(started.wait(), timeout=1)

        mock_worker.assert_called_once()

    async def test_warns_when_jwt_secret_missing(self):
        with (
            patch("lawnops.main.get_settings", return_value=_make_mock_settings(dashboard_jwt_secret="")),
            patch("lawnops.main.logger") as mock_logger,
        ):
            async with lifespan(MagicMock()):
                pass

        warnings = [c for c in mock_logger.warning.call_args_list if "DASHBOARD_JWT_SECRET" in str(c)]
        assert warnings
