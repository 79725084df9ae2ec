"""
Tests for lawnops/integrations/jobber.py - Jobber GraphQL write-back client.
All external HTTP calls are mocked via httpx.AsyncClient.
"""
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from lawnops.integrations.jobber import JobberClient, JobberError, visit_window


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_mock_response(json_data: dict) -> MagicMock:
    """Build a mock httpx.Response that returns *json_data*."""
    response = MagicMock()
    response.json.return_value = json_data
    response.raise_for_status = MagicMock()
    return response


def _build_mock_client(post_response: MagicMock | None = None, post_side_effect: Exception | None = None) -> AsyncMock:
    """Return a mock httpx.AsyncClient usable as an async ctx mgr."""
    mock_client = AsyncMock()
    if post_side_effect:
        mock_client.post = AsyncMock(side_effect=post_side_effect)
    else:
        mock_client.post = AsyncMock(return_value=post_response or _make_mock_response({}))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def _posted_body(mock_client) -> dict:
    return mock_client.post.call_args.kwargs["json"]


class TestVisitWindow:
    def test_start_minute_in_business_zone(self):
        start, end = visit_window(date(2026, 6, 2), 450, 69, "America/Chicago")
        assert start == "2026-06-02T07:30:00-05:00"
        assert end == "2026-06-02T08:39:00-05:00"

    def test_defaults(self):
        """No start time falls back to 8am for an hour."""
        start, end = visit_window(date(2026, 6, 2), None, None, "UTC")
        assert start == "2026-06-02T08:00:00+00:00"
        assert end == "2026-06-02T09:00:00+00:00"


class TestGraphql:
    async def test_auth_header(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(_make_mock_response({"data": {"ok": True}}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            data = await client._graphql("query { ok }")

        assert data == {"ok": True}
        headers = mock_client.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer jb_key"

    async def test_errors_raise(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(_make_mock_response({"errors": [{"message": "Unauthorized"}]}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(JobberError, match="Unauthorized"):
                await client._graphql("query { ok }")


class TestAssignVisit:
    async def test_creates_job_without_external_id(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(_make_mock_response({
            "data": {"jobCreate": {"job": {"id": "JOB_1", "title": "Mowing"}, "userErrors": []}}
        }))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await client.assign_visit(date(2026, 6, 2), 450, 69, title="Mowing")

        assert result == {"success": True, "job_id": "JOB_1", "visit_id": None, "error": None}
        body = _posted_body(mock_client)
        assert "jobCreate" in body["query"]
        assert body["variables"]["input"]["title"] == "Mowing"

    async def test_adds_visit_to_existing_job(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(_make_mock_response({
            "data": {"visitCreate": {"visit": {"id": "VISIT_9"}, "userErrors": []}}
        }))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await client.assign_visit(date(2026, 6, 2), 450, 69, external_job_id="JOB_1")

        assert result["success"] is True
        assert result["job_id"] == "JOB_1"
        assert result["visit_id"] == "VISIT_9"
        body = _posted_body(mock_client)
        assert "visitCreate" in body["query"]
        assert body["variables"]["jobId"] == "JOB_1"

    async def test_user_errors(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(_make_mock_response({
            "data": {"jobCreate": {"job": None, "userErrors": [{"message": "Title is required", "path": ["title"]}]}}
        }))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await client.assign_visit(date(2026, 6, 2))

        assert result["success"] is False
        assert result["error"] == "Title is required"

    async def test_network_error_never_raises(self):
        client = JobberClient(api_key="jb_key")
        mock_client = _build_mock_client(post_side_effect=httpx.ConnectError("connection refused"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await client.assign_visit(date(2026, 6, 2), external_job_id="JOB_1")

        assert result["success"] is False
        assert result["job_id"] == "JOB_1"
        assert "connection refused" in result["error"]
