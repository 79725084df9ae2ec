"""
Jobber integration - GraphQL API, write-back of approved crew assignments.

Auth: Bearer token via API key.
Docs: https://developer.getjobber.com/docs
All calls have 10-second timeout.
"""
import logging
from datetime import date, datetime, time as dt_time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://api.getjobber.com/api/graphql"
TIMEOUT = 10.0
DEFAULT_START = dt_time(8, 0)
DEFAULT_DURATION_MINUTES = 60


class JobberError(Exception):
    """Jobber rejected the request or could not be reached."""


def visit_window(
    scheduled_date: date,
    start_minute: Optional[int],
    duration_minutes: Optional[int],
    tz_name: str = "UTC",
) -> tuple[str, str]:
    """ISO start/end with the business's UTC offset, so Jobber never guesses the zone."""
    tz = ZoneInfo(tz_name or "UTC")
    if start_minute is None:
        start = datetime.combine(scheduled_date, DEFAULT_START, tzinfo=tz)
    else:
        start = datetime.combine(scheduled_date, dt_time(0, 0), tzinfo=tz) + timedelta(minutes=start_minute)
    end = start + timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)
    return start.isoformat(), end.isoformat()


class JobberClient:
    """Jobber GraphQL API client."""

    def __init__(self, api_key: str, url: str = GRAPHQL_URL):
        self.api_key = api_key
        self.url = url
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """Execute a GraphQL query against the Jobber API."""
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                self.url,
                headers=self._headers,
                json={"query": query, "variables": variables or {}},
            )
            response.raise_for_status()
            data = response.json()
            if data.get("errors"):
                error_msg = data["errors"][0].get("message", "GraphQL error")
                raise JobberError(f"Jobber API error: {error_msg}")
            return data.get("data", {})

    async def assign_visit(
        self,
        scheduled_date: date,
        start_minute: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        external_job_id: Optional[str] = None,
        title: str = "Lawn service",
        instructions: str = "",
        tz_name: str = "UTC",
    ) -> dict:
        """
        Put the approved assignment on the Jobber calendar.

        With an existing Jobber job a visit is added to it; otherwise a new
        job is created. Returns {"success", "job_id", "visit_id", "error"}.
        Never raises.
        """
        start_at, end_at = visit_window(scheduled_date, start_minute, duration_minutes, tz_name)
        try:
            if external_job_id:
                mutation = """
                mutation CreateVisit($jobId: EncodedId!, $input: VisitCreateInput!) {
                    visitCreate(jobId: $jobId, input: $input) {
                        visit { id }
                        userErrors { message path }
                    }
                }
                """
                variables = {
                    "jobId": external_job_id,
                    "input": {
                        "title": title,
                        "startAt": start_at,
                        "endAt": end_at,
                        "instructions": instructions,
                    },
                }
                data = await self._graphql(mutation, variables)
                result = data.get("visitCreate", {})
                errors = result.get("userErrors", [])
                if errors:
                    return {"success": False, "job_id": external_job_id, "visit_id": None,
                            "error": errors[0].get("message")}
                visit = result.get("visit") or {}
                return {"success": True, "job_id": external_job_id, "visit_id": visit.get("id"), "error": None}

            mutation = """
            mutation CreateJob($input: JobCreateInput!) {
                jobCreate(input: $input) {
                    job { id title }
                    userErrors { message path }
                }
            }
            """
            variables = {
                "input": {
                    "title": title,
                    "startAt": start_at,
                    "endAt": end_at,
                    "instructions": instructions,
                }
            }
            data = await self._graphql(mutation, variables)
            result = data.get("jobCreate", {})
            errors = result.get("userErrors", [])
            if errors:
                return {"success": False, "job_id": None, "visit_id": None, "error": errors[0].get("message")}
            job = result.get("job") or {}
            logger.info("Jobber job created: %s", job.get("id"))
            return {"success": True, "job_id": job.get("id"), "visit_id": None, "error": None}
        except Exception as e:
            logger.error("Jobber assign_visit failed: %s", str(e))
            return {"success": False, "job_id": external_job_id, "visit_id": None, "error": str(e)}
