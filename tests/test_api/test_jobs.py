"""Tests for job monitoring endpoints."""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from threadbot.models.job_run import JobRun

pytestmark = pytest.mark.asyncio


class TestJobRuns:
    async def test_lists_newest_first_with_filter(
        self, client: AsyncClient, auth_headers, db_session
    ):
        base = datetime(2026, 1, 5, 9, 0)
        for offset, job_id in enumerate(["deliver_morning", "sweep", "deliver_morning"]):
            started = base + timedelta(hours=offset)
            db_session.add(
                JobRun(
                    job_id=job_id,
                    scheduled_at=started,
                    started_at=started,
                    finished_at=started + timedelta(seconds=2),
                    outcome="success",
                )
            )
        await db_session.flush()

        response = await client.get(
            "/api/jobs/runs", params={"job_id": "deliver_morning"}, headers=auth_headers
        )

        runs = response.json()
        assert [r["scheduled_at"] for r in runs] == ["2026-01-05T11:00:00", "2026-01-05T09:00:00"]
        assert runs[0]["duration_seconds"] == 2.0

    async def test_schedules_empty_when_scheduler_stopped(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/jobs/schedules", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == []


class TestLatestRuns:
    async def test_one_row_per_job(self, client: AsyncClient, auth_headers, db_session):
        base = datetime(2026, 1, 5, 9, 0)
        for offset, (job_id, outcome) in enumerate(
            [("deliver_evening", "success"), ("deliver_evening", "error"), ("sweep", "success")]
        ):
            started = base + timedelta(hours=offset)
            db_session.add(
                JobRun(
                    job_id=job_id,
                    scheduled_at=started,
                    started_at=started,
                    finished_at=started,
                    outcome=outcome,
                    error="boom" if outcome == "error" else None,
                )
            )
        await db_session.flush()

        response = await client.get("/api/jobs/latest", headers=auth_headers)

        runs = response.json()
        assert [(r["job_id"], r["outcome"]) for r in runs] == [
            ("deliver_evening", "error"),
            ("sweep", "success"),
        ]
        assert runs[0]["error"] == "boom"
