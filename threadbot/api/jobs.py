"""Visibility into the in-process delivery and sweep jobs."""

from fastapi import APIRouter, Query
from sqlalchemy import func, select

from threadbot.core.scheduler import get_job_schedules
from threadbot.dependencies import DBSession, InternalAuth
from threadbot.models.job_run import JobRun
from threadbot.schemas.jobs import JobRunInfo, ScheduleInfo

router = APIRouter(dependencies=[InternalAuth])


@router.get("/jobs/schedules", response_model=list[ScheduleInfo])
async def list_schedules() -> list[ScheduleInfo]:
    """Empty when the in-process scheduler is disabled."""
    return [ScheduleInfo.from_schedule(s) for s in await get_job_schedules()]


@router.get("/jobs/runs", response_model=list[JobRunInfo])
async def list_job_runs(
    db: DBSession,
    job_id: str | None = Query(default=None, description="e.g. deliver_morning or sweep"),
    outcome: str | None = Query(default=None, description="e.g. success or error"),
    limit: int = Query(default=50, ge=1, le=200),
) -> list[JobRunInfo]:
    """Recent runs, newest first."""
    query = select(JobRun)
    if job_id:
        query = query.where(JobRun.job_id == job_id)
    if outcome:
        query = query.where(JobRun.outcome == outcome)

    runs = await db.scalars(query.order_by(JobRun.scheduled_at.desc()).limit(limit))
    return [JobRunInfo.from_run(run) for run in runs]


@router.get("/jobs/latest", response_model=list[JobRunInfo])
async def latest_runs(db: DBSession) -> list[JobRunInfo]:
    """The most recent run of each job, to spot a slot whose ticks stopped."""
    latest = (
        select(JobRun.job_id, func.max(JobRun.scheduled_at).label("scheduled_at"))
        .group_by(JobRun.job_id)
        .subquery()
    )
    runs = await db.scalars(
        select(JobRun)
        .join(
            latest,
            (JobRun.job_id == latest.c.job_id) & (JobRun.scheduled_at == latest.c.scheduled_at),
        )
        .order_by(JobRun.job_id)
    )
    return [JobRunInfo.from_run(run) for run in runs]
