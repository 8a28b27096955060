from datetime import datetime
from typing import Any

from pydantic import BaseModel

from threadbot.models.job_run import JobRun


class ScheduleInfo(BaseModel):
    """An in-process schedule (a slot's delivery tick or the sweep)."""

    id: str
    task_id: str
    trigger: str
    next_fire_time: str | None
    last_fire_time: str | None

    @classmethod
    def from_schedule(cls, schedule: dict[str, Any]) -> "ScheduleInfo":
        return cls(**schedule)


class JobRunInfo(BaseModel):
    id: str
    job_id: str
    scheduled_at: datetime
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    outcome: str
    error: str | None

    @classmethod
    def from_run(cls, run: JobRun) -> "JobRunInfo":
        return cls(
            id=run.id,
            job_id=run.job_id,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=(run.finished_at - run.started_at).total_seconds(),
            outcome=run.outcome,
            error=run.error,
        )
