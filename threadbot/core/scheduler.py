"""
APScheduler integration for FastAPI.

Runs the delivery ticks and the maintenance sweep in-process. An external
scheduler calling POST /api/cron/deliver works the same way; claims make
overlapping ticks from both safe.

Jobs:
- Delivery ticks: one per slot, every poll interval (default 10 min)
- Sweep: expired codes, elapsed attempt counters, old claims (03:00 UTC)
"""

from datetime import datetime
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger

from threadbot.config import get_config, get_settings
from threadbot.core.database import AsyncSessionLocal
from threadbot.core.datetime_utils import to_naive_utc, utc_now
from threadbot.core.logging import get_logger
from threadbot.models.recipient import Slot

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncScheduler | None = None


async def delivery_tick_job(slot: str) -> None:
    """Deliver the given slot to every recipient who is due right now."""
    from threadbot.services.delivery import run_delivery_tick
    from threadbot.services.telegram import TelegramGateway

    async with AsyncSessionLocal() as db:
        try:
            summary = await run_delivery_tick(db, Slot(slot), TelegramGateway())
            await db.commit()
            if summary.failed:
                logger.bind(slot=slot, failed=summary.failed).warning("delivery_tick_had_failures")
        except Exception as e:
            logger.bind(slot=slot, error=str(e)).error("scheduled_delivery_tick_failed")
            raise  # Re-raise so APScheduler records the failure


async def sweep_job() -> None:
    """Daily maintenance sweep."""
    from threadbot.services.maintenance import run_sweep

    async with AsyncSessionLocal() as db:
        try:
            await run_sweep(db)
            await db.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("scheduled_sweep_failed")
            raise


async def _record_job_result(
    job_id: str,
    scheduled_at: datetime,
    started_at: datetime,
    outcome: JobOutcome,
    error: str | None = None,
) -> None:
    """Record job execution result to database."""
    from threadbot.models.job_run import JobRun

    async with AsyncSessionLocal() as db:
        job_run = JobRun(
            job_id=job_id,
            scheduled_at=to_naive_utc(scheduled_at),
            started_at=to_naive_utc(started_at),
            finished_at=utc_now(),
            outcome=outcome.name,
            error=error,
        )
        db.add(job_run)
        await db.commit()


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the in-process scheduler."""
    global scheduler

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    poll_minutes = get_config().schedule.poll_interval_minutes

    # Schedules are re-added on every start; nothing needs to persist
    scheduler = AsyncScheduler(data_store=MemoryDataStore())

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    scheduler.subscribe(_on_job_completed)

    job_ids = []
    for slot in Slot:
        job_id = f"deliver_{slot.value}"
        await scheduler.add_schedule(
            delivery_tick_job,
            CronTrigger(minute=f"*/{poll_minutes}"),
            id=job_id,
            kwargs={"slot": slot.value},
            conflict_policy=ConflictPolicy.replace,
        )
        job_ids.append(job_id)

    await scheduler.add_schedule(
        sweep_job,
        CronTrigger(hour=3, minute=0),
        id="sweep",
        conflict_policy=ConflictPolicy.replace,
    )
    job_ids.append("sweep")

    # Start the scheduler's background worker to actually process jobs
    await scheduler.start_in_background()

    logger.bind(jobs=job_ids, poll_minutes=poll_minutes).info("scheduler_started")
    return scheduler


async def _on_job_completed(event: Any) -> None:
    """Handle job completion events."""
    if isinstance(event, JobReleased):
        try:
            scheduled_at = getattr(event, "scheduled_fire_time", None) or utc_now()
            started_at = getattr(event, "started_at", None) or utc_now()
            exception = getattr(event, "exception", None)
            await _record_job_result(
                job_id=event.schedule_id or "unknown",
                scheduled_at=scheduled_at,
                started_at=started_at,
                outcome=event.outcome,
                error=str(exception) if event.outcome == JobOutcome.error and exception else None,
            )
        except Exception as e:
            logger.bind(error=str(e)).error("failed_to_record_job_result")


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


async def get_job_schedules() -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
