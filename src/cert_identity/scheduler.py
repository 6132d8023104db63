"""
Scheduler — periodic purge of expired suspended-login state.

Infrastructure layer — uses APScheduler (3.x) for lightweight in-process
scheduling driven by a standard 5-field cron expression. The scheduler runs
in a background thread next to the ASGI server; it is started and shut down
by the application lifespan.

The job runs within a LoggingExecutionContext for timing and success/failure
logging; a failing purge is logged and retried at the next tick.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from railway import LoggingExecutionContext
from railway.result import Result

log = structlog.get_logger()

PURGE_JOB_ID = "state_store_purge"


def create_purge_scheduler(
    purge_fn: Callable[[], Result[int]],
    cron: str = "*/15 * * * *",
) -> BackgroundScheduler:
    """
    Create a BackgroundScheduler that purges expired state on a cron schedule.

    Args:
        purge_fn: Zero-argument callable returning Result[int] (rows removed).
        cron: Standard 5-field cron expression (minute hour dom month dow).

    Returns:
        A configured BackgroundScheduler (call .start() to begin).
    """
    scheduler = BackgroundScheduler()
    ctx = LoggingExecutionContext(operation="PurgeExpiredState")

    def _job() -> None:
        result = ctx.execute(purge_fn)
        if result.is_success():
            log.info("scheduler.purge_completed", removed=result.value())
        else:
            log.error("scheduler.purge_failed", failure=str(result.error()))

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=PURGE_JOB_ID,
        name="Purge expired suspended logins",
        replace_existing=True,
    )
    return scheduler
