"""
Background scheduler for periodic task resets
Handles:
- Clearing completion of daily tasks at midnight
- Clearing completion of weekly tasks and zeroing usage arrays on Monday
"""

import logging
import os

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from kingdom.constants import FREQUENCY_DAILY, FREQUENCY_WEEKLY
from kingdom.exceptions import KingdomException
from kingdom.services.registry import DataServices

logger = logging.getLogger("kingdom.scheduler")

# Create scheduler instance
scheduler = AsyncIOScheduler()


def scheduler_enabled() -> bool:
    return os.getenv("KINGDOM_SCHEDULER_ENABLED", "1").lower() not in ("0", "false", "no")


async def run_daily_reset(services: DataServices):
    """Job: daily tasks become completable again"""
    try:
        count = services.tasks.reset_completions(FREQUENCY_DAILY)
        logger.info(f"Daily reset done: {count} tasks")
    except KingdomException as e:
        logger.error(f"Scheduler Error (Daily reset): {e}")


async def run_weekly_reset(services: DataServices):
    """Job: new week, weekly tasks reopen and usage counters start over"""
    try:
        count = services.tasks.reset_completions(FREQUENCY_WEEKLY)
        tasks = services.tasks.reset_usage()
        rules = services.rules.reset_usage()
        logger.info(f"Weekly reset done: {count} weekly tasks, usage cleared on {tasks} tasks and {rules} rules")
    except KingdomException as e:
        logger.error(f"Scheduler Error (Weekly reset): {e}")


def start_scheduler(services: DataServices):
    """Start the scheduler"""
    if not scheduler_enabled():
        logger.info("Scheduler disabled by KINGDOM_SCHEDULER_ENABLED")
        return
    if not scheduler.running:
        scheduler.add_job(
            run_daily_reset,
            CronTrigger(hour=0, minute=0),
            args=[services],
            id='daily_reset',
            replace_existing=True
        )

        scheduler.add_job(
            run_weekly_reset,
            CronTrigger(day_of_week='mon', hour=0, minute=0),
            args=[services],
            id='weekly_reset',
            replace_existing=True
        )

        scheduler.start()
        logger.info(">>> APScheduler STARTED <<<")
        logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")
