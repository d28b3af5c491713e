# motelhub/scheduler.py
import logging
import time
from typing import Tuple

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .core.config import get_settings

logger = logging.getLogger("Scheduler")

DEFAULT_RUN_HOUR = (1, 0)


def job_listener(event):
    """Logs the result of every scheduled job execution."""
    if event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully")


def parse_run_hour(value: str) -> Tuple[int, int]:
    """'HH:MM' -> (hour, minute); falls back to 01:00 on bad input."""
    try:
        hour, minute = value.split(":")
        hour, minute = int(hour), int(minute)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(value)
        return hour, minute
    except (ValueError, AttributeError):
        logger.warning(f"Invalid run hour format: {value}. Using 01:00")
        return DEFAULT_RUN_HOUR


def build_scheduler() -> BackgroundScheduler:
    """
    Configures the scheduler and its jobs without starting it.
    """
    from .services.billing_job import run_overdue_check

    scheduler = BackgroundScheduler(
        job_defaults={
            "coalesce": True,  # Missed runs collapse into one
            "max_instances": 1,
            "misfire_grace_time": 300,
        }
    )
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    hour, minute = parse_run_hour(get_settings().overdue_run_hour)
    logger.info(f"Scheduling daily overdue check at {hour:02d}:{minute:02d}")
    scheduler.add_job(
        run_overdue_check,
        trigger=CronTrigger(hour=hour, minute=minute),
        id="overdue_job",
        name="Daily Overdue Invoice Check",
        replace_existing=True,
    )
    return scheduler


def run_scheduler():
    """
    Entry point for the scheduler process.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - [Scheduler] - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    scheduler = build_scheduler()
    scheduler.start()
    logger.info("Scheduler started")

    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Stopping scheduler...")
        scheduler.shutdown()
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    run_scheduler()
