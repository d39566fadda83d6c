"""Background scheduler for periodic cleanup tasks."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from powgate.config import settings
from powgate.database import SessionLocal
from powgate.services.sql_replay_store import cleanup_expired_records

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def cleanup_job() -> None:
    """Delete replay records for challenges that have expired."""
    db = SessionLocal()
    try:
        deleted = cleanup_expired_records(db)
        if deleted:
            logger.info(f"Cleanup: deleted {deleted} expired replay records")
    except Exception as e:
        logger.error(f"Cleanup failed: {e}")
    finally:
        db.close()


def start_scheduler() -> None:
    scheduler.add_job(
        cleanup_job,
        trigger=IntervalTrigger(minutes=settings.cleanup_interval_minutes),
        id="cleanup_expired_replay_records",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started - replay cleanup runs every {settings.cleanup_interval_minutes} minute(s)"
    )


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
