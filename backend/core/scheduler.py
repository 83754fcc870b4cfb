"""
Background scheduler for authentication data retention.

A single daily job purges aged login attempts, refresh tokens, challenge
sessions, trusted devices and audit records.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from models.config import settings
from repositories.database import session_scope

RETENTION_JOB_ID = "auth_retention_cleanup"

scheduler: BackgroundScheduler | None = None


def retention_cleanup_job(dry_run: bool = False) -> dict:
    """Run every retention job in a dedicated session."""
    from services.retention_service import RetentionService

    try:
        with session_scope() as db:
            return RetentionService.run_all_cleanup_jobs(db, dry_run=dry_run)
    except Exception as e:
        logger.error(f"Retention cleanup failed: {e}")
        raise


def setup_scheduler() -> None:
    """Start the background scheduler unless disabled or already running."""
    global scheduler

    if not settings.ENABLE_SCHEDULER:
        logger.info("Background scheduler disabled by ENABLE_SCHEDULER")
        return

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        retention_cleanup_job,
        CronTrigger(hour=settings.RETENTION_CLEANUP_HOUR, minute=0, timezone="UTC"),
        id=RETENTION_JOB_ID,
        name="Authentication data retention cleanup",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        f"Background scheduler started, retention cleanup daily at "
        f"{settings.RETENTION_CLEANUP_HOUR:02d}:00 UTC"
    )


def shutdown_scheduler() -> None:
    global scheduler

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")
    scheduler = None


def get_scheduler_status() -> dict:
    """Current scheduler state for the health endpoint."""
    if scheduler is None:
        return {"running": False, "jobs": []}

    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": (
                    job.next_run_time.isoformat() if job.next_run_time else None
                ),
            }
            for job in scheduler.get_jobs()
        ],
    }
