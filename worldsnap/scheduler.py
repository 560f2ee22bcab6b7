"""
APScheduler configuration for worldsnap.

Manages the interval backup: first run after the configured initial delay,
then every interval, skipped while no session is active (if configured).
"""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from worldsnap.backup.coordinator import BackupInProgressError

logger = logging.getLogger(__name__)


INTERVAL_JOB_ID = 'interval_backup'

# Global scheduler instance and the service it triggers
scheduler = None
backup_service = None


def init_scheduler(app, service):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
        service: BackupService the interval job triggers
    """
    global scheduler, backup_service

    if scheduler is not None:
        return scheduler

    backup_service = service
    settings = service.settings

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    if settings.interval_enabled:
        first_run = datetime.now(timezone.utc) + timedelta(minutes=settings.interval_initial_delay_minutes)
        scheduler.add_job(
            func=run_interval_backup,
            trigger=IntervalTrigger(minutes=settings.interval_minutes, start_date=first_run),
            id=INTERVAL_JOB_ID,
            name='Interval Backup',
            replace_existing=True
        )
        logger.info("Interval backup task is enabled.")
        logger.info(
            f"First backup will start in {settings.interval_initial_delay_minutes} minutes. "
            f"Interval is {settings.interval_minutes} minutes."
        )
        logger.info(f"Skip backup if no active sessions: {settings.interval_skip_if_no_sessions}")

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after the Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def reset_scheduler():
    """Stop and forget the scheduler (app teardown, tests)."""
    global scheduler, backup_service

    stop_scheduler()
    scheduler = None
    backup_service = None


def run_interval_backup():
    """
    Interval job body.

    Returns:
        The backup future, or None if the run was skipped
    """
    if backup_service is None:
        logger.error("Interval backup fired without a backup service")
        return None

    settings = backup_service.settings
    active_sessions = getattr(backup_service.host, 'active_sessions', None)

    if settings.interval_skip_if_no_sessions and active_sessions is not None and not active_sessions():
        logger.debug("No active sessions, skipping interval backup")
        return None

    logger.info("Running interval backup task...")
    try:
        return backup_service.run_backup('autobackup')
    except BackupInProgressError:
        logger.warning("Previous backup still running, skipping interval backup")
        return None


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        next_run = getattr(job, 'next_run_time', None)
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_scheduler_running() -> bool:
    return scheduler is not None and scheduler.running
