"""
Background scheduler for automated tasks.

Handles:
- Waitlist invitation batch (daily at INVITE_BATCH_HOUR UTC)
"""
import os
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Store Flask app reference for context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true.
    Only the main gunicorn process should run the scheduler.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        logger.debug('[Scheduler] Disabled in testing mode')
        return

    if not (os.getenv('FLASK_ENV') == 'production' or os.getenv('ENABLE_SCHEDULER') == 'true'):
        logger.info('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return

    # Prevent multiple scheduler instances across gunicorn workers
    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('[Scheduler] Already running in another process')
        return

    try:
        _scheduler = BackgroundScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Prevent concurrent runs
                'misfire_grace_time': 3600  # 1 hour grace period
            }
        )

        batch_hour = app.config.get('INVITE_BATCH_HOUR', 10)
        _scheduler.add_job(
            run_invitation_batch,
            trigger=CronTrigger(hour=batch_hour, minute=0),
            id='invitation_batch',
            name='Invite next waitlist entries',
            replace_existing=True
        )

        _scheduler.start()
        os.environ['SCHEDULER_RUNNING'] = 'true'
        logger.info(f'[Scheduler] Started: invitation batch daily at {batch_hour}:00 UTC')

        atexit.register(shutdown_scheduler)

    except Exception as e:
        logger.error(f'[Scheduler] Failed to initialize: {e}')


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def run_invitation_batch():
    """
    Invite the next WAITING entries for every app with auto-invite enabled.
    """
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    logger.info('[Scheduler] Running invitation batch...')

    with _flask_app.app_context():
        try:
            from ..services.invitation_service import invitation_service

            summary = invitation_service.run_all()

            logger.info(
                f"[Scheduler] Invitation batch complete: {summary['apps']} apps, "
                f"{summary['invited']} invited, {summary['failed']} failed"
            )
        except Exception as e:
            logger.error(f'[Scheduler] Invitation batch failed: {e}')


def get_scheduler_status() -> dict:
    if not _scheduler:
        return {'running': False, 'jobs': []}
    return {
        'running': _scheduler.running,
        'jobs': [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in _scheduler.get_jobs()
        ],
    }
