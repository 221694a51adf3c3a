# core/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
import traceback

from core.config import settings
from core.logging_config import logger
from core.notifications import send_email
from core.utils import utcnow


def run_expiry_sweep(registry) -> dict:
    """
    Expires overdue pending permission requests and invitations, and prunes
    expired permission overrides. Each part runs even if an earlier one fails.
    """
    now = utcnow()
    summary = {}

    sweeps = (
        ("permission_requests", registry.permission_requests.sweep_expired),
        ("invitations", registry.invitations.sweep_expired),
        ("overrides", registry.principals.prune_expired_overrides),
    )

    failures = []
    for name, sweep in sweeps:
        try:
            summary[name] = sweep(now)
        except Exception as e:
            logger.error(f"[SCHEDULER] {name} sweep failed: {e}")
            failures.append(f"{name}: {e}\n{traceback.format_exc()}")
            summary[name] = None

    logger.info(f"[SCHEDULER] Expiry sweep finished: {summary}")

    if failures:
        try:
            send_email(
                subject=f"[{settings.PROJECT_NAME}] Expiry sweep failed",
                body="\n\n".join(failures),
            )
        except Exception as e:
            logger.error(f"[SCHEDULER] Could not send failure email: {e}")

    return summary


def start_scheduler(registry) -> BackgroundScheduler:
    """
    Initialize the APScheduler background process.
    Runs the expiry sweep every EXPIRY_SWEEP_INTERVAL_MINUTES.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_expiry_sweep,
        trigger=IntervalTrigger(minutes=settings.EXPIRY_SWEEP_INTERVAL_MINUTES),
        args=[registry],
        id="expiry_sweep_job",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started. Expiry sweep every {settings.EXPIRY_SWEEP_INTERVAL_MINUTES} minutes.")
    return scheduler
