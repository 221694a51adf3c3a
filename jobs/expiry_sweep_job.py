# jobs/expiry_sweep_job.py

from core.config_validator import validate_config_on_startup
from core.registry import build_registry
from core.scheduler import run_expiry_sweep


def run():
    """
    CLI entry point for the expiry sweep.
    This is what a cron job calls when the in-process scheduler is off.
    """
    validate_config_on_startup()
    registry = build_registry()
    return run_expiry_sweep(registry)


if __name__ == "__main__":
    run()
