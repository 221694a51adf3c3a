# core/config_validator.py

from typing import List
from core.config import settings
from core.logging_config import logger
from models.enums import AuditLevel

STORE_BACKENDS = ("supabase", "memory")


def validate_required_config() -> List[str]:
    """
    Validate that all required settings are present and well-formed.
    Returns list of problems.
    """
    missing = []

    if settings.STORE_BACKEND not in STORE_BACKENDS:
        missing.append(f"STORE_BACKEND (must be one of {', '.join(STORE_BACKENDS)})")

    if settings.STORE_BACKEND == "supabase":
        if not settings.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not settings.SUPABASE_SERVICE_ROLE_KEY:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")

    if AuditLevel.parse(settings.AUDIT_DENIAL_MIN_LEVEL) is None:
        missing.append(f"AUDIT_DENIAL_MIN_LEVEL (must be one of {', '.join(AuditLevel.list())})")

    if settings.INVITATION_TTL_DAYS < 1:
        missing.append("INVITATION_TTL_DAYS (must be >= 1)")

    return missing


def validate_optional_config() -> List[str]:
    """
    Validate optional but recommended configuration.
    Returns list of warnings.
    """
    warnings = []

    if settings.STORE_BACKEND == "memory" and settings.ENV == "production":
        warnings.append("STORE_BACKEND=memory in production (state is lost on restart)")

    if not settings.AUDIT_WEBHOOK_URL:
        warnings.append("AUDIT_WEBHOOK_URL (optional, audit events stay local)")

    return warnings


def validate_config_on_startup():
    """
    Validate configuration on application startup.
    Raises RuntimeError if critical config is missing.
    Logs warnings for optional config.
    """
    missing_required = validate_required_config()
    missing_optional = validate_optional_config()

    if missing_required:
        error_msg = f"Invalid or missing configuration: {', '.join(missing_required)}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    for warning in missing_optional:
        logger.warning(f"Optional configuration missing: {warning}")

    logger.info("Configuration validation passed")
