# core/errors.py

from fastapi import HTTPException


# ============================================================
# Domain errors (access-control engine)
# ============================================================
class AccessControlError(Exception):
    """Base class. Each subclass carries the HTTP status routers map it to."""

    status_code = 500
    code = "access_control_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AccessControlError):
    """Malformed input. Raised before any mutation."""

    status_code = 400
    code = "validation_error"


class PermissionDenied(AccessControlError):
    """The acting principal may not perform this administrative operation."""

    status_code = 403
    code = "permission_denied"


class NotFound(AccessControlError):
    status_code = 404
    code = "not_found"


class InvalidState(AccessControlError):
    """
    The entity is already in a terminal (or expired) state.
    Callers show "already handled" rather than a generic failure.
    """

    status_code = 409
    code = "invalid_state"


class ConcurrencyConflict(AccessControlError):
    """
    A conditional write lost a race: another actor transitioned the entity
    first. Callers should refetch, not blindly retry.
    """

    status_code = 409
    code = "concurrency_conflict"


# ============================================================
# Persistence errors (Supabase)
# ============================================================
def extract_supabase_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors
      • GoTrue (Auth) errors
      • Generic Python exceptions
    """

    # Case 1 - Supabase Auth / GoTrue errors
    if hasattr(error, "message"):
        try:
            return str(error.message)
        except Exception:
            pass

    # Case 2 - Supabase errors with args (common)
    if hasattr(error, "args") and error.args:
        try:
            return str(error.args[0])
        except Exception:
            pass

    # Case 3 - Plain string fallback
    try:
        return str(error)
    except Exception:
        return "Unknown Supabase error"


def is_unique_violation(error: Exception) -> bool:
    detail = extract_supabase_error(error).lower()
    return "duplicate" in detail or "unique" in detail or "23505" in detail


def handle_supabase_error(error: Exception, operation: str = "Database operation", status_code: int = 500) -> HTTPException:
    """
    Handle Supabase errors with consistent formatting.
    Returns HTTPException (doesn't raise) so caller can customize or re-raise.
    """
    from core.logging_config import logger

    error_detail = extract_supabase_error(error)
    logger.error(f"{operation}: {error_detail}")

    error_lower = error_detail.lower()
    if is_unique_violation(error):
        return HTTPException(status_code=400, detail=f"{operation}: Record already exists")
    elif "foreign key" in error_lower:
        return HTTPException(status_code=400, detail=f"{operation}: Invalid reference")
    elif "not found" in error_lower or "does not exist" in error_lower:
        return HTTPException(status_code=404, detail=f"{operation}: Resource not found")
    else:
        return HTTPException(status_code=status_code, detail=f"{operation} failed")
