from fastapi import Depends, HTTPException
from typing import Any, Optional

from core.logging_config import logger
from core.registry import ServiceRegistry, get_registry
from core.resolver import Decision, resolve
from dependencies.auth import get_current_principal
from models.principal import Principal


# -----------------------------------------------------
# Restriction checks against a concrete record
# -----------------------------------------------------
def _field(resource: Any, name: str):
    if isinstance(resource, dict):
        return resource.get(name)
    return getattr(resource, name, None)


def check_restrictions(principal: Principal, decision: Decision, resource: Any) -> bool:
    """
    Resolution returns restrictions uninterpreted; this applies them to one
    record (dict or object). A denied decision never passes.
    """
    if not decision.allowed:
        return False

    restrictions = decision.restrictions

    if restrictions.own_content_only and _field(resource, "created_by") != principal.id:
        return False

    if restrictions.approved_content_only:
        approved = _field(resource, "status") == "approved" or _field(resource, "approved") is True
        if not approved:
            return False

    if restrictions.department_content_only:
        department = _field(resource, "department")
        if not principal.department or department != principal.department:
            return False

    return True


def require_resource_access(principal: Principal, collection, action, resource: Any) -> Decision:
    """Resolve and apply restrictions to `resource`; raises 403 on deny."""
    decision = resolve(principal, collection, action)
    if not check_restrictions(principal, decision, resource):
        raise HTTPException(
            status_code=403,
            detail=f"Insufficient permissions: '{collection}:{action}' on this record",
        )
    return decision


# -----------------------------------------------------
# FastAPI dependency wrapper
# -----------------------------------------------------
def requires_collection_permission(collection, action, audit_denials: Optional[bool] = True):
    """
    Usage:
        @router.post("/", dependencies=[Depends(requires_collection_permission("users", "add"))])
    """

    def dependency(
        current: Principal = Depends(get_current_principal),
        registry: ServiceRegistry = Depends(get_registry),
    ):
        decision = resolve(current, collection, action)
        if not decision.allowed:
            logger.warning(f"Denied {collection}:{action} for {current.id} (matched {decision.matched_source})")
            if audit_denials:
                registry.audit.emit_denial(current.id, collection, action, decision.matched_source)
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: '{collection}:{action}' required",
            )
        return current

    return dependency
