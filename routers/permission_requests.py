# routers/permission_requests.py

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from core.errors import NotFound
from core.registry import ServiceRegistry, get_registry
from core.resolver import is_admin
from dependencies.auth import get_current_principal, requires_admin
from models.enums import RequestStatus
from models.permission_request import (
    PermissionRequest,
    PermissionRequestCreate,
    PermissionRequestReview,
    PermissionRequestStats,
)
from models.principal import Principal

router = APIRouter(
    prefix="/permission-requests",
    tags=["Permission Requests"],
)


class PermissionRequestList(BaseModel):
    requests: List[PermissionRequest]
    stats: Optional[PermissionRequestStats] = None


class SweepResult(BaseModel):
    expired_requests: int


# -----------------------------------------------------
# POST /permission-requests
# Any active user asks for additional collection access
# -----------------------------------------------------
@router.post(
    "",
    response_model=PermissionRequest,
    status_code=201,
    summary="Submit a permission request",
)
def submit_permission_request(
    payload: PermissionRequestCreate,
    current: Principal = Depends(get_current_principal),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.permission_requests.submit(
        requester=current,
        requested_permissions=payload.requested_permissions,
        message=payload.message,
        requested_expiry=payload.requested_expiry,
        priority=payload.priority,
        business_justification=payload.business_justification,
    )


# -----------------------------------------------------
# GET /permission-requests
# Users see their own; admins see everything plus stats
# -----------------------------------------------------
@router.get(
    "",
    response_model=PermissionRequestList,
    summary="List permission requests",
)
def list_permission_requests(
    status: Optional[RequestStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    current: Principal = Depends(get_current_principal),
    registry: ServiceRegistry = Depends(get_registry),
):
    workflow = registry.permission_requests

    if not is_admin(current):
        requests = workflow.list_requests(status=status, requested_by=current.id, limit=limit)
        return PermissionRequestList(requests=requests)

    return PermissionRequestList(
        requests=workflow.list_requests(status=status, limit=limit),
        stats=workflow.stats(),
    )


# -----------------------------------------------------
# GET /permission-requests/pending
# Review queue: priority first, then oldest first
# -----------------------------------------------------
@router.get(
    "/pending",
    response_model=List[PermissionRequest],
    summary="Pending permission requests (admin)",
)
def list_pending_requests(
    limit: int = Query(50, ge=1, le=200),
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.permission_requests.list_pending(limit=limit)


# -----------------------------------------------------
# POST /permission-requests/sweep
# Expire stale pending requests now (also run by the scheduler)
# -----------------------------------------------------
@router.post(
    "/sweep",
    response_model=SweepResult,
    summary="Expire overdue pending requests (admin)",
)
def sweep_permission_requests(
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return SweepResult(expired_requests=registry.permission_requests.sweep_expired())


@router.get(
    "/{request_id}",
    response_model=PermissionRequest,
    summary="Get a permission request",
)
def get_permission_request(
    request_id: str,
    current: Principal = Depends(get_current_principal),
    registry: ServiceRegistry = Depends(get_registry),
):
    request = registry.permission_requests.get(request_id)
    if request.requested_by != current.id and not is_admin(current):
        # Don't reveal other users' requests
        raise NotFound("Permission request not found")
    return request


# -----------------------------------------------------
# PATCH /permission-requests/{id}
# Approve or reject (admin)
# -----------------------------------------------------
@router.patch(
    "/{request_id}",
    response_model=PermissionRequest,
    summary="Review a permission request (admin)",
)
def review_permission_request(
    request_id: str,
    payload: PermissionRequestReview,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.permission_requests.review(
        request_id=request_id,
        reviewer=admin,
        decision=payload.decision,
        review_notes=payload.review_notes,
        granted_permissions=payload.granted_permissions,
        granted_expiry=payload.granted_expiry,
    )
