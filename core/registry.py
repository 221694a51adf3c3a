# core/registry.py

"""
Process-wide service registry.

Built once by create_app() and kept on app.state. Routers reach it through
get_registry(). Nothing is initialized on import.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from core.audit import AuditEmitter
from core.config import settings
from core.logging_config import logger
from core.store import DocumentStore, MemoryStore, SupabaseStore
from core.supabase_client import get_supabase_client
from services.invitations import InvitationWorkflow
from services.permission_requests import PermissionRequestWorkflow
from services.principals import PrincipalService


@dataclass
class ServiceRegistry:
    store: DocumentStore
    audit: AuditEmitter
    principals: PrincipalService
    permission_requests: PermissionRequestWorkflow
    invitations: InvitationWorkflow


def build_store() -> DocumentStore:
    backend = (settings.STORE_BACKEND or "").lower()
    if backend == "memory":
        logger.warning("Using in-memory store; data is lost on restart")
        return MemoryStore()

    client = get_supabase_client()
    if client is None:
        raise RuntimeError("Supabase client not configured")
    return SupabaseStore(client)


def build_registry(store: Optional[DocumentStore] = None) -> ServiceRegistry:
    store = store if store is not None else build_store()
    audit = AuditEmitter(store=store)
    principals = PrincipalService(store, audit)

    return ServiceRegistry(
        store=store,
        audit=audit,
        principals=principals,
        permission_requests=PermissionRequestWorkflow(store, principals, audit),
        invitations=InvitationWorkflow(store, principals, audit),
    )


def init_registry(app, store: Optional[DocumentStore] = None) -> ServiceRegistry:
    if getattr(app.state, "registry", None) is not None:
        raise RuntimeError("Service registry already initialized")

    registry = build_registry(store)
    app.state.registry = registry
    logger.info(f"Service registry initialized ({type(registry.store).__name__})")
    return registry


def get_registry(request: Request) -> ServiceRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("Service registry not initialized")
    return registry
