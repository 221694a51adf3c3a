# core/audit.py

"""
Fire-and-forget audit events.

emit() never raises: a failing sink is logged and the caller carries on.
Each event is logged and optionally persisted to the audit_logs table.
When AUDIT_WEBHOOK_URL is set it is also posted there, from the
dispatcher's worker pool once start_dispatcher() has run.
"""

from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from core.config import settings
from core.logging_config import logger
from core.notifications import send_webhook_message
from core.store import AUDIT_LOGS, DocumentStore
from core.utils import new_id
from models.audit import AuditEvent
from models.enums import Action, AuditAction, AuditLevel


# How loud a denied action is, by what it would have done
DENIAL_LEVELS = {
    Action.view: AuditLevel.info,
    Action.add: AuditLevel.warning,
    Action.edit: AuditLevel.warning,
    Action.export: AuditLevel.warning,
    Action.import_: AuditLevel.warning,
    Action.delete: AuditLevel.error,
    Action.approve: AuditLevel.error,
    Action.reject: AuditLevel.error,
    Action.publish: AuditLevel.error,
    Action.unpublish: AuditLevel.error,
}


def denial_level(action) -> AuditLevel:
    return DENIAL_LEVELS.get(Action.parse(action), AuditLevel.warning)


class AuditEmitter:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        persist: Optional[bool] = None,
        webhook_url: Optional[str] = None,
        denial_min_level: Optional[str] = None,
        dispatcher: Optional[BackgroundScheduler] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.persist = settings.AUDIT_PERSIST if persist is None else persist
        self.webhook_url = webhook_url if webhook_url is not None else settings.AUDIT_WEBHOOK_URL
        self.denial_min_level = (
            AuditLevel.parse(denial_min_level or settings.AUDIT_DENIAL_MIN_LEVEL)
            or AuditLevel.warning
        )

    def emit(self, event: AuditEvent) -> None:
        payload = event.model_dump(mode="json")

        log = logger.warning if event.level.rank >= AuditLevel.warning.rank else logger.info
        log(
            f"[AUDIT] {event.action} actor={event.actor_id} target={event.target_id} "
            f"resource={event.resource}:{event.resource_id} success={event.success}"
        )

        if self.persist and self.store is not None:
            try:
                self.store.insert(AUDIT_LOGS, {"id": new_id(), **payload})
            except Exception as e:
                logger.error(f"Failed to save audit log: {e}")

        if self.webhook_url:
            self._post_webhook(payload)

    # ---------------------------------------------------------
    # Webhook delivery
    # ---------------------------------------------------------
    def start_dispatcher(self) -> BackgroundScheduler:
        """Post webhooks from a worker pool instead of the request thread."""
        scheduler = BackgroundScheduler(
            timezone="UTC",
            executors={"default": ThreadPoolExecutor(settings.AUDIT_WEBHOOK_WORKERS)},
        )
        scheduler.start()
        self.dispatcher = scheduler
        logger.info(f"Audit webhook dispatcher started ({settings.AUDIT_WEBHOOK_WORKERS} workers)")
        return scheduler

    def stop_dispatcher(self) -> None:
        if self.dispatcher is not None and self.dispatcher.running:
            self.dispatcher.shutdown(wait=True)
        self.dispatcher = None

    def _post_webhook(self, payload: dict) -> None:
        if self.dispatcher is None or not self.dispatcher.running:
            send_webhook_message(payload, url=self.webhook_url)
            return

        try:
            # No trigger: runs once, as soon as a worker is free
            self.dispatcher.add_job(
                send_webhook_message,
                args=[payload],
                kwargs={"url": self.webhook_url},
                misfire_grace_time=None,
            )
        except Exception as e:
            logger.error(f"Could not queue audit webhook: {e}")

    def emit_denial(self, principal_id: Optional[str], collection, action, matched_source: str = "none") -> bool:
        """Emit an access_denied event if its level reaches the configured threshold."""
        level = denial_level(action)
        if level.rank < self.denial_min_level.rank:
            return False

        self.emit(AuditEvent(
            action=AuditAction.access_denied,
            level=level,
            actor_id=principal_id,
            resource=str(collection),
            success=False,
            details={"action": str(action), "matched_source": matched_source},
        ))
        return True
