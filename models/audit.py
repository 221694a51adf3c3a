# models/audit.py

from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from core.utils import utcnow
from models.enums import AuditAction, AuditLevel


class AuditEvent(BaseModel):
    """Structured event forwarded to the external audit sink."""
    action: AuditAction
    level: AuditLevel = AuditLevel.info
    actor_id: Optional[str] = None
    target_id: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    timestamp: datetime = Field(default_factory=utcnow)
