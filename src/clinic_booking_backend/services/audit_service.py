'''
Audit sink. Audit storage belongs to another service; the engine only hands
events over. The default sink writes one structured line per event.
'''
import json
from typing import Any, Optional, Protocol
from uuid import UUID

from ..common.logger import audit_log


class AuditSink(Protocol):
    def record(self, actor_id: Optional[UUID], action: str, description: str, details: dict[str, Any]) -> None:
        ...


class LogAuditSink:
    """Writes audit events to the 'audit' child logger as JSON."""
    def record(self, actor_id: Optional[UUID], action: str, description: str, details: dict[str, Any]) -> None:
        event = {
            "actor_id": str(actor_id) if actor_id else None,
            "action": action,
            "description": description,
            "details": details,
        }
        audit_log.info(json.dumps(event, default=str))


def get_audit_sink() -> AuditSink:
    """FastAPI dependency providing the audit sink."""
    return LogAuditSink()
