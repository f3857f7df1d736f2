"""
Audit trail for growth events.

Events are added to the caller's transaction so they commit or roll back
together with the change they describe.
"""
import logging
from typing import Optional, Dict, Any

from ..extensions import db
from ..models.event_log import EventLog

logger = logging.getLogger(__name__)


class AuditService:
    """Writes EventLog rows."""

    def log(
        self,
        app_id: int,
        event: str,
        entity_type: Optional[str] = None,
        entity_id=None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EventLog:
        entry = EventLog(
            app_id=app_id,
            event=event,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            event_metadata=metadata or {},
            ip_address=ip_address,
            user_agent=(user_agent or '')[:500] or None,
        )
        db.session.add(entry)
        logger.debug(f"Event {event} app={app_id} {entity_type}={entity_id}")
        return entry


# Singleton instance
audit_service = AuditService()
