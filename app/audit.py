"""
Fire-and-forget audit sink.

Callers notify it after a create or state transition has been committed.
A failure to write the audit row is logged and rolled back, never raised,
so it cannot fail the operation that triggered it.
"""

import json
import logging
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from .auth import get_current_user
from .clock import Clock, get_clock
from .database import get_db
from .models import AuditEvent, User

logger = logging.getLogger(__name__)


def snapshot(entity: Any) -> Optional[dict[str, Any]]:
    """Column values of an ORM instance as a JSON-safe dict"""
    if entity is None:
        return None
    if isinstance(entity, dict):
        return jsonable_encoder(entity)
    mapper = inspect(entity).mapper
    return jsonable_encoder({attr.key: getattr(entity, attr.key) for attr in mapper.column_attrs})


class AuditLogger:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        user_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.user_id = user_id
        self.ip_address = ip_address
        self.user_agent = user_agent

    def record(
        self,
        action: str,
        module: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        user_id: Optional[int] = None,
    ) -> None:
        try:
            event = AuditEvent(
                user_id=user_id or self.user_id,
                action=action,
                module=module,
                entity_type=entity_type,
                entity_id=entity_id,
                before=json.dumps(before) if before else None,
                after=json.dumps(after) if after else None,
                ip_address=self.ip_address,
                user_agent=(self.user_agent or "")[:500] or None,
                created_at=self.clock.now(),
            )
            self.db.add(event)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error logging audit event {module}:{action} ({entity_type} {entity_id}): {e}")


def request_audit_logger(request: Request, db: Session, clock: Clock, user_id: Optional[int]) -> AuditLogger:
    return AuditLogger(
        db,
        clock,
        user_id=user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_audit_logger(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
) -> AuditLogger:
    """Dependency injection for an AuditLogger bound to the acting user"""
    return request_audit_logger(request, db, clock, user.id)
