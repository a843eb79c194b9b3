"""Account repository - Users and audit events"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import AuditEvent, RevokedToken, User


class AccountRepository:
    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def search_audit_events(
        db: Session,
        user_id: Optional[int] = None,
        module: Optional[str] = None,
        action: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        query = db.query(AuditEvent)
        if user_id:
            query = query.filter(AuditEvent.user_id == user_id)
        if module:
            query = query.filter(AuditEvent.module == module)
        if action:
            query = query.filter(AuditEvent.action == action)
        if start:
            query = query.filter(AuditEvent.created_at >= start)
        if end:
            query = query.filter(AuditEvent.created_at <= end)

        total = query.count()
        items = (
            query.options(joinedload(AuditEvent.user))
            .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def audit_modules(db: Session) -> list[str]:
        return [row[0] for row in db.query(AuditEvent.module).distinct().order_by(AuditEvent.module).all()]

    @staticmethod
    def revoke_token(db: Session, jti: str, user_id: int, expires_at: datetime, revoked_at: datetime) -> None:
        if db.get(RevokedToken, jti) is None:
            db.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at, revoked_at=revoked_at))

    @staticmethod
    def purge_revoked_tokens(db: Session, expired_before: datetime) -> int:
        """Drop revocations whose tokens could no longer be used anyway"""
        return (
            db.query(RevokedToken)
            .filter(RevokedToken.expires_at < expired_before)
            .delete(synchronize_session=False)
        )
