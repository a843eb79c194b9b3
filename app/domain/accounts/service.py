"""Account service - Login with lockout, current user profile, audit queries"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import AuditLogger
from ...clock import Clock
from ...config import LOGIN_LOCK_MINUTES, LOGIN_MAX_ATTEMPTS
from ...errors import AccountLocked, Unauthorized, ValidationFailed
from ...models import User
from ...security_utils import (
    check_password_strength,
    create_jwt_token,
    hash_password_bcrypt,
    verify_jwt_token,
    verify_password_bcrypt,
)
from .repository import AccountRepository

logger = logging.getLogger(__name__)


def user_summary(user: User) -> dict:
    doctor = user.doctor
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.role.name,
        "roleId": user.role_id,
        "doctor": (
            {
                "id": doctor.id,
                "specialty": doctor.specialty.name if doctor.specialty else None,
                "specialtyId": doctor.specialty_id,
            }
            if doctor
            else None
        ),
        "permissions": [
            {"module": module, "action": action} for module, action in sorted(user.role.capabilities())
        ],
    }


class AccountService:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock
        self.repo = AccountRepository()

    def login(self, username: str, password: str, audit: Optional[AuditLogger] = None) -> dict:
        """
        Verify credentials and issue an access token.

        After LOGIN_MAX_ATTEMPTS consecutive failures the account is locked
        for LOGIN_LOCK_MINUTES; an expired lock starts a fresh count.
        """
        user = self.repo.get_user_by_username(self.db, username)
        if not user or user.deleted_at is not None:
            logger.warning(f"⚠️ Login failed for unknown user {username}")
            raise Unauthorized("Invalid credentials")

        if not user.is_active:
            raise Unauthorized("User is deactivated")

        now = self.clock.now()
        if user.locked_until is not None:
            if now < user.locked_until:
                logger.warning(f"⚠️ Login attempt on locked account {username}")
                raise AccountLocked(
                    "Account temporarily locked. Try again later.",
                    {"lockedUntil": user.locked_until.isoformat()},
                )
            user.locked_until = None
            user.failed_attempts = 0

        if not verify_password_bcrypt(password, user.password_hash):
            user.failed_attempts = (user.failed_attempts or 0) + 1
            if user.failed_attempts >= LOGIN_MAX_ATTEMPTS:
                user.locked_until = now + timedelta(minutes=LOGIN_LOCK_MINUTES)
                logger.warning(f"⚠️ Account {username} locked until {user.locked_until}")
            self.db.commit()
            raise Unauthorized("Invalid credentials")

        user.failed_attempts = 0
        user.locked_until = None
        user.last_login = now
        self.db.commit()
        self.db.refresh(user)

        token = create_jwt_token({"sub": str(user.id), "role": user.role.name})
        logger.info(f"✅ User {username} logged in")

        if audit:
            audit.record("LOGIN", "auth", "User", user.id, user_id=user.id)
        return {"token": token, "user": user_summary(user)}

    def logout(self, user: User, token: str, audit: Optional[AuditLogger] = None) -> None:
        """Revoke the presented token until it would have expired"""
        payload = verify_jwt_token(token) or {}
        jti, exp = payload.get("jti"), payload.get("exp")
        if not jti or not exp:
            raise Unauthorized("This token cannot be revoked")

        # Token expiry is wall-clock UTC, independent of the clinic clock
        utc_now = datetime.now(timezone.utc).replace(tzinfo=None)
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
        self.repo.purge_revoked_tokens(self.db, utc_now)
        self.repo.revoke_token(self.db, jti, user.id, expires_at, self.clock.now())
        self.db.commit()
        logger.info(f"User {user.username} logged out")

        if audit:
            audit.record("LOGOUT", "auth", "User", user.id)

    def change_password(
        self, user: User, current_password: str, new_password: str, audit: Optional[AuditLogger] = None
    ) -> None:
        if not current_password or not new_password:
            raise ValidationFailed("Current and new password are required")

        strength = check_password_strength(new_password)
        if not strength["is_valid"]:
            raise ValidationFailed(
                "The new password does not meet the password policy", {"feedback": strength["feedback"]}
            )

        account = self.repo.get_user(self.db, user.id)
        if not verify_password_bcrypt(current_password, account.password_hash):
            logger.warning(f"⚠️ Wrong current password on change-password for {account.username}")
            raise ValidationFailed("Current password is incorrect")

        account.password_hash = hash_password_bcrypt(new_password)
        self.db.commit()
        logger.info(f"✅ Password changed for {account.username}")

        if audit:
            audit.record("CHANGE_PASSWORD", "auth", "User", account.id)

    def search_audit_events(
        self,
        user_id: Optional[int] = None,
        module: Optional[str] = None,
        action: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        items, total = self.repo.search_audit_events(
            self.db, user_id, module, action, start, end, offset=(page - 1) * limit, limit=limit
        )
        return {
            "data": items,
            "pagination": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }

    def audit_modules(self) -> list[str]:
        return self.repo.audit_modules(self.db)
