import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Forbidden, Unauthorized
from .models import RevokedToken, User
from .security_utils import verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the acting user from the Bearer access token"""
    if not credentials:
        raise Unauthorized("Access token required")

    payload = verify_jwt_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise Unauthorized("Invalid token claims") from e

    jti = payload.get("jti")
    if jti and db.query(RevokedToken).filter(RevokedToken.jti == jti).first():
        raise Unauthorized("Token has been revoked")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active or user.deleted_at is not None:
        logger.warning(f"⚠️ Token presented for unusable account {user_id}")
        raise Unauthorized("User is not valid or has been deactivated")

    return user


def require_permission(module: str, action: str):
    """
    Dependency factory gating a route on a (module, action) capability.

    Roles are plain capability sets; a grant-all role simply holds every pair.
    """

    async def checker(user: User = Depends(get_current_user)) -> User:
        if (module, action) not in user.role.capabilities():
            logger.warning(f"⚠️ User {user.username} lacks {module}:{action}")
            raise Forbidden(
                "You do not have permission to perform this action",
                {"required": {"module": module, "action": action}},
            )
        return user

    return checker
