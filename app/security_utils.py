"""
Security utilities: password hashing and access tokens
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import BCRYPT_ROUNDS, JWT_ALGORITHM, JWT_EXPIRES_MINUTES, PASSWORD_MIN_LENGTH, SECRET_KEY

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

COMMON_PASSWORDS = {"password", "12345678", "123456789", "qwerty123", "admin123", "letmein1"}


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password_bcrypt(password: str) -> str:
    """Hash password using bcrypt"""
    return pwd_context.hash(password)


def verify_password_bcrypt(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def check_password_strength(password: str) -> dict[str, Any]:
    """
    Check a new password against the account policy

    Returns:
        dict with 'is_valid' (bool) and 'feedback' (list of problems)
    """
    feedback = []

    if len(password) < PASSWORD_MIN_LENGTH:
        feedback.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")

    if password != password.strip():
        feedback.append("Password must not start or end with spaces")

    if password.lower() in COMMON_PASSWORDS:
        feedback.append("This is a commonly used password - choose something unique")

    return {"is_valid": not feedback, "feedback": feedback}


# ============================================================================
# ACCESS TOKENS
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token; the jti claim lets a single token be revoked"""
    to_encode = data.copy()
    to_encode.setdefault("jti", generate_secure_token(16))
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=JWT_EXPIRES_MINUTES))
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """Decode an access token; returns None when invalid or expired"""
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
