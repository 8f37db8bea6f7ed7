"""
Password hashing and JWT issue/verification
"""
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timedelta
import hashlib
import secrets

import bcrypt
from jose import JWTError, jwt

from .config import get_security_settings
from .exceptions import UnauthorizedError
from .orm import utcnow

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def token_digest(token: str) -> str:
    """sha256 of a token; only digests are persisted"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _encode(claims: Dict[str, Any], expires_at: datetime) -> str:
    settings = get_security_settings()
    payload = dict(claims, exp=expires_at, iat=utcnow())
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int, email: str, now: Optional[datetime] = None) -> str:
    settings = get_security_settings()
    expires_at = (now or utcnow()) + timedelta(minutes=settings.access_token_ttl_minutes)
    return _encode({"sub": str(user_id), "email": email, "type": ACCESS_TOKEN}, expires_at)


def create_refresh_token(user_id: int, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """New refresh token and its expiry; the random jti keeps every token distinct"""
    settings = get_security_settings()
    expires_at = (now or utcnow()) + timedelta(days=settings.refresh_token_ttl_days)
    claims = {"sub": str(user_id), "type": REFRESH_TOKEN, "jti": secrets.token_hex(16)}
    return _encode(claims, expires_at), expires_at


def decode_token(token: str, expected_type: str) -> Dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        UnauthorizedError: for any invalid, expired or mistyped token
    """
    settings = get_security_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise UnauthorizedError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise UnauthorizedError("Wrong token type")

    try:
        payload["user_id"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Token has no subject")
    return payload
