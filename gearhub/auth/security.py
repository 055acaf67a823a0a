import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Forbidden, InvalidToken, Unauthenticated
from ..models.models import User


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)

SESSION = "session"
VERIFY = "verify"
RESET = "reset"

EMAIL_TOKEN_TTLS = {
    VERIFY: lambda: settings.verify_token_ttl_seconds,
    RESET: lambda: settings.reset_token_ttl_seconds,
}


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def _create_token(sub: str, ttl_seconds: int, token_type: str) -> Tuple[str, str, datetime]:
    now = datetime.now(tz=timezone.utc)
    expires_at = now + timedelta(seconds=ttl_seconds)
    jti = uuid.uuid4().hex
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": jti,
        "type": token_type,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, jti, expires_at


def create_access_token(user_id) -> str:
    token, _, _ = _create_token(str(user_id), settings.jwt_ttl_seconds, SESSION)
    return token


def create_email_token(user_id, purpose: str) -> Tuple[str, str, datetime]:
    """Token for an emailed link. Returns (token, jti, expires_at); callers store the jti to make it single-use."""
    if purpose not in EMAIL_TOKEN_TTLS:
        raise ValueError(f"Unknown token purpose: {purpose}")
    return _create_token(str(user_id), EMAIL_TOKEN_TTLS[purpose](), purpose)


def decode_token(token: str, expected_type: str = SESSION) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token expired")
    except jwt.InvalidTokenError:
        raise InvalidToken("Invalid token")
    if payload.get("type") != expected_type:
        raise InvalidToken("Invalid token")
    return payload


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> User:
    if creds is None:
        raise Unauthenticated("No authentication token, access denied")
    payload = decode_token(creds.credentials, SESSION)
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise InvalidToken("Invalid subject")
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None:
        raise Unauthenticated("User not found")
    return user


def require_verified(user: User = Depends(get_current_user)) -> User:
    if not user.is_verified:
        raise Forbidden("Email verification required")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise Forbidden("Admin access required")
    return user
