import copy
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.security import RESET, VERIFY, create_email_token, decode_token, get_password_hash, verify_password
from ..config import settings
from ..errors import InvalidReference, InvalidToken, NotFound, ValidationError
from ..models.models import DEFAULT_PREFERENCES, Location, User, utcnow
from ..schemas.auth import ProfileUpdate, RegisterRequest
from .store import parse_id


logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(db: Session, payload: RegisterRequest, role: str = "user") -> User:
    if get_user_by_email(db, payload.email):
        raise ValidationError("User already exists")
    user = User(
        email=normalize_email(payload.email),
        password_hash=get_password_hash(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=role,
        is_verified=settings.auto_verify_users,
        preferences=copy.deepcopy(DEFAULT_PREFERENCES),
        login_history=[],
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("User already exists")
    db.refresh(user)
    logger.info("user_registered", user_id=str(user.id), auto_verified=user.is_verified)
    return user


def record_login(db: Session, user: User, ip: Optional[str], user_agent: Optional[str]) -> None:
    now = utcnow()
    entry = {"date": now.isoformat(), "ip": ip, "user_agent": user_agent}
    history = list(user.login_history or []) + [entry]
    user.login_history = history[-settings.login_history_limit:]
    user.last_login_at = now
    db.commit()
    logger.info("login_recorded", user_id=str(user.id), ip=ip)


def issue_verification_token(db: Session, user: User) -> str:
    token, jti, _ = create_email_token(user.id, VERIFY)
    user.verification_token = jti
    db.commit()
    return token


def verify_email(db: Session, token: str) -> User:
    message = "Invalid or expired verification token"
    payload = _decode_email_token(token, VERIFY, message)
    user = _user_for_email_token(db, payload, message)
    if user.verification_token != payload.get("jti"):
        raise ValidationError(message)
    user.is_verified = True
    user.verification_token = None
    db.commit()
    logger.info("email_verified", user_id=str(user.id))
    return user


def issue_reset_token(db: Session, user: User) -> str:
    token, jti, expires_at = create_email_token(user.id, RESET)
    user.reset_password_token = jti
    user.reset_password_expires = expires_at
    db.commit()
    return token


def reset_password(db: Session, token: str, new_password: str) -> User:
    message = "Invalid or expired reset token"
    payload = _decode_email_token(token, RESET, message)
    user = _user_for_email_token(db, payload, message)
    if user.reset_password_token != payload.get("jti"):
        raise ValidationError(message)
    user.password_hash = get_password_hash(new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    db.commit()
    logger.info("password_reset", user_id=str(user.id))
    return user


def _decode_email_token(token: str, purpose: str, message: str) -> dict:
    # emailed links are a bad request when stale, not an authentication failure
    try:
        return decode_token(token, purpose)
    except InvalidToken:
        raise ValidationError(message)


def _user_for_email_token(db: Session, payload: dict, message: str) -> User:
    user_id = parse_id(payload.get("sub"))
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    if user is None:
        raise ValidationError(message)
    return user


def update_profile(db: Session, user: User, payload: ProfileUpdate) -> User:
    data = payload.model_dump(exclude_unset=True)
    if data.get("first_name") is not None:
        user.first_name = data["first_name"]
    if data.get("last_name") is not None:
        user.last_name = data["last_name"]

    changes = data.get("preferences")
    if changes:
        prefs = copy.deepcopy(user.preferences or DEFAULT_PREFERENCES)
        if changes.get("theme") is not None:
            prefs["theme"] = changes["theme"]
        if changes.get("notifications"):
            notifications = dict(prefs.get("notifications") or {})
            notifications.update({k: v for k, v in changes["notifications"].items() if v is not None})
            prefs["notifications"] = notifications
        if "default_location_id" in changes:
            location_id = changes["default_location_id"]
            if location_id is not None:
                owned = db.query(Location.id).filter(Location.id == location_id, Location.owner_id == user.id).first()
                if owned is None:
                    raise InvalidReference("Location does not exist")
            prefs["default_location_id"] = str(location_id) if location_id else None
        # reassign so the JSON column is flagged dirty
        user.preferences = prefs
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = get_password_hash(new_password)
    db.commit()
    logger.info("password_changed", user_id=str(user.id))


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.created_at.asc()).all()


def set_role(db: Session, email: str, role: str) -> User:
    user = get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")
    user.role = role
    db.commit()
    logger.info("role_changed", user_id=str(user.id), role=role)
    return user

