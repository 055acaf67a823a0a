from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Unauthenticated
from ..logging import structlog
from ..models.models import User
from ..schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileOut,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    TokenRequest,
    UserOut,
)
from ..schemas.base import dump
from ..services import users as user_service
from ..services.mailer import send_email
from .security import create_access_token, get_current_user, require_admin, verify_password


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger()


def _send_verification(db: Session, user: User) -> None:
    token = user_service.issue_verification_token(db, user)
    link = f"{settings.frontend_url.rstrip('/')}/verify-email?token={token}"
    send_email(
        user.email,
        "Verify your email",
        f"Hello {user.full_name},\n\nConfirm your email address to start tracking your gear:\n{link}\n\n"
        f"This link expires in {settings.verify_token_ttl_seconds // 3600} hours.",
    )


def _session_body(message: str, user: User) -> dict:
    return {
        "success": True,
        "message": message,
        "token": create_access_token(user.id),
        "user": dump(UserOut.model_validate(user)),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    user = user_service.create_user(db, req)
    if not user.is_verified:
        _send_verification(db, user)
    return _session_body("User registered successfully", user)


@router.post("/login")
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = user_service.get_user_by_email(db, req.email)
    if user is None or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", email=req.email)
        raise Unauthenticated("Invalid credentials")
    user_service.record_login(
        db,
        user,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return _session_body("Logged in successfully", user)


@router.post("/verify-email")
def verify_email(req: TokenRequest, db: Session = Depends(get_db)):
    user_service.verify_email(db, req.token)
    return {"success": True, "message": "Email verified successfully"}


@router.post("/resend-verification")
def resend_verification(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.is_verified:
        return {"success": True, "message": "Email already verified"}
    _send_verification(db, user)
    return {"success": True, "message": "Verification email sent"}


@router.post("/forgot-password")
def forgot_password(req: ForgotPasswordRequest, db: Session = Depends(get_db)):
    user = user_service.get_user_by_email(db, req.email)
    if user is not None:
        token = user_service.issue_reset_token(db, user)
        link = f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}"
        send_email(
            user.email,
            "Reset your password",
            f"Hello {user.full_name},\n\nUse the link below to choose a new password:\n{link}\n\n"
            "If you did not ask for this, you can ignore this email.",
        )
    else:
        logger.info("password_reset_unknown_email", email=req.email)
    # same answer either way so the endpoint does not reveal which emails exist
    return {"success": True, "message": "If that email is registered, a reset link has been sent"}


@router.post("/reset-password")
def reset_password(req: ResetPasswordRequest, db: Session = Depends(get_db)):
    user_service.reset_password(db, req.token, req.password)
    return {"success": True, "message": "Password reset successfully"}


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return {"success": True, "user": dump(ProfileOut.model_validate(user))}


@router.put("/profile")
def update_profile(req: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = user_service.update_profile(db, user, req)
    return {"success": True, "message": "Profile updated successfully", "user": dump(ProfileOut.model_validate(user))}


@router.put("/change-password")
def change_password(req: ChangePasswordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user_service.change_password(db, user, req.current_password, req.new_password)
    return {"success": True, "message": "Password changed successfully"}


@router.get("/users")
def list_users(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return {"success": True, "users": [dump(UserOut.model_validate(u)) for u in user_service.list_users(db)]}
