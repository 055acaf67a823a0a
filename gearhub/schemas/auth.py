import enum
import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import EmailStr, Field, field_validator

from .base import CamelModel, blank_to_none


class Role(str, enum.Enum):
    admin = "admin"
    user = "user"


class Theme(str, enum.Enum):
    light = "light"
    dark = "dark"


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return blank_to_none(v)


class LoginRequest(CamelModel):
    email: str
    password: str


class TokenRequest(CamelModel):
    token: str


class ForgotPasswordRequest(CamelModel):
    email: str


class ResetPasswordRequest(CamelModel):
    token: str
    password: str = Field(min_length=8)


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=8)


class NotificationPreferences(CamelModel):
    email: bool = True
    maintenance: bool = True
    usage: bool = True


class NotificationPreferencesUpdate(CamelModel):
    email: Optional[bool] = None
    maintenance: Optional[bool] = None
    usage: Optional[bool] = None


class Preferences(CamelModel):
    theme: Theme = Theme.light
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    default_location_id: Optional[uuid.UUID] = None


class PreferencesUpdate(CamelModel):
    theme: Optional[Theme] = None
    notifications: Optional[NotificationPreferencesUpdate] = None
    default_location_id: Optional[uuid.UUID] = None


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    preferences: Optional[PreferencesUpdate] = None

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return blank_to_none(v)


class LoginEntry(CamelModel):
    date: datetime
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class UserOut(CamelModel):
    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    role: Role
    is_verified: bool
    preferences: Optional[Preferences] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


class ProfileOut(UserOut):
    login_history: List[LoginEntry] = []
