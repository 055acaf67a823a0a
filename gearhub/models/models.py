import calendar
import copy
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to UTC, reading naive values as UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes kept in UTC, including on SQLite which drops offsets."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def shift_by_frequency(anchor: datetime, frequency: Optional[str]) -> Optional[datetime]:
    if frequency == "weekly":
        return anchor + timedelta(days=7)
    if frequency == "monthly":
        return add_months(anchor, 1)
    if frequency == "quarterly":
        return add_months(anchor, 3)
    if frequency == "yearly":
        return add_months(anchor, 12)
    return None


DEFAULT_PREFERENCES = {
    "theme": "light",
    "notifications": {"email": True, "maintenance": True, "usage": True},
    "default_location_id": None,
}


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reset_password_token: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    reset_password_expires: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True))
    preferences: Mapped[Optional[dict]] = mapped_column(JSON, default=lambda: copy.deepcopy(DEFAULT_PREFERENCES))
    last_login_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True))
    login_history: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.last_name or "User"


class Location(Base):
    __tablename__ = "locations"
    __table_args__ = (UniqueConstraint("owner_id", "name_key", name="uq_location_owner_name"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_key: Mapped[str] = mapped_column(String(100), nullable=False)  # lower-cased name for uniqueness
    description: Mapped[Optional[str]] = mapped_column(Text)
    street: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    type: Mapped[Optional[str]] = mapped_column(String(20))
    wind_average_speed: Mapped[Optional[float]] = mapped_column(Float)
    wind_direction: Mapped[Optional[str]] = mapped_column(String(2))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def coordinates(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @property
    def address(self) -> Optional[dict]:
        parts = {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postal_code": self.postal_code,
        }
        return parts if any(parts.values()) else None

    @property
    def wind_conditions(self) -> Optional[dict]:
        if self.wind_average_speed is None and self.wind_direction is None:
            return None
        return {"average_speed": self.wind_average_speed, "direction": self.wind_direction}


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("owner_id", "name_key", name="uq_category_owner_name"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_key: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    color: Mapped[str] = mapped_column(String(7), default="#1976d2", nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Item(Base):
    __tablename__ = "items"

    id: Mapped[uuid.UUID] = uuid_pk()
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[Optional[str]] = mapped_column(String(100))
    serial_number: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("categories.id"), index=True)
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("locations.id"), index=True)
    purchase_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True))
    purchase_price: Mapped[Optional[float]] = mapped_column(Float)
    condition: Mapped[str] = mapped_column(String(20), default="good", nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    specifications: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    images: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # [{url, caption, is_primary, key}]
    qr_code: Mapped[Optional[str]] = mapped_column(Text)
    maintenance_frequency: Mapped[Optional[str]] = mapped_column(String(20))
    last_maintenance: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True))
    next_maintenance: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, onupdate=utcnow)

    category = relationship("Category")
    location = relationship("Location")
    maintenance_records = relationship(
        "MaintenanceRecord", back_populates="item", cascade="all, delete-orphan", order_by="MaintenanceRecord.date"
    )
    usage_records = relationship(
        "UsageRecord", back_populates="item", cascade="all, delete-orphan", order_by="UsageRecord.date"
    )
    boxes = relationship("Box", back_populates="item", cascade="all, delete-orphan", order_by="Box.created_at")

    @property
    def maintenance_schedule(self) -> Optional[dict]:
        if not (self.maintenance_frequency or self.last_maintenance or self.next_maintenance):
            return None
        return {
            "frequency": self.maintenance_frequency,
            "last_maintenance": self.last_maintenance,
            "next_maintenance": self.next_maintenance,
        }

    @property
    def total_usage_hours(self) -> float:
        return sum((r.duration or 0) for r in self.usage_records) / 60

    @property
    def total_maintenance_cost(self) -> float:
        return sum((r.cost or 0) for r in self.maintenance_records)

    @property
    def maintenance_due(self) -> bool:
        return self.is_maintenance_due()

    def is_maintenance_due(self, now: Optional[datetime] = None) -> bool:
        if not self.next_maintenance:
            return False
        return (now or utcnow()) >= as_utc(self.next_maintenance)

    def calculate_next_maintenance(self) -> Optional[datetime]:
        if not self.maintenance_frequency:
            return None
        anchor = as_utc(self.last_maintenance) or utcnow()
        return shift_by_frequency(anchor, self.maintenance_frequency)


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cost: Mapped[Optional[float]] = mapped_column(Float)
    performed_by: Mapped[Optional[str]] = mapped_column(String(255))
    attachments: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # public urls
    attachment_keys: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)

    item = relationship("Item", back_populates="maintenance_records")


class UsageRecord(Base):
    __tablename__ = "usage_records"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"))
    weather_conditions: Mapped[Optional[dict]] = mapped_column(JSON)  # {wind_speed, wind_direction, temperature, conditions, available}
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)

    item = relationship("Item", back_populates="usage_records")


class Box(Base):
    __tablename__ = "boxes"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), default=utcnow)

    item = relationship("Item", back_populates="boxes")
