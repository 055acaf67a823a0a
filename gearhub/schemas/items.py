import enum
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from ..models.models import to_utc
from .base import CamelModel, blank_to_none
from .categories import CategorySummary
from .locations import LocationSummary


class Condition(str, enum.Enum):
    new = "new"
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"


class MaintenanceType(str, enum.Enum):
    repair = "repair"
    inspection = "inspection"
    cleaning = "cleaning"
    upgrade = "upgrade"
    other = "other"


class MaintenanceFrequency(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"
    custom = "custom"


class MaintenanceSchedule(CamelModel):
    frequency: Optional[MaintenanceFrequency] = None
    last_maintenance: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None

    @field_validator("last_maintenance", "next_maintenance")
    @classmethod
    def in_utc(cls, v):
        return to_utc(v)


class ItemBase(CamelModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    purchase_date: Optional[datetime] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    specifications: Optional[Dict[str, str]] = None
    maintenance_schedule: Optional[MaintenanceSchedule] = None

    @field_validator("brand", "model", "serial_number", "description", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return blank_to_none(v)

    @field_validator("category_id", "location_id", "purchase_date", "purchase_price", mode="before")
    @classmethod
    def empty_form_value(cls, v):
        # multipart forms send "" for untouched inputs
        return None if v == "" else v

    @field_validator("purchase_date")
    @classmethod
    def purchase_date_in_utc(cls, v):
        return to_utc(v)


class ItemCreate(ItemBase):
    name: str = Field(min_length=1, max_length=255)
    condition: Condition = Condition.good

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class ItemUpdate(ItemBase):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    condition: Optional[Condition] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class ImageOut(CamelModel):
    url: str
    caption: Optional[str] = ""
    is_primary: bool = False


class MaintenanceRecordCreate(CamelModel):
    type: MaintenanceType
    date: Optional[datetime] = None
    description: Optional[str] = None
    cost: Optional[float] = Field(default=None, ge=0)
    performed_by: Optional[str] = None

    @field_validator("date", "cost", mode="before")
    @classmethod
    def empty_form_value(cls, v):
        return None if v == "" else v

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, v):
        return to_utc(v)


class MaintenanceRecordOut(CamelModel):
    id: uuid.UUID
    type: MaintenanceType
    date: datetime
    description: Optional[str] = None
    cost: Optional[float] = None
    performed_by: Optional[str] = None
    attachments: List[str] = []


class WeatherSnapshot(CamelModel):
    wind_speed: Optional[float] = None
    wind_direction: Optional[str] = None
    temperature: Optional[float] = None
    conditions: Optional[str] = None
    available: bool = False


class UsageRecordCreate(CamelModel):
    date: Optional[datetime] = None
    duration: int = Field(gt=0, description="Minutes on the water")
    location_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, v):
        return to_utc(v)


class UsageRecordOut(CamelModel):
    id: uuid.UUID
    date: datetime
    duration: int
    location_id: Optional[uuid.UUID] = None
    weather_conditions: Optional[WeatherSnapshot] = None
    notes: Optional[str] = None


class BoxCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class BoxOut(CamelModel):
    id: uuid.UUID
    item_id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime


class ItemOut(CamelModel):
    id: uuid.UUID
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    category: Optional[CategorySummary] = None
    location: Optional[LocationSummary] = None
    purchase_date: Optional[datetime] = None
    purchase_price: Optional[float] = None
    condition: Condition
    description: Optional[str] = None
    specifications: Dict[str, str] = {}
    images: List[ImageOut] = []
    qr_code: Optional[str] = None
    maintenance_schedule: Optional[MaintenanceSchedule] = None
    maintenance_records: List[MaintenanceRecordOut] = []
    usage_records: List[UsageRecordOut] = []
    boxes: List[BoxOut] = []
    total_usage_hours: float
    total_maintenance_cost: float
    maintenance_due: bool
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("specifications", "images", mode="before")
    @classmethod
    def null_to_empty(cls, v, info):
        if v is None:
            return {} if info.field_name == "specifications" else []
        return v


class WeatherOut(CamelModel):
    temperature: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[str] = None
    conditions: Optional[str] = None
    description: Optional[str] = None
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    timestamp: datetime
    available: bool
