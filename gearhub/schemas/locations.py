import enum
import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .base import CamelModel, blank_to_none


class LocationType(str, enum.Enum):
    lake = "Lake"
    ocean = "Ocean"
    river = "River"
    bay = "Bay"
    other = "Other"


class WindDirection(str, enum.Enum):
    n = "N"
    ne = "NE"
    e = "E"
    se = "SE"
    s = "S"
    sw = "SW"
    w = "W"
    nw = "NW"


class Coordinates(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Address(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("street", "city", "state", "country", "postal_code", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return blank_to_none(v)


class WindConditions(CamelModel):
    average_speed: Optional[float] = Field(default=None, ge=0, le=200)
    direction: Optional[WindDirection] = None


class LocationBase(CamelModel):
    description: Optional[str] = Field(default=None, max_length=1000)
    address: Optional[Address] = None
    type: Optional[LocationType] = None
    wind_conditions: Optional[WindConditions] = None


class LocationCreate(LocationBase):
    name: str = Field(min_length=2, max_length=100)
    coordinates: Coordinates

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class LocationUpdate(LocationBase):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    coordinates: Optional[Coordinates] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class LocationOut(LocationBase):
    id: uuid.UUID
    name: str
    coordinates: Coordinates
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: Optional[datetime] = None


class LocationSummary(CamelModel):
    id: uuid.UUID
    name: str
