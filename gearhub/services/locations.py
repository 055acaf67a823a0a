import uuid
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import HasDependents
from ..models.models import Item, Location
from ..schemas.locations import Address, LocationCreate, LocationUpdate, WindConditions
from .store import Page, apply_fields, commit_unique, ensure_unique_name, get_owned, name_key, paginate


logger = structlog.get_logger()

DUPLICATE_MESSAGE = "A location with this name already exists"

SORTABLE = {
    "name": Location.name,
    "type": Location.type,
    "createdAt": Location.created_at,
    "updatedAt": Location.updated_at,
}


def _flatten(payload) -> dict:
    data = payload.model_dump(exclude_unset=True, exclude={"address", "coordinates", "wind_conditions"})
    if payload.coordinates is not None:
        data["latitude"] = payload.coordinates.latitude
        data["longitude"] = payload.coordinates.longitude
    # an explicit null clears the nested group
    if "address" in payload.model_fields_set:
        data.update((payload.address or Address()).model_dump())
    if "wind_conditions" in payload.model_fields_set:
        wind = payload.wind_conditions or WindConditions()
        data["wind_average_speed"] = wind.average_speed
        data["wind_direction"] = wind.direction
    return data


def list_locations(
    db: Session,
    owner_id: uuid.UUID,
    *,
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = 1,
    limit: int = 10,
) -> Page:
    q = db.query(Location).filter(Location.owner_id == owner_id)
    if search:
        like = f"%{search}%"
        q = q.filter((Location.name.ilike(like)) | (Location.description.ilike(like)))
    return paginate(q, SORTABLE, sort=sort, order=order, page=page, limit=limit)


def get_location(db: Session, owner_id: uuid.UUID, location_id) -> Location:
    return get_owned(db, Location, owner_id, location_id, "Location")


def create_location(db: Session, owner_id: uuid.UUID, payload: LocationCreate) -> Location:
    ensure_unique_name(db, Location, owner_id, payload.name, DUPLICATE_MESSAGE)
    data = _flatten(payload)
    row = Location(owner_id=owner_id, name_key=name_key(payload.name), **data)
    db.add(row)
    commit_unique(db, DUPLICATE_MESSAGE)
    db.refresh(row)
    logger.info("location_created", location_id=str(row.id), owner_id=str(owner_id))
    return row


def update_location(db: Session, owner_id: uuid.UUID, location_id, payload: LocationUpdate) -> Location:
    row = get_location(db, owner_id, location_id)
    data = _flatten(payload)
    # name and coordinates are required on the row; other nulls clear
    if data.get("name") is None:
        data.pop("name", None)
    if "name" in data and data["name"] != row.name:
        ensure_unique_name(db, Location, owner_id, data["name"], DUPLICATE_MESSAGE, exclude_id=row.id)
        data["name_key"] = name_key(data["name"])
    apply_fields(row, data)
    commit_unique(db, DUPLICATE_MESSAGE)
    db.refresh(row)
    return row


def delete_location(db: Session, owner_id: uuid.UUID, location_id) -> None:
    row = get_location(db, owner_id, location_id)
    item_count = db.query(Item).filter(Item.location_id == row.id, Item.owner_id == owner_id).count()
    if item_count > 0:
        raise HasDependents(f"Cannot delete location. It contains {item_count} items.")
    deleted_id = str(row.id)
    db.delete(row)
    db.commit()
    logger.info("location_deleted", location_id=deleted_id, owner_id=str(owner_id))
