"""
Item store.

On top of the owner-scoped lookups shared with locations and categories, items
check that referenced categories and locations belong to the same owner, keep a
QR code identifying the item, hold uploaded images, and carry maintenance, usage
and box sub-records that are only reachable through their item.
"""
import uuid
from typing import Callable, List, Optional, Sequence

import structlog
from sqlalchemy import false
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..errors import InvalidReference, NotFound, ValidationError
from ..models.models import Box, Category, Item, Location, MaintenanceRecord, UsageRecord, utcnow
from ..schemas.items import BoxCreate, ItemCreate, ItemUpdate, MaintenanceRecordCreate, UsageRecordCreate
from ..storage.provider import StorageProvider
from . import weather
from .images import Upload, discard_images, discard_keys, store_files, store_images, stored_keys
from .qr import item_qr_code
from .store import Page, apply_fields, get_owned, paginate, parse_id


logger = structlog.get_logger()

SERIAL_MESSAGE = "Serial number already exists"

SORTABLE = {
    "name": Item.name,
    "brand": Item.brand,
    "condition": Item.condition,
    "purchaseDate": Item.purchase_date,
    "purchasePrice": Item.purchase_price,
    "createdAt": Item.created_at,
    "updatedAt": Item.updated_at,
}

WeatherLookup = Callable[[float, float], dict]

CLEARED_SCHEDULE = {"frequency": None, "last_maintenance": None, "next_maintenance": None}


def _with_relations(q):
    return q.options(
        selectinload(Item.category),
        selectinload(Item.location),
        selectinload(Item.maintenance_records),
        selectinload(Item.usage_records),
        selectinload(Item.boxes),
    )


def _resolve_reference(db: Session, model, owner_id: uuid.UUID, ref_id, label: str):
    try:
        return get_owned(db, model, owner_id, ref_id, label)
    except NotFound:
        raise InvalidReference(f"{label} does not exist")


def _check_references(db: Session, owner_id: uuid.UUID, data: dict) -> None:
    if data.get("category_id") is not None:
        _resolve_reference(db, Category, owner_id, data["category_id"], "Category")
    if data.get("location_id") is not None:
        _resolve_reference(db, Location, owner_id, data["location_id"], "Location")


def _ensure_unique_serial(db: Session, serial_number: Optional[str], exclude_id: Optional[uuid.UUID] = None) -> None:
    if not serial_number:
        return
    q = db.query(Item.id).filter(Item.serial_number == serial_number)
    if exclude_id is not None:
        q = q.filter(Item.id != exclude_id)
    if q.first() is not None:
        raise ValidationError(SERIAL_MESSAGE, errors=["serialNumber: already in use"])


def _commit(db: Session, storage: Optional[StorageProvider] = None, new_images: Sequence[dict] = ()) -> None:
    """Commit once; on failure roll back and remove images uploaded for this write."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if storage is not None:
            discard_images(storage, new_images)
        reason = str(e.orig).lower()
        if "serial_number" in reason:
            raise ValidationError(SERIAL_MESSAGE)
        if "foreign key" in reason:
            # a referenced category or location was deleted concurrently
            raise InvalidReference("Category or location does not exist")
        raise
    except Exception:
        db.rollback()
        if storage is not None:
            discard_images(storage, new_images)
        raise


def _apply_schedule(row: Item, schedule: Optional[dict]) -> None:
    if schedule is None:
        return
    if "frequency" in schedule:
        row.maintenance_frequency = schedule["frequency"]
    if "last_maintenance" in schedule:
        row.last_maintenance = schedule["last_maintenance"]
    if "next_maintenance" in schedule:
        row.next_maintenance = schedule["next_maintenance"]
    elif row.maintenance_frequency and row.next_maintenance is None:
        row.next_maintenance = row.calculate_next_maintenance()


def list_items(
    db: Session,
    owner_id: uuid.UUID,
    *,
    category: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = 1,
    limit: int = 10,
) -> Page:
    q = _with_relations(db.query(Item)).filter(Item.owner_id == owner_id)
    if category:
        category_id = parse_id(category)
        q = q.filter(Item.category_id == category_id) if category_id else q.filter(false())
    if location:
        location_id = parse_id(location)
        q = q.filter(Item.location_id == location_id) if location_id else q.filter(false())
    if search:
        like = f"%{search}%"
        q = q.filter(Item.name.ilike(like) | Item.brand.ilike(like) | Item.description.ilike(like))
    return paginate(q, SORTABLE, sort=sort, order=order, page=page, limit=limit)


def get_item(db: Session, owner_id: uuid.UUID, item_id) -> Item:
    return get_owned(db, Item, owner_id, item_id, "Item")


def create_item(
    db: Session,
    owner_id: uuid.UUID,
    payload: ItemCreate,
    uploads: Sequence[Upload] = (),
    storage: Optional[StorageProvider] = None,
) -> Item:
    data = payload.model_dump(exclude={"maintenance_schedule"})
    _check_references(db, owner_id, data)
    _ensure_unique_serial(db, payload.serial_number)

    item_id = uuid.uuid4()
    images = store_images(storage, owner_id, item_id, list(uploads)) if uploads else []
    row = Item(id=item_id, owner_id=owner_id, images=images, **data)
    row.specifications = data.get("specifications") or {}
    row.qr_code = item_qr_code(row)
    if payload.maintenance_schedule is not None:
        _apply_schedule(row, payload.maintenance_schedule.model_dump(exclude_unset=True))
    db.add(row)
    _commit(db, storage, images)
    db.refresh(row)
    logger.info("item_created", item_id=str(row.id), owner_id=str(owner_id), images=len(images))
    return row


def update_item(
    db: Session,
    owner_id: uuid.UUID,
    item_id,
    payload: ItemUpdate,
    uploads: Sequence[Upload] = (),
    storage: Optional[StorageProvider] = None,
) -> Item:
    row = get_item(db, owner_id, item_id)
    data = payload.model_dump(exclude_unset=True, exclude={"maintenance_schedule"})
    # null clears optional fields, but name and condition are required on the row
    for required in ("name", "condition"):
        if required in data and data[required] is None:
            del data[required]
    _check_references(db, owner_id, data)
    if data.get("serial_number"):
        _ensure_unique_serial(db, data["serial_number"], exclude_id=row.id)
    if "specifications" in data and data["specifications"] is None:
        data["specifications"] = {}

    existing = list(row.images or [])
    new_images = store_images(storage, owner_id, row.id, list(uploads), has_existing=bool(existing)) if uploads else []
    apply_fields(row, data)
    if new_images:
        row.images = existing + new_images
    if "maintenance_schedule" in payload.model_fields_set:
        schedule = payload.maintenance_schedule
        if schedule is None:
            _apply_schedule(row, CLEARED_SCHEDULE)
        else:
            _apply_schedule(row, schedule.model_dump(exclude_unset=True))
    _commit(db, storage, new_images)
    db.refresh(row)
    logger.info("item_updated", item_id=str(row.id), owner_id=str(owner_id))
    return row


def delete_item(db: Session, owner_id: uuid.UUID, item_id, storage: Optional[StorageProvider] = None) -> None:
    row = get_item(db, owner_id, item_id)
    deleted_id = str(row.id)
    keys = stored_keys(row.images)
    for record in row.maintenance_records:
        keys.extend(record.attachment_keys or [])
    db.delete(row)
    db.commit()
    if storage is not None:
        discard_keys(storage, keys)
    logger.info("item_deleted", item_id=deleted_id, owner_id=str(owner_id), purged=len(keys))


def regenerate_qr(db: Session, owner_id: uuid.UUID, item_id) -> Item:
    row = get_item(db, owner_id, item_id)
    row.qr_code = item_qr_code(row)
    db.commit()
    db.refresh(row)
    return row


def add_maintenance_record(
    db: Session,
    owner_id: uuid.UUID,
    item_id,
    payload: MaintenanceRecordCreate,
    attachments: Sequence[Upload] = (),
    storage: Optional[StorageProvider] = None,
) -> Item:
    row = get_item(db, owner_id, item_id)
    keys = store_files(storage, owner_id, row.id, list(attachments)) if attachments else []
    record = MaintenanceRecord(
        item_id=row.id,
        type=payload.type,
        date=payload.date or utcnow(),
        description=payload.description,
        cost=payload.cost,
        performed_by=payload.performed_by,
        attachments=[storage.public_url(k) for k in keys] if keys else [],
        attachment_keys=keys,
    )
    row.maintenance_records.append(record)
    if row.maintenance_frequency:
        row.last_maintenance = record.date
        if row.maintenance_frequency != "custom":
            row.next_maintenance = row.calculate_next_maintenance()
    try:
        db.commit()
    except Exception:
        db.rollback()
        if keys:
            discard_keys(storage, keys)
        raise
    db.refresh(row)
    logger.info("maintenance_recorded", item_id=str(row.id), record_type=record.type, cost=record.cost)
    return row


def delete_maintenance_record(db: Session, owner_id: uuid.UUID, item_id, record_id, storage: Optional[StorageProvider] = None) -> Item:
    row = get_item(db, owner_id, item_id)
    rid = parse_id(record_id)
    record = next((r for r in row.maintenance_records if r.id == rid), None) if rid else None
    if record is None:
        raise NotFound("Maintenance record not found")
    keys = list(record.attachment_keys or [])
    row.maintenance_records.remove(record)
    db.commit()
    if storage is not None and keys:
        discard_keys(storage, keys)
    db.refresh(row)
    return row


def add_usage_record(
    db: Session,
    owner_id: uuid.UUID,
    item_id,
    payload: UsageRecordCreate,
    weather_lookup: Optional[WeatherLookup] = None,
) -> Item:
    row = get_item(db, owner_id, item_id)
    conditions = None
    if payload.location_id is not None:
        place = _resolve_reference(db, Location, owner_id, payload.location_id, "Location")
        lookup = weather_lookup or weather.get_current_weather
        conditions = weather.snapshot(lookup(place.latitude, place.longitude))
    record = UsageRecord(
        item_id=row.id,
        date=payload.date or utcnow(),
        duration=payload.duration,
        location_id=payload.location_id,
        weather_conditions=conditions,
        notes=payload.notes,
    )
    row.usage_records.append(record)
    db.commit()
    db.refresh(row)
    logger.info(
        "usage_recorded",
        item_id=str(row.id),
        duration=record.duration,
        weather_available=bool(conditions and conditions.get("available")),
    )
    return row


def list_boxes(db: Session, owner_id: uuid.UUID, item_id) -> List[Box]:
    return list(get_item(db, owner_id, item_id).boxes)


def create_box(db: Session, owner_id: uuid.UUID, item_id, payload: BoxCreate) -> Box:
    row = get_item(db, owner_id, item_id)
    box = Box(item_id=row.id, name=payload.name, description=payload.description)
    db.add(box)
    db.commit()
    db.refresh(box)
    return box


def delete_box(db: Session, owner_id: uuid.UUID, item_id, box_id) -> None:
    row = get_item(db, owner_id, item_id)
    bid = parse_id(box_id)
    box = db.query(Box).filter(Box.id == bid, Box.item_id == row.id).first() if bid else None
    if box is None:
        raise NotFound("Box not found")
    db.delete(box)
    db.commit()
