import json
import re
from typing import List, Optional, Tuple, Type

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from ..auth.security import get_current_user, require_verified
from ..db import get_db
from ..errors import ValidationError
from ..models.models import User
from ..schemas.base import dump
from ..schemas.items import (
    BoxCreate,
    BoxOut,
    ItemCreate,
    ItemOut,
    ItemUpdate,
    MaintenanceRecordCreate,
    UsageRecordCreate,
    WeatherOut,
)
from ..services import items as item_service
from ..services import weather as weather_service
from ..services.store import MAX_PAGE_SIZE
from ..services.images import Upload, validate_uploads
from ..storage.provider import StorageProvider
from .files import get_storage


router = APIRouter(prefix="/items", tags=["items"])

CAPTION_FIELD = re.compile(r"^caption(\d+)$")
JSON_FORM_FIELDS = ("specifications", "maintenanceSchedule")


async def read_payload(request: Request, model: Type[BaseModel], file_field: str) -> Tuple[BaseModel, List[Upload]]:
    """Parse a JSON body, or a multipart form carrying files under ``file_field``.

    Multipart forms may send nested objects as JSON strings and a caption for
    the n-th file as ``caption{n}``.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be an object")
        return model.model_validate(body), []

    form = await request.form()
    data = {}
    captions = {}
    files: List[UploadFile] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key == file_field:
                files.append(value)
            continue
        match = CAPTION_FIELD.match(key)
        if match:
            captions[int(match.group(1))] = value
        elif key in JSON_FORM_FIELDS and value:
            try:
                data[key] = json.loads(value)
            except ValueError:
                raise ValidationError("Validation error", errors=[f"{key}: must be valid JSON"])
        else:
            data[key] = value

    uploads = [
        Upload(filename=f.filename or "upload", content_type=f.content_type, data=await f.read(), caption=captions.get(i, ""))
        for i, f in enumerate(files)
    ]
    validate_uploads(uploads, file_field)
    return model.model_validate(data), uploads


def _out(row) -> dict:
    return dump(ItemOut.model_validate(row))


@router.get("")
def list_items(
    category: Optional[str] = None,
    location: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = item_service.list_items(
        db, user.id, category=category, location=location, search=search, sort=sort, order=order, page=page, limit=limit
    )
    return {"success": True, "items": [_out(r) for r in result.rows], "pagination": result.pagination()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(
    request: Request,
    user: User = Depends(require_verified),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    payload, uploads = await read_payload(request, ItemCreate, "images")
    row = item_service.create_item(db, user.id, payload, uploads, storage)
    return {"success": True, "message": "Item created successfully", "item": _out(row)}


@router.get("/{item_id}")
def get_item(item_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = item_service.get_item(db, user.id, item_id)
    weather = None
    if row.location is not None:
        reading = weather_service.get_current_weather(row.location.latitude, row.location.longitude)
        weather = dump(WeatherOut.model_validate(reading))
    return {"success": True, "item": _out(row), "weather": weather}


@router.put("/{item_id}")
async def update_item(
    item_id: str,
    request: Request,
    user: User = Depends(require_verified),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    payload, uploads = await read_payload(request, ItemUpdate, "images")
    row = item_service.update_item(db, user.id, item_id, payload, uploads, storage)
    return {"success": True, "message": "Item updated successfully", "item": _out(row)}


@router.delete("/{item_id}")
def delete_item(
    item_id: str,
    user: User = Depends(require_verified),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    item_service.delete_item(db, user.id, item_id, storage)
    return {"success": True, "message": "Item deleted successfully"}


@router.post("/{item_id}/maintenance")
async def add_maintenance(
    item_id: str,
    request: Request,
    user: User = Depends(require_verified),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    payload, attachments = await read_payload(request, MaintenanceRecordCreate, "attachments")
    row = item_service.add_maintenance_record(db, user.id, item_id, payload, attachments, storage)
    return {"success": True, "message": "Maintenance record added successfully", "item": _out(row)}


@router.delete("/{item_id}/maintenance/{record_id}")
def delete_maintenance(
    item_id: str,
    record_id: str,
    user: User = Depends(require_verified),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    row = item_service.delete_maintenance_record(db, user.id, item_id, record_id, storage)
    return {"success": True, "message": "Maintenance record deleted successfully", "item": _out(row)}


@router.post("/{item_id}/usage")
def add_usage(item_id: str, req: UsageRecordCreate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = item_service.add_usage_record(db, user.id, item_id, req)
    return {"success": True, "message": "Usage record added successfully", "item": _out(row)}


@router.post("/{item_id}/qr")
def regenerate_qr(item_id: str, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = item_service.regenerate_qr(db, user.id, item_id)
    return {"success": True, "message": "QR code regenerated successfully", "qrCode": row.qr_code}


@router.get("/{item_id}/boxes")
def list_boxes(item_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    boxes = item_service.list_boxes(db, user.id, item_id)
    return {"success": True, "boxes": [dump(BoxOut.model_validate(b)) for b in boxes]}


@router.post("/{item_id}/boxes", status_code=status.HTTP_201_CREATED)
def create_box(item_id: str, req: BoxCreate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    box = item_service.create_box(db, user.id, item_id, req)
    return {"success": True, "message": "Box created successfully", "box": dump(BoxOut.model_validate(box))}


@router.delete("/{item_id}/boxes/{box_id}")
def delete_box(item_id: str, box_id: str, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    item_service.delete_box(db, user.id, item_id, box_id)
    return {"success": True, "message": "Box deleted successfully"}
