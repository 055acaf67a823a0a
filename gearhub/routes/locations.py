from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_verified
from ..db import get_db
from ..models.models import User
from ..schemas.base import dump
from ..schemas.items import WeatherOut
from ..schemas.locations import LocationCreate, LocationOut, LocationUpdate
from ..services import locations as location_service
from ..services.store import MAX_PAGE_SIZE
from ..services import weather as weather_service


router = APIRouter(prefix="/locations", tags=["locations"])


def _out(row) -> dict:
    return dump(LocationOut.model_validate(row))


@router.get("")
def list_locations(
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = location_service.list_locations(db, user.id, search=search, sort=sort, order=order, page=page, limit=limit)
    return {
        "success": True,
        "locations": [_out(r) for r in result.rows],
        "pagination": result.pagination(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_location(req: LocationCreate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = location_service.create_location(db, user.id, req)
    return {"success": True, "message": "Location created successfully", "location": _out(row)}


@router.get("/{location_id}")
def get_location(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "location": _out(location_service.get_location(db, user.id, location_id))}


@router.put("/{location_id}")
def update_location(location_id: str, req: LocationUpdate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = location_service.update_location(db, user.id, location_id, req)
    return {"success": True, "message": "Location updated successfully", "location": _out(row)}


@router.delete("/{location_id}")
def delete_location(location_id: str, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    location_service.delete_location(db, user.id, location_id)
    return {"success": True, "message": "Location deleted successfully"}


@router.get("/{location_id}/weather")
def location_weather(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = location_service.get_location(db, user.id, location_id)
    reading = weather_service.get_current_weather(row.latitude, row.longitude)
    return {"success": True, "weather": dump(WeatherOut.model_validate(reading))}


@router.get("/{location_id}/forecast")
def location_forecast(location_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = location_service.get_location(db, user.id, location_id)
    entries = weather_service.get_forecast(row.latitude, row.longitude)
    if entries is None:
        return {"success": True, "message": "Forecast unavailable", "forecast": None}
    return {"success": True, "forecast": [dump(WeatherOut.model_validate(e)) for e in entries]}
