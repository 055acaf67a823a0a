from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_verified
from ..db import get_db
from ..models.models import User
from ..schemas.base import dump
from ..schemas.categories import BulkDeleteRequest, CategoryCreate, CategoryOut, CategoryUpdate
from ..services import categories as category_service
from ..services.store import MAX_PAGE_SIZE


router = APIRouter(prefix="/categories", tags=["categories"])


def _out(row, item_count: int = 0) -> dict:
    body = CategoryOut.model_validate(row)
    body.item_count = item_count
    return dump(body)


@router.get("")
def list_categories(
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = category_service.list_categories(db, user.id, search=search, sort=sort, order=order, page=page, limit=limit)
    counts = category_service.item_counts(db, user.id, [r.id for r in result.rows])
    return {
        "success": True,
        "categories": [_out(r, counts.get(r.id, 0)) for r in result.rows],
        "pagination": result.pagination(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(req: CategoryCreate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = category_service.create_category(db, user.id, req)
    return {"success": True, "message": "Category created successfully", "category": _out(row)}


@router.post("/bulk-delete")
def bulk_delete(req: BulkDeleteRequest, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    deleted = category_service.bulk_delete_categories(db, user.id, req.category_ids)
    return {"success": True, "message": f"{deleted} categories deleted successfully", "deletedCount": deleted}


@router.get("/{category_id}")
def get_category(category_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = category_service.get_category(db, user.id, category_id)
    count = category_service.item_counts(db, user.id, [row.id]).get(row.id, 0)
    return {"success": True, "category": _out(row, count)}


@router.put("/{category_id}")
def update_category(category_id: str, req: CategoryUpdate, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    row = category_service.update_category(db, user.id, category_id, req)
    count = category_service.item_counts(db, user.id, [row.id]).get(row.id, 0)
    return {"success": True, "message": "Category updated successfully", "category": _out(row, count)}


@router.delete("/{category_id}")
def delete_category(category_id: str, user: User = Depends(require_verified), db: Session = Depends(get_db)):
    category_service.delete_category(db, user.id, category_id)
    return {"success": True, "message": "Category deleted successfully"}
