import uuid
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import HasDependents, ValidationError
from ..models.models import Category, Item
from ..schemas.categories import CategoryCreate, CategoryUpdate
from .store import Page, apply_fields, commit_unique, ensure_unique_name, get_owned, name_key, paginate, parse_id


logger = structlog.get_logger()

DUPLICATE_MESSAGE = "Category with this name already exists"

SORTABLE = {
    "name": Category.name,
    "color": Category.color,
    "createdAt": Category.created_at,
    "updatedAt": Category.updated_at,
}


def item_counts(db: Session, owner_id: uuid.UUID, category_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
    ids = list(category_ids)
    if not ids:
        return {}
    rows = (
        db.query(Item.category_id, func.count(Item.id))
        .filter(Item.owner_id == owner_id, Item.category_id.in_(ids))
        .group_by(Item.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def list_categories(
    db: Session,
    owner_id: uuid.UUID,
    *,
    search: Optional[str] = None,
    sort: str = "name",
    order: str = "asc",
    page: int = 1,
    limit: int = 10,
) -> Page:
    q = db.query(Category).filter(Category.owner_id == owner_id)
    if search:
        like = f"%{search}%"
        q = q.filter((Category.name.ilike(like)) | (Category.description.ilike(like)))
    return paginate(q, SORTABLE, sort=sort, order=order, page=page, limit=limit)


def get_category(db: Session, owner_id: uuid.UUID, category_id) -> Category:
    return get_owned(db, Category, owner_id, category_id, "Category")


def create_category(db: Session, owner_id: uuid.UUID, payload: CategoryCreate) -> Category:
    ensure_unique_name(db, Category, owner_id, payload.name, DUPLICATE_MESSAGE)
    row = Category(
        owner_id=owner_id,
        name=payload.name,
        name_key=name_key(payload.name),
        description=payload.description,
        color=payload.color,
    )
    db.add(row)
    commit_unique(db, DUPLICATE_MESSAGE)
    db.refresh(row)
    logger.info("category_created", category_id=str(row.id), owner_id=str(owner_id))
    return row


def update_category(db: Session, owner_id: uuid.UUID, category_id, payload: CategoryUpdate) -> Category:
    row = get_category(db, owner_id, category_id)
    data = payload.model_dump(exclude_unset=True)
    for required in ("name", "color"):
        if required in data and data[required] is None:
            del data[required]
    if "name" in data and data["name"] != row.name:
        ensure_unique_name(db, Category, owner_id, data["name"], DUPLICATE_MESSAGE, exclude_id=row.id)
        data["name_key"] = name_key(data["name"])
    apply_fields(row, data)
    commit_unique(db, DUPLICATE_MESSAGE)
    db.refresh(row)
    return row


def delete_category(db: Session, owner_id: uuid.UUID, category_id) -> None:
    row = get_category(db, owner_id, category_id)
    count = item_counts(db, owner_id, [row.id]).get(row.id, 0)
    if count > 0:
        raise HasDependents(f"Cannot delete category. It contains {count} items.")
    deleted_id = str(row.id)
    db.delete(row)
    db.commit()
    logger.info("category_deleted", category_id=deleted_id, owner_id=str(owner_id))


def bulk_delete_categories(db: Session, owner_id: uuid.UUID, raw_ids: List[str]) -> int:
    if not raw_ids:
        raise ValidationError("Please provide an array of category IDs")
    ids = [i for i in (parse_id(r) for r in raw_ids) if i is not None]
    if any(item_counts(db, owner_id, ids).values()):
        raise HasDependents("Cannot delete categories that contain items")
    rows = db.query(Category).filter(Category.owner_id == owner_id, Category.id.in_(ids)).all() if ids else []
    for row in rows:
        db.delete(row)
    db.commit()
    logger.info("categories_bulk_deleted", count=len(rows), owner_id=str(owner_id))
    return len(rows)
