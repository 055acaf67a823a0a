"""
Helpers shared by the owner-scoped entity stores.

Every lookup filters on both the entity id and the caller's owner id, so an
entity that belongs to someone else is indistinguishable from one that does not
exist.
"""
import math
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ..errors import DuplicateName, NotFound, ValidationError


MAX_PAGE_SIZE = 100


@dataclass
class Page:
    rows: List[Any]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict:
        return {"total": self.total, "page": self.page, "pages": self.pages, "limit": self.limit}


def parse_id(raw: Any) -> Optional[uuid.UUID]:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        return None


def name_key(name: str) -> str:
    return name.strip().lower()


def get_owned(db: Session, model: Type, owner_id: uuid.UUID, raw_id: Any, label: str):
    entity_id = parse_id(raw_id)
    if entity_id is None:
        raise NotFound(f"{label} not found")
    row = db.query(model).filter(model.id == entity_id, model.owner_id == owner_id).first()
    if row is None:
        raise NotFound(f"{label} not found")
    return row


def ensure_unique_name(db: Session, model: Type, owner_id: uuid.UUID, name: str, message: str, exclude_id: Optional[uuid.UUID] = None) -> None:
    q = db.query(model).filter(model.owner_id == owner_id, model.name_key == name_key(name))
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    if q.first() is not None:
        raise DuplicateName(message)


def commit_unique(db: Session, message: str) -> None:
    """Commit, reporting a unique-constraint race as DuplicateName."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateName(message)


def paginate(
    query: Query,
    sortable: Dict[str, Any],
    *,
    sort: str = "name",
    order: str = "asc",
    page: int = 1,
    limit: int = 10,
) -> Page:
    column = sortable.get(sort)
    if column is None:
        raise ValidationError(f"Cannot sort by '{sort}'", errors=[f"sort: must be one of {', '.join(sorted(sortable))}"])
    if order not in ("asc", "desc"):
        raise ValidationError("Order must be 'asc' or 'desc'")
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    total = query.order_by(None).count()
    rows = (
        query.order_by(column.asc() if order == "asc" else column.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(rows=rows, total=total, page=page, limit=limit)


def apply_fields(row: Any, data: Dict[str, Any]) -> None:
    for field, value in data.items():
        setattr(row, field, value)
