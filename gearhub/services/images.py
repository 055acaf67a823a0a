"""
Item image handling: validation, upload into the configured storage provider and
cleanup of images whose database write never happened or whose item is gone.
"""
import os
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import structlog
from slugify import slugify

from ..config import settings
from ..errors import ValidationError
from ..storage.provider import StorageProvider


logger = structlog.get_logger()


@dataclass
class Upload:
    filename: str
    content_type: Optional[str]
    data: bytes
    caption: str = ""


def canonical_key(owner_id: uuid.UUID, item_id: uuid.UUID, original_name: str) -> str:
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    safe_name = slugify(os.path.splitext(original_name)[0]) or "image"
    ext = os.path.splitext(original_name)[1].lower()
    token = secrets.token_hex(4)
    return f"/gear/{owner_id}/{item_id}/{today}_{token}_{safe_name}{ext}"


def validate_uploads(uploads: List[Upload], field: str = "images") -> None:
    if len(uploads) > settings.max_uploads:
        raise ValidationError(f"Too many files. Maximum is {settings.max_uploads}")
    for upload in uploads:
        if not (upload.content_type or "").startswith("image/"):
            raise ValidationError("Only image files are allowed", errors=[f"{field}: {upload.filename} is not an image"])
        if len(upload.data) > settings.max_image_bytes:
            raise ValidationError(
                "File too large",
                errors=[f"{field}: {upload.filename} exceeds {settings.max_image_bytes} bytes"],
            )


def store_images(
    storage: StorageProvider,
    owner_id: uuid.UUID,
    item_id: uuid.UUID,
    uploads: List[Upload],
    has_existing: bool = False,
) -> List[dict]:
    """Upload each file and return image entries ready to persist on the item.

    The first uploaded image is primary only when the item had none. If an upload
    fails midway the ones already stored are removed before the error propagates.
    """
    images: List[dict] = []
    try:
        for index, upload in enumerate(uploads):
            key = canonical_key(owner_id, item_id, upload.filename)
            storage.copy_in(upload.data, key)
            images.append(
                {
                    "url": storage.public_url(key),
                    "caption": upload.caption or "",
                    "is_primary": index == 0 and not has_existing,
                    "key": key,
                }
            )
    except Exception:
        discard_images(storage, images)
        raise
    return images


def stored_keys(images: Optional[Iterable[dict]]) -> List[str]:
    return [img["key"] for img in (images or []) if img.get("key")]


def store_files(storage: StorageProvider, owner_id: uuid.UUID, item_id: uuid.UUID, uploads: List[Upload]) -> List[str]:
    """Upload maintenance attachments and return their keys."""
    keys: List[str] = []
    try:
        for upload in uploads:
            key = canonical_key(owner_id, item_id, upload.filename)
            storage.copy_in(upload.data, key)
            keys.append(key)
    except Exception:
        discard_keys(storage, keys)
        raise
    return keys


def discard_images(storage: StorageProvider, images: Optional[Iterable[dict]]) -> None:
    discard_keys(storage, stored_keys(images))


def discard_keys(storage: StorageProvider, keys: Iterable[str]) -> None:
    """Best-effort delete; failures are logged and never raised."""
    for key in keys:
        try:
            storage.delete(key)
        except Exception as e:
            logger.warning("image_purge_failed", key=key, provider=storage.name, error=str(e))
