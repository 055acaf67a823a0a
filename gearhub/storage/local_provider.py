"""
Local filesystem storage provider.
Images land under STORAGE_LOCAL_DIR and are served back by GET /files/local/{key}.
"""
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

from ..config import settings
from .provider import StorageProvider


class LocalStorageProvider(StorageProvider):
    name = "local"

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.storage_local_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """Filesystem path for a key; raises ValueError if the key escapes the base dir."""
        clean_key = key.replace("\\", "/").lstrip("/")
        path = (self.base_dir / clean_key).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def public_url(self, key: str) -> str:
        return f"{settings.public_base_url.rstrip('/')}/files/local/{quote(key.lstrip('/'))}"

    def exists(self, key: str) -> bool:
        try:
            return self.path_for(key).is_file()
        except ValueError:
            return False

    def copy_in(self, src: Union[bytes, BinaryIO], key: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            if hasattr(src, "read"):
                f.write(src.read())
            else:
                f.write(src)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        if path.exists():
            path.unlink()
