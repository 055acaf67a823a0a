from fastapi import APIRouter
from fastapi.responses import FileResponse

from ..config import settings
from ..errors import NotFound
from ..storage.blob_provider import BlobStorageProvider
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/files", tags=["files"])


def get_storage() -> StorageProvider:
    """Blob storage when Azure is configured, the local filesystem otherwise."""
    if settings.azure_blob_connection and settings.azure_blob_container:
        return BlobStorageProvider()
    return LocalStorageProvider()


@router.get("/local/{key:path}")
def serve_local(key: str):
    storage = LocalStorageProvider()
    if not storage.exists(key):
        raise NotFound("File not found")
    return FileResponse(storage.path_for(key))
