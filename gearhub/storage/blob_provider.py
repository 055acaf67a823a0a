from typing import BinaryIO, Union

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from ..config import settings
from .provider import StorageProvider


class BlobStorageProvider(StorageProvider):
    name = "blob"

    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def _client(self, key: str):
        return self._service.get_blob_client(self._container, key.lstrip("/"))

    def public_url(self, key: str) -> str:
        return self._client(key).url

    def exists(self, key: str) -> bool:
        return self._client(key).exists()

    def copy_in(self, src: Union[bytes, BinaryIO], key: str) -> None:
        self._client(key).upload_blob(src, overwrite=True)

    def delete(self, key: str) -> None:
        try:
            self._client(key).delete_blob()
        except ResourceNotFoundError:
            pass
