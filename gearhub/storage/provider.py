from typing import BinaryIO, Union


class StorageProvider:
    name = "base"

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def copy_in(self, src: Union[bytes, BinaryIO], key: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError
