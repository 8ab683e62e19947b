"""Object store interface."""

from typing import Protocol


class BlobStore(Protocol):
    """Opaque blob storage addressed by reference strings.

    put() raises StorageError, get() raises FetchError.
    """

    async def put(self, data: bytes, filename: str, content_type: str) -> str: ...

    async def get(self, ref: str) -> bytes: ...
