import logging

import httpx

from docpipe.core.config import Settings

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    pass


class HttpBlobStore:
    """
    Client for the opaque blob store service.

    The service hands out short-lived URLs: one to read a stored file and one
    to upload a new file, whose response carries the new ``storage_id``.
    """

    def __init__(self, base_url: str | None = None, client: httpx.AsyncClient | None = None):
        settings = Settings()
        self.base_url = (base_url or settings.BLOB_STORE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def get_url(self, storage_id: str) -> str | None:
        response = await self._client.get(f"{self.base_url}/files/{storage_id}/url")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["url"]

    async def generate_upload_url(self) -> str:
        response = await self._client.post(f"{self.base_url}/upload-url")
        response.raise_for_status()
        return response.json()["url"]

    async def download(self, url: str) -> bytes:
        response = await self._client.get(url)
        if response.status_code >= 400:
            raise BlobStoreError(f"Failed to fetch file: {response.status_code}")
        return response.content

    async def upload(self, upload_url: str, data: bytes, content_type: str = "application/pdf") -> str:
        response = await self._client.post(upload_url, content=data, headers={"Content-Type": content_type})
        if response.status_code >= 400:
            raise BlobStoreError(f"Failed to upload file: {response.status_code}")
        storage_id = response.json()["storageId"]
        logger.info(f"Uploaded {len(data)} bytes to blob store as {storage_id}")
        return storage_id

    async def delete(self, storage_id: str) -> None:
        response = await self._client.delete(f"{self.base_url}/files/{storage_id}")
        if response.status_code == 404:
            return
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
