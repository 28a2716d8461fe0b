"""
Blob store backed by an object-storage REST endpoint.

Uploads go to ``{base}/object/{bucket}/{name}`` with a bearer key; the
public URL is ``{base}/object/public/{bucket}/{name}``.
"""
import mimetypes
import uuid

import httpx
import structlog

from classifieds.application.interfaces.blob_store import BlobStore, BlobStoreError
from classifieds.config import settings

logger = structlog.get_logger(__name__)


class HttpBlobStore(BlobStore):
    def __init__(
        self,
        base_url: str = settings.storage_api_url,
        api_key: str = settings.storage_api_key,
        bucket: str = settings.storage_bucket,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def public_url(self, name: str) -> str:
        return f"{self._base_url}/object/public/{self._bucket}/{name}"

    async def put(self, data: bytes, content_type: str) -> str:
        extension = mimetypes.guess_extension(content_type) or ".bin"
        name = f"{uuid.uuid4().hex}{extension}"
        url = f"{self._base_url}/object/{self._bucket}/{name}"

        try:
            response = await self._client.post(
                url,
                content=data,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": content_type,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "blob_upload_rejected",
                status_code=exc.response.status_code,
                object_name=name,
            )
            raise BlobStoreError(f"Upload rejected with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("blob_upload_failed", object_name=name, error=str(exc))
            raise BlobStoreError("Blob store unreachable") from exc

        logger.info("blob_uploaded", object_name=name, size=len(data))
        return self.public_url(name)

    async def aclose(self) -> None:
        await self._client.aclose()
