# coffeevibes/services/storage_service.py
"""Uploads check-in and profile photos to the hosted object store."""
import uuid
from typing import Optional

import httpx
import structlog

from coffeevibes.core.config import settings
from coffeevibes.core.errors import StorageError

logger = structlog.get_logger(__name__)


class StorageService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        profile_bucket: Optional[str] = None,
    ):
        self.base_url = (base_url or settings.storage_url).rstrip("/")
        self.bucket = bucket or settings.CHECKIN_PHOTO_BUCKET
        self.profile_bucket = profile_bucket or settings.PROFILE_PHOTO_BUCKET
        key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        headers = {}
        if key:
            headers["apikey"] = key
            headers["Authorization"] = f"Bearer {key}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def upload_check_in_photo(self, image_data: bytes, user_id: str, shop_id: str) -> str:
        """Store a JPEG under <user>/<shop>/<uuid>.jpg and return a long-lived signed URL."""
        path = f"{user_id}/{shop_id}/{uuid.uuid4()}.jpg"
        await self._upload(self.bucket, path, image_data)

        try:
            signed = await self._client.post(
                f"{self.base_url}/object/sign/{self.bucket}/{path}",
                json={"expiresIn": settings.SIGNED_URL_TTL_SECONDS},
            )
            signed.raise_for_status()
            signed_path = signed.json().get("signedURL")
        except httpx.HTTPStatusError as e:
            logger.error("photo_sign_failed", path=path, status_code=e.response.status_code)
            raise StorageError(f"Photo upload failed with status {e.response.status_code}.") from e
        except httpx.HTTPError as e:
            logger.error("photo_sign_failed", path=path, error=str(e))
            raise StorageError(f"Photo upload failed: {e}") from e
        except ValueError as e:
            raise StorageError("Storage returned an unreadable signing response.") from e

        if not signed_path:
            raise StorageError("Storage did not return a signed URL.")

        # The signed path is relative to the storage root
        if signed_path.startswith("http"):
            return signed_path
        return f"{self.base_url}/{signed_path.lstrip('/')}"

    async def upload_profile_photo(self, image_data: bytes, user_id: str) -> str:
        """Store a profile JPEG in the public profile bucket and return its public URL."""
        path = f"profile-photos/{user_id}/{uuid.uuid4()}.jpg"
        await self._upload(self.profile_bucket, path, image_data)
        return f"{self.base_url}/object/public/{self.profile_bucket}/{path}"

    async def _upload(self, bucket: str, path: str, image_data: bytes) -> None:
        if not image_data:
            raise StorageError("Photo is empty.")
        try:
            upload = await self._client.post(
                f"{self.base_url}/object/{bucket}/{path}",
                content=image_data,
                headers={"Content-Type": "image/jpeg", "Cache-Control": "max-age=3600"},
            )
            upload.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("photo_upload_failed", bucket=bucket, path=path, status_code=e.response.status_code)
            raise StorageError(f"Photo upload failed with status {e.response.status_code}.") from e
        except httpx.HTTPError as e:
            logger.error("photo_upload_failed", bucket=bucket, path=path, error=str(e))
            raise StorageError(f"Photo upload failed: {e}") from e
        logger.info("photo_uploaded", bucket=bucket, path=path)
