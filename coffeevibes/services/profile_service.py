# coffeevibes/services/profile_service.py
# The signed-in user's profile: read, partial edit and profile photo.

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from pydantic import ValidationError

from coffeevibes.core.errors import DecodeError, NotFoundError
from coffeevibes.models.dto import ProfileUpdateRequest, UserProfile
from coffeevibes.services.data_service import DataServiceClient, eq
from coffeevibes.services.storage_service import StorageService

logger = structlog.get_logger(__name__)

PROFILES_TABLE = "user_profiles"


def _decode_profile(row: Dict[str, Any]) -> UserProfile:
    try:
        return UserProfile.model_validate(row)
    except ValidationError as e:
        raise DecodeError(f"Invalid profile record: {e}") from e


class ProfileService:
    def __init__(self, data_service: DataServiceClient, storage: StorageService):
        self.data_service = data_service
        self.storage = storage

    async def get_profile(self, user_id: str) -> UserProfile:
        rows = await self.data_service.select(PROFILES_TABLE, {"user_id": eq(user_id)})
        if not rows:
            raise NotFoundError(f"Profile for user {user_id} not found.")
        return _decode_profile(rows[0])

    async def update_profile(self, user_id: str, changes: ProfileUpdateRequest) -> UserProfile:
        values = changes.model_dump(exclude_unset=True)
        if not values:
            return await self.get_profile(user_id)
        return await self._write(user_id, values)

    async def update_profile_photo(self, user_id: str, image_data: bytes) -> UserProfile:
        """Upload first; the profile row only ever points at a stored photo."""
        photo_url = await self.storage.upload_profile_photo(image_data, user_id)
        return await self._write(user_id, {"profile_photo": photo_url})

    async def _write(self, user_id: str, values: Dict[str, Any]) -> UserProfile:
        values["modified_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self.data_service.update(PROFILES_TABLE, values, {"user_id": eq(user_id)})
        if not rows:
            raise NotFoundError(f"Profile for user {user_id} not found.")
        logger.info("profile_updated", user_id=user_id, fields=sorted(values))
        return _decode_profile(rows[0])
