import logging
from typing import Dict, Optional

from fastapi.concurrency import run_in_threadpool
from supabase import Client

from app.config import settings
from app.modules.avatars.cache import AvatarPresenceCache
from app.modules.avatars.errors import AvatarValidationError, BucketNotFoundError, StoreError
from app.modules.avatars.image_normalizer import normalize_image
from app.modules.avatars.schemas import AvatarErrorType, AvatarResult
from app.modules.avatars.storage import build_avatar_storage, canonical_key
from app.modules.personalities.service import PersonalityService

logger = logging.getLogger(__name__)


class AvatarService:
    """
    Resolves, uploads and removes personality avatars.

    Store writes are single attempt. The cache entry for a personality only
    changes after the store confirmed the write or delete. All failures come
    back as an AvatarResult; nothing is raised to the caller.
    """

    def __init__(
        self,
        storage,
        cache: AvatarPresenceCache,
        max_upload_bytes: Optional[int] = None,
        max_dimension: Optional[int] = None,
        quality: Optional[int] = None,
    ):
        self.storage = storage
        self.cache = cache
        self.max_upload_bytes = max_upload_bytes or settings.avatar_max_upload_bytes
        self.max_dimension = max_dimension or settings.avatar_max_dimension
        self.quality = quality or settings.avatar_webp_quality

    async def resolve(self, personality_id: str) -> Optional[str]:
        """Public avatar URL, or None when the personality has no avatar."""
        await self.cache.ensure_ready()
        if self.cache.get(personality_id):
            return self.storage.public_url(personality_id)
        return None

    def validate_personality_id(self, personality_id: str) -> None:
        if not personality_id or "/" in personality_id:
            raise AvatarValidationError("Invalid personality id")

    def validate_upload(self, personality_id: str, data: bytes, content_type: Optional[str]) -> None:
        self.validate_personality_id(personality_id)
        if not content_type or not content_type.startswith("image/"):
            raise AvatarValidationError("Please choose an image file.")
        if len(data) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise AvatarValidationError(f"The file is too large. Maximum size: {limit_mb}MB.")

    async def upload(self, personality_id: str, data: bytes, content_type: Optional[str]) -> AvatarResult:
        try:
            self.validate_upload(personality_id, data, content_type)
            image = await run_in_threadpool(normalize_image, data, self.max_dimension, self.quality)
        except AvatarValidationError as e:
            return AvatarResult.failed(AvatarErrorType.validation, str(e))

        try:
            await run_in_threadpool(
                self.storage.upload_file, image.content, canonical_key(personality_id), image.content_type
            )
        except BucketNotFoundError as e:
            return self._bucket_missing(e)
        except StoreError as e:
            return AvatarResult.failed(AvatarErrorType.store, str(e))
        except Exception as e:
            logger.exception(f"Avatar upload error for {personality_id}: {e}")
            return AvatarResult.failed(AvatarErrorType.store, "An unexpected error occurred.")

        await self.cache.ensure_ready()
        self.cache.set(personality_id, True)
        logger.info(f"Uploaded avatar for {personality_id} ({image.width}x{image.height})")
        return AvatarResult.ok()

    async def remove(self, personality_id: str) -> AvatarResult:
        try:
            self.validate_personality_id(personality_id)
        except AvatarValidationError as e:
            return AvatarResult.failed(AvatarErrorType.validation, str(e))

        try:
            await run_in_threadpool(self.storage.delete_file, canonical_key(personality_id))
        except BucketNotFoundError as e:
            return self._bucket_missing(e)
        except StoreError as e:
            return AvatarResult.failed(AvatarErrorType.store, str(e))
        except Exception as e:
            logger.exception(f"Avatar delete error for {personality_id}: {e}")
            return AvatarResult.failed(AvatarErrorType.store, "An unexpected error occurred.")

        await self.cache.ensure_ready()
        self.cache.set(personality_id, False)
        logger.info(f"Removed avatar for {personality_id}")
        return AvatarResult.ok()

    async def entries(self) -> Dict[str, bool]:
        await self.cache.ensure_ready()
        return self.cache.snapshot()

    async def refresh(self) -> int:
        return await self.cache.refresh()

    async def setup_storage(self) -> bool:
        """Create the avatar bucket if missing. Raises StoreError on failure."""
        return await run_in_threadpool(self.storage.ensure_bucket)

    def _bucket_missing(self, exc: Exception) -> AvatarResult:
        return AvatarResult.failed(
            AvatarErrorType.bucket_missing,
            f'Storage bucket "{self.storage.bucket_name}" does not exist. '
            f"Run the storage setup or contact an administrator. ({exc})",
        )


def build_avatar_service(supabase: Client) -> AvatarService:
    """Wire storage, the bulk personalities listing and the cache together."""
    storage = build_avatar_storage(supabase)
    personality_service = PersonalityService(supabase, storage)

    async def load_avatar_presence():
        return await run_in_threadpool(personality_service.list_with_avatars)

    return AvatarService(storage, AvatarPresenceCache(load_avatar_presence))
