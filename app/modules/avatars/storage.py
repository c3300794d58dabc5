"""Supabase Storage backend for avatar objects."""
import logging
from typing import Optional, Set

from supabase import Client

from app.config import settings
from app.modules.avatars.errors import StoreError, BucketNotFoundError

logger = logging.getLogger(__name__)

AVATAR_FILENAME = "avatar.webp"
FOLDER_PLACEHOLDER = ".emptyFolderPlaceholder"
LIST_PAGE_SIZE = 1000
ALLOWED_MIME_TYPES = ["image/jpeg", "image/png", "image/webp"]


def canonical_key(personality_id: str) -> str:
    return f"{personality_id}/{AVATAR_FILENAME}"


def to_store_error(exc: Exception, action: str) -> StoreError:
    message = str(getattr(exc, "message", None) or exc)
    if "bucket not found" in message.lower() or "nosuchbucket" in message.lower():
        return BucketNotFoundError(message)
    return StoreError(f"{action} failed: {message}")


class SupabaseAvatarStorage:
    def __init__(self, supabase: Client, bucket_name: Optional[str] = None):
        self.supabase = supabase
        self.bucket_name = bucket_name or settings.avatar_bucket

    def _bucket(self):
        return self.supabase.storage.from_(self.bucket_name)

    def public_url(self, personality_id: str) -> str:
        return f"{settings.get_avatar_public_base_url()}/{self.bucket_name}/{canonical_key(personality_id)}"

    def upload_file(self, file_content: bytes, key: str, content_type: str = "image/webp") -> str:
        """Upsert file at key and return its storage path"""
        try:
            self._bucket().upload(
                path=key,
                file=file_content,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "true",
                },
            )
            return f"{self.bucket_name}/{key}"
        except Exception as e:
            logger.error(f"Failed to upload {key} to Supabase Storage: {str(e)}")
            raise to_store_error(e, "Upload") from e

    def delete_file(self, key: str) -> None:
        try:
            self._bucket().remove([key])
        except Exception as e:
            logger.error(f"Failed to delete {key} from Supabase Storage: {str(e)}")
            raise to_store_error(e, "Delete") from e

    def list_folders(self) -> Set[str]:
        """Names of all top-level folders, one per personality with an avatar."""
        folders: Set[str] = set()
        offset = 0
        try:
            while True:
                page = self._bucket().list("", {
                    "limit": LIST_PAGE_SIZE,
                    "offset": offset,
                    "sortBy": {"column": "name", "order": "asc"},
                })
                for entry in page or []:
                    name = entry.get("name")
                    if name and name != FOLDER_PLACEHOLDER:
                        folders.add(name)
                if not page or len(page) < LIST_PAGE_SIZE:
                    break
                offset += LIST_PAGE_SIZE
        except Exception as e:
            raise to_store_error(e, "Listing") from e
        return folders

    def ensure_bucket(self) -> bool:
        """Create the public avatar bucket if it does not exist. Returns True if created."""
        try:
            buckets = self.supabase.storage.list_buckets()
            if any(b.name == self.bucket_name for b in buckets or []):
                return False
            self.supabase.storage.create_bucket(
                self.bucket_name,
                options={
                    "public": True,
                    "allowed_mime_types": ALLOWED_MIME_TYPES,
                    "file_size_limit": settings.avatar_max_upload_bytes,
                },
            )
            logger.info(f"Created storage bucket {self.bucket_name}")
            return True
        except Exception as e:
            logger.error(f"Storage setup failed: {str(e)}")
            raise StoreError(f"Storage setup failed: {e}") from e


def build_avatar_storage(supabase: Client):
    """Pick the configured storage backend."""
    if settings.avatar_storage_backend == "s3":
        from app.modules.avatars.s3_storage import S3AvatarStorage
        return S3AvatarStorage()
    return SupabaseAvatarStorage(supabase)
