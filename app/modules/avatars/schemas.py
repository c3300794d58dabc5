from enum import Enum
from pydantic import BaseModel
from typing import Optional


class AvatarErrorType(str, Enum):
    validation = "validation"
    bucket_missing = "bucket_missing"
    store = "store"


class AvatarResult(BaseModel):
    success: bool
    error: Optional[str] = None
    error_type: Optional[AvatarErrorType] = None

    @classmethod
    def ok(cls) -> "AvatarResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error_type: AvatarErrorType, error: str) -> "AvatarResult":
        return cls(success=False, error=error, error_type=error_type)


class AvatarUrlResponse(BaseModel):
    personality_id: str
    has_avatar: bool
    avatar_url: Optional[str] = None


class AvatarUploadResponse(BaseModel):
    personality_id: str
    avatar_url: str
    message: str


class AvatarEntry(BaseModel):
    personality_id: str
    has_avatar: bool


class CacheRefreshResponse(BaseModel):
    entries: int
    last_error: Optional[str] = None


class StorageSetupResponse(BaseModel):
    bucket: str
    created: bool
    message: str
