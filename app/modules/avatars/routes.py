from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, File
from app.database.supabase_client import SupabaseClient
from app.modules.avatars.schemas import (
    AvatarResult, AvatarErrorType, AvatarUrlResponse, AvatarUploadResponse,
    AvatarEntry, CacheRefreshResponse, StorageSetupResponse
)
from app.modules.avatars.service import AvatarService, build_avatar_service
from app.modules.avatars.errors import StoreError
from app.core.dependencies import require_admin
from typing import List, Dict

router = APIRouter(prefix="/avatars", tags=["avatars"])

_ERROR_STATUS = {
    AvatarErrorType.validation: 400,
    AvatarErrorType.bucket_missing: 503,
    AvatarErrorType.store: 502,
}


async def get_avatar_service(request: Request) -> AvatarService:
    """
    One service (and so one presence cache) per application instance. Async so it
    runs on the event loop: the check and the assignment cannot interleave.
    """
    service = getattr(request.app.state, "avatar_service", None)
    if service is None:
        service = build_avatar_service(SupabaseClient.get_service_client())
        request.app.state.avatar_service = service
    return service


def _raise_for_result(result: AvatarResult) -> None:
    if not result.success:
        raise HTTPException(status_code=_ERROR_STATUS.get(result.error_type, 500), detail=result.error)


@router.get("", response_model=List[AvatarEntry])
async def list_avatars(service: AvatarService = Depends(get_avatar_service)):
    """Avatar presence for every known personality"""
    entries = await service.entries()
    return [AvatarEntry(personality_id=pid, has_avatar=has) for pid, has in sorted(entries.items())]


@router.post("/cache/refresh", response_model=CacheRefreshResponse)
async def refresh_avatar_cache(
    user_data: Dict = Depends(require_admin),
    service: AvatarService = Depends(get_avatar_service)
):
    """Reload avatar presence from the personalities listing"""
    entries = await service.refresh()
    return CacheRefreshResponse(entries=entries, last_error=service.cache.last_error)


@router.post("/storage/setup", response_model=StorageSetupResponse)
async def setup_avatar_storage(
    user_data: Dict = Depends(require_admin),
    service: AvatarService = Depends(get_avatar_service)
):
    """Create the public avatar bucket if it does not exist yet"""
    try:
        created = await service.setup_storage()
    except StoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    bucket = service.storage.bucket_name
    message = f'Storage bucket "{bucket}" was created' if created else f'Storage bucket "{bucket}" already exists'
    return StorageSetupResponse(bucket=bucket, created=created, message=message)


@router.get("/{personality_id}", response_model=AvatarUrlResponse)
async def get_avatar(personality_id: str, service: AvatarService = Depends(get_avatar_service)):
    """Public avatar URL for a personality; avatar_url is null when none was uploaded"""
    url = await service.resolve(personality_id)
    return AvatarUrlResponse(personality_id=personality_id, has_avatar=url is not None, avatar_url=url)


@router.put("/{personality_id}", response_model=AvatarUploadResponse)
async def upload_avatar(
    personality_id: str,
    file: UploadFile = File(...),
    user_data: Dict = Depends(require_admin),
    service: AvatarService = Depends(get_avatar_service)
):
    """
    Upload an avatar image. It is scaled to fit 512x512, converted to WebP and
    stored at {personality_id}/avatar.webp, replacing any previous avatar.
    """
    if file.size is not None and file.size > service.max_upload_bytes:
        limit_mb = service.max_upload_bytes // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"The file is too large. Maximum size: {limit_mb}MB.")
    # one byte past the limit is enough for the service to reject it
    content = await file.read(service.max_upload_bytes + 1)
    result = await service.upload(personality_id, content, file.content_type)
    _raise_for_result(result)
    return AvatarUploadResponse(
        personality_id=personality_id,
        avatar_url=service.storage.public_url(personality_id),
        message="Avatar uploaded successfully"
    )


@router.delete("/{personality_id}", status_code=204)
async def delete_avatar(
    personality_id: str,
    user_data: Dict = Depends(require_admin),
    service: AvatarService = Depends(get_avatar_service)
):
    result = await service.remove(personality_id)
    _raise_for_result(result)
    return None
