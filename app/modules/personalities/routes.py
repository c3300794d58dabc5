from fastapi import APIRouter, Depends, HTTPException
from app.database.supabase_client import SupabaseClient
from app.modules.personalities.schemas import PersonalityAvatarResponse
from app.modules.personalities.service import PersonalityService
from app.modules.avatars.storage import build_avatar_storage
from typing import List
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/personalities", tags=["personalities"])


def get_personality_service() -> PersonalityService:
    supabase = SupabaseClient.get_service_client()
    return PersonalityService(supabase, build_avatar_storage(supabase))


@router.get("/avatars", response_model=List[PersonalityAvatarResponse])
def list_personalities_with_avatars(
    service: PersonalityService = Depends(get_personality_service)
):
    """All personalities with avatar presence and show info, for bulk avatar lookups"""
    try:
        return service.list_with_avatars()
    except Exception as e:
        logger.error(f"Error in list_personalities_with_avatars: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch personalities: {e}")
