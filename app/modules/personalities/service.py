from supabase import Client
from app.modules.personalities.schemas import PersonalityAvatarResponse
from app.modules.avatars.errors import StoreError
from typing import List, Optional, Dict, Any
from datetime import date
import logging

logger = logging.getLogger(__name__)

_UNKNOWN_DATE = date(1900, 1, 1)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def format_show(show: Dict[str, Any]) -> str:
    """'Title (YYYY)', or just the title when the start date is unknown"""
    start = _parse_date(show.get("start_date"))
    return f"{show['title']} ({start.year})" if start else show["title"]


def extract_show_info(appearances: Optional[List[Dict[str, Any]]]) -> List[str]:
    """Distinct shows a personality appeared in, in appearance order"""
    shows = []
    for appearance in appearances or []:
        show = appearance.get("tv_show")
        if show and show.get("title"):
            label = format_show(show)
            if label not in shows:
                shows.append(label)
    return shows


def get_latest_show(appearances: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """Most recent show by appearance date, falling back to the show's start date"""
    candidates = [a for a in appearances or [] if a.get("tv_show") and a["tv_show"].get("title")]
    if not candidates:
        return None

    def sort_key(appearance: Dict[str, Any]) -> date:
        return (
            _parse_date(appearance.get("appearance_date"))
            or _parse_date(appearance["tv_show"].get("start_date"))
            or _UNKNOWN_DATE
        )

    latest = max(candidates, key=sort_key)
    return format_show(latest["tv_show"])


class PersonalityService:
    def __init__(self, supabase: Client, storage):
        self.supabase = supabase
        self.storage = storage

    def list_with_avatars(self) -> List[PersonalityAvatarResponse]:
        """
        Every personality with its avatar flag and show info, in one database
        query and one storage listing. A personality has an avatar iff its
        folder exists in the avatar bucket: the canonical avatar object is the
        only file ever written below a personality's prefix, so folders are
        never probed one by one.
        Raises on database errors; storage errors degrade to has_avatar=False.
        """
        result = self.supabase.table("personality")\
            .select("personality_id, first_name, last_name, appearance(appearance_date, tv_show(title, start_date))")\
            .order("first_name", desc=False)\
            .execute()
        personalities = result.data or []
        if not personalities:
            return []

        try:
            avatar_folders = self.storage.list_folders()
        except StoreError as e:
            logger.warning(f"Could not access avatar storage: {e}")
            avatar_folders = set()

        return [
            PersonalityAvatarResponse(
                personality_id=p["personality_id"],
                first_name=p.get("first_name") or "",
                last_name=p.get("last_name") or "",
                has_avatar=p["personality_id"] in avatar_folders,
                shows=extract_show_info(p.get("appearance")),
                latest_show=get_latest_show(p.get("appearance")),
            )
            for p in personalities
        ]
