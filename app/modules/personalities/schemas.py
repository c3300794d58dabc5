from pydantic import BaseModel
from typing import Optional, List


class PersonalityAvatarResponse(BaseModel):
    personality_id: str
    first_name: str
    last_name: str
    has_avatar: bool = False
    shows: List[str] = []
    latest_show: Optional[str] = None
