"""
In-process mirror of which personalities have an avatar.

The cache is filled by one bulk load (the personalities-with-avatars listing)
and afterwards only changes through local upload/remove results or an explicit
refresh. It is best effort: nothing is synchronized across processes.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from app.modules.avatars.errors import CacheNotReadyError

logger = logging.getLogger(__name__)

AvatarLoader = Callable[[], Awaitable[Iterable[Any]]]


class CacheState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record[name]
    return getattr(record, name)


class AvatarPresenceCache:
    def __init__(self, loader: AvatarLoader):
        self._loader = loader
        self._entries: Dict[str, bool] = {}
        self._state = CacheState.UNINITIALIZED
        self._pending: Optional[asyncio.Future] = None
        self._writes_during_load: Dict[str, bool] = {}
        self.last_error: Optional[str] = None

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is CacheState.READY

    def __len__(self) -> int:
        return len(self._entries)

    async def ensure_ready(self) -> None:
        """Load the cache once. Concurrent callers share the same in-flight load."""
        while self._state is not CacheState.READY:
            await self._join_load()

    async def _join_load(self) -> None:
        if self._pending is None:
            self._writes_during_load = {}
            self._pending = asyncio.ensure_future(self._load())
        # shield: a cancelled caller must not cancel the load other callers wait on
        await asyncio.shield(self._pending)

    async def _load(self) -> None:
        logger.info("Loading avatar information from backend")
        try:
            try:
                records = await self._loader()
                entries = {}
                for record in records or []:
                    entries[str(_field(record, "personality_id"))] = bool(_field(record, "has_avatar"))
                self.last_error = None
                logger.info(f"Avatar cache initialized with {len(entries)} entries")
            except Exception as e:
                # No retry: an empty cache resolves every avatar to None until refresh()
                logger.error(f"Failed to initialize avatar cache: {e}")
                entries = {}
                self.last_error = str(e)
            # store-confirmed writes made while the listing was in flight are newer than it
            entries.update(self._writes_during_load)
            self._entries = entries
            self._state = CacheState.READY
        finally:
            self._pending = None
            self._writes_during_load = {}

    async def refresh(self) -> int:
        """
        Run the bulk load again and swap in its result. The cache stays READY
        with the previous entries until the reload finishes. Returns the entry count.
        """
        if self._pending is not None:
            await asyncio.shield(self._pending)
        await self._join_load()
        return len(self._entries)

    def get(self, personality_id: str) -> bool:
        if not self.is_ready:
            raise CacheNotReadyError("Avatar cache is not loaded yet")
        return self._entries.get(personality_id, False)

    def set(self, personality_id: str, has_avatar: bool) -> None:
        if not self.is_ready:
            raise CacheNotReadyError("Avatar cache is not loaded yet")
        self._entries[personality_id] = has_avatar
        if self._pending is not None:
            self._writes_during_load[personality_id] = has_avatar

    def snapshot(self) -> Dict[str, bool]:
        return dict(self._entries)
