import asyncio
from io import BytesIO

import pytest
from PIL import Image

from app.modules.avatars.cache import AvatarPresenceCache
from app.modules.avatars.service import AvatarService


class InMemoryAvatarStorage:
    """Object store double keeping avatars in a dict and recording every call."""

    bucket_name = "personalities"

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail_with = None

    def public_url(self, personality_id):
        return f"https://cdn.test/personalities/{personality_id}/avatar.webp"

    def upload_file(self, file_content, key, content_type="image/webp"):
        self.calls.append(("upload", key, content_type))
        if self.fail_with:
            raise self.fail_with
        self.objects[key] = file_content
        return key

    def delete_file(self, key):
        self.calls.append(("delete", key))
        if self.fail_with:
            raise self.fail_with
        self.objects.pop(key, None)

    def list_folders(self):
        self.calls.append(("list",))
        return {key.split("/")[0] for key in self.objects}

    def ensure_bucket(self):
        self.calls.append(("ensure_bucket",))
        return False


class CountingLoader:
    def __init__(self, records=None, error=None, delay=0.0):
        self.records = records or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.records)


def image_bytes(size=(64, 32), fmt="PNG", mode="RGB"):
    color = 128 if mode in ("L", "P") else (200, 80, 40, 255)[: len(mode)]
    img = Image.new(mode, size, color)
    stream = BytesIO()
    img.save(stream, format=fmt)
    return stream.getvalue()


@pytest.fixture
def storage():
    return InMemoryAvatarStorage()


@pytest.fixture
def loader():
    return CountingLoader([
        {"personality_id": "p1", "has_avatar": True},
        {"personality_id": "p2", "has_avatar": False},
    ])


@pytest.fixture
def cache(loader):
    return AvatarPresenceCache(loader)


@pytest.fixture
def avatar_service(storage, cache):
    return AvatarService(storage, cache)


@pytest.fixture
def make_image():
    return image_bytes


@pytest.fixture
def make_loader():
    return CountingLoader
