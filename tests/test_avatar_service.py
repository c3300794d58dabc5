import asyncio
from io import BytesIO

from PIL import Image

from app.modules.avatars.cache import AvatarPresenceCache
from app.modules.avatars.errors import BucketNotFoundError, StoreError
from app.modules.avatars.schemas import AvatarErrorType
from app.modules.avatars.service import AvatarService


def test_resolve_known_avatar_returns_canonical_url(avatar_service, storage):
    url = asyncio.run(avatar_service.resolve("p1"))
    assert url == storage.public_url("p1")
    assert url.endswith("/p1/avatar.webp")


def test_resolve_without_avatar_returns_none(avatar_service):
    assert asyncio.run(avatar_service.resolve("p2")) is None
    assert asyncio.run(avatar_service.resolve("never-uploaded")) is None


def test_concurrent_resolves_trigger_one_bulk_fetch(storage, make_loader):
    loader = make_loader([{"personality_id": "p1", "has_avatar": True}], delay=0.01)
    service = AvatarService(storage, AvatarPresenceCache(loader))

    async def run():
        return await asyncio.gather(*(service.resolve("p1") for _ in range(25)))

    results = asyncio.run(run())
    assert loader.calls == 1
    assert set(results) == {storage.public_url("p1")}


def test_failed_bulk_fetch_resolves_everything_to_none(storage, make_loader):
    loader = make_loader(error=ConnectionError("connection refused"))
    service = AvatarService(storage, AvatarPresenceCache(loader))

    async def run():
        return await asyncio.gather(service.resolve("p1"), service.resolve("p2"))

    assert asyncio.run(run()) == [None, None]
    assert service.cache.is_ready
    assert len(service.cache) == 0


def test_upload_then_resolve_returns_url_without_reload(avatar_service, storage, loader, make_image):
    async def run():
        result = await avatar_service.upload("p2", make_image((1200, 600)), "image/png")
        return result, await avatar_service.resolve("p2")

    result, url = asyncio.run(run())

    assert result.success
    assert result.error is None
    assert url is not None and "p2" in url
    assert loader.calls == 1
    with Image.open(BytesIO(storage.objects["p2/avatar.webp"])) as img:
        assert img.format == "WEBP"
        assert img.size == (512, 256)
    assert storage.calls == [("upload", "p2/avatar.webp", "image/webp")]


def test_upload_rejects_non_image_without_store_calls(avatar_service, storage, loader):
    result = asyncio.run(avatar_service.upload("p1", b"plain text", "text/plain"))

    assert not result.success
    assert result.error_type is AvatarErrorType.validation
    assert storage.calls == []
    assert loader.calls == 0


def test_upload_rejects_oversized_file_without_store_calls(avatar_service, storage):
    too_big = b"\0" * (5 * 1024 * 1024 + 1)
    result = asyncio.run(avatar_service.upload("p1", too_big, "image/png"))

    assert not result.success
    assert result.error_type is AvatarErrorType.validation
    assert "5MB" in result.error
    assert storage.calls == []


def test_upload_rejects_undecodable_image(avatar_service, storage):
    result = asyncio.run(avatar_service.upload("p1", b"\x89PNG broken", "image/png"))

    assert result.error_type is AvatarErrorType.validation
    assert storage.calls == []


def test_upload_reports_missing_bucket_and_keeps_cache(avatar_service, storage, make_image):
    storage.fail_with = BucketNotFoundError("Bucket not found")

    async def run():
        result = await avatar_service.upload("p2", make_image(), "image/png")
        return result, await avatar_service.resolve("p2")

    result, url = asyncio.run(run())
    assert result.error_type is AvatarErrorType.bucket_missing
    assert "personalities" in result.error
    assert "Bucket not found" in result.error
    assert url is None


def test_upload_reports_store_error_message(avatar_service, storage, make_image):
    storage.fail_with = StoreError("Upload failed: permission denied")
    result = asyncio.run(avatar_service.upload("p2", make_image(), "image/png"))

    assert result.error_type is AvatarErrorType.store
    assert result.error == "Upload failed: permission denied"


def test_unexpected_store_exception_becomes_result(avatar_service, storage, make_image):
    storage.fail_with = RuntimeError("socket closed")
    result = asyncio.run(avatar_service.upload("p2", make_image(), "image/png"))

    assert not result.success
    assert result.error_type is AvatarErrorType.store


def test_remove_then_resolve_returns_none(avatar_service, storage):
    async def run():
        assert await avatar_service.resolve("p1") is not None
        result = await avatar_service.remove("p1")
        return result, await avatar_service.resolve("p1")

    result, url = asyncio.run(run())
    assert result.success
    assert url is None
    assert ("delete", "p1/avatar.webp") in storage.calls


def test_remove_is_idempotent(avatar_service):
    async def run():
        return await avatar_service.remove("p2"), await avatar_service.remove("p2")

    first, second = asyncio.run(run())
    assert first.success and second.success
    assert avatar_service.cache.get("p2") is False


def test_failed_remove_leaves_cache_untouched(avatar_service, storage):
    async def run():
        await avatar_service.resolve("p1")
        storage.fail_with = StoreError("Delete failed: network unreachable")
        result = await avatar_service.remove("p1")
        return result, await avatar_service.resolve("p1")

    result, url = asyncio.run(run())
    assert result.error_type is AvatarErrorType.store
    assert "network unreachable" in result.error
    assert url == storage.public_url("p1")


def test_entries_and_refresh(avatar_service, loader):
    async def run():
        entries = await avatar_service.entries()
        loader.records = [{"personality_id": "p7", "has_avatar": True}]
        count = await avatar_service.refresh()
        return entries, count, await avatar_service.resolve("p7")

    entries, count, url = asyncio.run(run())
    assert entries == {"p1": True, "p2": False}
    assert count == 1
    assert url is not None


def test_setup_storage_delegates_to_store(avatar_service, storage):
    assert asyncio.run(avatar_service.setup_storage()) is False
    assert storage.calls == [("ensure_bucket",)]


def test_overlapping_refreshes_do_not_break_resolve(avatar_service, storage, loader):
    loader.delay = 0.01

    async def run():
        await avatar_service.resolve("p1")
        return await asyncio.gather(
            avatar_service.refresh(),
            avatar_service.refresh(),
            avatar_service.resolve("p1"),
            avatar_service.remove("p2"),
        )

    first, second, url, removed = asyncio.run(run())
    assert (first, second) == (2, 2)
    assert url == storage.public_url("p1")
    assert removed.success
    assert avatar_service.cache.get("p2") is False


def test_remove_rejects_invalid_ids_without_store_calls(avatar_service, storage):
    async def run():
        return await avatar_service.remove(""), await avatar_service.remove("p1/../p2")

    empty, nested = asyncio.run(run())
    assert empty.error_type is AvatarErrorType.validation
    assert nested.error_type is AvatarErrorType.validation
    assert storage.calls == []
