import os
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.core.storage import ArtifactStorage


@pytest.mark.asyncio
async def test_put_and_get(storage: ArtifactStorage) -> None:
    ref = await storage.put(b"%PDF-1.4", ".pdf")
    assert ref.startswith("artifacts/")
    assert ref.endswith(".pdf")
    assert await storage.exists(ref)
    assert await storage.get(ref) == b"%PDF-1.4"


@pytest.mark.asyncio
async def test_stage_then_promote(storage: ArtifactStorage) -> None:
    staged = await storage.put_temp(b"%PDF-1.4", ".pdf")
    assert staged.startswith("temp/")
    assert staged.endswith(".pdf")

    ref = await storage.promote(staged)
    assert ref == storage.promoted_ref(staged)
    assert ref.startswith("artifacts/")
    assert await storage.exists(ref)
    assert not await storage.exists(staged)
    assert await storage.get(ref) == b"%PDF-1.4"


@pytest.mark.asyncio
async def test_only_staged_refs_can_be_promoted(storage: ArtifactStorage) -> None:
    with pytest.raises(ValidationError):
        storage.promoted_ref("artifacts/abc.pdf")
    with pytest.raises(ValidationError):
        await storage.promote("temp/../../etc/passwd")
    with pytest.raises(NotFoundError):
        await storage.promote("temp/missing.pdf")


@pytest.mark.asyncio
async def test_refs_cannot_escape_the_storage_dir(storage: ArtifactStorage) -> None:
    with pytest.raises(ValidationError):
        await storage.get("../../etc/passwd")


@pytest.mark.asyncio
async def test_missing_ref_is_not_found(storage: ArtifactStorage) -> None:
    with pytest.raises(NotFoundError):
        await storage.get("artifacts/does-not-exist.pdf")


@pytest.mark.asyncio
async def test_cleanup_only_removes_old_temp_files(storage: ArtifactStorage) -> None:
    now = datetime.now(timezone.utc)
    old_ref = await storage.put_temp(b"old")
    new_ref = await storage.put_temp(b"new")
    kept_ref = await storage.put(b"permanent")
    old_time = (now - timedelta(days=10)).timestamp()
    os.utime(storage.base_dir / old_ref, (old_time, old_time))
    os.utime(storage.base_dir / kept_ref, (old_time, old_time))

    removed = await storage.cleanup_temp(now - timedelta(days=7))

    assert removed == 1
    assert not await storage.exists(old_ref)
    assert await storage.exists(new_ref)
    assert await storage.exists(kept_ref)


@pytest.mark.asyncio
async def test_cleanup_without_temp_dir(storage: ArtifactStorage) -> None:
    assert await storage.cleanup_temp(datetime.now(timezone.utc)) == 0
