"""Artifact storage: opaque string refs in, bytes out.

Workflow code only stores and passes refs. Files live under
settings.storage_dir. New uploads and rendered contracts are staged under
temp/ and promoted to artifacts/ once the row referencing them has
committed; a staged file whose transaction failed is left for the cleanup
job.
"""

import asyncio
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ARTIFACTS_PREFIX = "artifacts"
TEMP_PREFIX = "temp"


class ArtifactStorage:
    def __init__(self, base_dir: str) -> None:
        self.base_dir = Path(base_dir).resolve()

    def _path_for(self, ref: str) -> Path:
        path = (self.base_dir / ref).resolve()
        if self.base_dir not in path.parents:
            raise ValidationError("Invalid artifact reference")
        return path

    def _write(self, prefix: str, data: bytes, suffix: str) -> str:
        ref = f"{prefix}/{uuid.uuid4().hex}{suffix}"
        path = self._path_for(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return ref

    async def put(self, data: bytes, suffix: str = "") -> str:
        ref = await asyncio.to_thread(self._write, ARTIFACTS_PREFIX, data, suffix)
        logger.debug("Stored artifact %s (%d bytes)", ref, len(data))
        return ref

    async def put_temp(self, data: bytes, suffix: str = "") -> str:
        ref = await asyncio.to_thread(self._write, TEMP_PREFIX, data, suffix)
        logger.debug("Staged artifact %s (%d bytes)", ref, len(data))
        return ref

    @staticmethod
    def promoted_ref(temp_ref: str) -> str:
        """The artifacts/ ref a staged temp/ ref will have once promoted."""
        prefix, _, name = temp_ref.partition("/")
        if prefix != TEMP_PREFIX or not name or "/" in name:
            raise ValidationError("Not a staged artifact reference")
        return f"{ARTIFACTS_PREFIX}/{name}"

    def _move(self, source_ref: str, target_ref: str) -> None:
        target = self._path_for(target_ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self._path_for(source_ref), target)

    async def promote(self, temp_ref: str) -> str:
        ref = self.promoted_ref(temp_ref)
        try:
            await asyncio.to_thread(self._move, temp_ref, ref)
        except FileNotFoundError:
            raise NotFoundError(f"Artifact '{temp_ref}' not found")
        logger.debug("Promoted %s to %s", temp_ref, ref)
        return ref

    async def get(self, ref: str) -> bytes:
        path = self._path_for(ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"Artifact '{ref}' not found")

    async def exists(self, ref: str) -> bool:
        return await asyncio.to_thread(self._path_for(ref).is_file)

    def _expired_temp_files(self, older_than: datetime):
        temp_dir = self.base_dir / TEMP_PREFIX
        if not temp_dir.is_dir():
            return []
        cutoff = older_than.timestamp()
        return [p for p in temp_dir.iterdir() if p.is_file() and p.stat().st_mtime < cutoff]

    async def cleanup_temp(self, older_than: datetime) -> int:
        """Delete temp files last modified before older_than; one failure does not stop the rest."""
        removed = 0
        for path in await asyncio.to_thread(self._expired_temp_files, older_than):
            try:
                await asyncio.to_thread(os.remove, path)
                removed += 1
                logger.info("Removed temp artifact %s", path.name)
            except OSError as e:
                logger.error("Failed to remove temp artifact %s: %s", path.name, e)
        return removed


_storage: Optional[ArtifactStorage] = None


def get_storage() -> ArtifactStorage:
    """FastAPI dependency and job helper returning the process-wide storage."""
    global _storage
    if _storage is None:
        _storage = ArtifactStorage(settings.storage_dir)
    return _storage
