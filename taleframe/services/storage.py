"""
Asset Storage Service
Persists generated illustrations to the local asset directory and enforces
retention ceilings (max file count, max cumulative size).

Retention pruning runs as a tracked background task after each save, so it
never adds latency to the caller; ``wait_for_pruning`` lets callers that care
(tests, shutdown) await it deterministically.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import List, Optional, Set

import httpx

from taleframe.core.config import Settings
from taleframe.core.exceptions import PersistenceFailure
from taleframe.schemas.assets import GeneratedAsset, SavedAsset

logger = logging.getLogger(__name__)

IMAGE_FILE_PATTERN = re.compile(r"\.(png|jpg|jpeg|webp)$", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)


def sanitize_name(base_name: str) -> str:
    """Reduce a base name to a filesystem-safe, lowercase token."""
    return _UNSAFE_CHARS.sub("_", base_name).lower()


class AssetStore:
    """Service for generated image storage operations."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.base_path = settings.generated_path
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    def public_url(self, filename: str) -> str:
        """Public URL for a file in the asset directory."""
        return f"/{self.settings.GENERATED_IMAGE_DIR.strip('/')}/{filename}"

    async def save(self, data: bytes, base_name: str, preferred_extension: Optional[str] = None) -> SavedAsset:
        """
        Write bytes as ``<sanitized>.<ext>`` and schedule retention pruning.

        Raises:
            PersistenceFailure: if the directory or file cannot be written
        """
        ext = sanitize_name((preferred_extension or self.settings.GENERATED_IMAGE_FORMAT).lstrip(".")) or "png"
        filename = f"{sanitize_name(base_name)}.{ext}"
        file_path = self.base_path / filename

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            with open(file_path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise PersistenceFailure(f"Could not write {file_path}: {e}") from e

        logger.debug(f"[Storage] Saved {len(data)} bytes to {file_path}")
        self._schedule_pruning()
        return SavedAsset(local_path=str(file_path), public_url=self.public_url(filename))

    async def save_best_effort(
        self, data: bytes, base_name: str, preferred_extension: Optional[str] = None
    ) -> Optional[SavedAsset]:
        """Like ``save`` but logs failures and returns None instead of raising."""
        try:
            return await self.save(data, base_name, preferred_extension)
        except PersistenceFailure as e:
            logger.warning(f"[Storage] Failed to save generated image: {e}")
            return None

    async def download_and_save(self, url: str, base_name: str) -> Optional[SavedAsset]:
        """
        Fetch a remote image and persist it locally.

        Persistence is best-effort: malformed URLs, network errors and non-2xx
        responses are logged and yield None, never an exception.
        """
        if not self.settings.SAVE_GENERATED_IMAGES:
            return None
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(url, timeout=self.settings.DOWNLOAD_TIMEOUT)
                response.raise_for_status()
                data = response.content
            return await self.save(data, base_name, "png")
        except (httpx.HTTPError, httpx.InvalidURL, PersistenceFailure) as e:
            logger.warning(f"[Storage] Failed to download image for saving: {e}")
            return None

    def list_assets(self) -> List[GeneratedAsset]:
        """List generated images, newest first."""
        if not self.base_path.exists():
            return []
        assets = []
        for path in self.base_path.iterdir():
            if not path.is_file() or not IMAGE_FILE_PATTERN.search(path.name):
                continue
            stat = path.stat()
            created = getattr(stat, "st_birthtime", stat.st_mtime)
            assets.append(GeneratedAsset(
                filename=path.name,
                url=self.public_url(path.name),
                size=stat.st_size,
                created_at=created,
            ))
        return sorted(assets, key=lambda a: a.created_at, reverse=True)

    # --- Retention ---

    def _schedule_pruning(self):
        if not self.settings.retention_enabled:
            return
        task = asyncio.get_running_loop().create_task(self._prune_quietly())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _prune_quietly(self):
        try:
            await self.prune_retention()
        except Exception as e:
            logger.warning(f"[Retention] Pruning failed: {e}")

    async def wait_for_pruning(self):
        """Await every pruning task scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def prune_retention(self) -> List[Path]:
        """
        Enforce retention ceilings, deleting the oldest files first.

        Count and size ceilings are evaluated independently and their
        deletion sets unioned. A failed delete is logged and skipped.

        Returns:
            Paths that were deleted
        """
        if not self.settings.retention_enabled or not self.base_path.exists():
            return []

        max_files = self.settings.GENERATED_IMAGE_MAX_FILES
        max_bytes = self.settings.retention_max_bytes

        entries = []
        for path in self.base_path.iterdir():
            if path.is_file() and IMAGE_FILE_PATTERN.search(path.name):
                stat = path.stat()
                entries.append((stat.st_mtime, path.name, path, stat.st_size))
        if not entries:
            return []

        entries.sort(key=lambda e: (e[0], e[1]))  # oldest first

        to_delete: List[Path] = []

        if max_files > 0 and len(entries) > max_files:
            to_delete.extend(e[2] for e in entries[:len(entries) - max_files])

        if max_bytes > 0:
            marked = set(to_delete)
            remaining = [e for e in entries if e[2] not in marked]
            total_size = sum(e[3] for e in remaining)
            for _, _, path, size in remaining:
                if total_size <= max_bytes:
                    break
                to_delete.append(path)
                total_size -= size

        deleted: List[Path] = []
        for path in dict.fromkeys(to_delete):
            try:
                path.unlink()
                deleted.append(path)
            except OSError as e:
                logger.warning(f"[Retention] Failed pruning file {path}: {e}")

        if deleted:
            logger.info(f"[Retention] Removed {len(deleted)} old generated image(s)")
        return deleted
