"""Append-only version history on the filesystem.

Layout: <root>/history/<slug>/v<N>.json, one immutable file per version.
"""

import asyncio
import logging
import re
import shutil
from pathlib import Path

from pydantic import ValidationError

from edu_cms.app.articles.atomic import atomic_write
from edu_cms.app.models.articles import VersionSnapshot

logger = logging.getLogger(__name__)

_VERSION_FILE_RE = re.compile(r"^v(\d+)\.json$")


class FileVersionStore:
    """Version snapshots stored as one JSON file per version."""

    def __init__(self, history_dir: str | Path) -> None:
        """Initialize store.

        Args:
            history_dir: Directory holding one subdirectory per slug
        """
        self._dir = Path(history_dir)

    @property
    def directory(self) -> Path:
        """Root history directory."""
        return self._dir

    def slug_dir(self, slug: str) -> Path:
        """History directory for one slug."""
        return self._dir / slug

    def version_path(self, slug: str, version: int) -> Path:
        """Path of a single snapshot file."""
        return self.slug_dir(slug) / f"v{version}.json"

    def _append_sync(self, slug: str, snapshot: VersionSnapshot) -> None:
        self.slug_dir(slug).mkdir(parents=True, exist_ok=True)
        atomic_write(
            self.version_path(slug, snapshot.version),
            snapshot.model_dump_json(indent=2).encode("utf-8"),
        )

    def _list_sync(self, slug: str) -> list[VersionSnapshot]:
        directory = self.slug_dir(slug)
        if not directory.is_dir():
            return []

        snapshots: list[VersionSnapshot] = []
        for entry in directory.iterdir():
            if not _VERSION_FILE_RE.match(entry.name):
                continue
            try:
                snapshots.append(VersionSnapshot.model_validate_json(entry.read_bytes()))
            except (OSError, ValidationError) as e:
                logger.warning("Skipping unreadable snapshot %s: %s", entry, e)

        snapshots.sort(key=lambda s: s.version, reverse=True)
        return snapshots

    def _get_sync(self, slug: str, version: int) -> VersionSnapshot | None:
        path = self.version_path(slug, version)
        try:
            return VersionSnapshot.model_validate_json(path.read_bytes())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            logger.warning("Unreadable snapshot %s: %s", path, e)
            return None

    def _discard_sync(self, slug: str, version: int) -> None:
        self.version_path(slug, version).unlink(missing_ok=True)
        directory = self.slug_dir(slug)
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()

    def _delete_all_sync(self, slug: str) -> None:
        try:
            shutil.rmtree(self.slug_dir(slug))
        except FileNotFoundError:
            pass

    # `list` below shadows the builtin: list[...] annotations go above it

    async def append(self, slug: str, snapshot: VersionSnapshot) -> None:
        """Persist a snapshot, creating the slug directory on first use.

        Raises:
            OSError: If the snapshot cannot be written
        """
        await asyncio.to_thread(self._append_sync, slug, snapshot)

    async def discard(self, slug: str, version: int) -> None:
        """Take back a snapshot whose canonical write failed.

        The slug directory is removed as well when nothing else is left in it.

        Raises:
            OSError: If the snapshot cannot be removed
        """
        await asyncio.to_thread(self._discard_sync, slug, version)

    async def list(self, slug: str) -> list[VersionSnapshot]:
        """All snapshots for a slug, newest first. Empty if none."""
        return await asyncio.to_thread(self._list_sync, slug)

    async def get(self, slug: str, version: int) -> VersionSnapshot | None:
        """One snapshot, or None if it does not exist or is unreadable."""
        return await asyncio.to_thread(self._get_sync, slug, version)

    async def delete_all(self, slug: str) -> None:
        """Remove every snapshot of a slug.

        Missing history is not an error; any other failure is.

        Raises:
            OSError: If the history directory cannot be removed
        """
        await asyncio.to_thread(self._delete_all_sync, slug)
