"""Copy published notes and images into a mounted directory served by the blog."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from blogsync.config import LocalMirrorSettings
from blogsync.models.publisher import MirrorDeletion, MirrorItem, MirrorResult
from blogsync.utils.paths import normalise_segment

LOGGER = logging.getLogger(__name__)

UNREACHABLE_ROOT = "Local mirror root is not reachable"


@dataclass(slots=True)
class LocalMirrorPublisher:
    """Mirror files below ``root``/``notes_path`` and ``root``/``assets_path``."""

    root: Path
    notes_path: str
    assets_path: str

    @classmethod
    def from_settings(cls, settings: LocalMirrorSettings) -> "LocalMirrorPublisher":
        return cls(root=Path(settings.root), notes_path=settings.notes_path, assets_path=settings.assets_path)

    @property
    def notes_dir(self) -> Path:
        return self.root / normalise_segment(self.notes_path)

    @property
    def assets_dir(self) -> Path:
        return self.root / normalise_segment(self.assets_path)

    def ensure_targets_exist(self) -> bool:
        """Create the notes and assets directories; fail when the root itself is missing."""

        if not self.root.is_dir():
            LOGGER.error("Cannot access mirror root: %s", self.root)
            return False
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            self.assets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.error("Path validation failed: %s", exc)
            return False
        return True

    def publish_many(self, items: Sequence[MirrorItem]) -> MirrorResult:
        if not self.ensure_targets_exist():
            return MirrorResult(error=UNREACHABLE_ROOT)

        result = MirrorResult()
        for item in items:
            try:
                destination = self._target_path(item.target, item.is_asset)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(item.source, destination)
            except (OSError, ValueError) as exc:
                LOGGER.error("Copy failed for %s: %s", item.target, exc)
                result.failed_targets.append(item.target)
                continue
            LOGGER.debug("Published to local mirror: %s", destination)
            result.succeeded_count += 1
        return result

    def delete_many(self, items: Sequence[MirrorDeletion]) -> MirrorResult:
        if not self.ensure_targets_exist():
            return MirrorResult(error=UNREACHABLE_ROOT)

        result = MirrorResult()
        for item in items:
            try:
                destination = self._target_path(item.target, item.is_asset)
                destination.unlink(missing_ok=True)
            except (OSError, ValueError) as exc:
                LOGGER.error("Delete failed for %s: %s", item.target, exc)
                result.failed_targets.append(item.target)
                continue
            LOGGER.debug("Deleted from local mirror: %s", destination)
            result.succeeded_count += 1
        return result

    def _target_path(self, target: str, is_asset: bool) -> Path:
        base = self.assets_dir if is_asset else self.notes_dir
        relative = normalise_segment(target)
        if not relative or ".." in relative.split("/"):
            raise ValueError(f"Invalid mirror target: {target!r}")
        return base / relative


__all__ = ["LocalMirrorPublisher", "UNREACHABLE_ROOT"]
