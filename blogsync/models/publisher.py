"""Data structures returned by the publishing targets and the coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class RemotePublishResult:
    """Outcome of one publish or unpublish batch against the GitHub repository."""

    success: bool
    message: str
    commit_sha: str | None = None
    tree_sha: str | None = None
    notes: int = 0
    images: int = 0
    bootstrap: bool = False
    skipped_images: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class MirrorItem:
    """File to copy into the local mirror, relative to the notes or assets directory."""

    source: Path
    target: str
    is_asset: bool = False


@dataclass(frozen=True, slots=True)
class MirrorDeletion:
    """File to remove from the local mirror."""

    target: str
    is_asset: bool = False


@dataclass(slots=True)
class MirrorResult:
    """Per-item outcome of a mirror batch."""

    succeeded_count: int = 0
    failed_targets: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.failed_targets


@dataclass(slots=True)
class TargetResult:
    """Summary of one target leg as reported by the coordinator."""

    success: bool
    files: int = 0
    commit_sha: str | None = None


@dataclass(slots=True)
class PublishResult:
    """Aggregated outcome of a publish or unpublish request across all targets."""

    github: TargetResult | None = None
    local_mirror: TargetResult | None = None
    webhook: bool | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when at least one target succeeded and nothing failed."""

        attempted = [leg for leg in (self.github, self.local_mirror) if leg is not None]
        return any(leg.success for leg in attempted) and not self.errors


@dataclass(slots=True)
class ConnectionReport:
    github: bool | None = None
    local_mirror: bool | None = None
    webhook: bool | None = None
