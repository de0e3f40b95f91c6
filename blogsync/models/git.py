"""Data structures mirroring the GitHub Git Data API objects used for publishing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

BLOB_MODE = "100644"


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """One file in a tree snapshot: published path, file mode and blob sha."""

    path: str
    sha: str
    mode: str = BLOB_MODE
    type: str = "blob"

    def to_payload(self) -> dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TreeEntry":
        return cls(
            path=str(payload.get("path") or ""),
            sha=str(payload.get("sha") or ""),
            mode=str(payload.get("mode") or BLOB_MODE),
            type=str(payload.get("type") or "blob"),
        )


@dataclass(frozen=True, slots=True)
class BranchHead:
    """Commit currently referenced by the branch and the tree it points at."""

    commit_sha: str
    tree_sha: str


@dataclass(frozen=True, slots=True)
class TreeListing:
    """Result of reading a tree, flagged when GitHub truncated a recursive listing."""

    sha: str
    entries: tuple[TreeEntry, ...]
    truncated: bool = False
