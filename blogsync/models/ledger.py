"""Records kept about previously published notes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from blogsync.models.document import DocumentRef


class PublishStatus(str, Enum):
    UNPUBLISHED = "unpublished"
    CHANGED = "changed"
    PUBLISHED = "published"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class PublicationRecord:
    """Fingerprint and millisecond timestamp of the last successful publish."""

    hash: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PublicationRecord":
        hash_value = payload.get("hash")
        if not isinstance(hash_value, str):
            raise ValueError("Publication record is missing a string 'hash'")
        try:
            timestamp = int(payload.get("timestamp") or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError("Publication record has an invalid 'timestamp'") from exc
        return cls(hash=hash_value, timestamp=timestamp)


@dataclass(frozen=True, slots=True)
class NoteStatus:
    """Classification of a note relative to the ledger."""

    ref: DocumentRef
    status: PublishStatus
    hash: str | None = None
    last_published: int | None = None

    @property
    def path(self) -> str:
        return self.ref.path
