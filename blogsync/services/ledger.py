"""Local record of published notes used to classify what needs publishing."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from blogsync.models.document import Document, GhostPath, LiveDocument
from blogsync.models.ledger import NoteStatus, PublicationRecord, PublishStatus

LOGGER = logging.getLogger(__name__)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return sign + "".join(reversed(digits))


def fingerprint(text: str) -> str:
    """Return a cheap change-detection hash of ``text``.

    Folds ``h = (h << 5) - h + code`` over the UTF-16 code units of the text
    with 32-bit signed wrap-around and renders the result in base 36, which
    keeps ledgers written by the original plugin readable.
    """

    data = text.encode("utf-16-le", "surrogatepass")
    value = 0
    for index in range(0, len(data), 2):
        code = data[index] | (data[index + 1] << 8)
        value = ((value << 5) - value + code) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return _to_base36(value)


def now_ms() -> int:
    return int(time.time() * 1000)


class PublicationLedger:
    """Mapping of note path to the fingerprint and time it was last published."""

    def __init__(self, records: Mapping[str, PublicationRecord] | None = None, *, path: Path | None = None) -> None:
        self._records: dict[str, PublicationRecord] = dict(records or {})
        self.path = path

    def __contains__(self, path: object) -> bool:
        return path in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get(self, path: str) -> PublicationRecord | None:
        return self._records.get(path)

    def paths(self) -> list[str]:
        return sorted(self._records)

    def record(self, document: Document, *, timestamp: int | None = None) -> PublicationRecord:
        entry = PublicationRecord(hash=fingerprint(document.text), timestamp=now_ms() if timestamp is None else timestamp)
        self._records[document.path] = entry
        return entry

    def remove(self, path: str) -> bool:
        return self._records.pop(path, None) is not None

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {path: record.to_dict() for path, record in sorted(self._records.items())}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, path: Path | None = None) -> "PublicationLedger":
        records: dict[str, PublicationRecord] = {}
        for note_path, raw in payload.items():
            if not isinstance(raw, Mapping):
                LOGGER.warning("Ignoring malformed ledger entry for %s", note_path)
                continue
            try:
                records[str(note_path)] = PublicationRecord.from_dict(raw)
            except ValueError as exc:
                LOGGER.warning("Ignoring ledger entry for %s: %s", note_path, exc)
        return cls(records, path=path)

    @classmethod
    def load(cls, path: Path) -> "PublicationLedger":
        """Read the ledger from ``path``; a missing file is an empty ledger."""

        if not path.exists():
            return cls(path=path)
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Ledger file {path} must contain a JSON object")
        # Settings exported from the plugin keep the ledger under "publishedNotes".
        notes = payload.get("publishedNotes", payload)
        if not isinstance(notes, dict):
            raise ValueError(f"Ledger file {path} has an invalid 'publishedNotes' entry")
        return cls.from_dict(notes, path=path)

    def save(self, path: Path | None = None) -> Path:
        target = path or self.path
        if target is None:
            raise ValueError("No ledger path configured")
        target.parent.mkdir(parents=True, exist_ok=True)
        temporary = target.with_name(f"{target.name}.tmp")
        temporary.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(temporary, target)
        return target


def classify(documents: Iterable[Document], ledger: PublicationLedger) -> list[NoteStatus]:
    """Compare live notes against the ledger.

    Live notes are unpublished, changed or published; ledger paths with no
    live note are reported as deleted.
    """

    statuses: list[NoteStatus] = []
    live_paths: set[str] = set()
    for document in documents:
        live_paths.add(document.path)
        current = fingerprint(document.text)
        record = ledger.get(document.path)
        if record is None:
            status = PublishStatus.UNPUBLISHED
        elif record.hash != current:
            status = PublishStatus.CHANGED
        else:
            status = PublishStatus.PUBLISHED
        statuses.append(
            NoteStatus(
                ref=LiveDocument(document),
                status=status,
                hash=current,
                last_published=record.timestamp if record else None,
            )
        )

    for path in ledger.paths():
        if path in live_paths:
            continue
        record = ledger.get(path)
        statuses.append(
            NoteStatus(
                ref=GhostPath(path),
                status=PublishStatus.DELETED,
                last_published=record.timestamp if record else None,
            )
        )
    return statuses


__all__ = ["PublicationLedger", "classify", "fingerprint", "now_ms"]
