"""Value records describing notes and the attachments they embed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


def _basename(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    return name[:-3] if name.lower().endswith(".md") else name


@dataclass(frozen=True, slots=True)
class Document:
    """A note borrowed from the document store for the duration of a publish call."""

    path: str
    text: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def basename(self) -> str:
        """File name without the ``.md`` extension, as shown to users."""

        return _basename(self.path)


@dataclass(frozen=True, slots=True)
class Attachment:
    """Binary file resolved from an image reference inside a note."""

    path: str
    data: bytes


@dataclass(frozen=True, slots=True)
class LiveDocument:
    """Reference to a note that still exists in the document store."""

    document: Document

    @property
    def path(self) -> str:
        return self.document.path

    @property
    def basename(self) -> str:
        return self.document.basename


@dataclass(frozen=True, slots=True)
class GhostPath:
    """Reference to a path that is still recorded as published but has no backing note."""

    path: str

    @property
    def basename(self) -> str:
        return _basename(self.path)


DocumentRef = Union[LiveDocument, GhostPath]


def ref_path(ref: DocumentRef | str) -> str:
    """Return the store path for a document reference or a plain path."""

    if isinstance(ref, str):
        return ref
    return ref.path
