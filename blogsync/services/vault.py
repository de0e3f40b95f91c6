"""Document store backed by a directory of Markdown notes."""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import unquote

from blogsync.models.document import Document
from blogsync.utils.paths import normalise_segment

LOGGER = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Read interface over the notes and attachments being published."""

    def read_text(self, path: str) -> str:
        """Return the text of the note stored at ``path``."""

    def read_binary(self, path: str) -> bytes:
        """Return the bytes of the file stored at ``path``."""

    def list_all(self) -> list[Document]:
        """Return every publishable note."""

    def resolve_reference(self, reference: str, relative_to: str) -> str | None:
        """Return the store path an embed inside ``relative_to`` points at, if any."""

    def locate(self, path: str) -> Path:
        """Return the filesystem location of ``path`` for copy-based targets."""


class FilesystemVault:
    """Expose a vault directory through the :class:`DocumentStore` interface.

    Store paths are POSIX style and relative to ``root``. ``folder`` limits
    :meth:`list_all` to one sub-folder while references may still resolve to
    attachments anywhere in the vault.
    """

    def __init__(self, root: Path, *, folder: str = "") -> None:
        self.root = Path(root)
        self.folder = normalise_segment(folder)
        self._file_index: list[str] | None = None

    def list_all(self) -> list[Document]:
        search_root = self.root / self.folder if self.folder else self.root
        if not search_root.is_dir():
            LOGGER.warning("Vault folder %s does not exist", search_root)
            return []

        documents: list[Document] = []
        for path in sorted(search_root.rglob("*.md")):
            store_path = self._store_path(path)
            if store_path is None or not path.is_file():
                continue
            try:
                text = self.read_text(store_path)
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping unreadable note %s: %s", store_path, exc)
                continue
            documents.append(Document(path=store_path, text=text))
        return documents

    def read_text(self, path: str) -> str:
        return self.locate(path).read_text(encoding="utf-8")

    def read_binary(self, path: str) -> bytes:
        return self.locate(path).read_bytes()

    def locate(self, path: str) -> Path:
        normalised = normalise_segment(path)
        if not normalised or ".." in PurePosixPath(normalised).parts:
            raise ValueError(f"Invalid store path: {path!r}")
        return self.root / normalised

    def resolve_reference(self, reference: str, relative_to: str) -> str | None:
        """Resolve an embed the way the note editor does.

        Lookup order: next to the referring note, then from the vault root,
        then by unique file name anywhere in the vault (shortest path first).
        """

        target = unquote(reference.split("#", 1)[0]).strip()
        target = normalise_segment(target)
        if not target:
            return None

        note_dir = posixpath.dirname(normalise_segment(relative_to))
        candidates = []
        if note_dir:
            candidates.append(posixpath.normpath(posixpath.join(note_dir, target)))
        candidates.append(posixpath.normpath(target))

        for candidate in candidates:
            if candidate.startswith("..") or candidate == ".":
                continue
            if (self.root / candidate).is_file():
                return candidate

        name = posixpath.basename(target)
        matches = [path for path in self._all_files() if posixpath.basename(path) == name]
        if not matches:
            return None
        matches.sort(key=lambda path: (path.count("/"), path))
        return matches[0]

    def refresh(self) -> None:
        """Forget the cached file listing used for name based resolution."""

        self._file_index = None

    def _all_files(self) -> list[str]:
        if self._file_index is None:
            index: list[str] = []
            for path in self.root.rglob("*"):
                store_path = self._store_path(path)
                if store_path is not None and path.is_file():
                    index.append(store_path)
            self._file_index = index
        return self._file_index

    def _store_path(self, path: Path) -> str | None:
        relative = path.relative_to(self.root)
        if any(part.startswith(".") for part in relative.parts):
            return None
        return relative.as_posix()


__all__ = ["DocumentStore", "FilesystemVault"]
