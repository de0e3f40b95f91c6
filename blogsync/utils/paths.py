"""Helpers mapping store paths to their published locations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from blogsync.config import GitHubSettings


def normalise_segment(value: str) -> str:
    """Return ``value`` with ``/`` separators and no leading or trailing slashes."""

    pieces = value.replace("\\", "/").strip().split("/")
    return "/".join(piece for piece in pieces if piece)


def join_path(*parts: str | None) -> str:
    """Join path parts with single ``/`` separators, skipping empty parts."""

    normalised = (normalise_segment(part) for part in parts if part)
    return "/".join(part for part in normalised if part)


def resolve_published_path(base: str | None, subpath: str | None, item_path: str) -> str:
    """Return the published location of ``item_path`` below ``base``/``subpath``."""

    return join_path(base, subpath, item_path)


def note_path(settings: "GitHubSettings", store_path: str) -> str:
    return resolve_published_path(settings.public_base_path, settings.content_path, store_path)


def asset_path(settings: "GitHubSettings", store_path: str) -> str:
    return resolve_published_path(settings.public_base_path, settings.assets_path, store_path)


def assets_base(settings: "GitHubSettings") -> str:
    """Published directory that image links are rewritten to point at."""

    return join_path(settings.public_base_path, settings.assets_path)


__all__ = [
    "asset_path",
    "assets_base",
    "join_path",
    "normalise_segment",
    "note_path",
    "resolve_published_path",
]
