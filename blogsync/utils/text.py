"""Utilities for finding and rewriting embedded images in note text."""
from __future__ import annotations

import re
from typing import Callable
from urllib.parse import quote, unquote


_WIKI_EMBED_RE = re.compile(r"!\[\[([^\]]+)\]\]")
_MARKDOWN_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_ABSOLUTE_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9+.\-]*:|/)")
_LINK_TITLE_RE = re.compile(r"\s+(?:\"[^\"]*\"|'[^']*')$")

# Characters JavaScript's encodeURIComponent leaves alone, beyond the ones quote() always keeps.
_SEGMENT_SAFE = "!*'()~"

Resolver = Callable[[str], "str | None"]


def is_absolute_reference(reference: str) -> bool:
    """Return ``True`` for scheme-prefixed URLs and root-relative paths."""

    return bool(_ABSOLUTE_RE.match(reference.strip()))


def _wiki_target(raw: str) -> str:
    # ![[image.png|300]] carries a display size after the pipe.
    return raw.split("|", 1)[0].strip()


def _markdown_target(raw: str) -> str:
    target = _LINK_TITLE_RE.sub("", raw.strip())
    if target.startswith("<") and target.endswith(">"):
        target = target[1:-1].strip()
    return target


def extract_image_references(text: str) -> set[str]:
    """Return the relative image references embedded in ``text``.

    Both ``![[target]]`` embeds and ``![alt](target)`` images are recognised.
    References that are already absolute are excluded since there is nothing
    to upload for them.
    """

    references: set[str] = set()
    for match in _WIKI_EMBED_RE.finditer(text):
        target = _wiki_target(match.group(1))
        if target and not is_absolute_reference(target):
            references.add(target)
    for match in _MARKDOWN_IMAGE_RE.finditer(text):
        target = _markdown_target(match.group(2))
        if target and not is_absolute_reference(target):
            references.add(target)
    return references


def encode_path(path: str) -> str:
    """Percent-encode every ``/`` separated segment of ``path``."""

    return "/".join(quote(unquote(segment), safe=_SEGMENT_SAFE) for segment in path.split("/"))


def rewrite_image_links(text: str, assets_base: str, resolve: Resolver | None = None) -> str:
    """Point every relative image embed in ``text`` at ``/<assets_base>/<path>``.

    ``resolve`` maps a reference to the store path of the attachment it names;
    when it returns ``None`` (or is not given) the reference itself is used.
    """

    base = assets_base.strip("/")

    def _published_url(reference: str) -> str:
        resolved = resolve(reference) if resolve is not None else None
        encoded = encode_path((resolved or reference).strip("/"))
        return f"/{base}/{encoded}" if base else f"/{encoded}"

    def _replace_wiki(match: re.Match[str]) -> str:
        target = _wiki_target(match.group(1))
        if not target or is_absolute_reference(target):
            return match.group(0)
        return f"![{target}]({_published_url(target)})"

    def _replace_markdown(match: re.Match[str]) -> str:
        alt = match.group(1)
        target = _markdown_target(match.group(2))
        if not target or is_absolute_reference(target):
            return match.group(0)
        return f"![{alt}]({_published_url(target)})"

    text = _WIKI_EMBED_RE.sub(_replace_wiki, text)
    return _MARKDOWN_IMAGE_RE.sub(_replace_markdown, text)


__all__ = [
    "encode_path",
    "extract_image_references",
    "is_absolute_reference",
    "rewrite_image_links",
]
