"""Shared utility functions."""

from __future__ import annotations

import re

ILLEGAL_FILENAME_CHARS = '<>:"/\\|?*'

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_entity_id(entity_id: str) -> str:
    """Replace filesystem-unsafe characters so the id can be a filename stem."""
    for ch in ILLEGAL_FILENAME_CHARS:
        entity_id = entity_id.replace(ch, "_")
    return "".join(ch if ch.isprintable() else "_" for ch in entity_id)


def normalize_path(path: str | None) -> str:
    """Lower-case, forward-slash, trimmed form used for path comparison."""
    if not path:
        return ""
    normalized = path.strip().lower().replace("\\", "/")
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    return normalized


def is_strict_subpath(child: str | None, parent: str | None) -> bool:
    """True when *child* lies strictly inside *parent* (both normalized first)."""
    c = normalize_path(child)
    p = normalize_path(parent)
    if not c or not p or c == p:
        return False
    return c.startswith(p + "/")


def normalize_title(title: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    cleaned = _NON_WORD.sub("", title.lower().strip())
    return _WHITESPACE.sub(" ", cleaned).strip()


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"
