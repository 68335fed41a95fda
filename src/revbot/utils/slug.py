"""Filesystem-safe names for scratch directories and archived artifacts."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_UNSAFE: Pattern[str] = re.compile(r"[^A-Za-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 64) -> str:
    """Normalize ``value`` into a lowercase path segment.

    Overlong values are shortened and suffixed with a digest of the full value
    so two different inputs never share a directory.
    """
    source = (value or "").strip().lower()
    slug = _HYPHEN_COLLAPSE.sub("-", _UNSAFE.sub("-", source)).strip("-.")
    if not slug:
        slug = fallback
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


__all__ = ["slugify"]
