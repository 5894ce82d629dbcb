"""Filesystem-friendly slugs for log file names."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_SLUG_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 60) -> str:
    """Lower-case ``value`` and squash anything unsafe into single hyphens.

    Slugs longer than ``max_length`` keep a prefix and gain a short hash so
    distinct inputs stay distinct.
    """
    slug = _normalize((value or "").strip().lower())
    if not slug:
        slug = _normalize(fallback.lower()) or "item"
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


def _normalize(value: str) -> str:
    slug = _SLUG_PATTERN.sub("-", value)
    slug = _HYPHEN_COLLAPSE.sub("-", slug)
    return slug.strip("-")
