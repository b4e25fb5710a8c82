"""Provide utility helpers for timestamps and slugs."""

from __future__ import annotations

import re
from datetime import datetime, timezone


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


_SLUG_DROP_RE = re.compile(r"[^a-z0-9\s_-]")
_SLUG_SEP_RE = re.compile(r"[\s_-]+")


def slugify(value: str) -> str:
    """Lowercase *value* and collapse separators into single hyphens."""
    text = _SLUG_DROP_RE.sub("", (value or "").lower())
    return _SLUG_SEP_RE.sub("-", text).strip("-")
