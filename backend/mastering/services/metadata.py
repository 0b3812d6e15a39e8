"""Accretive merging for ``AudioFile.metadata``."""

from __future__ import annotations

from typing import Any, Mapping, Optional


def merge_metadata(existing: Optional[Mapping[str, Any]], updates: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Union ``updates`` into ``existing`` without mutating either.

    Keys already present keep their position, new keys are appended, nested
    mappings are merged recursively and any other value is replaced.
    Applying the same ``updates`` twice yields the same result as once.
    """
    merged: dict[str, Any] = dict(existing or {})
    for key, value in (updates or {}).items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_metadata(current, value)
        elif isinstance(value, Mapping):
            merged[key] = merge_metadata(None, value)
        else:
            merged[key] = value
    return merged
