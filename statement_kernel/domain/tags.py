"""
Tag set conversion at the persistence boundary.

Listings and listing groups store their tags as a single comma-separated
column.  Only this module sees that representation: the domain works with
``frozenset[str]`` exclusively.

Normalization: whitespace is trimmed, empty entries are dropped, and
matching is case-insensitive (tags are stored as written, compared
lower-cased via ``has_tag``).
"""

from __future__ import annotations

from typing import Iterable


def parse_tags(raw: str | None) -> frozenset[str]:
    """Parse a stored comma-separated tag string into a tag set."""
    if not raw:
        return frozenset()
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def serialize_tags(tags: Iterable[str]) -> str:
    """Serialize a tag set for storage (sorted for stable output)."""
    cleaned = {tag.strip() for tag in tags if tag and tag.strip()}
    return ",".join(sorted(cleaned, key=str.lower))


def has_tag(tags: Iterable[str], tag: str) -> bool:
    """Case-insensitive membership test."""
    wanted = tag.strip().lower()
    return any(t.lower() == wanted for t in tags)
