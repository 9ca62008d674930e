"""
statement_engines.similarity -- Levenshtein name similarity.

Responsibility:
    Pure functions for reconciling free-text property names from the
    accounting provider against listing names.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``similarity`` is symmetric and bounded to [0, 1].
    - Comparison is case-insensitive and whitespace-normalized.
    - The acceptance threshold is always passed in by the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

T = TypeVar("T")


def _normalize(text: str) -> str:
    return " ".join(text.split()).lower()


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insertions, deletions, substitutions all cost 1)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1]: ``(len(longer) - distance) / len(longer)``.

    Two empty strings are identical (1.0).
    """
    left, right = _normalize(a), _normalize(b)
    longer = max(len(left), len(right))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(left, right)) / longer


def best_match(
    name: str,
    candidates: Iterable[tuple[str, T]],
    threshold: float,
) -> tuple[T, float] | None:
    """Highest-scoring candidate at or above ``threshold``.

    ``candidates`` yields ``(candidate_name, payload)`` pairs.  Ties keep the
    first candidate seen.
    """
    best: tuple[T, float] | None = None
    for candidate_name, payload in candidates:
        score = similarity(name, candidate_name)
        if score < threshold:
            continue
        if best is None or score > best[1]:
            best = (payload, score)
    return best
