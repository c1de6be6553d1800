"""Percentile to letter-grade classification."""

from __future__ import annotations

from typing import Final

UNRANKED_GRADE: Final[str] = "z"

# (grade, inclusive upper-bound percentile), best grade first.
PERCENTILE_GRADES: Final[tuple[tuple[str, float], ...]] = (
    ("x", 0.01),
    ("u", 0.05),
    ("ss", 0.11),
    ("s+", 0.17),
    ("s", 0.23),
    ("s-", 0.30),
    ("a+", 0.38),
    ("a", 0.46),
    ("a-", 0.54),
    ("b+", 0.62),
    ("b", 0.70),
    ("b-", 0.78),
    ("c+", 0.84),
    ("c", 0.90),
    ("c-", 0.95),
    ("d+", 0.975),
    ("d", 1.00),
)


def classify_percentile(percentile: float) -> str:
    """Return the first grade whose upper bound is >= ``percentile``.

    Assumes the entity is ranked; 0.0 is the best position.
    """
    if not 0.0 <= percentile <= 1.0:
        raise ValueError(f"percentile must be within [0, 1], got {percentile}")
    for grade, upper_bound in PERCENTILE_GRADES:
        if percentile <= upper_bound:
            return grade
    return PERCENTILE_GRADES[-1][0]


def grade_order(grade: str) -> int:
    """Position of ``grade`` in the table (0 = best, unranked last)."""
    for index, (name, _) in enumerate(PERCENTILE_GRADES):
        if name == grade:
            return index
    if grade == UNRANKED_GRADE:
        return len(PERCENTILE_GRADES)
    raise ValueError(f"Unknown grade: {grade!r}")


def percentile_of(rank: int, cardinality: int) -> float:
    """Fractional position of a 0-based ``rank`` in a population of ``cardinality``."""
    if cardinality <= 0:
        raise ValueError("cardinality must be > 0")
    if not 0 <= rank < cardinality:
        raise ValueError(f"rank {rank} out of range for cardinality {cardinality}")
    return rank / cardinality


__all__ = [
    "PERCENTILE_GRADES",
    "UNRANKED_GRADE",
    "classify_percentile",
    "grade_order",
    "percentile_of",
]
