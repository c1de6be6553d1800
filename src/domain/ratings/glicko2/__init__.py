"""Glicko-2 rating modules."""

from domain.ratings.glicko2.calculator import (
    DEFAULT_RATING,
    GLICKO2_SCALE,
    Glicko2OpponentResult,
    Glicko2Parameters,
    calculate_expected_score,
    inflate_rd,
    update_rating,
)
from domain.ratings.glicko2.period import RatingPeriod

__all__ = [
    "DEFAULT_RATING",
    "GLICKO2_SCALE",
    "Glicko2OpponentResult",
    "Glicko2Parameters",
    "RatingPeriod",
    "calculate_expected_score",
    "inflate_rd",
    "update_rating",
]
