"""Shared types for the rating engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from domain.ratings.protocol import EntityClass, MatchResult


@dataclass(frozen=True)
class RatingTriple:
    """Skill estimate of one entity: rating, deviation (RD) and volatility (sigma)."""

    rating: float
    rd: float
    volatility: float

    def __post_init__(self) -> None:
        if self.rd < 0.0:
            raise ValueError(f"rd must be >= 0, got {self.rd}")
        if self.volatility < 0.0:
            raise ValueError(f"volatility must be >= 0, got {self.volatility}")


@dataclass(frozen=True)
class RatedEntityState:
    """Snapshot of one persisted entity, as loaded for a single update."""

    entity_id: int
    entity_class: EntityClass
    triple: RatingTriple
    matches_played: int = 0
    wins: int = 0
    banned: bool = False
    version: int = 1

    def is_ranked(self, ranked_rd_threshold: float) -> bool:
        return not self.banned and self.triple.rd <= ranked_rd_threshold


@dataclass(frozen=True)
class MatchOutcome:
    """One completed contest between a subject and a counterpart.

    ``result`` is relative to the subject; ``None`` means the match timed out.
    """

    outcome_id: int
    subject_id: int
    subject_class: EntityClass
    counterpart_id: int
    counterpart_class: EntityClass
    result: MatchResult | None
    created_at: datetime
    processed: bool = False


@dataclass(frozen=True)
class RankInfo:
    """Leaderboard position of one entity; ``rank`` and ``percentile`` are None when unranked."""

    rank: int | None
    percentile: float | None
    grade: str


__all__ = ["MatchOutcome", "RankInfo", "RatedEntityState", "RatingTriple"]
