"""Shared protocols and enums for the rating engine."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from domain.ratings.common import MatchOutcome, RatedEntityState, RatingTriple


class EntityClass(str, Enum):
    """What kind of entity is being rated."""

    USER = "user"
    MAP = "map"


class MatchResult(str, Enum):
    """Match result relative to the subject."""

    WIN = "win"
    LOSS = "loss"

    def inverted(self) -> MatchResult:
        return MatchResult.LOSS if self is MatchResult.WIN else MatchResult.WIN

    @property
    def score(self) -> float:
        return 1.0 if self is MatchResult.WIN else 0.0


class TimeoutPolicy(str, Enum):
    """Which side loses a timed-out match."""

    SUBJECT_LOSES = "subject_loses"
    COUNTERPART_LOSES = "counterpart_loses"

    def resolve(self, result: MatchResult | None) -> MatchResult:
        if result is not None:
            return result
        return MatchResult.LOSS if self is TimeoutPolicy.SUBJECT_LOSES else MatchResult.WIN


@runtime_checkable
class EntityStore(Protocol):
    """Persistence contract for rated entities."""

    def load_state(self, session: Session, entity_id: int) -> RatedEntityState: ...

    def store_state(
        self,
        session: Session,
        entity_id: int,
        triple: RatingTriple,
        *,
        expected_version: int,
        matches_delta: int = 0,
        wins_delta: int = 0,
    ) -> int: ...

    def list_eligible(
        self,
        session: Session,
        entity_class: EntityClass | None = None,
        *,
        max_rd: float | None = None,
    ) -> list[RatedEntityState]: ...

    def set_banned(self, session: Session, entity_id: int, banned: bool) -> None: ...


@runtime_checkable
class OutcomeStore(Protocol):
    """Persistence contract for match outcomes."""

    def list_unprocessed(
        self,
        session: Session,
        window: tuple[datetime | None, datetime | None] | None = None,
        *,
        limit: int | None = None,
    ) -> list[MatchOutcome]: ...

    def is_processed(self, session: Session, outcome_id: int) -> bool: ...

    def mark_processed(self, session: Session, outcome_id: int) -> None: ...


@runtime_checkable
class LeaderboardIndex(Protocol):
    """Sorted per-class score index; ranks are 0-based in descending score order."""

    def upsert(self, entity_class: EntityClass, member: int, score: float) -> None: ...

    def remove(self, entity_class: EntityClass, member: int) -> None: ...

    def rank_of(self, entity_class: EntityClass, member: int) -> int | None: ...

    def cardinality(self, entity_class: EntityClass) -> int: ...

    def clear_and_rebuild(self, entity_class: EntityClass, entries: Iterable[tuple[int, float]]) -> None: ...

    def top(self, entity_class: EntityClass, count: int) -> Sequence[tuple[int, float]]: ...


__all__ = [
    "EntityClass",
    "EntityStore",
    "LeaderboardIndex",
    "MatchResult",
    "OutcomeStore",
    "TimeoutPolicy",
]
