"""Exceptions raised by the rating engine."""

from __future__ import annotations


class RatingError(Exception):
    """Base exception for rating-engine errors."""


class EntityNotFound(RatingError):
    """A referenced participant does not exist in the entity store."""

    def __init__(self, entity_id: int) -> None:
        super().__init__(f"Rated entity {entity_id} not found")
        self.entity_id = entity_id


class OutcomeNotFound(RatingError):
    """A referenced match outcome does not exist in the outcome store."""

    def __init__(self, outcome_id: int) -> None:
        super().__init__(f"Match outcome {outcome_id} not found")
        self.outcome_id = outcome_id


class AlreadyProcessed(RatingError):
    """An outcome has already been consumed by a rating update."""

    def __init__(self, outcome_id: int) -> None:
        super().__init__(f"Match outcome {outcome_id} was already processed")
        self.outcome_id = outcome_id


class PrecursorMissing(RatingError):
    """An outcome references a participant that was never added to the period."""

    def __init__(self, entity_id: int) -> None:
        super().__init__(f"Participant {entity_id} must be added to the period before its outcomes")
        self.entity_id = entity_id


class AlreadyCalculated(RatingError):
    """A rating period was calculated more than once."""

    def __init__(self) -> None:
        super().__init__("Rating period has already been calculated")


class PersistenceConflict(RatingError):
    """A concurrent write changed an entity between load and store."""

    def __init__(self, entity_id: int, expected_version: int) -> None:
        super().__init__(
            f"Rated entity {entity_id} was modified concurrently (expected version {expected_version})"
        )
        self.entity_id = entity_id
        self.expected_version = expected_version


class LeaderboardUnavailable(RatingError):
    """The leaderboard backend could not be reached."""


__all__ = [
    "AlreadyCalculated",
    "AlreadyProcessed",
    "EntityNotFound",
    "LeaderboardUnavailable",
    "OutcomeNotFound",
    "PersistenceConflict",
    "PrecursorMissing",
    "RatingError",
]
