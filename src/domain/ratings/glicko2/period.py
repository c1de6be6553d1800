"""One Glicko-2 rating period over a fixed snapshot of priors."""

from __future__ import annotations

from domain.ratings.common import RatingTriple
from domain.ratings.errors import AlreadyCalculated, PrecursorMissing
from domain.ratings.glicko2.calculator import (
    Glicko2OpponentResult,
    Glicko2Parameters,
    update_rating,
)
from domain.ratings.protocol import MatchResult


class RatingPeriod:
    """Collects participants and outcomes, then rates everyone at once.

    Every outcome is evaluated against the priors captured by ``add_participant``,
    never against a posterior of another outcome in the same period.
    """

    def __init__(self, params: Glicko2Parameters) -> None:
        self.params = params
        self._priors: dict[int, RatingTriple] = {}
        self._results: dict[int, list[tuple[int, float]]] = {}
        self._calculated = False

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._priors

    def __len__(self) -> int:
        return len(self._priors)

    def add_participant(self, entity_id: int, prior: RatingTriple) -> None:
        if entity_id in self._priors:
            raise ValueError(f"Participant {entity_id} was already added to the period")
        self._priors[entity_id] = prior
        self._results[entity_id] = []

    def add_outcome(self, subject_id: int, counterpart_id: int, result: MatchResult) -> None:
        for entity_id in (subject_id, counterpart_id):
            if entity_id not in self._priors:
                raise PrecursorMissing(entity_id)
        if subject_id == counterpart_id:
            raise ValueError(f"Participant {subject_id} cannot play against itself")

        self._results[subject_id].append((counterpart_id, result.score))
        self._results[counterpart_id].append((subject_id, result.inverted().score))

    def outcome_count(self, entity_id: int) -> int:
        return len(self._results[entity_id])

    def calculate(self) -> dict[int, RatingTriple]:
        if self._calculated:
            raise AlreadyCalculated()
        self._calculated = True

        posteriors: dict[int, RatingTriple] = {}
        for entity_id, prior in self._priors.items():
            results = [
                Glicko2OpponentResult(opponent=self._priors[opponent_id], score=score)
                for opponent_id, score in self._results[entity_id]
            ]
            posteriors[entity_id] = update_rating(prior, results, self.params)
        return posteriors
