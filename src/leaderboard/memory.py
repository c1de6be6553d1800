"""Process-local sorted leaderboard index."""

from __future__ import annotations

import threading
from bisect import bisect_left, insort
from collections.abc import Iterable
from dataclasses import dataclass, field

from domain.ratings.protocol import EntityClass


@dataclass(frozen=True)
class _ClassSnapshot:
    # Sorted ascending by (-score, member): index 0 holds the highest score.
    keys: tuple[tuple[float, int], ...] = ()
    scores: dict[int, float] = field(default_factory=dict)


class InMemoryLeaderboardIndex:
    """Copy-on-write sorted index per entity class.

    Writers serialize on a lock and publish a fresh snapshot; readers take the
    current snapshot reference without locking, so they always see a complete index.
    Equal scores are ordered by ascending member id.
    """

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._snapshots: dict[EntityClass, _ClassSnapshot] = {}

    def _snapshot(self, entity_class: EntityClass) -> _ClassSnapshot:
        return self._snapshots.get(entity_class) or _ClassSnapshot()

    def upsert(self, entity_class: EntityClass, member: int, score: float) -> None:
        with self._write_lock:
            current = self._snapshot(entity_class)
            keys = list(current.keys)
            scores = dict(current.scores)
            previous = scores.get(member)
            if previous is not None:
                del keys[bisect_left(keys, (-previous, member))]
            insort(keys, (-score, member))
            scores[member] = score
            self._snapshots[entity_class] = _ClassSnapshot(keys=tuple(keys), scores=scores)

    def remove(self, entity_class: EntityClass, member: int) -> None:
        with self._write_lock:
            current = self._snapshot(entity_class)
            previous = current.scores.get(member)
            if previous is None:
                return
            keys = list(current.keys)
            del keys[bisect_left(keys, (-previous, member))]
            scores = dict(current.scores)
            del scores[member]
            self._snapshots[entity_class] = _ClassSnapshot(keys=tuple(keys), scores=scores)

    def rank_of(self, entity_class: EntityClass, member: int) -> int | None:
        snapshot = self._snapshot(entity_class)
        score = snapshot.scores.get(member)
        if score is None:
            return None
        return bisect_left(snapshot.keys, (-score, member))

    def score_of(self, entity_class: EntityClass, member: int) -> float | None:
        return self._snapshot(entity_class).scores.get(member)

    def cardinality(self, entity_class: EntityClass) -> int:
        return len(self._snapshot(entity_class).keys)

    def clear_and_rebuild(self, entity_class: EntityClass, entries: Iterable[tuple[int, float]]) -> None:
        scores = {member: float(score) for member, score in entries}
        keys = tuple(sorted((-score, member) for member, score in scores.items()))
        with self._write_lock:
            self._snapshots[entity_class] = _ClassSnapshot(keys=keys, scores=scores)

    def top(self, entity_class: EntityClass, count: int) -> list[tuple[int, float]]:
        snapshot = self._snapshot(entity_class)
        return [(member, -negated) for negated, member in snapshot.keys[: max(count, 0)]]


__all__ = ["InMemoryLeaderboardIndex"]
