"""Tests for the process-local leaderboard index."""

from __future__ import annotations

import pytest

from domain.ratings.config import LeaderboardSettings
from domain.ratings.protocol import EntityClass
from leaderboard import InMemoryLeaderboardIndex, create_leaderboard_index

USER = EntityClass.USER
MAP = EntityClass.MAP


def _ranks(index: InMemoryLeaderboardIndex, members: list[int]) -> list[int | None]:
    return [index.rank_of(USER, member) for member in members]


def test_ranks_descend_by_score() -> None:
    index = InMemoryLeaderboardIndex()
    index.upsert(USER, 3, 1500.0)
    index.upsert(USER, 1, 2000.0)
    index.upsert(USER, 2, 1800.0)

    assert _ranks(index, [1, 2, 3]) == [0, 1, 2]
    assert index.cardinality(USER) == 3
    assert index.top(USER, 2) == [(1, 2000.0), (2, 1800.0)]


def test_upsert_moves_existing_member() -> None:
    index = InMemoryLeaderboardIndex()
    index.upsert(USER, 1, 2000.0)
    index.upsert(USER, 2, 1800.0)
    index.upsert(USER, 2, 2100.0)

    assert _ranks(index, [1, 2]) == [1, 0]
    assert index.cardinality(USER) == 2
    assert index.score_of(USER, 2) == 2100.0


def test_equal_scores_order_by_member_id() -> None:
    index = InMemoryLeaderboardIndex()
    for member in (9, 4, 7):
        index.upsert(USER, member, 1600.0)

    assert _ranks(index, [4, 7, 9]) == [0, 1, 2]


def test_ranks_stay_a_permutation_after_mixed_operations() -> None:
    index = InMemoryLeaderboardIndex()
    for member in range(1, 21):
        index.upsert(USER, member, 1000.0 + (member * 37) % 11 * 50.0)
    for member in (3, 8, 15):
        index.remove(USER, member)
    index.upsert(USER, 5, 9999.0)
    index.upsert(USER, 12, 0.0)

    members = [member for member in range(1, 21) if member not in (3, 8, 15)]
    ranks = _ranks(index, members)
    assert sorted(ranks) == list(range(len(members)))
    assert index.rank_of(USER, 5) == 0
    assert index.rank_of(USER, 12) == len(members) - 1
    assert index.rank_of(USER, 3) is None


def test_remove_unknown_member_is_noop() -> None:
    index = InMemoryLeaderboardIndex()
    index.upsert(USER, 1, 1500.0)
    index.remove(USER, 2)

    assert index.cardinality(USER) == 1


def test_classes_are_independent() -> None:
    index = InMemoryLeaderboardIndex()
    index.upsert(USER, 1, 1500.0)
    index.upsert(MAP, 1, 1700.0)
    index.upsert(MAP, 2, 1800.0)

    assert index.rank_of(USER, 1) == 0
    assert index.rank_of(MAP, 1) == 1
    assert index.cardinality(USER) == 1
    assert index.cardinality(MAP) == 2


def test_clear_and_rebuild_replaces_contents() -> None:
    index = InMemoryLeaderboardIndex()
    index.upsert(USER, 1, 1500.0)
    index.clear_and_rebuild(USER, [(2, 1700.0), (3, 1900.0)])

    assert index.rank_of(USER, 1) is None
    assert _ranks(index, [3, 2]) == [0, 1]

    index.clear_and_rebuild(USER, [])
    assert index.cardinality(USER) == 0
    assert index.top(USER, 5) == []


def test_factory_selects_backend() -> None:
    assert isinstance(create_leaderboard_index(LeaderboardSettings()), InMemoryLeaderboardIndex)
    with pytest.raises(ValueError, match="Unknown leaderboard backend"):
        create_leaderboard_index(LeaderboardSettings(backend="memcached"))
