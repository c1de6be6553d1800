"""Leaderboard index backends."""

from __future__ import annotations

from domain.ratings.config import LeaderboardSettings
from domain.ratings.protocol import LeaderboardIndex
from leaderboard.memory import InMemoryLeaderboardIndex
from leaderboard.redis_index import RedisLeaderboardIndex


def create_leaderboard_index(settings: LeaderboardSettings) -> LeaderboardIndex:
    """Create an empty (memory) or shared (redis) index for the configured backend."""
    if settings.backend == "redis":
        return RedisLeaderboardIndex.from_url(settings.redis_url, key_prefix=settings.key_prefix)
    if settings.backend == "memory":
        return InMemoryLeaderboardIndex()
    raise ValueError(f"Unknown leaderboard backend: {settings.backend!r}")


__all__ = ["InMemoryLeaderboardIndex", "RedisLeaderboardIndex", "create_leaderboard_index"]
