"""Redis sorted-set leaderboard index."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

import redis

from domain.ratings.errors import LeaderboardUnavailable
from domain.ratings.protocol import EntityClass

logger = logging.getLogger(__name__)


def _member_id(member: Any) -> int:
    if isinstance(member, bytes):
        member = member.decode("utf-8")
    return int(member)


@contextmanager
def _redis_errors() -> Iterator[None]:
    try:
        yield
    except redis.RedisError as exc:
        raise LeaderboardUnavailable(f"Redis leaderboard error: {exc}") from exc


class RedisLeaderboardIndex:
    """One sorted set per entity class, shared by every process using the same Redis.

    Equal scores are ordered by ``ZREVRANK``: reverse lexicographic member order.
    """

    def __init__(self, client: redis.Redis, *, key_prefix: str = "ratings:leaderboard") -> None:
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, *, key_prefix: str = "ratings:leaderboard") -> RedisLeaderboardIndex:
        client = redis.Redis.from_url(redis_url)
        with _redis_errors():
            client.ping()
        logger.info("Connected to Redis leaderboard at %s", redis_url.rsplit("@", 1)[-1])
        return cls(client, key_prefix=key_prefix)

    def key(self, entity_class: EntityClass) -> str:
        return f"{self.key_prefix}:{entity_class.value}"

    def upsert(self, entity_class: EntityClass, member: int, score: float) -> None:
        with _redis_errors():
            self.client.zadd(self.key(entity_class), {str(member): float(score)})

    def remove(self, entity_class: EntityClass, member: int) -> None:
        with _redis_errors():
            self.client.zrem(self.key(entity_class), str(member))

    def rank_of(self, entity_class: EntityClass, member: int) -> int | None:
        with _redis_errors():
            rank = self.client.zrevrank(self.key(entity_class), str(member))
        return None if rank is None else int(rank)

    def cardinality(self, entity_class: EntityClass) -> int:
        with _redis_errors():
            return int(self.client.zcard(self.key(entity_class)))

    def clear_and_rebuild(self, entity_class: EntityClass, entries: Iterable[tuple[int, float]]) -> None:
        # MULTI/EXEC: readers see the old set or the new one, never an emptied one.
        mapping = {str(member): float(score) for member, score in entries}
        key = self.key(entity_class)
        with _redis_errors():
            pipeline = self.client.pipeline(transaction=True)
            pipeline.delete(key)
            if mapping:
                pipeline.zadd(key, mapping)
            pipeline.execute()

    def top(self, entity_class: EntityClass, count: int) -> list[tuple[int, float]]:
        if count <= 0:
            return []
        with _redis_errors():
            rows = self.client.zrevrange(self.key(entity_class), 0, count - 1, withscores=True)
        return [(_member_id(member), float(score)) for member, score in rows]


__all__ = ["RedisLeaderboardIndex"]
