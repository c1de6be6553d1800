"""Rating-engine domain modules."""

from domain.ratings.protocol import EntityClass, MatchResult, TimeoutPolicy

__all__ = ["EntityClass", "MatchResult", "TimeoutPolicy"]
