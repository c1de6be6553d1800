"""ORM models."""

from models.base import Base
from models.entity import RatedEntity
from models.outcome import MatchOutcomeRecord

__all__ = [
    "Base",
    "MatchOutcomeRecord",
    "RatedEntity",
]
