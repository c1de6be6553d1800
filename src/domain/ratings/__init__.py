"""Rating-engine domain modules."""

from domain.ratings.common import MatchOutcome, RankInfo, RatedEntityState, RatingTriple
from domain.ratings.config import (
    LeaderboardSettings,
    RankingParameters,
    RatingEngineConfig,
    load_rating_config,
    load_rating_configs,
)
from domain.ratings.errors import (
    AlreadyCalculated,
    AlreadyProcessed,
    EntityNotFound,
    LeaderboardUnavailable,
    OutcomeNotFound,
    PersistenceConflict,
    PrecursorMissing,
    RatingError,
)
from domain.ratings.protocol import (
    EntityClass,
    EntityStore,
    LeaderboardIndex,
    MatchResult,
    OutcomeStore,
    TimeoutPolicy,
)
from domain.ratings.service import (
    EntityUpdate,
    OutcomeApplication,
    OutcomeStatus,
    RatingService,
    RecomputeSummary,
)

__all__ = [
    "AlreadyCalculated",
    "AlreadyProcessed",
    "EntityClass",
    "EntityNotFound",
    "EntityStore",
    "EntityUpdate",
    "LeaderboardIndex",
    "LeaderboardSettings",
    "LeaderboardUnavailable",
    "MatchOutcome",
    "MatchResult",
    "OutcomeApplication",
    "OutcomeNotFound",
    "OutcomeStatus",
    "OutcomeStore",
    "PersistenceConflict",
    "PrecursorMissing",
    "RankInfo",
    "RankingParameters",
    "RatedEntityState",
    "RatingEngineConfig",
    "RatingError",
    "RatingService",
    "RatingTriple",
    "RecomputeSummary",
    "TimeoutPolicy",
    "load_rating_config",
    "load_rating_configs",
]
