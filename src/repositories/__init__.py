"""Database repository helpers."""

from repositories.entities import SqlEntityStore, create_entity, find_entity_id
from repositories.outcomes import SqlOutcomeStore, record_outcome
from repositories.schema import ensure_rating_schema

__all__ = [
    "SqlEntityStore",
    "SqlOutcomeStore",
    "create_entity",
    "ensure_rating_schema",
    "find_entity_id",
    "record_outcome",
]
