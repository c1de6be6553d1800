"""Schema bootstrap for the rating tables."""

from __future__ import annotations

from sqlalchemy.engine import Engine

from models import MatchOutcomeRecord, RatedEntity


def ensure_rating_schema(engine: Engine) -> None:
    """Create rated_entities/match_outcomes tables and indexes if needed."""
    with engine.begin() as connection:
        RatedEntity.__table__.create(bind=connection, checkfirst=True)
        MatchOutcomeRecord.__table__.create(bind=connection, checkfirst=True)
