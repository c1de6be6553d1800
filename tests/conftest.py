"""Shared fixtures: an in-memory SQLite database with the rating schema."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db import create_db_engine, create_session_factory
from repositories import ensure_rating_schema


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_db_engine("sqlite:///:memory:")
    ensure_rating_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)
