"""Persistence helpers for rated entities using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from domain.ratings.common import RatedEntityState, RatingTriple
from domain.ratings.errors import EntityNotFound, PersistenceConflict
from domain.ratings.protocol import EntityClass
from models import RatedEntity

_STATE_COLUMNS = (
    RatedEntity.id,
    RatedEntity.entity_class,
    RatedEntity.rating,
    RatedEntity.rd,
    RatedEntity.volatility,
    RatedEntity.matches_played,
    RatedEntity.wins,
    RatedEntity.banned,
    RatedEntity.version,
)


def _row_to_state(row: Any) -> RatedEntityState:
    return RatedEntityState(
        entity_id=row.id,
        entity_class=EntityClass(row.entity_class),
        triple=RatingTriple(rating=row.rating, rd=row.rd, volatility=row.volatility),
        matches_played=row.matches_played,
        wins=row.wins,
        banned=row.banned,
        version=row.version,
    )


class SqlEntityStore:
    """Version-checked reads and writes of entity rating triples."""

    def load_state(self, session: Session, entity_id: int) -> RatedEntityState:
        row = session.execute(select(*_STATE_COLUMNS).where(RatedEntity.id == entity_id)).one_or_none()
        if row is None:
            raise EntityNotFound(entity_id)
        return _row_to_state(row)

    def store_state(
        self,
        session: Session,
        entity_id: int,
        triple: RatingTriple,
        *,
        expected_version: int,
        matches_delta: int = 0,
        wins_delta: int = 0,
    ) -> int:
        """Write a posterior triple when the row is still at ``expected_version``.

        Returns the new version; raises ``PersistenceConflict`` when another writer got there first.
        """
        statement = (
            update(RatedEntity)
            .where(RatedEntity.id == entity_id, RatedEntity.version == expected_version)
            .values(
                rating=triple.rating,
                rd=triple.rd,
                volatility=triple.volatility,
                matches_played=RatedEntity.matches_played + matches_delta,
                wins=RatedEntity.wins + wins_delta,
                version=RatedEntity.version + 1,
                updated_at=datetime.now(UTC).replace(tzinfo=None),
            )
            .execution_options(synchronize_session=False)
        )
        result = session.execute(statement)
        if result.rowcount != 1:
            exists = session.scalar(select(RatedEntity.id).where(RatedEntity.id == entity_id))
            if exists is None:
                raise EntityNotFound(entity_id)
            raise PersistenceConflict(entity_id, expected_version)
        return expected_version + 1

    def list_eligible(
        self,
        session: Session,
        entity_class: EntityClass | None = None,
        *,
        max_rd: float | None = None,
    ) -> list[RatedEntityState]:
        """Non-banned entities, optionally of one class and at or below ``max_rd``."""
        statement = select(*_STATE_COLUMNS).where(RatedEntity.banned.is_(False))
        if entity_class is not None:
            statement = statement.where(RatedEntity.entity_class == entity_class.value)
        if max_rd is not None:
            statement = statement.where(RatedEntity.rd <= max_rd)
        rows = session.execute(statement.order_by(RatedEntity.id)).all()
        return [_row_to_state(row) for row in rows]

    def set_banned(self, session: Session, entity_id: int, banned: bool) -> None:
        """Flag or unflag an entity as excluded from rankings."""
        result = session.execute(
            update(RatedEntity)
            .where(RatedEntity.id == entity_id)
            .values(banned=banned, version=RatedEntity.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise EntityNotFound(entity_id)


def create_entity(
    session: Session,
    *,
    entity_class: EntityClass,
    external_id: int,
    initial: RatingTriple,
    rate: float = 1.0,
) -> RatedEntityState:
    """Insert a new unrated entity and return its state."""
    entity = RatedEntity(
        entity_class=entity_class.value,
        external_id=external_id,
        rate=rate,
        rating=initial.rating,
        rd=initial.rd,
        volatility=initial.volatility,
        matches_played=0,
        wins=0,
        banned=False,
        version=1,
    )
    session.add(entity)
    session.flush()
    return RatedEntityState(
        entity_id=entity.id,
        entity_class=entity_class,
        triple=initial,
    )


def find_entity_id(
    session: Session,
    *,
    entity_class: EntityClass,
    external_id: int,
    rate: float = 1.0,
) -> int | None:
    """Resolve a game-side id (and play rate for maps) to the entity id."""
    return session.scalar(
        select(RatedEntity.id).where(
            RatedEntity.entity_class == entity_class.value,
            RatedEntity.external_id == external_id,
            RatedEntity.rate == rate,
        )
    )
