"""Persistence helpers for match outcomes using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from domain.ratings.common import MatchOutcome
from domain.ratings.errors import AlreadyProcessed, EntityNotFound, OutcomeNotFound
from domain.ratings.protocol import EntityClass, MatchResult
from models import MatchOutcomeRecord, RatedEntity

Window = tuple[datetime | None, datetime | None]


def _row_to_outcome(row: Any) -> MatchOutcome:
    return MatchOutcome(
        outcome_id=row.id,
        subject_id=row.subject_id,
        subject_class=EntityClass(row.subject_class),
        counterpart_id=row.counterpart_id,
        counterpart_class=EntityClass(row.counterpart_class),
        result=None if row.result is None else MatchResult(row.result),
        created_at=row.created_at,
        processed=row.processed,
    )


class SqlOutcomeStore:
    """Reads pending outcomes and flips their ``processed`` flag exactly once."""

    def get(self, session: Session, outcome_id: int) -> MatchOutcome:
        row = session.get(MatchOutcomeRecord, outcome_id)
        if row is None:
            raise OutcomeNotFound(outcome_id)
        return _row_to_outcome(row)

    def list_unprocessed(
        self,
        session: Session,
        window: Window | None = None,
        *,
        limit: int | None = None,
    ) -> list[MatchOutcome]:
        """Pending outcomes in creation order; ``window`` is a half-open [start, end) range."""
        statement = select(MatchOutcomeRecord).where(MatchOutcomeRecord.processed.is_(False))
        if window is not None:
            start, end = window
            if start is not None:
                statement = statement.where(MatchOutcomeRecord.created_at >= start)
            if end is not None:
                statement = statement.where(MatchOutcomeRecord.created_at < end)
        statement = statement.order_by(MatchOutcomeRecord.created_at, MatchOutcomeRecord.id)
        if limit is not None:
            statement = statement.limit(limit)
        return [_row_to_outcome(row) for row in session.scalars(statement)]

    def is_processed(self, session: Session, outcome_id: int) -> bool:
        processed = session.scalar(
            select(MatchOutcomeRecord.processed).where(MatchOutcomeRecord.id == outcome_id)
        )
        if processed is None:
            raise OutcomeNotFound(outcome_id)
        return bool(processed)

    def mark_processed(self, session: Session, outcome_id: int) -> None:
        result = session.execute(
            update(MatchOutcomeRecord)
            .where(MatchOutcomeRecord.id == outcome_id, MatchOutcomeRecord.processed.is_(False))
            .values(processed=True, processed_at=datetime.now(UTC).replace(tzinfo=None))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyProcessed(outcome_id)


def record_outcome(
    session: Session,
    *,
    subject_id: int,
    counterpart_id: int,
    result: MatchResult | None,
    created_at: datetime | None = None,
) -> MatchOutcome:
    """Insert a new unprocessed outcome, copying both participants' classes onto it."""
    classes = dict(
        session.execute(
            select(RatedEntity.id, RatedEntity.entity_class).where(
                RatedEntity.id.in_((subject_id, counterpart_id))
            )
        ).all()
    )
    for entity_id in (subject_id, counterpart_id):
        if entity_id not in classes:
            raise EntityNotFound(entity_id)
    if subject_id == counterpart_id:
        raise ValueError(f"Entity {subject_id} cannot play against itself")

    record = MatchOutcomeRecord(
        subject_id=subject_id,
        subject_class=classes[subject_id],
        counterpart_id=counterpart_id,
        counterpart_class=classes[counterpart_id],
        result=None if result is None else result.value,
        processed=False,
    )
    if created_at is not None:
        record.created_at = created_at
    session.add(record)
    session.flush()
    session.refresh(record)
    return _row_to_outcome(record)
