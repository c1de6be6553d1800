"""match_outcomes table model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class MatchOutcomeRecord(Base):
    """One completed user-versus-map (or any pairwise) contest.

    ``result`` is relative to the subject; NULL marks a timed-out match.
    """

    __tablename__ = "match_outcomes"
    __table_args__ = (
        CheckConstraint("subject_id <> counterpart_id", name="ck_match_outcomes_distinct"),
        Index("idx_match_outcomes_pending", "processed", "created_at", "id"),
        Index("idx_match_outcomes_subject", "subject_id"),
        Index("idx_match_outcomes_counterpart", "counterpart_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(ForeignKey("rated_entities.id"), nullable=False)
    subject_class: Mapped[str] = mapped_column(
        Enum("user", "map", name="outcome_subject_class", native_enum=False),
        nullable=False,
    )
    counterpart_id: Mapped[int] = mapped_column(ForeignKey("rated_entities.id"), nullable=False)
    counterpart_class: Mapped[str] = mapped_column(
        Enum("user", "map", name="outcome_counterpart_class", native_enum=False),
        nullable=False,
    )
    result: Mapped[str | None] = mapped_column(
        Enum("win", "loss", name="match_result", native_enum=False),
        nullable=True,
    )
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    )
