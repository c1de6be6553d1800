"""rated_entities table model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


class RatedEntity(Base):
    """Current Glicko-2 state of one user or map (one row per map and play rate)."""

    __tablename__ = "rated_entities"
    __table_args__ = (
        UniqueConstraint("entity_class", "external_id", "rate", name="uq_rated_entities_identity"),
        CheckConstraint("rd >= 0.0", name="ck_rated_entities_rd"),
        CheckConstraint("volatility >= 0.0", name="ck_rated_entities_volatility"),
        CheckConstraint("wins <= matches_played", name="ck_rated_entities_wins"),
        Index("idx_rated_entities_class_rd", "entity_class", "rd"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    entity_class: Mapped[str] = mapped_column(
        Enum("user", "map", name="entity_class", native_enum=False),
        nullable=False,
    )
    external_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    rd: Mapped[float] = mapped_column(Float, nullable=False)
    volatility: Mapped[float] = mapped_column(Float, nullable=False)
    matches_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        server_default=func.now(),
    )
