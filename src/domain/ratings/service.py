"""Rating orchestration: single-outcome updates, periodic recompute and rank queries."""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from sqlalchemy.orm import Session

from domain.ratings.common import MatchOutcome, RankInfo, RatedEntityState, RatingTriple
from domain.ratings.config import RankingParameters, RatingEngineConfig
from domain.ratings.errors import (
    AlreadyProcessed,
    EntityNotFound,
    LeaderboardUnavailable,
    PersistenceConflict,
)
from domain.ratings.glicko2.calculator import Glicko2Parameters
from domain.ratings.glicko2.period import RatingPeriod
from domain.ratings.locks import EntityLockRegistry, SharedExclusiveLock
from domain.ratings.protocol import (
    EntityClass,
    EntityStore,
    LeaderboardIndex,
    MatchResult,
    OutcomeStore,
)
from domain.ratings.ranks import UNRANKED_GRADE, classify_percentile, percentile_of

logger = logging.getLogger(__name__)

Window = tuple[datetime | None, datetime | None]


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True)
class EntityUpdate:
    """Prior and posterior of one entity touched by an update."""

    entity_id: int
    entity_class: EntityClass
    prior: RatingTriple
    posterior: RatingTriple
    was_ranked: bool
    is_ranked: bool


@dataclass(frozen=True)
class OutcomeApplication:
    outcome_id: int
    status: OutcomeStatus
    updates: tuple[EntityUpdate, ...] = ()


@dataclass(frozen=True)
class RecomputeSummary:
    """Result of one periodic recompute."""

    entities_updated: int
    outcomes_processed: int
    outcomes_skipped: int
    duration_ms: float


def _log_update(level: int, update: EntityUpdate) -> None:
    logger.log(
        level,
        "%s %d | Rating %.2f -> %.2f | RD %.2f -> %.2f | Sigma %.6f -> %.6f",
        update.entity_class.value,
        update.entity_id,
        update.prior.rating,
        update.posterior.rating,
        update.prior.rd,
        update.posterior.rd,
        update.prior.volatility,
        update.posterior.volatility,
    )


class RatingService:
    """Applies match outcomes to persisted ratings and keeps the leaderboard in sync.

    Single-outcome updates hold the population lock shared plus the locks of both
    participants; recompute and leaderboard rebuilds hold the population lock
    exclusively. Persisted writes are additionally version-checked, so a writer in
    another process surfaces as ``PersistenceConflict`` and is retried.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        entity_store: EntityStore,
        outcome_store: OutcomeStore,
        leaderboard: LeaderboardIndex,
        params: Glicko2Parameters | None = None,
        ranking: RankingParameters | None = None,
        lookback_days: int = 0,
    ) -> None:
        self.session_factory = session_factory
        self.entity_store = entity_store
        self.outcome_store = outcome_store
        self.leaderboard = leaderboard
        self.params = params or Glicko2Parameters()
        self.ranking = ranking or RankingParameters()
        self.lookback_days = lookback_days
        self._entity_locks = EntityLockRegistry()
        self._population_lock = SharedExclusiveLock()

    @classmethod
    def from_config(
        cls,
        config: RatingEngineConfig,
        *,
        session_factory: Callable[[], Session],
        entity_store: EntityStore,
        outcome_store: OutcomeStore,
        leaderboard: LeaderboardIndex,
    ) -> RatingService:
        logger.debug("Rating engine %s (%s): %s", config.name, config.file_path.name, config.as_config_json())
        return cls(
            session_factory=session_factory,
            entity_store=entity_store,
            outcome_store=outcome_store,
            leaderboard=leaderboard,
            params=config.parameters,
            ranking=config.ranking,
            lookback_days=config.lookback_days,
        )

    def is_ranked(self, state: RatedEntityState) -> bool:
        return state.is_ranked(self.ranking.ranked_rd_threshold)

    def apply_match_outcome(self, outcome: MatchOutcome) -> OutcomeApplication:
        """Rate both participants of one outcome against their current priors.

        Replaying an outcome that was already consumed is a no-op reporting
        ``ALREADY_PROCESSED``.
        """
        if outcome.processed:
            return OutcomeApplication(outcome.outcome_id, OutcomeStatus.ALREADY_PROCESSED)

        participants = (outcome.subject_id, outcome.counterpart_id)
        with self._population_lock.shared(), self._entity_locks.hold(participants):
            attempt = 1
            while True:
                try:
                    application = self._apply_once(outcome)
                    break
                except PersistenceConflict as exc:
                    if attempt >= self.ranking.max_update_retries:
                        logger.error(
                            "Giving up on outcome %d after %d conflicting attempts",
                            outcome.outcome_id,
                            attempt,
                        )
                        raise
                    logger.warning(
                        "Retrying outcome %d (attempt %d): %s", outcome.outcome_id, attempt, exc
                    )
                    attempt += 1

            if application.status is OutcomeStatus.ALREADY_PROCESSED:
                logger.info("Outcome %d was already processed", outcome.outcome_id)
                return application

            for update in application.updates:
                _log_update(logging.INFO, update)
            self._sync_index(application.updates)
        return application

    def _apply_once(self, outcome: MatchOutcome) -> OutcomeApplication:
        with self.session_factory() as session:
            try:
                if self.outcome_store.is_processed(session, outcome.outcome_id):
                    session.rollback()
                    return OutcomeApplication(outcome.outcome_id, OutcomeStatus.ALREADY_PROCESSED)

                subject = self.entity_store.load_state(session, outcome.subject_id)
                counterpart = self.entity_store.load_state(session, outcome.counterpart_id)
                result = self.ranking.timeout_policy.resolve(outcome.result)

                period = RatingPeriod(self.params)
                period.add_participant(subject.entity_id, subject.triple)
                period.add_participant(counterpart.entity_id, counterpart.triple)
                period.add_outcome(subject.entity_id, counterpart.entity_id, result)
                posteriors = period.calculate()

                subject_won = result is MatchResult.WIN
                updates = (
                    self._persist(session, subject, posteriors[subject.entity_id], 1, int(subject_won)),
                    self._persist(
                        session, counterpart, posteriors[counterpart.entity_id], 1, int(not subject_won)
                    ),
                )
                self.outcome_store.mark_processed(session, outcome.outcome_id)
                session.commit()
            except AlreadyProcessed:
                session.rollback()
                return OutcomeApplication(outcome.outcome_id, OutcomeStatus.ALREADY_PROCESSED)
            except Exception:
                session.rollback()
                raise
        return OutcomeApplication(outcome.outcome_id, OutcomeStatus.APPLIED, updates)

    def _persist(
        self,
        session: Session,
        state: RatedEntityState,
        posterior: RatingTriple,
        matches_delta: int,
        wins_delta: int,
    ) -> EntityUpdate:
        self.entity_store.store_state(
            session,
            state.entity_id,
            posterior,
            expected_version=state.version,
            matches_delta=matches_delta,
            wins_delta=wins_delta,
        )
        threshold = self.ranking.ranked_rd_threshold
        return EntityUpdate(
            entity_id=state.entity_id,
            entity_class=state.entity_class,
            prior=state.triple,
            posterior=posterior,
            was_ranked=state.is_ranked(threshold),
            is_ranked=not state.banned and posterior.rd <= threshold,
        )

    def _sync_index(self, updates: Sequence[EntityUpdate]) -> None:
        # Ranked entities carry their new score; everyone else must be absent.
        try:
            for update in updates:
                if update.is_ranked:
                    self.leaderboard.upsert(update.entity_class, update.entity_id, update.posterior.rating)
                else:
                    self.leaderboard.remove(update.entity_class, update.entity_id)
                if update.was_ranked != update.is_ranked:
                    logger.info(
                        "%s %d %s the leaderboard",
                        update.entity_class.value,
                        update.entity_id,
                        "entered" if update.is_ranked else "left",
                    )
        except LeaderboardUnavailable as exc:
            logger.warning("Leaderboard left stale until the next rebuild: %s", exc)

    def set_banned(self, entity_id: int, banned: bool) -> EntityUpdate:
        """Exclude an entity from (or restore it to) eligibility and the leaderboard."""
        with self._population_lock.shared(), self._entity_locks.hold([entity_id]):
            with self.session_factory() as session:
                try:
                    state = self.entity_store.load_state(session, entity_id)
                    self.entity_store.set_banned(session, entity_id, banned)
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
            threshold = self.ranking.ranked_rd_threshold
            update = EntityUpdate(
                entity_id=state.entity_id,
                entity_class=state.entity_class,
                prior=state.triple,
                posterior=state.triple,
                was_ranked=state.is_ranked(threshold),
                is_ranked=not banned and state.triple.rd <= threshold,
            )
            logger.info("%s %d banned=%s", state.entity_class.value, entity_id, banned)
            self._sync_index([update])
        return update

    def process_pending_outcomes(
        self,
        window: Window | None = None,
        *,
        limit: int | None = None,
    ) -> list[OutcomeApplication]:
        """Apply pending outcomes one at a time, oldest first."""
        with self.session_factory() as session:
            outcomes = self.outcome_store.list_unprocessed(session, window, limit=limit)

        applications: list[OutcomeApplication] = []
        for outcome in outcomes:
            try:
                applications.append(self.apply_match_outcome(outcome))
            except EntityNotFound as exc:
                logger.warning("Leaving outcome %d unprocessed: %s", outcome.outcome_id, exc)
        return applications

    def default_window(self) -> Window | None:
        if self.lookback_days <= 0:
            return None
        return (datetime.now(UTC).replace(tzinfo=None) - timedelta(days=self.lookback_days), None)

    def run_periodic_recompute(self, window: Window | None = None) -> RecomputeSummary:
        """Treat all pending outcomes in ``window`` as one rating period over every eligible entity.

        Entities without outcomes get the no-match deviation growth. Outcomes whose
        participants are missing or banned stay unprocessed.
        """
        started = time.perf_counter()
        if window is None:
            window = self.default_window()

        with self._population_lock.exclusive():
            with self.session_factory() as session:
                try:
                    states = {
                        state.entity_id: state for state in self.entity_store.list_eligible(session)
                    }
                    period = RatingPeriod(self.params)
                    for state in states.values():
                        period.add_participant(state.entity_id, state.triple)

                    matches: Counter[int] = Counter()
                    wins: Counter[int] = Counter()
                    attached: list[int] = []
                    skipped = 0
                    for outcome in self.outcome_store.list_unprocessed(session, window):
                        missing = [
                            entity_id
                            for entity_id in (outcome.subject_id, outcome.counterpart_id)
                            if entity_id not in period
                        ]
                        if missing:
                            skipped += 1
                            logger.warning(
                                "Skipping outcome %d: participants %s are not eligible",
                                outcome.outcome_id,
                                missing,
                            )
                            continue

                        result = self.ranking.timeout_policy.resolve(outcome.result)
                        period.add_outcome(outcome.subject_id, outcome.counterpart_id, result)
                        matches[outcome.subject_id] += 1
                        matches[outcome.counterpart_id] += 1
                        winner = outcome.subject_id if result is MatchResult.WIN else outcome.counterpart_id
                        wins[winner] += 1
                        attached.append(outcome.outcome_id)

                    posteriors = period.calculate()
                    for entity_id, posterior in posteriors.items():
                        update = self._persist(
                            session, states[entity_id], posterior, matches[entity_id], wins[entity_id]
                        )
                        _log_update(logging.DEBUG, update)
                    for outcome_id in attached:
                        self.outcome_store.mark_processed(session, outcome_id)
                    session.commit()
                except Exception:
                    session.rollback()
                    raise

            try:
                for entity_class in EntityClass:
                    self._rebuild_class(entity_class)
            except LeaderboardUnavailable as exc:
                logger.warning("Leaderboard left stale until the next rebuild: %s", exc)

        summary = RecomputeSummary(
            entities_updated=len(posteriors),
            outcomes_processed=len(attached),
            outcomes_skipped=skipped,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        logger.info(
            "Recompute finished: entities=%d outcomes=%d skipped=%d in %.1f ms",
            summary.entities_updated,
            summary.outcomes_processed,
            summary.outcomes_skipped,
            summary.duration_ms,
        )
        return summary

    def rebuild_leaderboard(self, entity_class: EntityClass | None = None) -> int:
        """Replace the index contents with every ranked entity; returns how many were indexed."""
        classes = list(EntityClass) if entity_class is None else [entity_class]
        with self._population_lock.exclusive():
            return sum(self._rebuild_class(target) for target in classes)

    def _rebuild_class(self, entity_class: EntityClass) -> int:
        with self.session_factory() as session:
            ranked = self.entity_store.list_eligible(
                session, entity_class, max_rd=self.ranking.ranked_rd_threshold
            )
        self.leaderboard.clear_and_rebuild(
            entity_class, [(state.entity_id, state.triple.rating) for state in ranked]
        )
        logger.info("Rebuilt %s leaderboard with %d entries", entity_class.value, len(ranked))
        return len(ranked)

    def get_rank_info(self, entity_id: int, entity_class: EntityClass) -> RankInfo:
        """1-based rank, percentile and grade of one entity among ranked entities of its class."""
        with self.session_factory() as session:
            state = self.entity_store.load_state(session, entity_id)
        if state.entity_class is not entity_class:
            raise EntityNotFound(entity_id)
        if not self.is_ranked(state):
            return RankInfo(rank=None, percentile=None, grade=UNRANKED_GRADE)

        rank = self.leaderboard.rank_of(entity_class, entity_id)
        if rank is None:
            rank = self._heal_missing_member(entity_id, entity_class)
            if rank is None:
                return RankInfo(rank=None, percentile=None, grade=UNRANKED_GRADE)

        # The population may shrink between the two reads.
        cardinality = max(self.leaderboard.cardinality(entity_class), rank + 1)
        percentile = percentile_of(rank, cardinality)
        return RankInfo(rank=rank + 1, percentile=percentile, grade=classify_percentile(percentile))

    def _heal_missing_member(self, entity_id: int, entity_class: EntityClass) -> int | None:
        with self._population_lock.shared(), self._entity_locks.hold([entity_id]):
            with self.session_factory() as session:
                state = self.entity_store.load_state(session, entity_id)
            if not self.is_ranked(state):
                return None
            logger.debug("Re-indexing ranked %s %d missing from the leaderboard", entity_class.value, entity_id)
            self.leaderboard.upsert(entity_class, entity_id, state.triple.rating)
            return self.leaderboard.rank_of(entity_class, entity_id)

    def top(self, entity_class: EntityClass, count: int) -> list[tuple[int, float]]:
        return list(self.leaderboard.top(entity_class, count))


__all__ = [
    "EntityUpdate",
    "OutcomeApplication",
    "OutcomeStatus",
    "RatingService",
    "RecomputeSummary",
]
