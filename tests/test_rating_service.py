"""Integration tests for RatingService on an in-memory SQLite database."""

from __future__ import annotations

import threading
from datetime import datetime

import pytest
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from domain.ratings.common import MatchOutcome, RatedEntityState, RatingTriple
from domain.ratings.config import RankingParameters
from domain.ratings.errors import EntityNotFound, LeaderboardUnavailable, OutcomeNotFound, PersistenceConflict
from domain.ratings.glicko2.calculator import Glicko2OpponentResult, Glicko2Parameters, update_rating
from domain.ratings.protocol import EntityClass, MatchResult, TimeoutPolicy
from domain.ratings.service import OutcomeStatus, RatingService
from leaderboard import InMemoryLeaderboardIndex
from models import RatedEntity
from repositories import SqlEntityStore, SqlOutcomeStore, create_entity, record_outcome

USER = EntityClass.USER


class FlakyEntityStore(SqlEntityStore):
    """Raises a version conflict for the first ``conflicts`` writes."""

    def __init__(self, conflicts: int) -> None:
        self.conflicts = conflicts
        self.calls = 0

    def store_state(self, session, entity_id, triple, *, expected_version, matches_delta=0, wins_delta=0):
        self.calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise PersistenceConflict(entity_id, expected_version)
        return super().store_state(
            session,
            entity_id,
            triple,
            expected_version=expected_version,
            matches_delta=matches_delta,
            wins_delta=wins_delta,
        )


class UnreachableIndex(InMemoryLeaderboardIndex):
    def upsert(self, entity_class: EntityClass, member: int, score: float) -> None:
        raise LeaderboardUnavailable("leaderboard offline")

    def remove(self, entity_class: EntityClass, member: int) -> None:
        raise LeaderboardUnavailable("leaderboard offline")


class RebuildFailingIndex(InMemoryLeaderboardIndex):
    def clear_and_rebuild(self, entity_class, entries) -> None:
        raise LeaderboardUnavailable("leaderboard offline")


class RecomputeOnLoadStore(SqlEntityStore):
    """Starts a periodic recompute from inside the ``trigger_call``-th ``load_state``."""

    def __init__(self, trigger_call: int) -> None:
        self.trigger_call = trigger_call
        self.calls = 0
        self.service: RatingService | None = None
        self.recompute: threading.Thread | None = None

    def load_state(self, session, entity_id):
        state = super().load_state(session, entity_id)
        self.calls += 1
        if self.calls == self.trigger_call and self.service is not None:
            self.recompute = threading.Thread(target=self.service.run_periodic_recompute)
            self.recompute.start()
            self.recompute.join(timeout=0.5)
        return state


def _service(
    session_factory: sessionmaker[Session],
    *,
    leaderboard: InMemoryLeaderboardIndex | None = None,
    entity_store: SqlEntityStore | None = None,
    **ranking: object,
) -> RatingService:
    return RatingService(
        session_factory=session_factory,
        entity_store=entity_store or SqlEntityStore(),
        outcome_store=SqlOutcomeStore(),
        leaderboard=leaderboard if leaderboard is not None else InMemoryLeaderboardIndex(),
        params=Glicko2Parameters(),
        ranking=RankingParameters(**ranking),
    )


def _add(
    session_factory: sessionmaker[Session],
    external_id: int,
    *,
    rating: float = 1500.0,
    rd: float = 350.0,
    entity_class: EntityClass = USER,
) -> int:
    with session_factory() as session:
        state = create_entity(
            session,
            entity_class=entity_class,
            external_id=external_id,
            initial=RatingTriple(rating, rd, 0.06),
        )
        session.commit()
    return state.entity_id


def _record(
    session_factory: sessionmaker[Session],
    subject_id: int,
    counterpart_id: int,
    result: MatchResult | None = MatchResult.WIN,
    created_at: datetime | None = None,
) -> MatchOutcome:
    with session_factory() as session:
        outcome = record_outcome(
            session,
            subject_id=subject_id,
            counterpart_id=counterpart_id,
            result=result,
            created_at=created_at,
        )
        session.commit()
    return outcome


def _state(session_factory: sessionmaker[Session], entity_id: int) -> RatedEntityState:
    with session_factory() as session:
        return SqlEntityStore().load_state(session, entity_id)


def _is_processed(session_factory: sessionmaker[Session], outcome_id: int) -> bool:
    with session_factory() as session:
        return SqlOutcomeStore().is_processed(session, outcome_id)


def test_apply_updates_both_participants(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    subject = _add(session_factory, 1, rd=200.0)
    beatmap = _add(session_factory, 1, rd=200.0, entity_class=EntityClass.MAP)
    outcome = _record(session_factory, subject, beatmap, MatchResult.WIN)

    application = service.apply_match_outcome(outcome)

    assert application.status is OutcomeStatus.APPLIED
    assert [update.entity_id for update in application.updates] == [subject, beatmap]
    subject_state = _state(session_factory, subject)
    map_state = _state(session_factory, beatmap)
    assert subject_state.triple.rating > 1500.0
    assert map_state.triple.rating < 1500.0
    assert subject_state.triple.rd < 200.0
    assert (subject_state.matches_played, subject_state.wins, subject_state.version) == (1, 1, 2)
    assert (map_state.matches_played, map_state.wins, map_state.version) == (1, 0, 2)
    assert _is_processed(session_factory, outcome.outcome_id)


def test_replayed_outcome_is_a_noop(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    outcome = _record(session_factory, first, second)

    service.apply_match_outcome(outcome)
    after_first = _state(session_factory, first)
    replay = service.apply_match_outcome(outcome)

    assert replay.status is OutcomeStatus.ALREADY_PROCESSED
    assert replay.updates == ()
    assert _state(session_factory, first) == after_first


def test_outcome_flagged_processed_is_skipped(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    outcome = _record(session_factory, first, second)
    flagged = MatchOutcome(
        outcome_id=outcome.outcome_id,
        subject_id=first,
        subject_class=USER,
        counterpart_id=second,
        counterpart_class=USER,
        result=MatchResult.WIN,
        created_at=outcome.created_at,
        processed=True,
    )

    assert service.apply_match_outcome(flagged).status is OutcomeStatus.ALREADY_PROCESSED
    assert _state(session_factory, first).version == 1


def test_missing_participant_leaves_outcome_unprocessed(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    outcome = _record(session_factory, first, second)
    with session_factory() as session:
        session.execute(delete(RatedEntity).where(RatedEntity.id == second))
        session.commit()

    with pytest.raises(EntityNotFound) as exc_info:
        service.apply_match_outcome(outcome)

    assert exc_info.value.entity_id == second
    assert not _is_processed(session_factory, outcome.outcome_id)
    assert _state(session_factory, first).version == 1


def test_entity_joins_leaderboard_when_rd_drops_below_threshold(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard, ranked_rd_threshold=100.0)
    newcomer = _add(session_factory, 1, rd=101.0)
    veteran = _add(session_factory, 2, rd=50.0)
    service.rebuild_leaderboard()
    assert leaderboard.rank_of(USER, newcomer) is None
    assert leaderboard.cardinality(USER) == 1

    application = service.apply_match_outcome(_record(session_factory, newcomer, veteran, MatchResult.WIN))

    newcomer_update = application.updates[0]
    assert not newcomer_update.was_ranked
    assert newcomer_update.is_ranked
    assert newcomer_update.posterior.rd < 100.0
    assert leaderboard.cardinality(USER) == 2
    assert leaderboard.rank_of(USER, newcomer) == 0
    assert leaderboard.score_of(USER, newcomer) == pytest.approx(newcomer_update.posterior.rating)


def test_unranked_entities_stay_out_of_leaderboard(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)

    service.apply_match_outcome(_record(session_factory, first, second))

    assert leaderboard.cardinality(USER) == 0
    assert service.get_rank_info(first, USER).grade == "z"


def test_rank_info_for_ranked_population(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    best = _add(session_factory, 1, rating=2000.0, rd=50.0)
    middle = _add(session_factory, 2, rating=1800.0, rd=50.0)
    worst = _add(session_factory, 3, rating=1500.0, rd=50.0)
    newcomer = _add(session_factory, 4, rating=2500.0, rd=350.0)
    assert service.rebuild_leaderboard() == 3

    infos = [service.get_rank_info(entity_id, USER) for entity_id in (best, middle, worst)]

    assert [info.rank for info in infos] == [1, 2, 3]
    assert [info.percentile for info in infos] == pytest.approx([0.0, 1 / 3, 2 / 3])
    assert [info.grade for info in infos] == ["x", "a+", "b"]
    unranked = service.get_rank_info(newcomer, USER)
    assert (unranked.rank, unranked.percentile, unranked.grade) == (None, None, "z")
    assert service.top(USER, 2) == [(best, 2000.0), (middle, 1800.0)]


def test_rank_info_checks_entity_class(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    beatmap = _add(session_factory, 1, rd=50.0, entity_class=EntityClass.MAP)

    with pytest.raises(EntityNotFound):
        service.get_rank_info(beatmap, USER)
    with pytest.raises(EntityNotFound):
        service.get_rank_info(999, USER)


def test_rank_info_reindexes_missing_ranked_entity(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard)
    entity_id = _add(session_factory, 1, rating=1700.0, rd=60.0)

    info = service.get_rank_info(entity_id, USER)

    assert (info.rank, info.percentile, info.grade) == (1, 0.0, "x")
    assert leaderboard.rank_of(USER, entity_id) == 0


def test_ban_removes_entity_from_leaderboard(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard)
    entity_id = _add(session_factory, 1, rd=60.0)
    service.rebuild_leaderboard(USER)
    assert leaderboard.rank_of(USER, entity_id) == 0

    update = service.set_banned(entity_id, True)

    assert update.was_ranked and not update.is_ranked
    assert leaderboard.rank_of(USER, entity_id) is None
    assert service.get_rank_info(entity_id, USER).grade == "z"

    service.set_banned(entity_id, False)
    assert leaderboard.rank_of(USER, entity_id) == 0


@pytest.mark.parametrize(
    ("policy", "subject_wins"),
    [(TimeoutPolicy.SUBJECT_LOSES, 0), (TimeoutPolicy.COUNTERPART_LOSES, 1)],
)
def test_timeout_follows_policy(
    session_factory: sessionmaker[Session], policy: TimeoutPolicy, subject_wins: int
) -> None:
    service = _service(session_factory, timeout_policy=policy)
    subject = _add(session_factory, 1)
    counterpart = _add(session_factory, 2)

    service.apply_match_outcome(_record(session_factory, subject, counterpart, None))

    subject_state = _state(session_factory, subject)
    counterpart_state = _state(session_factory, counterpart)
    assert subject_state.wins == subject_wins
    assert counterpart_state.wins == 1 - subject_wins
    assert (subject_state.triple.rating > 1500.0) == bool(subject_wins)


def test_conflict_is_retried(session_factory: sessionmaker[Session]) -> None:
    store = FlakyEntityStore(conflicts=1)
    service = _service(session_factory, entity_store=store, max_update_retries=3)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    outcome = _record(session_factory, first, second)

    application = service.apply_match_outcome(outcome)

    assert application.status is OutcomeStatus.APPLIED
    assert store.calls == 3
    assert _state(session_factory, first).version == 2
    assert _is_processed(session_factory, outcome.outcome_id)


def test_conflict_surfaces_after_retries(session_factory: sessionmaker[Session]) -> None:
    store = FlakyEntityStore(conflicts=10)
    service = _service(session_factory, entity_store=store, max_update_retries=2)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    outcome = _record(session_factory, first, second)

    with pytest.raises(PersistenceConflict):
        service.apply_match_outcome(outcome)

    assert store.calls == 2
    assert _state(session_factory, first).version == 1
    assert not _is_processed(session_factory, outcome.outcome_id)


def test_unreachable_leaderboard_does_not_undo_update(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory, leaderboard=UnreachableIndex())
    first = _add(session_factory, 1, rd=60.0)
    second = _add(session_factory, 2, rd=60.0)
    outcome = _record(session_factory, first, second)

    assert service.apply_match_outcome(outcome).status is OutcomeStatus.APPLIED
    assert _is_processed(session_factory, outcome.outcome_id)


def test_process_pending_outcomes_applies_in_order(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    earlier = _record(session_factory, first, second, created_at=datetime(2026, 1, 1))
    later = _record(session_factory, second, first, created_at=datetime(2026, 1, 2))

    applied = service.process_pending_outcomes(limit=1)
    assert [application.outcome_id for application in applied] == [earlier.outcome_id]
    assert not _is_processed(session_factory, later.outcome_id)

    applied = service.process_pending_outcomes()
    assert [application.outcome_id for application in applied] == [later.outcome_id]
    assert _state(session_factory, first).matches_played == 2


def test_recompute_rates_everyone_against_period_priors(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    a = _add(session_factory, 1, rating=1600.0, rd=120.0)
    b = _add(session_factory, 2, rating=1500.0, rd=150.0)
    c = _add(session_factory, 3, rating=1400.0, rd=200.0)
    idle = _add(session_factory, 4, rd=200.0)
    first = _record(session_factory, a, b, MatchResult.WIN)
    second = _record(session_factory, b, c, MatchResult.WIN)

    summary = service.run_periodic_recompute()

    assert summary.entities_updated == 4
    assert summary.outcomes_processed == 2
    assert summary.outcomes_skipped == 0
    assert summary.duration_ms >= 0.0

    expected_b = update_rating(
        RatingTriple(1500.0, 150.0, 0.06),
        [
            Glicko2OpponentResult(opponent=RatingTriple(1600.0, 120.0, 0.06), score=0.0),
            Glicko2OpponentResult(opponent=RatingTriple(1400.0, 200.0, 0.06), score=1.0),
        ],
        Glicko2Parameters(),
    )
    b_state = _state(session_factory, b)
    assert b_state.triple.rating == pytest.approx(expected_b.rating)
    assert b_state.triple.rd == pytest.approx(expected_b.rd)
    assert (b_state.matches_played, b_state.wins) == (2, 1)

    idle_state = _state(session_factory, idle)
    assert idle_state.triple.rating == pytest.approx(1500.0)
    assert idle_state.triple.rd == pytest.approx(200.27, abs=0.01)
    assert idle_state.matches_played == 0
    assert _is_processed(session_factory, first.outcome_id)
    assert _is_processed(session_factory, second.outcome_id)


def test_recompute_skips_banned_participants(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    player = _add(session_factory, 1, rd=200.0)
    cheater = _add(session_factory, 2, rd=200.0)
    service.set_banned(cheater, True)
    outcome = _record(session_factory, player, cheater, MatchResult.LOSS)

    summary = service.run_periodic_recompute()

    assert (summary.entities_updated, summary.outcomes_processed, summary.outcomes_skipped) == (1, 0, 1)
    assert not _is_processed(session_factory, outcome.outcome_id)
    assert _state(session_factory, cheater).triple == RatingTriple(1500.0, 200.0, 0.06)
    player_state = _state(session_factory, player)
    assert player_state.triple.rating == pytest.approx(1500.0)
    assert player_state.triple.rd > 200.0


def test_recompute_rebuilds_leaderboard(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard, ranked_rd_threshold=100.0)
    fading = _add(session_factory, 1, rating=1900.0, rd=99.9)
    steady = _add(session_factory, 2, rating=1700.0, rd=50.0)
    beatmap = _add(session_factory, 3, rating=1600.0, rd=40.0, entity_class=EntityClass.MAP)
    service.rebuild_leaderboard()
    assert leaderboard.rank_of(USER, fading) == 0

    service.run_periodic_recompute()

    assert _state(session_factory, fading).triple.rd > 100.0
    assert leaderboard.rank_of(USER, fading) is None
    assert leaderboard.rank_of(USER, steady) == 0
    assert leaderboard.rank_of(EntityClass.MAP, beatmap) == 0


def test_recompute_window_excludes_older_outcomes(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    old = _record(session_factory, first, second, created_at=datetime(2026, 1, 1))

    summary = service.run_periodic_recompute((datetime(2026, 2, 1), None))

    assert summary.outcomes_processed == 0
    assert not _is_processed(session_factory, old.outcome_id)


def test_recompute_crossing_from_105_enters_leaderboard(session_factory: sessionmaker[Session]) -> None:
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(session_factory, leaderboard=leaderboard, ranked_rd_threshold=100.0)
    climber = _add(session_factory, 1, rd=105.0)
    opponents = [_add(session_factory, external_id, rd=50.0) for external_id in (2, 3, 4)]
    service.rebuild_leaderboard()
    assert leaderboard.rank_of(USER, climber) is None

    for opponent, result in zip(opponents, (MatchResult.WIN, MatchResult.LOSS, MatchResult.WIN)):
        _record(session_factory, climber, opponent, result)
    service.run_periodic_recompute()

    climber_state = _state(session_factory, climber)
    assert climber_state.triple.rd < 95.0
    assert leaderboard.score_of(USER, climber) == pytest.approx(climber_state.triple.rating)
    assert leaderboard.cardinality(USER) == 4


def test_recompute_survives_leaderboard_outage(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory, leaderboard=RebuildFailingIndex())
    idle = _add(session_factory, 1, rd=200.0)

    summary = service.run_periodic_recompute()

    assert summary.entities_updated == 1
    assert _state(session_factory, idle).triple.rd == pytest.approx(200.27, abs=0.01)


def test_reindexing_waits_for_running_recompute(session_factory: sessionmaker[Session]) -> None:
    store = RecomputeOnLoadStore(trigger_call=2)
    leaderboard = InMemoryLeaderboardIndex()
    service = _service(
        session_factory, leaderboard=leaderboard, entity_store=store, ranked_rd_threshold=100.0
    )
    store.service = service
    fading = _add(session_factory, 1, rating=1900.0, rd=99.9)

    service.get_rank_info(fading, USER)
    assert store.recompute is not None
    store.recompute.join()

    assert _state(session_factory, fading).triple.rd > 100.0
    assert leaderboard.rank_of(USER, fading) is None


def test_unknown_outcome_raises_rating_error(session_factory: sessionmaker[Session]) -> None:
    service = _service(session_factory)
    first = _add(session_factory, 1)
    second = _add(session_factory, 2)
    stored = _record(session_factory, first, second)
    ghost = MatchOutcome(
        outcome_id=stored.outcome_id + 100,
        subject_id=first,
        subject_class=USER,
        counterpart_id=second,
        counterpart_class=USER,
        result=MatchResult.WIN,
        created_at=stored.created_at,
        processed=False,
    )

    with pytest.raises(OutcomeNotFound):
        service.apply_match_outcome(ghost)
    assert _state(session_factory, first).version == 1
