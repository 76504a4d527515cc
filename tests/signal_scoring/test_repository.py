"""
Tests for the SQLAlchemy snapshot repository.

Uses an in-memory SQLite database per test.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from conftest import AS_OF, FETCHED, TODAY, make_observation

from signal_scoring import (
    FetchStatus,
    IndicatorId,
    MalformedObservationError,
    Metal,
    Observation,
    Posture,
    SignalEngine,
    EvaluationInput,
    evaluate,
)
from signal_scoring.models import IndicatorSnapshotRecord, PostureSnapshotRecord
from signal_scoring.repository import (
    DATABASE_URL_ENV,
    DEFAULT_DATABASE_URL,
    SnapshotRepository,
    create_all_tables,
    create_database_engine,
    get_database_url,
    session_scope,
)


@pytest.fixture
def factory():
    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


def _count(session, model):
    return session.execute(select(func.count()).select_from(model)).scalar_one()


# ============================================================
# SETUP
# ============================================================


class TestDatabaseUrl:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///custom.db")
        assert get_database_url() == "sqlite:///custom.db"

    def test_default_when_unset(self, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        assert get_database_url() == DEFAULT_DATABASE_URL


# ============================================================
# OBSERVATIONS
# ============================================================


class TestObservationStore:
    """Test append-only inserts and history reads."""

    def test_insert_assigns_id_and_round_trips(self, factory):
        observation = make_observation(
            IndicatorId.VAULT_INVENTORY,
            45_000_000,
            fetched_at=FETCHED,
            raw={"total_registered": 45_000_000, "total_eligible": 55_000_000},
            source_url="https://www.cmegroup.com/",
        )
        with session_scope(factory) as session:
            saved = SnapshotRepository(session).insert_observation(observation)

        assert saved.id is not None

        with session_scope(factory) as session:
            loaded = SnapshotRepository(session).latest(IndicatorId.VAULT_INVENTORY, Metal.SILVER)

        assert loaded.id == saved.id
        assert loaded.fetched_at == FETCHED
        assert loaded.fetched_at.tzinfo is not None
        assert loaded.raw("total_eligible") == 55_000_000
        assert loaded.source_url == "https://www.cmegroup.com/"
        assert loaded.fetch_status == FetchStatus.SUCCESS

    def test_failed_observation_round_trips(self, factory, failed_observation):
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observation(failed_observation)

        with session_scope(factory) as session:
            loaded = SnapshotRepository(session).latest(IndicatorId.OPEN_INTEREST, Metal.SILVER)

        assert loaded.fetch_status == FetchStatus.TIMEOUT
        assert loaded.error_detail == "CME request timed out"
        assert not loaded.is_success

    def test_latest_prefers_most_recent_fetch(self, factory):
        first = make_observation(IndicatorId.CVOL, 1.5, fetched_at=FETCHED)
        second = make_observation(IndicatorId.CVOL, 1.7, fetched_at=FETCHED + timedelta(hours=1))
        older_day = make_observation(IndicatorId.CVOL, 9.9, TODAY - timedelta(days=1))

        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observations([second, older_day, first])

        with session_scope(factory) as session:
            repository = SnapshotRepository(session)
            latest = repository.latest(IndicatorId.CVOL, Metal.SILVER)
            history = repository.history(IndicatorId.CVOL, Metal.SILVER)

        assert latest.computed_value == 1.7
        assert [o.computed_value for o in history] == [9.9, 1.5, 1.7]

    def test_rows_are_never_replaced(self, factory):
        with session_scope(factory) as session:
            repository = SnapshotRepository(session)
            repository.insert_observation(make_observation(IndicatorId.CVOL, 1.5))
            repository.insert_observation(make_observation(IndicatorId.CVOL, 1.5))

        with session_scope(factory) as session:
            assert _count(session, IndicatorSnapshotRecord) == 2

    def test_metal_is_part_of_the_key(self, factory):
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observations(
                [
                    make_observation(IndicatorId.CVOL, 1.5),
                    make_observation(IndicatorId.CVOL, 0.8, metal=Metal.GOLD),
                ]
            )

        with session_scope(factory) as session:
            gold = SnapshotRepository(session).history(IndicatorId.CVOL, Metal.GOLD)

        assert len(gold) == 1
        assert gold[0].computed_value == 0.8

    def test_last_days_window(self, factory):
        rows = [make_observation(IndicatorId.CVOL, float(k), TODAY - timedelta(days=k)) for k in range(10)]
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observations(rows)

        with session_scope(factory) as session:
            window = SnapshotRepository(session).last_days(IndicatorId.CVOL, Metal.SILVER, 3, TODAY)

        assert [o.data_date for o in window] == [TODAY - timedelta(days=k) for k in (3, 2, 1, 0)]

    def test_baseline_skips_failures_and_duplicates(self, factory):
        cot_date = date(2026, 3, 3)
        rows = [
            make_observation(IndicatorId.COT_SPECULATOR, 30_000, cot_date - timedelta(days=7)),
            make_observation(
                IndicatorId.COT_SPECULATOR,
                31_000,
                cot_date - timedelta(days=7),
                fetched_at=datetime(2026, 2, 25, 23, tzinfo=timezone.utc),
            ),
            Observation.failed(
                IndicatorId.COT_SPECULATOR,
                cot_date - timedelta(days=14),
                FETCHED,
                FetchStatus.ERROR,
                "CFTC returned HTTP 500",
            ),
            make_observation(IndicatorId.COT_SPECULATOR, 10_000, date(2022, 1, 4)),
        ]
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observations(rows)

        with session_scope(factory) as session:
            baseline = SnapshotRepository(session).baseline(
                IndicatorId.COT_SPECULATOR, Metal.SILVER, 3, cot_date
            )

        assert baseline.values() == [31_000]

    def test_invalid_observation_rejected(self, factory):
        with pytest.raises(MalformedObservationError):
            with session_scope(factory) as session:
                SnapshotRepository(session).insert_observation(
                    make_observation(IndicatorId.CVOL, float("nan"))
                )

        with session_scope(factory) as session:
            assert _count(session, IndicatorSnapshotRecord) == 0


# ============================================================
# TRANSACTIONS
# ============================================================


class TestSessionScope:

    def test_rolls_back_on_exception(self, factory):
        with pytest.raises(RuntimeError):
            with session_scope(factory) as session:
                SnapshotRepository(session).insert_observation(make_observation(IndicatorId.CVOL, 1.5))
                raise RuntimeError("scheduler cancelled")

        with session_scope(factory) as session:
            assert _count(session, IndicatorSnapshotRecord) == 0

    def test_commits_on_success(self, factory):
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observation(make_observation(IndicatorId.CVOL, 1.5))

        with session_scope(factory) as session:
            assert _count(session, IndicatorSnapshotRecord) == 1


# ============================================================
# EVALUATIONS
# ============================================================


class TestEvaluationStore:
    """Test posture snapshots and provider-driven evaluation."""

    @pytest.fixture
    def seeded(self, factory, healthy_observations):
        with session_scope(factory) as session:
            SnapshotRepository(session).insert_observations(healthy_observations)
        return factory

    def test_evaluate_through_repository(self, seeded):
        with session_scope(seeded) as session:
            result = evaluate(SnapshotRepository(session), Metal.SILVER, AS_OF)

        assert result.posture.posture == Posture.BUY
        assert result.posture.available_count == 12

    def test_save_evaluation(self, seeded):
        with session_scope(seeded) as session:
            repository = SnapshotRepository(session)
            inputs = EvaluationInput.from_provider(repository, Metal.SILVER, AS_OF)
            result = SignalEngine().evaluate(inputs)
            snapshot = repository.save_evaluation(result, include_raw_json=True)

        assert snapshot.id is not None
        assert snapshot.posture == "BUY"
        assert snapshot.green_count == 12
        assert snapshot.slam_risk_count == result.slam_risk.active_count
        assert len(snapshot.slam_risk_items) == 5
        assert snapshot.raw_output_json["posture"]["posture"] == "BUY"

        with session_scope(seeded) as session:
            repository = SnapshotRepository(session)
            lease = repository.latest(IndicatorId.LEASE_RATES, Metal.SILVER)
            fnd = repository.latest(IndicatorId.FND_RATIO, Metal.SILVER)
            latest = repository.get_latest_posture(Metal.SILVER)

        assert lease is not None and lease.data_date == TODAY
        assert fnd is not None and fnd.signal is not None
        assert latest.id == snapshot.id
        assert {item.checklist_item_id for item in latest.slam_risk_items} == {
            "commercial_short_build",
            "margin_hike",
            "oi_drop",
            "backwardation_widening",
            "low_liquidity_window",
        }

    def test_save_without_derived(self, seeded):
        with session_scope(seeded) as session:
            repository = SnapshotRepository(session)
            before = _count(session, IndicatorSnapshotRecord)
            result = evaluate(repository, Metal.SILVER, AS_OF)
            repository.save_evaluation(result, include_derived=False)
            after = _count(session, IndicatorSnapshotRecord)

        assert after == before

    def test_no_posture_for_other_metal(self, seeded):
        with session_scope(seeded) as session:
            repository = SnapshotRepository(session)
            repository.save_evaluation(evaluate(repository, Metal.SILVER, AS_OF))
            assert repository.get_latest_posture(Metal.GOLD) is None
            assert _count(session, PostureSnapshotRecord) == 1
