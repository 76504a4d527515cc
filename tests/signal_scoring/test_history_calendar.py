"""
Tests for observations, history views and the delivery calendar.
"""

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from signal_scoring import (
    EventType,
    FetchStatus,
    GOLD_PROFILE,
    IndicatorId,
    InMemoryHistoryProvider,
    MalformedObservationError,
    Metal,
    Observation,
    ObservationHistory,
    ScoreResult,
    Signal,
)
from signal_scoring.calendar_dates import (
    contract_expiry,
    cot_release_dates,
    days_to_next_fnd,
    first_notice_day,
    front_month_code,
    is_delivery_month,
    next_first_notice_day,
    seed_key_dates,
    upcoming_key_dates,
)


OI = IndicatorId.OPEN_INTEREST


# ============================================================
# OBSERVATION
# ============================================================


class TestObservation:
    """Test the observation contract."""

    def test_naive_fetched_at_is_utc(self):
        obs = Observation(OI, date(2026, 3, 4), datetime(2026, 3, 4, 21, 0), 1.0)
        assert obs.fetched_at.tzinfo == timezone.utc

    def test_nan_value_fails_validation(self, make_obs):
        with pytest.raises(MalformedObservationError):
            make_obs(OI, math.nan).validate()

    def test_failed_fetch_with_green_signal_fails_validation(self, make_obs):
        obs = make_obs(OI, 0.0, fetch_status=FetchStatus.ERROR, signal=Signal.GREEN)
        with pytest.raises(MalformedObservationError):
            obs.validate()

    def test_failed_constructor_sets_error_signal(self, failed_observation):
        assert failed_observation.signal == Signal.ERROR
        assert "timeout" in failed_observation.signal_reason
        assert not failed_observation.is_usable

    def test_failed_constructor_rejects_success(self):
        with pytest.raises(MalformedObservationError):
            Observation.failed(OI, date(2026, 3, 4), datetime.now(timezone.utc), FetchStatus.SUCCESS, "x")

    def test_with_score_returns_new_observation(self, make_obs):
        obs = make_obs(OI, 100.0)
        scored = obs.with_score(ScoreResult(Signal.GREEN, "BULLISH: fine"))

        assert scored is not obs
        assert obs.signal is None
        assert scored.signal == Signal.GREEN
        assert scored.signal_reason == "BULLISH: fine"

    def test_with_score_rejects_green_for_failed_fetch(self, failed_observation):
        with pytest.raises(MalformedObservationError):
            failed_observation.with_score(ScoreResult(Signal.GREEN, "BULLISH: fine"))

    def test_fallback_is_not_usable(self, make_obs):
        assert not make_obs(OI, 1.0, is_fallback=True).is_usable

    def test_empty_reason_rejected(self):
        with pytest.raises(ValueError):
            ScoreResult(Signal.GREEN, "  ")


# ============================================================
# HISTORY
# ============================================================


class TestObservationHistory:
    """Test ordered, append-only history views."""

    def test_sorted_by_date(self, make_obs):
        history = ObservationHistory(
            [make_obs(OI, 3, date(2026, 3, 3)), make_obs(OI, 1, date(2026, 3, 1))]
        )
        assert history.values() == [1.0, 3.0]

    def test_append_returns_new_history(self, make_obs):
        history = ObservationHistory([make_obs(OI, 1, date(2026, 3, 1))])
        longer = history.append(make_obs(OI, 2, date(2026, 3, 2)))

        assert len(history) == 1
        assert len(longer) == 2

    def test_deduplicated_keeps_most_recent_row(self, make_obs):
        day = date(2026, 3, 2)
        early = make_obs(OI, 1, day, datetime(2026, 3, 2, 10, tzinfo=timezone.utc), id=1)
        late = make_obs(OI, 2, day, datetime(2026, 3, 2, 10, tzinfo=timezone.utc), id=2)
        history = ObservationHistory([late, early]).deduplicated()

        assert history.values() == [2.0]

    def test_around_prefers_closest(self, make_obs):
        history = ObservationHistory(
            [make_obs(OI, 1, date(2026, 2, 24)), make_obs(OI, 2, date(2026, 2, 26))]
        )
        assert history.around(date(2026, 2, 27), 3).computed_value == 2.0

    def test_around_tie_resolves_to_most_recent(self, make_obs):
        history = ObservationHistory(
            [make_obs(OI, 1, date(2026, 2, 24)), make_obs(OI, 2, date(2026, 2, 26))]
        )
        assert history.around(date(2026, 2, 25), 3).computed_value == 2.0

    def test_around_outside_tolerance(self, make_obs):
        history = ObservationHistory([make_obs(OI, 1, date(2026, 2, 1))])
        assert history.around(date(2026, 2, 25), 3) is None

    def test_prior_week_skips_failed_readings(self, make_obs):
        failed = Observation.failed(
            OI, date(2026, 2, 25), datetime(2026, 2, 25, 21, tzinfo=timezone.utc),
            FetchStatus.ERROR, "boom",
        )
        good = make_obs(OI, 7, date(2026, 2, 23))
        history = ObservationHistory([failed, good])

        assert history.prior_week(date(2026, 3, 4)).computed_value == 7.0

    def test_last_days_is_inclusive(self, make_obs):
        history = ObservationHistory(
            [make_obs(OI, v, date(2026, 3, 4) - timedelta(days=d)) for v, d in [(1, 10), (2, 7), (3, 0)]]
        )
        assert history.last_days(7, date(2026, 3, 4)).values() == [2.0, 3.0]

    def test_before_is_strict(self, make_obs):
        first = make_obs(OI, 1, date(2026, 3, 1))
        second = make_obs(OI, 2, date(2026, 3, 2))
        history = ObservationHistory([first, second])

        assert history.before(second).values() == [1.0]
        assert not history.before(first)


class TestInMemoryHistoryProvider:

    def test_histories_are_keyed_by_metal(self, make_obs):
        provider = InMemoryHistoryProvider(
            [make_obs(OI, 1, metal=Metal.SILVER), make_obs(OI, 2, metal=Metal.GOLD)]
        )
        assert provider.latest(OI, Metal.GOLD).computed_value == 2.0
        assert provider.latest(OI, Metal.SILVER).computed_value == 1.0
        assert provider.latest(IndicatorId.CVOL, Metal.SILVER) is None

    def test_baseline_excludes_failures_and_old_rows(self, make_obs):
        as_of = date(2026, 3, 4)
        provider = InMemoryHistoryProvider(
            [
                make_obs(IndicatorId.COT_SPECULATOR, 1, date(2022, 1, 4)),
                make_obs(IndicatorId.COT_SPECULATOR, 2, date(2025, 1, 7)),
                make_obs(IndicatorId.COT_SPECULATOR, 3, date(2026, 2, 24), is_fallback=True),
            ]
        )
        baseline = provider.baseline(IndicatorId.COT_SPECULATOR, Metal.SILVER, 3, as_of)
        assert baseline.values() == [2.0]


# ============================================================
# CALENDAR
# ============================================================


class TestDeliveryCalendar:
    """Test FND and expiry arithmetic."""

    def test_fnd_is_last_business_day_of_prior_month(self):
        # Feb 28 2026 is a Saturday
        assert first_notice_day(2026, 3) == date(2026, 2, 27)

    def test_fnd_for_january_contract_rolls_back_a_year(self):
        assert first_notice_day(2027, 1) == date(2026, 12, 31)

    def test_contract_expiry_is_third_last_business_day(self):
        # March 2026 ends on Tuesday 31st
        assert contract_expiry(2026, 3) == date(2026, 3, 27)

    def test_next_fnd_skips_passed_dates(self):
        assert next_first_notice_day(date(2026, 3, 4)) == date(2026, 4, 30)
        assert days_to_next_fnd(date(2026, 3, 4)) == 57

    def test_next_fnd_on_the_day(self):
        assert days_to_next_fnd(date(2026, 4, 30)) == 0

    def test_delivery_months_per_metal(self):
        assert is_delivery_month(date(2026, 3, 10))
        assert not is_delivery_month(date(2026, 4, 10))
        assert is_delivery_month(date(2026, 4, 10), GOLD_PROFILE)

    def test_front_month_code(self):
        assert front_month_code(date(2026, 3, 4)) == "MAR 26"
        assert front_month_code(date(2026, 4, 10)) == "MAY 26"

    def test_cot_releases_are_fridays(self):
        releases = cot_release_dates(2026)
        assert len(releases) == 52
        assert all(d.weekday() == 4 for d in releases)

    def test_seed_key_dates(self):
        key_dates = seed_key_dates(2026)
        fnds = [k for k in key_dates if k.event_type == EventType.FND]

        assert len(fnds) == 5
        assert [k.event_date for k in key_dates] == sorted(k.event_date for k in key_dates)
        assert all(k.metal == Metal.SILVER for k in key_dates)

    def test_upcoming_key_dates(self):
        upcoming = upcoming_key_dates(seed_key_dates(2026), date(2026, 3, 4), limit=3)
        assert len(upcoming) == 3
        assert upcoming[0].event_date >= date(2026, 3, 4)
