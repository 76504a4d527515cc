"""
Tests for the margin, spread, roll, derived and volatility scorers.
"""

from datetime import date, timedelta

import pytest

from conftest import make_observation

from signal_scoring import IndicatorId, ObservationHistory, Signal
from signal_scoring.scorers import (
    BackwardationScorer,
    FndRatioScorer,
    LeaseRateScorer,
    MarginScorer,
    RollPatternScorer,
    ShanghaiPremiumScorer,
    VolatilityScorer,
)


TODAY = date(2026, 3, 4)


# ============================================================
# MARGIN (#6)
# ============================================================


def _margin(level, data_date=TODAY, last_change=None, changes=()):
    raw = {"initial_margin_percent": level, "recent_changes": list(changes)}
    if last_change is not None:
        raw["last_change_date"] = last_change
    return make_observation(IndicatorId.MARGIN_REQUIREMENTS, level, data_date, raw=raw)


def _change(effective, old, new):
    return {"effective_date": effective, "old_percent": old, "new_percent": new}


class TestMarginScorer:
    """Test hike cadence and level bands."""

    @pytest.fixture
    def scorer(self):
        return MarginScorer()

    def test_two_hikes_in_window_are_red(self, scorer):
        current = _margin(
            12.0,
            last_change="2026-03-02",
            changes=[_change("2026-02-20", 10.0, 11.0), _change("2026-03-02", 11.0, 12.0)],
        )
        result = scorer.score(current, None, TODAY)

        assert result.signal == Signal.RED
        assert result.rule == "repeated_hikes"
        assert "2 margin hikes in past 14 days" in result.reason

    def test_single_large_hike_is_red(self, scorer):
        current = _margin(13.0, changes=[_change("2026-03-02", 10.0, 13.0)])
        result = scorer.score(current, None, TODAY)

        assert result.rule == "major_hike"
        assert "30%" in result.reason

    def test_hikes_outside_window_ignored(self, scorer):
        current = _margin(
            12.0,
            changes=[_change("2026-01-05", 10.0, 11.0), _change("2026-01-20", 11.0, 12.0)],
        )
        result = scorer.score(current, None, TODAY)

        assert result.signal == Signal.GREEN
        assert result.rule == "stable"

    def test_unrecorded_level_increase_counts_as_hike(self, scorer):
        prior = _margin(10.0, TODAY - timedelta(days=1), last_change="2025-12-01")
        current = _margin(11.0, last_change="2025-12-01")
        result = scorer.score(current, prior, TODAY)

        assert result.signal == Signal.YELLOW
        assert result.rule == "recent_change"
        assert result.metrics["recent_hike_count"] == 1

    def test_unrecorded_large_increase_is_red(self, scorer):
        prior = _margin(10.0, TODAY - timedelta(days=1))
        current = _margin(12.5)

        assert scorer.score(current, prior, TODAY).rule == "major_hike"

    def test_recorded_increase_not_double_counted(self, scorer):
        prior = _margin(10.0, TODAY - timedelta(days=3))
        current = _margin(11.0, changes=[_change("2026-03-03", 10.0, 11.0)])
        result = scorer.score(current, prior, TODAY)

        assert result.metrics["recent_hike_count"] == 1

    def test_recent_cut_is_yellow(self, scorer):
        current = _margin(10.0, changes=[_change("2026-03-01", 11.0, 10.0)])
        result = scorer.score(current, None, TODAY)

        assert result.rule == "recent_change"
        assert "3 days ago" in result.reason

    def test_level_above_median_is_yellow(self, scorer):
        result = scorer.score(_margin(14.0, last_change="2025-12-01"), None, TODAY)
        assert result.rule == "above_median"

    def test_stable_margin_is_green(self, scorer):
        result = scorer.score(_margin(10.0, last_change="2025-12-01"), None, TODAY)

        assert result.signal == Signal.GREEN
        assert "93 days" in result.reason

    def test_no_change_history_is_green(self, scorer):
        assert scorer.score(_margin(10.0), None, TODAY).rule == "no_recent_change"


# ============================================================
# BACKWARDATION (#7) / SHANGHAI (#10)
# ============================================================


def _spread(spot, futures, days=25):
    return make_observation(
        IndicatorId.BACKWARDATION,
        spot - futures,
        raw={"spot_price": spot, "futures_price": futures, "days_to_expiry": days},
    )


class TestBackwardationScorer:

    @pytest.fixture
    def scorer(self):
        return BackwardationScorer()

    @pytest.mark.parametrize(
        "spot,futures,rule,signal",
        [
            (32.5, 30.0, "extreme_backwardation", Signal.RED),
            (31.0, 30.0, "backwardation", Signal.RED),
            (30.2, 30.0, "mild_backwardation", Signal.YELLOW),
            (30.0, 30.05, "near_flat", Signal.YELLOW),
            (30.0, 30.25, "normal_contango", Signal.GREEN),
            (30.0, 31.0, "wide_contango", Signal.YELLOW),
        ],
    )
    def test_spread_bands(self, scorer, spot, futures, rule, signal):
        result = scorer.score(_spread(spot, futures))

        assert result.rule == rule
        assert result.signal == signal

    def test_extreme_reason_is_not_shadowed(self, scorer):
        result = scorer.score(_spread(32.5, 30.0))
        assert result.reason.startswith("EXTREME: Backwardation at $2.50")


class TestShanghaiPremiumScorer:

    @pytest.fixture
    def scorer(self):
        return ShanghaiPremiumScorer()

    @pytest.mark.parametrize(
        "sge,rule,signal",
        [
            (33.6, "structural_disconnect", Signal.RED),
            (31.8, "supply_tightness", Signal.RED),
            (30.9, "elevated_demand", Signal.YELLOW),
            (29.1, "discount", Signal.YELLOW),
            (30.3, "normal", Signal.GREEN),
        ],
    )
    def test_premium_bands(self, scorer, sge, rule, signal):
        obs = make_observation(
            IndicatorId.SHANGHAI_PREMIUM,
            0.0,
            raw={"sge_price": sge, "comex_spot_price": 30.0},
        )
        result = scorer.score(obs)

        assert result.rule == rule
        assert result.signal == signal


# ============================================================
# ROLL PATTERNS (#8)
# ============================================================


def _roll(direction, days_to_fnd, front_oi=5_000, front_change=-2_000):
    return make_observation(
        IndicatorId.ROLL_PATTERNS,
        front_oi,
        raw={
            "front_month": "MAR 26",
            "next_month": "MAY 26",
            "front_month_oi": front_oi,
            "next_month_oi": 140_000,
            "front_month_change": front_change,
            "next_month_change": -front_change,
            "roll_direction": direction,
            "days_to_fnd": days_to_fnd,
        },
    )


class TestRollPatternScorer:

    @pytest.fixture
    def scorer(self):
        return RollPatternScorer()

    def test_backward_roll_is_red(self, scorer):
        result = scorer.score(_roll("backward", 40, front_change=3_000))

        assert result.signal == Signal.RED
        assert "+3,000" in result.reason

    def test_heavy_oi_near_fnd_is_red(self, scorer):
        result = scorer.score(_roll("forward", 3, front_oi=15_000))
        assert result.rule == "held_into_fnd"

    def test_slow_roll_is_yellow(self, scorer):
        result = scorer.score(_roll("forward", 8, front_change=-500))

        assert result.signal == Signal.YELLOW
        assert result.rule == "slow_roll"

    def test_forward_roll_is_green(self, scorer):
        result = scorer.score(_roll("forward", 57))

        assert result.signal == Signal.GREEN
        assert "MAY 26 up 2,000" in result.reason

    def test_neutral_roll_is_green(self, scorer):
        result = scorer.score(_roll("neutral", 40))

        assert result.signal == Signal.GREEN
        assert result.reason.startswith("NEUTRAL")


# ============================================================
# DERIVED: LEASE RATE (#9) / FND RATIO (#11)
# ============================================================


class TestLeaseRateScorer:

    @pytest.fixture
    def scorer(self):
        return LeaseRateScorer()

    def test_contango_is_green(self, scorer):
        result = scorer.score(_spread(30.0, 30.25))

        assert result.signal == Signal.GREEN
        assert result.rule == "no_backwardation"

    @pytest.mark.parametrize(
        "spot,futures,days,rule",
        [
            (31.0, 30.0, 5, "crisis"),
            (30.5, 30.0, 30, "acute_scarcity"),
            (30.1, 30.0, 30, "elevated"),
            (25.25, 25.0, 365, "normal"),
        ],
    )
    def test_rate_bands(self, scorer, spot, futures, days, rule):
        assert scorer.score(_spread(spot, futures, days)).rule == rule

    def test_missing_backwardation_names_dependency(self, scorer):
        result = scorer.score(None)

        assert result.signal == Signal.ERROR
        assert result.rule == "missing_dependency"
        assert "Backwardation / Contango Spread (indicator 7)" in result.reason
        assert result.metrics["dependency_id"] == 7

    def test_fallback_backwardation_is_error(self, scorer):
        fallback = make_observation(
            IndicatorId.BACKWARDATION,
            0.5,
            raw={"spot_price": 30.5, "futures_price": 30.0},
            is_fallback=True,
        )
        result = scorer.score(fallback)

        assert result.signal == Signal.ERROR
        assert "fallback" in result.reason


def _open_interest(front_oi):
    return make_observation(
        IndicatorId.OPEN_INTEREST,
        150_000,
        raw={"total_oi": 150_000, "by_month": [{"month": "MAY 26", "oi": front_oi}]},
    )


def _registered(ounces):
    return make_observation(
        IndicatorId.VAULT_INVENTORY,
        ounces,
        raw={"total_registered": ounces, "total_eligible": ounces},
    )


class TestFndRatioScorer:
    """Test delivery pressure against days to FND."""

    @pytest.fixture
    def scorer(self):
        return FndRatioScorer()

    def test_over_claimed_is_red(self, scorer):
        result = scorer.score(_open_interest(1_000), _registered(2_500_000), TODAY)

        assert result.signal == Signal.RED
        assert result.rule == "over_claimed"
        assert "5.0M oz vs 2.5M oz" in result.reason

    def test_high_ratio_close_to_fnd_is_red(self, scorer):
        result = scorer.score(_open_interest(400), _registered(2_500_000), date(2026, 4, 25))
        assert result.rule == "imminent_stress"

    def test_claims_building_is_yellow(self, scorer):
        result = scorer.score(_open_interest(200), _registered(2_500_000), date(2026, 4, 10))
        assert result.rule == "claims_building"

    def test_elevated_ratio_far_from_fnd_is_yellow(self, scorer):
        result = scorer.score(_open_interest(300), _registered(2_500_000), TODAY)
        assert result.rule == "elevated_ratio"

    def test_distant_fnd_is_green(self, scorer):
        result = scorer.score(_open_interest(100), _registered(2_500_000), TODAY)

        assert result.signal == Signal.GREEN
        assert "57 days to FND" in result.reason

    def test_low_ratio_near_fnd_is_green(self, scorer):
        result = scorer.score(_open_interest(100), _registered(2_500_000), date(2026, 4, 10))
        assert result.rule == "covered"

    def test_missing_vault_names_dependency(self, scorer):
        result = scorer.score(_open_interest(100), None, TODAY)

        assert result.signal == Signal.ERROR
        assert "indicator 2" in result.reason


# ============================================================
# VOLATILITY (#12)
# ============================================================


def _range_history(values, end=TODAY):
    """Daily range readings, values[0] being the day before `end`."""
    return ObservationHistory(
        make_observation(IndicatorId.CVOL, v, end - timedelta(days=k + 1))
        for k, v in enumerate(values)
    )


class TestVolatilityScorer:

    @pytest.fixture
    def scorer(self):
        return VolatilityScorer()

    def test_normal_range_from_ohlc(self, scorer):
        current = make_observation(
            IndicatorId.CVOL, 0.0, raw={"high": 30.5, "low": 30.0, "close": 30.2}
        )
        result = scorer.score(current)

        assert result.signal == Signal.GREEN
        assert result.rule == "normal"
        assert result.metrics["range_pct"] == pytest.approx(1.6556, abs=1e-3)

    def test_spike_vs_prior_day_is_red(self, scorer):
        current = make_observation(
            IndicatorId.CVOL, 0.0, raw={"high": 30.5, "low": 30.0, "close": 30.2}
        )
        result = scorer.score(current, _range_history([1.0]))

        assert result.signal == Signal.RED
        assert result.rule == "spike"

    def test_extreme_range_is_red(self, scorer):
        current = make_observation(
            IndicatorId.CVOL, 0.0, raw={"high": 33.6, "low": 30.0, "close": 30.0}
        )
        assert scorer.score(current).rule == "extreme_range"

    def test_above_average_is_yellow(self, scorer):
        history = _range_history([1.5] + [1.0] * 30)
        result = scorer.score(make_observation(IndicatorId.CVOL, 1.6), history)

        assert result.signal == Signal.YELLOW
        assert result.rule == "above_average"

    def test_below_average_is_green(self, scorer):
        history = _range_history([2.0] * 30)
        result = scorer.score(make_observation(IndicatorId.CVOL, 1.9), history)
        assert result.rule == "below_average"

    def test_average_needs_full_window(self, scorer):
        history = _range_history([6.0] * 29)
        result = scorer.score(make_observation(IndicatorId.CVOL, 6.1), history)

        assert result.metrics["average_pct"] is None
        assert result.rule == "elevated_range"
