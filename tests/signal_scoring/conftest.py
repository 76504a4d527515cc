"""
Shared fixtures for signal scoring tests.

The baseline scenario is a silver evaluation on Wednesday
2026-03-04 (a delivery month, 57 days before the May FND)
in which every indicator reads GREEN.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from signal_scoring import (
    FetchStatus,
    IndicatorId,
    Metal,
    Observation,
)


AS_OF = datetime(2026, 3, 4, 22, 0, tzinfo=timezone.utc)
TODAY = AS_OF.date()
FETCHED = datetime(2026, 3, 4, 21, 0, tzinfo=timezone.utc)


def make_observation(
    indicator_id: IndicatorId,
    value: float,
    data_date: date = TODAY,
    fetched_at: Optional[datetime] = None,
    raw: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Observation:
    if fetched_at is None:
        fetched_at = datetime.combine(data_date, datetime.min.time(), tzinfo=timezone.utc) + timedelta(
            hours=21
        )
    return Observation(
        indicator_id=indicator_id,
        data_date=data_date,
        fetched_at=fetched_at,
        computed_value=value,
        raw_value=raw or {},
        **kwargs,
    )


def weekly_cot_series(
    indicator_id: IndicatorId,
    current_date: date,
    weeks: int = 30,
) -> List[Observation]:
    """
    `weeks` prior weekly readings ending one week before
    current_date; values are a permutation of 20,000-49,000
    with 31,000 one week back.
    """
    series = []
    for k in range(1, weeks + 1):
        value = 20_000 + ((k * 11) % 30) * 1_000
        series.append(make_observation(indicator_id, value, current_date - timedelta(days=7 * k)))
    return series


@pytest.fixture
def make_obs():
    """Observation factory."""
    return make_observation


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def healthy_observations() -> List[Observation]:
    """Current and prior readings that score GREEN on all 12 indicators."""
    prior_day = TODAY - timedelta(days=7)
    cot_date = date(2026, 3, 3)

    observations = [
        # 1 - OI up 3.4% week-over-week, small front month
        make_observation(
            IndicatorId.OPEN_INTEREST,
            150_000,
            TODAY,
            FETCHED,
            raw={
                "total_oi": 150_000,
                "by_month": [
                    {"month": "MAR 26", "oi": 500},
                    {"month": "MAY 26", "oi": 149_500},
                ],
            },
        ),
        make_observation(IndicatorId.OPEN_INTEREST, 145_000, prior_day, raw={"total_oi": 145_000}),
        # 2 - registered 45% of total, small weekly drawdown
        make_observation(
            IndicatorId.VAULT_INVENTORY,
            45_000_000,
            TODAY,
            FETCHED,
            raw={"total_registered": 45_000_000, "total_eligible": 55_000_000},
        ),
        make_observation(
            IndicatorId.VAULT_INVENTORY,
            45_200_000,
            prior_day,
            raw={"total_registered": 45_200_000, "total_eligible": 54_800_000},
        ),
        # 3 - light deliveries
        make_observation(
            IndicatorId.DELIVERY_ACTIVITY,
            50,
            TODAY,
            FETCHED,
            raw={"issues": 50, "stops": 50, "cumulative_stops": 500},
        ),
        # 4 / 5 - 50th percentile, modest weekly change
        make_observation(IndicatorId.COT_SPECULATOR, 35_000, cot_date, FETCHED),
        make_observation(IndicatorId.COT_COMMERCIAL, 35_000, cot_date, FETCHED),
        # 6 - stable margin
        make_observation(
            IndicatorId.MARGIN_REQUIREMENTS,
            10.0,
            TODAY,
            FETCHED,
            raw={
                "initial_margin_percent": 10.0,
                "last_change_date": "2025-12-01",
                "recent_changes": [],
            },
        ),
        make_observation(
            IndicatorId.MARGIN_REQUIREMENTS,
            10.0,
            TODAY - timedelta(days=1),
            raw={"initial_margin_percent": 10.0, "last_change_date": "2025-12-01"},
        ),
        # 7 - normal contango
        make_observation(
            IndicatorId.BACKWARDATION,
            -0.25,
            TODAY,
            FETCHED,
            raw={"spot_price": 30.00, "futures_price": 30.25, "days_to_expiry": 25},
        ),
        make_observation(
            IndicatorId.BACKWARDATION,
            -0.30,
            prior_day,
            raw={"spot_price": 29.80, "futures_price": 30.10, "days_to_expiry": 32},
        ),
        # 8 - forward roll, FND far off
        make_observation(
            IndicatorId.ROLL_PATTERNS,
            500,
            TODAY,
            FETCHED,
            raw={
                "front_month": "MAR 26",
                "next_month": "MAY 26",
                "front_month_oi": 500,
                "next_month_oi": 149_500,
                "front_month_change": -2_000,
                "next_month_change": 2_000,
                "roll_direction": "forward",
                "days_to_fnd": 57,
            },
        ),
        # 10 - 1% premium
        make_observation(
            IndicatorId.SHANGHAI_PREMIUM,
            1.0,
            TODAY,
            FETCHED,
            raw={"sge_price": 30.30, "comex_spot_price": 30.00},
        ),
        # 12 - quiet range
        make_observation(
            IndicatorId.CVOL,
            1.656,
            TODAY,
            FETCHED,
            raw={"high": 30.5, "low": 30.0, "close": 30.2},
        ),
        make_observation(IndicatorId.CVOL, 1.6, TODAY - timedelta(days=1)),
    ]

    observations.extend(weekly_cot_series(IndicatorId.COT_SPECULATOR, cot_date))
    observations.extend(weekly_cot_series(IndicatorId.COT_COMMERCIAL, cot_date))
    return observations


@pytest.fixture
def failed_observation():
    return Observation.failed(
        indicator_id=IndicatorId.OPEN_INTEREST,
        data_date=TODAY,
        fetched_at=FETCHED,
        fetch_status=FetchStatus.TIMEOUT,
        error_detail="CME request timed out",
        metal=Metal.SILVER,
    )
