"""
Signal Scoring - Derived Indicator Calculators.

============================================================
PURPOSE
============================================================
Pure calculators for the indicators that are computed from
other data instead of fetched:

- Lease rate (#9): from the backwardation spread
- FND ratio (#11): from front-month OI and registered stocks
- Volatility range (#12): from daily high / low / close

The derive_* helpers build the derived Observation from
explicitly passed upstream observations. An upstream that is
missing, failed, or fallback-tagged raises
MissingDependencyError; it is never silently replaced.

============================================================
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Sequence

from .calendar_dates import days_to_next_fnd, next_first_notice_day
from .config import MetalProfile, SILVER_PROFILE
from .exceptions import MissingDependencyError
from .payloads import OpenInterestPayload, SpotPricePayload, VaultStocksPayload
from .types import IndicatorId, Observation


logger = logging.getLogger(__name__)


# ============================================================
# RESULT TYPES
# ============================================================


@dataclass(frozen=True)
class LeaseRateData:
    implied_lease_rate: float
    spread: float
    spot_price: float
    days_to_expiry: int

    def to_raw(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FndRatioData:
    delivery_pressure_ratio: float
    front_month_oi: float
    registered_ounces: float
    days_to_fnd: int
    next_fnd_date: date
    front_month_contract: str = ""

    def to_raw(self) -> Dict[str, Any]:
        data = asdict(self)
        data["next_fnd_date"] = self.next_fnd_date.isoformat()
        return data


@dataclass(frozen=True)
class VolatilityRangeData:
    range_percent: float
    high: float
    low: float
    close: float
    prior_range_percent: Optional[float] = None
    average_range_percent: Optional[float] = None

    def to_raw(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# CALCULATORS
# ============================================================


def compute_lease_rate(spot_price: float, spread: float, days_to_expiry: int) -> LeaseRateData:
    """
    Annualized implied lease rate from backwardation.

    rate = spread / spot * 365 / max(days, 1) * 100, and 0
    when the market is not in backwardation.
    """
    safe_days = max(int(days_to_expiry), 1)
    safe_spot = max(spot_price, 0.01)

    rate = 0.0
    if spread > 0:
        rate = spread / safe_spot * (365 / safe_days) * 100.0

    return LeaseRateData(
        implied_lease_rate=rate,
        spread=spread,
        spot_price=spot_price,
        days_to_expiry=int(days_to_expiry),
    )


def compute_fnd_ratio(
    front_month_oi: float,
    registered_ounces: float,
    as_of: date,
    profile: MetalProfile = SILVER_PROFILE,
    front_month_contract: str = "",
) -> FndRatioData:
    """Delivery pressure = OI in ounces / registered ounces."""
    oi_ounces = front_month_oi * profile.contract_size_oz
    ratio = oi_ounces / max(registered_ounces, 1.0)

    return FndRatioData(
        delivery_pressure_ratio=ratio,
        front_month_oi=front_month_oi,
        registered_ounces=registered_ounces,
        days_to_fnd=days_to_next_fnd(as_of, profile),
        next_fnd_date=next_first_notice_day(as_of, profile),
        front_month_contract=front_month_contract,
    )


def compute_volatility_range(
    high: float,
    low: float,
    close: float,
    prior_ranges: Sequence[float] = (),
    average_window: int = 30,
) -> VolatilityRangeData:
    """
    Daily range as a percent of close.

    prior_ranges are most-recent-first; the average is only
    computed with at least `average_window` points.
    """
    safe_close = max(close, 0.01)
    range_percent = (high - low) / safe_close * 100.0

    prior = float(prior_ranges[0]) if prior_ranges else None
    average = None
    if len(prior_ranges) >= average_window:
        window = prior_ranges[:average_window]
        average = sum(float(r) for r in window) / average_window

    return VolatilityRangeData(
        range_percent=range_percent,
        high=high,
        low=low,
        close=close,
        prior_range_percent=prior,
        average_range_percent=average,
    )


# ============================================================
# DERIVED OBSERVATIONS
# ============================================================


def require_usable(
    indicator_id: IndicatorId,
    dependency_id: IndicatorId,
    observation: Optional[Observation],
) -> Observation:
    """Return the upstream observation or raise MissingDependencyError."""
    if observation is None:
        raise MissingDependencyError(indicator_id, dependency_id, "no observation")
    if observation.is_fallback:
        raise MissingDependencyError(indicator_id, dependency_id, "fallback value")
    if not observation.is_success:
        raise MissingDependencyError(
            indicator_id, dependency_id, f"fetch {observation.fetch_status.value}"
        )
    if not observation.is_usable:
        raise MissingDependencyError(indicator_id, dependency_id, "marked as error")
    return observation


def derive_lease_rate(
    backwardation: Optional[Observation],
    fetched_at: datetime,
) -> Observation:
    """Build the lease-rate observation from the backwardation reading."""
    upstream = require_usable(IndicatorId.LEASE_RATES, IndicatorId.BACKWARDATION, backwardation)
    prices = SpotPricePayload.from_raw(upstream)
    data = compute_lease_rate(prices.spot_price, prices.spread, prices.days_to_expiry)

    return Observation(
        indicator_id=IndicatorId.LEASE_RATES,
        data_date=upstream.data_date,
        fetched_at=fetched_at,
        computed_value=data.implied_lease_rate,
        raw_value=data.to_raw(),
        metal=upstream.metal,
        source_url="derived from backwardation",
    )


def derive_fnd_ratio(
    open_interest: Optional[Observation],
    vault: Optional[Observation],
    as_of: date,
    fetched_at: datetime,
    profile: MetalProfile = SILVER_PROFILE,
) -> Observation:
    """Build the FND-ratio observation from OI and vault readings."""
    oi_observation = require_usable(IndicatorId.FND_RATIO, IndicatorId.OPEN_INTEREST, open_interest)
    vault_observation = require_usable(IndicatorId.FND_RATIO, IndicatorId.VAULT_INVENTORY, vault)

    oi = OpenInterestPayload.from_raw(oi_observation)
    stocks = VaultStocksPayload.from_raw(vault_observation)

    # Without a per-month breakdown the total stands in for the front month
    front_oi = oi.front_month_oi if oi.by_month else oi.total_oi
    contract = oi.by_month[0].month if oi.by_month else ""

    data = compute_fnd_ratio(front_oi, stocks.total_registered, as_of, profile, contract)
    logger.debug(
        f"FND ratio {data.delivery_pressure_ratio:.2f} "
        f"({front_oi:,.0f} contracts vs {stocks.total_registered:,.0f} oz)"
    )

    return Observation(
        indicator_id=IndicatorId.FND_RATIO,
        data_date=max(oi_observation.data_date, vault_observation.data_date),
        fetched_at=fetched_at,
        computed_value=data.delivery_pressure_ratio,
        raw_value=data.to_raw(),
        metal=oi_observation.metal,
        source_url="derived from OI and vault data",
    )
