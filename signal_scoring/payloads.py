"""
Signal Scoring - Typed Raw Payloads.

============================================================
PURPOSE
============================================================
Typed views over Observation.raw_value.

The fetch layer stores each source's parsed record as a
free-form mapping. Scorers never index that mapping
directly; they go through these dataclasses, whose
from_raw() constructors fail loudly on missing or
non-numeric fields.

============================================================
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional, Tuple

from .exceptions import MalformedObservationError
from .types import IndicatorId, Observation


# ============================================================
# FIELD HELPERS
# ============================================================


def require_number(raw: Mapping[str, Any], key: str, indicator_id: IndicatorId) -> float:
    if key not in raw or raw[key] is None:
        raise MalformedObservationError(
            f"raw_value is missing '{key}'",
            indicator_id=indicator_id,
            field_name=key,
        )
    return _coerce(raw[key], key, indicator_id)


def _optional_number(
    raw: Mapping[str, Any],
    key: str,
    indicator_id: IndicatorId,
) -> Optional[float]:
    if raw.get(key) is None:
        return None
    return _coerce(raw[key], key, indicator_id)


def _coerce(value: Any, key: str, indicator_id: IndicatorId) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedObservationError(
            f"'{key}' is not numeric",
            indicator_id=indicator_id,
            field_name=key,
            value=value,
        )
    if not math.isfinite(number):
        raise MalformedObservationError(
            f"'{key}' is not finite",
            indicator_id=indicator_id,
            field_name=key,
            value=value,
        )
    return number


def _optional_date(value: Any, key: str, indicator_id: IndicatorId) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise MalformedObservationError(
            f"'{key}' is not an ISO date",
            indicator_id=indicator_id,
            field_name=key,
            value=value,
        )


def _raw_of(observation: Observation) -> Mapping[str, Any]:
    return observation.raw_value or {}


def _rows(
    raw: Mapping[str, Any],
    key: str,
    indicator_id: IndicatorId,
) -> Tuple[Mapping[str, Any], ...]:
    """Nested records under `key`; every entry must be a mapping."""
    rows = raw.get(key) or ()
    if isinstance(rows, (str, bytes, Mapping)):
        rows = (rows,)
    for row in rows:
        if not isinstance(row, Mapping):
            raise MalformedObservationError(
                f"'{key}' entry is not a record",
                indicator_id=indicator_id,
                field_name=key,
                value=row,
            )
    return tuple(rows)


# ============================================================
# POSITIONING
# ============================================================


@dataclass(frozen=True)
class ContractMonthOI:
    month: str
    oi: float
    volume: float = 0.0


@dataclass(frozen=True)
class OpenInterestPayload:
    """Exchange open interest, total and per contract month."""

    total_oi: float
    by_month: Tuple[ContractMonthOI, ...] = ()

    @property
    def front_month_oi(self) -> float:
        """OI of the nearest listed month; 0 when unknown."""
        if not self.by_month:
            return 0.0
        return self.by_month[0].oi

    @classmethod
    def from_raw(cls, observation: Observation) -> "OpenInterestPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        months = []
        for row in _rows(raw, "by_month", indicator_id):
            months.append(
                ContractMonthOI(
                    month=str(row.get("month", "")),
                    oi=require_number(row, "oi", indicator_id),
                    volume=_optional_number(row, "volume", indicator_id) or 0.0,
                )
            )
        total = _optional_number(raw, "total_oi", indicator_id)
        if total is None:
            total = float(observation.computed_value)
        return cls(total_oi=total, by_month=tuple(months))


# ============================================================
# INVENTORY / DELIVERY
# ============================================================


@dataclass(frozen=True)
class VaultStocksPayload:
    """Registered and eligible vault ounces."""

    total_registered: float
    total_eligible: float

    @property
    def total_ounces(self) -> float:
        return self.total_registered + self.total_eligible

    @property
    def registered_ratio_pct(self) -> float:
        if self.total_ounces <= 0:
            return 0.0
        return self.total_registered / self.total_ounces * 100.0

    @classmethod
    def from_raw(cls, observation: Observation) -> "VaultStocksPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        return cls(
            total_registered=require_number(raw, "total_registered", indicator_id),
            total_eligible=require_number(raw, "total_eligible", indicator_id),
        )


@dataclass(frozen=True)
class DeliveryPayload:
    """Daily issues and stops for the active delivery month."""

    issues: float
    stops: float
    cumulative_issues: float = 0.0
    cumulative_stops: float = 0.0
    contract_month: str = ""

    @classmethod
    def from_raw(cls, observation: Observation) -> "DeliveryPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        return cls(
            issues=_optional_number(raw, "issues", indicator_id) or 0.0,
            stops=require_number(raw, "stops", indicator_id),
            cumulative_issues=_optional_number(raw, "cumulative_issues", indicator_id) or 0.0,
            cumulative_stops=_optional_number(raw, "cumulative_stops", indicator_id) or 0.0,
            contract_month=str(raw.get("contract_month", "")),
        )


@dataclass(frozen=True)
class RollPatternPayload:
    """Front-month vs next-month OI movement."""

    front_month: str
    next_month: str
    front_month_oi: float
    next_month_oi: float
    front_month_change: float
    next_month_change: float
    roll_direction: str
    days_to_fnd: int

    @classmethod
    def from_raw(cls, observation: Observation) -> "RollPatternPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        direction = str(raw.get("roll_direction", "neutral")).lower()
        if direction not in ("forward", "backward", "neutral"):
            raise MalformedObservationError(
                "unknown roll_direction",
                indicator_id=indicator_id,
                field_name="roll_direction",
                value=direction,
            )
        return cls(
            front_month=str(raw.get("front_month", "front month")),
            next_month=str(raw.get("next_month", "next month")),
            front_month_oi=require_number(raw, "front_month_oi", indicator_id),
            next_month_oi=_optional_number(raw, "next_month_oi", indicator_id) or 0.0,
            front_month_change=require_number(raw, "front_month_change", indicator_id),
            next_month_change=_optional_number(raw, "next_month_change", indicator_id) or 0.0,
            roll_direction=direction,
            days_to_fnd=int(require_number(raw, "days_to_fnd", indicator_id)),
        )


# ============================================================
# MARGIN
# ============================================================


@dataclass(frozen=True)
class MarginChange:
    """One announced margin change."""

    effective_date: date
    old_percent: float
    new_percent: float

    @property
    def change_percent(self) -> float:
        """Relative change, in percent of the old level."""
        if self.old_percent <= 0:
            return 0.0
        return (self.new_percent - self.old_percent) / self.old_percent * 100.0

    @property
    def is_hike(self) -> bool:
        return self.new_percent > self.old_percent


@dataclass(frozen=True)
class MarginPayload:
    """Initial margin as a percent of contract value, plus change log."""

    initial_margin_percent: float
    maintenance_margin_percent: Optional[float] = None
    last_change_date: Optional[date] = None
    recent_changes: Tuple[MarginChange, ...] = field(default_factory=tuple)

    @classmethod
    def from_raw(cls, observation: Observation) -> "MarginPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        changes = []
        for row in _rows(raw, "recent_changes", indicator_id):
            effective = _optional_date(row.get("effective_date"), "effective_date", indicator_id)
            if effective is None:
                raise MalformedObservationError(
                    "margin change without effective_date",
                    indicator_id=indicator_id,
                    field_name="effective_date",
                )
            changes.append(
                MarginChange(
                    effective_date=effective,
                    old_percent=require_number(row, "old_percent", indicator_id),
                    new_percent=require_number(row, "new_percent", indicator_id),
                )
            )
        initial = _optional_number(raw, "initial_margin_percent", indicator_id)
        if initial is None:
            initial = float(observation.computed_value)
        return cls(
            initial_margin_percent=initial,
            maintenance_margin_percent=_optional_number(
                raw, "maintenance_margin_percent", indicator_id
            ),
            last_change_date=_optional_date(
                raw.get("last_change_date"), "last_change_date", indicator_id
            ),
            recent_changes=tuple(sorted(changes, key=lambda c: c.effective_date)),
        )


# ============================================================
# PRICES
# ============================================================


@dataclass(frozen=True)
class SpotPricePayload:
    """Spot and front-month futures prices, USD/oz."""

    spot_price: float
    futures_price: float
    days_to_expiry: int = 30
    front_month_contract: str = ""

    @property
    def spread(self) -> float:
        """spot - futures; positive means backwardation."""
        return self.spot_price - self.futures_price

    @property
    def is_backwardation(self) -> bool:
        return self.spread > 0

    @classmethod
    def from_raw(cls, observation: Observation) -> "SpotPricePayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        days = _optional_number(raw, "days_to_expiry", indicator_id)
        return cls(
            spot_price=require_number(raw, "spot_price", indicator_id),
            futures_price=require_number(raw, "futures_price", indicator_id),
            days_to_expiry=int(days) if days is not None else 30,
            front_month_contract=str(raw.get("front_month_contract", "")),
        )


@dataclass(frozen=True)
class ShanghaiPremiumPayload:
    """SGE price vs COMEX spot, both USD/oz."""

    sge_price: float
    comex_spot_price: float

    @property
    def premium_dollars(self) -> float:
        return self.sge_price - self.comex_spot_price

    @property
    def premium_percent(self) -> float:
        if self.comex_spot_price <= 0:
            return 0.0
        return self.premium_dollars / self.comex_spot_price * 100.0

    @classmethod
    def from_raw(cls, observation: Observation) -> "ShanghaiPremiumPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        return cls(
            sge_price=require_number(raw, "sge_price", indicator_id),
            comex_spot_price=require_number(raw, "comex_spot_price", indicator_id),
        )


@dataclass(frozen=True)
class OhlcPayload:
    """Daily high / low / close used for the volatility proxy."""

    high: float
    low: float
    close: float

    @classmethod
    def from_raw(cls, observation: Observation) -> "OhlcPayload":
        raw = _raw_of(observation)
        indicator_id = observation.indicator_id
        payload = cls(
            high=require_number(raw, "high", indicator_id),
            low=require_number(raw, "low", indicator_id),
            close=require_number(raw, "close", indicator_id),
        )
        if payload.high < payload.low:
            raise MalformedObservationError(
                "high is below low",
                indicator_id=indicator_id,
                field_name="high",
                value=payload.high,
            )
        return payload
