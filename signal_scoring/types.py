"""
Signal Scoring - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the signal scoring core.

This module defines the enums and dataclasses shared by
every scorer, the display-state resolver, the posture
synthesizer and the slam-risk checklist.

============================================================
DESIGN PRINCIPLES
============================================================
- Observations are immutable; scoring returns a NEW object
- Enums for every discrete state value
- Clear separation between input and output types
- No wall-clock reads: callers pass `as_of` explicitly

============================================================
INDICATORS
============================================================
Twelve indicators are tracked per metal:

 1. OPEN_INTEREST         7. BACKWARDATION
 2. VAULT_INVENTORY       8. ROLL_PATTERNS
 3. DELIVERY_ACTIVITY     9. LEASE_RATES (derived)
 4. COT_SPECULATOR       10. SHANGHAI_PREMIUM
 5. COT_COMMERCIAL       11. FND_RATIO (derived)
 6. MARGIN_REQUIREMENTS  12. CVOL

============================================================
"""

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import MalformedObservationError


# ============================================================
# ENUMS
# ============================================================


class IndicatorId(IntEnum):
    """The twelve tracked market indicators."""

    OPEN_INTEREST = 1
    VAULT_INVENTORY = 2
    DELIVERY_ACTIVITY = 3
    COT_SPECULATOR = 4
    COT_COMMERCIAL = 5
    MARGIN_REQUIREMENTS = 6
    BACKWARDATION = 7
    ROLL_PATTERNS = 8
    LEASE_RATES = 9
    SHANGHAI_PREMIUM = 10
    FND_RATIO = 11
    CVOL = 12

    @classmethod
    def all_indicators(cls) -> List["IndicatorId"]:
        """Return all indicators in evaluation order."""
        return sorted(cls, key=int)


class Metal(str, Enum):
    """Commodities tracked independently with the same 12 indicators."""

    SILVER = "silver"
    GOLD = "gold"

    @classmethod
    def parse(cls, value: Any) -> "Metal":
        """Parse a request value, defaulting to silver."""
        if isinstance(value, Metal):
            return value
        if isinstance(value, str) and value.strip().lower() == "gold":
            return cls.GOLD
        return cls.SILVER


class Signal(str, Enum):
    """
    Traffic-light verdict for one indicator.

    ERROR is a valid, displayable state; there is no
    "unknown" signal.
    """

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    ERROR = "error"


class FetchStatus(str, Enum):
    """Outcome of the external pull that produced an observation."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"


class DisplayState(str, Enum):
    """
    Presentation-layer classification, distinct from signal.

    Only SUCCESS readings count toward posture tallies.
    """

    SUCCESS = "success"
    ERROR = "error"
    AWAITING = "awaiting"
    STALE = "stale"
    NOT_APPLICABLE = "not_applicable"


class Posture(str, Enum):
    """Synthesized overall market recommendation."""

    BUY = "BUY"
    SELL = "SELL"
    CAUTION = "CAUTION"
    NEUTRAL = "NEUTRAL"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class TrendDirection(str, Enum):
    """Pure numeric direction of computed_value vs. the prior week."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class EventType(str, Enum):
    """Key calendar event categories."""

    FND = "FND"
    COT_RELEASE = "COT_RELEASE"
    CONTRACT_EXPIRY = "CONTRACT_EXPIRY"
    HOLIDAY_WINDOW = "HOLIDAY_WINDOW"
    OTHER = "OTHER"

    @property
    def is_low_liquidity(self) -> bool:
        return self == EventType.HOLIDAY_WINDOW


class UpdateCadence(str, Enum):
    """Expected update cadence of an indicator's source."""

    DAILY = "daily"
    WEEKLY = "weekly"
    EVENT_DRIVEN = "event_driven"

    @property
    def hours(self) -> float:
        """Nominal hours between updates."""
        # Event-driven sources are still checked daily
        return {"daily": 24.0, "weekly": 168.0, "event_driven": 24.0}[self.value]


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class Observation:
    """
    One measurement of one indicator at one point in time.

    ============================================================
    INVARIANTS
    ============================================================
    - Append-only: never mutated once written
    - signal is ERROR whenever fetch_status != SUCCESS
    - computed_value is finite on successful fetches
    - is_fallback marks values fabricated by the fetch layer;
      they are never scored as genuine readings

    ============================================================
    """

    indicator_id: IndicatorId
    data_date: date
    fetched_at: datetime
    computed_value: float
    raw_value: Mapping[str, Any] = field(default_factory=dict)
    fetch_status: FetchStatus = FetchStatus.SUCCESS
    metal: Metal = Metal.SILVER

    # Scorer output, persisted alongside the observation
    signal: Optional[Signal] = None
    signal_reason: Optional[str] = None

    # Persistence / audit metadata
    id: Optional[int] = None
    source_url: Optional[str] = None
    error_detail: Optional[str] = None
    is_fallback: bool = False

    def __post_init__(self) -> None:
        """Normalize enum fields and naive timestamps."""
        object.__setattr__(self, "indicator_id", IndicatorId(int(self.indicator_id)))
        object.__setattr__(self, "fetch_status", FetchStatus(self.fetch_status))
        object.__setattr__(self, "metal", Metal.parse(self.metal))
        if self.signal is not None:
            object.__setattr__(self, "signal", Signal(self.signal))
        if self.fetched_at.tzinfo is None:
            object.__setattr__(self, "fetched_at", self.fetched_at.replace(tzinfo=timezone.utc))
        if isinstance(self.data_date, datetime):
            object.__setattr__(self, "data_date", self.data_date.date())

    @classmethod
    def failed(
        cls,
        indicator_id: IndicatorId,
        data_date: date,
        fetched_at: datetime,
        fetch_status: FetchStatus,
        error_detail: str,
        metal: Metal = Metal.SILVER,
        source_url: Optional[str] = None,
    ) -> "Observation":
        """Build the observation recorded for a failed pull."""
        if fetch_status == FetchStatus.SUCCESS:
            raise MalformedObservationError(
                "failed observation cannot carry fetch_status=success",
                indicator_id=indicator_id,
            )
        return cls(
            indicator_id=indicator_id,
            data_date=data_date,
            fetched_at=fetched_at,
            computed_value=0.0,
            raw_value={},
            fetch_status=fetch_status,
            metal=metal,
            signal=Signal.ERROR,
            signal_reason=f"ERROR: {fetch_status.value} - {error_detail}",
            source_url=source_url,
            error_detail=error_detail,
        )

    @property
    def is_success(self) -> bool:
        return self.fetch_status == FetchStatus.SUCCESS

    @property
    def is_usable(self) -> bool:
        """Successful, genuine and not already marked as an error."""
        return self.is_success and not self.is_fallback and self.signal != Signal.ERROR

    def validate(self) -> None:
        """
        Fail fast on caller contract violations.

        Raises:
            MalformedObservationError: On NaN values or a
                fetch status that contradicts the signal
        """
        if self.is_success and not math.isfinite(float(self.computed_value)):
            raise MalformedObservationError(
                "computed_value is not finite",
                indicator_id=self.indicator_id,
                field_name="computed_value",
                value=self.computed_value,
            )
        if not self.is_success and self.signal not in (None, Signal.ERROR):
            raise MalformedObservationError(
                f"fetch_status={self.fetch_status.value} contradicts signal={self.signal.value}",
                indicator_id=self.indicator_id,
                field_name="signal",
                value=self.signal.value,
            )

    def with_score(self, result: "ScoreResult") -> "Observation":
        """Return a new observation carrying the scorer output."""
        if not self.is_success and result.signal != Signal.ERROR:
            raise MalformedObservationError(
                "non-error signal for a failed fetch",
                indicator_id=self.indicator_id,
                field_name="signal",
                value=result.signal.value,
            )
        return replace(self, signal=result.signal, signal_reason=result.reason)

    def raw(self, key: str, default: Any = None) -> Any:
        """Read one field from the raw payload."""
        return self.raw_value.get(key, default) if self.raw_value else default


@dataclass(frozen=True)
class KeyDate:
    """A market-critical calendar date (FND, expiry, holiday window)."""

    event_date: date
    event_name: str
    event_type: EventType
    description: str = ""
    active: bool = True
    metal: Metal = Metal.SILVER


# ============================================================
# OUTPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class ScoreResult:
    """
    Output of a single scorer.

    reason always embeds the concrete numbers behind the
    verdict; it is the system's only audit trail.
    """

    signal: Signal
    reason: str
    rule: str = ""
    metrics: Dict[str, Any] = field(default_factory=dict)
    not_applicable: bool = False

    def __post_init__(self) -> None:
        if not self.reason or not self.reason.strip():
            raise ValueError("ScoreResult.reason must be non-empty")

    @classmethod
    def error(cls, reason: str, rule: str = "error", **metrics: Any) -> "ScoreResult":
        return cls(signal=Signal.ERROR, reason=reason, rule=rule, metrics=dict(metrics))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal": self.signal.value,
            "signal_reason": self.reason,
            "rule": self.rule,
            "metrics": dict(self.metrics),
            "not_applicable": self.not_applicable,
        }


@dataclass(frozen=True)
class TrendInfo:
    """Week-over-week trend of computed_value."""

    direction: TrendDirection
    week_over_week_change_percent: Optional[float] = None
    prior_value: Optional[float] = None

    @property
    def has_prior(self) -> bool:
        return self.prior_value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "week_over_week_change_percent": self.week_over_week_change_percent,
            "prior_value": self.prior_value,
        }


@dataclass(frozen=True)
class PostureResult:
    """
    Synthesized market posture for one evaluation pass.

    Derived from the current resolved signal set; never
    persisted by the core.
    """

    posture: Posture
    reason: str
    available_count: int
    total_count: int
    green_count: int = 0
    yellow_count: int = 0
    red_count: int = 0
    rule: str = ""
    override_indicators: Tuple[IndicatorId, ...] = ()

    @property
    def is_override(self) -> bool:
        return bool(self.override_indicators)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "posture": self.posture.value,
            "posture_reason": self.reason,
            "available_count": self.available_count,
            "total_count": self.total_count,
            "green_count": self.green_count,
            "yellow_count": self.yellow_count,
            "red_count": self.red_count,
            "override_indicators": [int(i) for i in self.override_indicators],
        }


@dataclass(frozen=True)
class SlamRiskItem:
    """One named boolean pre-slam check."""

    item_id: str
    label: str
    active: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checklist_item_id": self.item_id,
            "label": self.label,
            "active": self.active,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SlamRiskChecklist:
    """The five pre-slam checks and their aggregate count."""

    items: Tuple[SlamRiskItem, ...]
    elevated_threshold: int = 3

    @property
    def active_count(self) -> int:
        return sum(1 for item in self.items if item.active)

    @property
    def elevated(self) -> bool:
        """Pure aggregate count, no veto logic."""
        return self.active_count >= self.elevated_threshold

    def get(self, item_id: str) -> Optional[SlamRiskItem]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "active_count": self.active_count,
            "elevated": self.elevated,
        }
