"""
Signal Scoring - Display-State Resolver.

============================================================
PURPOSE
============================================================
Classifies each indicator's latest observation into a
presentation state, distinct from its signal:

    no observation                    -> AWAITING
    fetch failed / ERROR / fallback   -> ERROR
    older than 2x its cadence         -> STALE
    outside its active window         -> NOT_APPLICABLE
    otherwise                         -> SUCCESS

Only SUCCESS readings count toward posture tallies.

============================================================
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import DisplayConfig
from .indicators import format_value, get_indicator_spec
from .types import DisplayState, IndicatorId, Observation, Signal, TrendDirection, TrendInfo


logger = logging.getLogger(__name__)


_LABEL_PATTERN = re.compile(r"^(\w+):")


def signal_label(signal: Optional[Signal], reason: Optional[str]) -> str:
    """First word of the reason ('CRITICAL', 'WATCH', ...)."""
    if signal is None:
        return ""
    if signal == Signal.ERROR:
        return "ERROR"
    match = _LABEL_PATTERN.match(reason or "")
    if match:
        return match.group(1)
    return signal.value.upper()


@dataclass(frozen=True)
class ResolvedIndicator:
    """One indicator as the presentation layer sees it."""

    indicator_id: IndicatorId
    display_state: DisplayState
    observation: Optional[Observation] = None
    signal: Optional[Signal] = None
    reason: Optional[str] = None
    trend: TrendInfo = field(default_factory=lambda: TrendInfo(TrendDirection.FLAT))
    formatted_value: str = ""
    signal_label: str = ""
    age_hours: Optional[float] = None

    @property
    def is_stale(self) -> bool:
        return self.display_state == DisplayState.STALE

    @property
    def is_available(self) -> bool:
        """Counts toward posture tallies."""
        return self.display_state == DisplayState.SUCCESS

    @property
    def name(self) -> str:
        return get_indicator_spec(self.indicator_id).name

    def to_dict(self) -> Dict[str, Any]:
        observation = self.observation
        return {
            "indicator_id": int(self.indicator_id),
            "name": self.name,
            "display_state": self.display_state.value,
            "signal": self.signal.value if self.signal else None,
            "signal_reason": self.reason,
            "signal_label": self.signal_label,
            "formatted_value": self.formatted_value,
            "computed_value": observation.computed_value if observation else None,
            "data_date": observation.data_date.isoformat() if observation else None,
            "fetched_at": observation.fetched_at.isoformat() if observation else None,
            "is_stale": self.is_stale,
            "trend": self.trend.to_dict(),
        }


class DisplayStateResolver:
    """
    Resolve display states against an explicit clock.

    Usage:
        resolver = DisplayStateResolver()
        resolved = resolver.resolve(IndicatorId.OPEN_INTEREST, observation, as_of=now)
    """

    def __init__(self, config: Optional[DisplayConfig] = None) -> None:
        self.config = config or DisplayConfig()

    def stale_after_hours(self, indicator_id: IndicatorId) -> float:
        return get_indicator_spec(indicator_id).cadence_hours * self.config.stale_multiplier

    def state_for(
        self,
        indicator_id: IndicatorId,
        observation: Optional[Observation],
        as_of: datetime,
        not_applicable: bool = False,
    ) -> DisplayState:
        """Classify one observation; see module docstring for order."""
        if observation is None:
            return DisplayState.AWAITING

        if (
            not observation.is_success
            or observation.signal == Signal.ERROR
            or observation.is_fallback
        ):
            return DisplayState.ERROR

        if self._age_hours(observation, as_of) > self.stale_after_hours(indicator_id):
            return DisplayState.STALE

        if not_applicable:
            return DisplayState.NOT_APPLICABLE

        return DisplayState.SUCCESS

    def resolve(
        self,
        indicator_id: IndicatorId,
        observation: Optional[Observation],
        as_of: datetime,
        trend: Optional[TrendInfo] = None,
        not_applicable: bool = False,
    ) -> ResolvedIndicator:
        indicator_id = IndicatorId(int(indicator_id))
        state = self.state_for(indicator_id, observation, as_of, not_applicable)

        if observation is None:
            return ResolvedIndicator(indicator_id=indicator_id, display_state=state)

        if state == DisplayState.ERROR and observation.signal != Signal.ERROR:
            signal = Signal.ERROR
            reason = self._error_reason(observation)
        else:
            signal = observation.signal
            reason = observation.signal_reason

        if state == DisplayState.STALE:
            logger.warning(
                f"Indicator {int(indicator_id)} is stale "
                f"({self._age_hours(observation, as_of):.0f}h since fetch)"
            )

        return ResolvedIndicator(
            indicator_id=indicator_id,
            display_state=state,
            observation=observation,
            signal=signal,
            reason=reason,
            trend=trend if trend is not None else TrendInfo(TrendDirection.FLAT),
            formatted_value=format_value(indicator_id, observation.computed_value)
            if observation.is_success
            else "",
            signal_label=signal_label(signal, reason),
            age_hours=self._age_hours(observation, as_of),
        )

    @staticmethod
    def _age_hours(observation: Observation, as_of: datetime) -> float:
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        return (as_of - observation.fetched_at).total_seconds() / 3600.0

    @staticmethod
    def _error_reason(observation: Observation) -> str:
        if observation.is_fallback:
            return f"ERROR: fallback value {observation.computed_value:g} - no genuine reading"
        if not observation.is_success:
            detail = observation.error_detail or "fetch failed"
            return f"ERROR: {observation.fetch_status.value} - {detail}"
        return observation.signal_reason or "ERROR: indicator could not be scored"
