"""
Signal Scoring - Slam-Risk Checklist.

============================================================
PURPOSE
============================================================
Five boolean pre-slam checks, recomputed on every pass:

(a) Commercial short build: net short grew week-over-week
(b) Margin hike: margin signal RED, or margin level rose
(c) OI drop: open interest fell more than 5%
(d) Backwardation widening: spread above $0.50 and wider
    than the prior reading
(e) Low-liquidity window: a holiday-window key date within
    +/-3 days, or the evaluation date falls Fri-Sun

Three or more active checks = elevated risk. The count is a
pure aggregate; it never overrides the posture.

A check that needs a prior reading is inactive without one.

============================================================
"""

import logging
from datetime import date
from typing import Iterable, List, Mapping, Optional

from .config import SlamRiskConfig
from .types import IndicatorId, KeyDate, Observation, SlamRiskChecklist, SlamRiskItem, Signal


logger = logging.getLogger(__name__)


COMMERCIAL_SHORT_BUILD = "commercial_short_build"
MARGIN_HIKE = "margin_hike"
OI_DROP = "oi_drop"
BACKWARDATION_WIDENING = "backwardation_widening"
LOW_LIQUIDITY_WINDOW = "low_liquidity_window"

CHECKLIST_LABELS = {
    COMMERCIAL_SHORT_BUILD: "Commercial shorts building",
    MARGIN_HIKE: "Margin hike",
    OI_DROP: "Open interest dropping",
    BACKWARDATION_WIDENING: "Backwardation widening",
    LOW_LIQUIDITY_WINDOW: "Low-liquidity window",
}

_WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _value(observation: Optional[Observation]) -> Optional[float]:
    if observation is None or not observation.is_usable:
        return None
    return float(observation.computed_value)


class SlamRiskEvaluator:
    """
    Evaluate the pre-slam checklist.

    Usage:
        evaluator = SlamRiskEvaluator()
        checklist = evaluator.evaluate(current, prior, key_dates, as_of)
        if checklist.elevated:
            ...
    """

    def __init__(self, config: Optional[SlamRiskConfig] = None) -> None:
        self.config = config or SlamRiskConfig()

    def evaluate(
        self,
        current: Mapping[IndicatorId, Observation],
        prior: Mapping[IndicatorId, Observation],
        key_dates: Iterable[KeyDate],
        as_of: date,
    ) -> SlamRiskChecklist:
        """
        Evaluate all five checks.

        Args:
            current: Latest scored observation per indicator
            prior: Prior-week observation per indicator
            key_dates: Calendar events for the metal
            as_of: Evaluation date
        """
        items = (
            self.commercial_short_build(
                current.get(IndicatorId.COT_COMMERCIAL), prior.get(IndicatorId.COT_COMMERCIAL)
            ),
            self.margin_hike(
                current.get(IndicatorId.MARGIN_REQUIREMENTS),
                prior.get(IndicatorId.MARGIN_REQUIREMENTS),
            ),
            self.oi_drop(
                current.get(IndicatorId.OPEN_INTEREST), prior.get(IndicatorId.OPEN_INTEREST)
            ),
            self.backwardation_widening(
                current.get(IndicatorId.BACKWARDATION), prior.get(IndicatorId.BACKWARDATION)
            ),
            self.low_liquidity_window(key_dates, as_of),
        )
        checklist = SlamRiskChecklist(items=items, elevated_threshold=self.config.elevated_count)

        log = logger.warning if checklist.elevated else logger.info
        log(f"Slam risk: {checklist.active_count}/5 checks active")
        return checklist

    # --------------------------------------------------------
    # CHECKS
    # --------------------------------------------------------

    def commercial_short_build(
        self,
        current: Optional[Observation],
        prior: Optional[Observation],
    ) -> SlamRiskItem:
        now, before = _value(current), _value(prior)
        if now is None or before is None:
            return self._inactive(COMMERCIAL_SHORT_BUILD, "No prior week to compare")
        if now > before:
            return self._active(
                COMMERCIAL_SHORT_BUILD,
                f"Commercial net short up {now - before:,.0f} contracts to {now:,.0f}",
            )
        return self._inactive(
            COMMERCIAL_SHORT_BUILD, f"Commercial net short {now:,.0f} vs {before:,.0f} prior"
        )

    def margin_hike(
        self,
        current: Optional[Observation],
        prior: Optional[Observation],
    ) -> SlamRiskItem:
        now, before = _value(current), _value(prior)
        if now is not None and current.signal == Signal.RED:
            return self._active(MARGIN_HIKE, f"Margin signal RED at {now:.1f}%")
        if now is None or before is None:
            return self._inactive(MARGIN_HIKE, "No prior margin level to compare")
        if now > before:
            return self._active(MARGIN_HIKE, f"Margin raised from {before:.1f}% to {now:.1f}%")
        return self._inactive(MARGIN_HIKE, f"Margin unchanged at {now:.1f}%")

    def oi_drop(
        self,
        current: Optional[Observation],
        prior: Optional[Observation],
    ) -> SlamRiskItem:
        now, before = _value(current), _value(prior)
        if now is None or before is None or before <= 0:
            return self._inactive(OI_DROP, "No prior open interest to compare")
        change_pct = (now - before) / before * 100.0
        if change_pct < -self.config.oi_drop_pct:
            return self._active(OI_DROP, f"Open interest down {abs(change_pct):.1f}% week-over-week")
        return self._inactive(OI_DROP, f"Open interest change {change_pct:+.1f}%")

    def backwardation_widening(
        self,
        current: Optional[Observation],
        prior: Optional[Observation],
    ) -> SlamRiskItem:
        now, before = _value(current), _value(prior)
        if now is None or before is None:
            return self._inactive(BACKWARDATION_WIDENING, "No prior spread to compare")
        if now > self.config.spread_threshold and now > before:
            return self._active(
                BACKWARDATION_WIDENING,
                f"Backwardation widened from ${before:.2f} to ${now:.2f}",
            )
        return self._inactive(BACKWARDATION_WIDENING, f"Spread ${now:.2f} vs ${before:.2f} prior")

    def low_liquidity_window(self, key_dates: Iterable[KeyDate], as_of: date) -> SlamRiskItem:
        window = self.config.liquidity_window_days
        nearby: List[KeyDate] = [
            k
            for k in key_dates
            if k.active
            and k.event_type.is_low_liquidity
            and abs((k.event_date - as_of).days) <= window
        ]
        if nearby:
            names = ", ".join(k.event_name for k in sorted(nearby, key=lambda k: k.event_date))
            return self._active(LOW_LIQUIDITY_WINDOW, f"Within {window} days of {names}")
        if as_of.weekday() in self.config.weekend_weekdays:
            return self._active(
                LOW_LIQUIDITY_WINDOW, f"{_WEEKDAY_NAMES[as_of.weekday()]} weekend liquidity"
            )
        return self._inactive(LOW_LIQUIDITY_WINDOW, "No holiday or weekend window")

    @staticmethod
    def _active(item_id: str, reason: str) -> SlamRiskItem:
        return SlamRiskItem(item_id=item_id, label=CHECKLIST_LABELS[item_id], active=True, reason=reason)

    @staticmethod
    def _inactive(item_id: str, reason: str) -> SlamRiskItem:
        return SlamRiskItem(item_id=item_id, label=CHECKLIST_LABELS[item_id], active=False, reason=reason)
