"""
Signal Scoring - Margin Requirements Scorer (#6).

============================================================
LOGIC
============================================================
- RED: two or more hikes within 14 days, or a single hike
  of 25%+ relative increase
- YELLOW: any margin change within 14 days, or a level
  more than 1.2x the historical median
- GREEN: stable for 30+ days, or no recent change recorded

A level increase against the prior observation that the
exchange change log does not explain counts as a hike
effective on the current data date.

Margin is one of the posture override indicators: a RED
margin signal forces SELL on its own.

============================================================
"""

from datetime import date, timedelta
from typing import List, Optional

from ..config import MarginConfig
from ..payloads import MarginChange, MarginPayload
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, usable, yellow


class MarginScorer(BaseScorer):
    """Score exchange margin levels and hike cadence."""

    def __init__(self, config: Optional[MarginConfig] = None) -> None:
        super().__init__(config or MarginConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.MARGIN_REQUIREMENTS

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "margin_requirements",
            [
                Rule(
                    "repeated_hikes",
                    lambda ctx: ctx["recent_hike_count"] >= c.red_hike_count,
                    red(
                        "CRITICAL: {recent_hike_count} margin hikes in past {window_days} days "
                        "(now {level:.1f}%). Escalating pressure on leveraged longs."
                    ),
                ),
                Rule(
                    "major_hike",
                    lambda ctx: ctx["largest_hike_pct"] >= c.red_single_hike_pct,
                    red(
                        "CRITICAL: Major margin hike of {largest_hike_pct:.0f}% "
                        "(now {level:.1f}%). Forced liquidation risk elevated."
                    ),
                ),
                Rule(
                    "recent_change",
                    lambda ctx: ctx["days_since_change"] is not None
                    and ctx["days_since_change"] <= c.hike_window_days,
                    yellow(
                        "WATCH: Margin change {days_since_change} days ago. "
                        "Current initial margin: {level:.1f}%."
                    ),
                ),
                Rule(
                    "above_median",
                    lambda ctx: ctx["level"] > c.historical_median_pct * c.median_multiplier,
                    yellow(
                        "WATCH: Margin at {level:.1f}%, above historical median "
                        "(~{median:.0f}%)."
                    ),
                ),
                Rule(
                    "stable",
                    lambda ctx: ctx["days_since_change"] is not None
                    and ctx["days_since_change"] > c.stable_days,
                    green(
                        "BULLISH: Margins stable at {level:.1f}% for {days_since_change} days. "
                        "No forced liquidation catalyst."
                    ),
                ),
                Rule(
                    "no_recent_change",
                    always,
                    green("BULLISH: Current margin {level:.1f}%. No recent changes detected."),
                ),
            ],
        )

    def _changes(
        self,
        payload: MarginPayload,
        current: Observation,
        prior: Optional[Observation],
    ) -> List[MarginChange]:
        """Recorded changes plus an implied hike from the prior level."""
        changes = list(payload.recent_changes)
        if prior is None:
            return changes

        prior_level = float(prior.raw("initial_margin_percent", prior.computed_value))
        if payload.initial_margin_percent <= prior_level:
            return changes

        explained = any(
            change.is_hike and prior.data_date < change.effective_date <= current.data_date
            for change in changes
        )
        if not explained:
            changes.append(
                MarginChange(
                    effective_date=current.data_date,
                    old_percent=prior_level,
                    new_percent=payload.initial_margin_percent,
                )
            )
        return changes

    def score(
        self,
        current: Observation,
        prior: Optional[Observation],
        as_of: date,
    ) -> ScoreResult:
        """
        Score margin requirements.

        Args:
            current: Latest margin observation
            prior: Previous margin observation, if any
            as_of: Evaluation date anchoring the 14/30 day windows
        """
        failure = self._check_current(current)
        if failure is not None:
            return failure

        payload = MarginPayload.from_raw(current)
        changes = self._changes(payload, current, usable(prior))

        window_start = as_of - timedelta(days=self.config.hike_window_days)
        recent_hikes = [
            c for c in changes if c.is_hike and window_start <= c.effective_date <= as_of
        ]

        last_change = payload.last_change_date
        change_dates = [c.effective_date for c in changes if c.effective_date <= as_of]
        if change_dates:
            latest = max(change_dates)
            last_change = max(last_change, latest) if last_change else latest

        context: Context = {
            "level": payload.initial_margin_percent,
            "median": self.config.historical_median_pct,
            "window_days": self.config.hike_window_days,
            "recent_hike_count": len(recent_hikes),
            "largest_hike_pct": max((c.change_percent for c in recent_hikes), default=0.0),
            "days_since_change": (as_of - last_change).days if last_change else None,
        }
        return self._evaluate(context)
