"""
Signal Scoring - Roll Patterns Scorer (#8).

Tracks how front-month open interest rolls into the next
contract as First Notice Day approaches. Longs moving INTO
the front month, or heavy front-month OI days before FND,
signal intent to stand for delivery.
"""

from typing import Optional

from ..config import RollPatternConfig
from ..payloads import RollPatternPayload
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, yellow


class RollPatternScorer(BaseScorer):
    """Score the front-month roll pace."""

    def __init__(self, config: Optional[RollPatternConfig] = None) -> None:
        super().__init__(config or RollPatternConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.ROLL_PATTERNS

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "roll_patterns",
            [
                Rule(
                    "backward_roll",
                    lambda ctx: ctx["direction"] == "backward",
                    red(
                        "CRITICAL: Backward roll detected - longs moving INTO {front_month} "
                        "({front_change:+,.0f} contracts, {days_to_fnd} days to FND)"
                    ),
                ),
                Rule(
                    "held_into_fnd",
                    lambda ctx: ctx["days_to_fnd"] <= c.red_days_to_fnd
                    and ctx["front_oi"] > c.red_front_month_oi,
                    red(
                        "CRITICAL: {front_oi:,.0f} contracts still open in {front_month} "
                        "with {days_to_fnd} days to FND"
                    ),
                ),
                Rule(
                    "slow_roll",
                    lambda ctx: ctx["days_to_fnd"] <= c.slow_roll_days_to_fnd
                    and ctx["front_change"] > -c.slow_roll_min_decline,
                    yellow(
                        "WATCH: Slow roll - {front_month} OI only down {front_decline:,.0f} "
                        "with {days_to_fnd} days to FND"
                    ),
                ),
                Rule(
                    "forward_roll",
                    lambda ctx: ctx["direction"] == "forward",
                    green(
                        "BULLISH: Normal forward roll - {front_month} down {front_decline:,.0f}, "
                        "{next_month} up {next_change:,.0f}"
                    ),
                ),
                Rule(
                    "neutral",
                    always,
                    green(
                        "NEUTRAL: Roll pattern normal - {days_to_fnd} days to FND, "
                        "{front_oi:,.0f} OI in {front_month}"
                    ),
                ),
            ],
        )

    def score(self, current: Observation) -> ScoreResult:
        failure = self._check_current(current)
        if failure is not None:
            return failure

        roll = RollPatternPayload.from_raw(current)
        context: Context = {
            "direction": roll.roll_direction,
            "days_to_fnd": roll.days_to_fnd,
            "front_month": roll.front_month,
            "next_month": roll.next_month,
            "front_oi": roll.front_month_oi,
            "next_oi": roll.next_month_oi,
            "front_change": roll.front_month_change,
            "front_decline": abs(roll.front_month_change),
            "next_change": roll.next_month_change,
        }
        return self._evaluate(context)
