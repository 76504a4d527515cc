"""
Signal Scoring - Volatility Proxy Scorer (#12).

Daily high-low range as a percent of close stands in for
the exchange volatility index. The prior day's range drives
spike detection; the trailing average needs a full window
of prior points before it is used.
"""

from typing import List, Optional

from ..config import CvolConfig
from ..derived import compute_volatility_range
from ..history import ObservationHistory
from ..payloads import OhlcPayload
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, yellow


class VolatilityScorer(BaseScorer):
    """
    Score the daily range proxy.

    - RED: range spikes 30%+ vs the prior day, or exceeds 10%
    - YELLOW: range 1.5x the 30-day average, or above 5%
    - GREEN: below the 30-day average, or normal range
    """

    def __init__(self, config: Optional[CvolConfig] = None) -> None:
        super().__init__(config or CvolConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.CVOL

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "cvol",
            [
                Rule(
                    "spike",
                    lambda ctx: ctx["spike_pct"] is not None and ctx["spike_pct"] > c.spike_pct,
                    red(
                        "CRITICAL: Daily range spiked {spike_pct:.0f}% to {range_pct:.1f}% "
                        "(prior {prior_range_pct:.1f}%). Market pricing big moves."
                    ),
                ),
                Rule(
                    "extreme_range",
                    lambda ctx: ctx["range_pct"] > c.extreme_range_pct,
                    red(
                        "CRITICAL: Daily range at {range_pct:.1f}% of close. Extreme volatility "
                        "- institutional positioning likely."
                    ),
                ),
                Rule(
                    "above_average",
                    lambda ctx: ctx["average_pct"] is not None
                    and ctx["range_pct"] > ctx["average_pct"] * c.average_multiplier,
                    yellow(
                        "WATCH: Range at {range_pct:.1f}%, well above {window}-day average "
                        "({average_pct:.1f}%)."
                    ),
                ),
                Rule(
                    "below_average",
                    lambda ctx: ctx["average_pct"] is not None
                    and ctx["range_pct"] < ctx["average_pct"],
                    green(
                        "BULLISH: Range at {range_pct:.1f}%, below {window}-day average "
                        "({average_pct:.1f}%). Low volatility."
                    ),
                ),
                Rule(
                    "elevated_range",
                    lambda ctx: ctx["range_pct"] > c.elevated_range_pct,
                    yellow(
                        "WATCH: Daily range at {range_pct:.1f}%. Elevated volatility signals "
                        "active positioning."
                    ),
                ),
                Rule(
                    "normal",
                    always,
                    green("BULLISH: Daily range at {range_pct:.1f}%. Normal market volatility."),
                ),
            ],
        )

    def _prior_ranges(
        self,
        current: Observation,
        history: Optional[ObservationHistory],
    ) -> List[float]:
        """Prior usable range readings, most recent first."""
        if history is None:
            return []
        prior = history.before(current).successful().deduplicated()
        prior_values = [
            float(o.computed_value) for o in prior if o.data_date < current.data_date
        ]
        return list(reversed(prior_values))

    def score(
        self,
        current: Observation,
        history: Optional[ObservationHistory] = None,
    ) -> ScoreResult:
        """
        Score the volatility proxy.

        Args:
            current: Latest observation; raw high/low/close when
                present, otherwise computed_value is the range
            history: Recent range observations
        """
        failure = self._check_current(current)
        if failure is not None:
            return failure

        prior_ranges = self._prior_ranges(current, history)

        if current.raw("high") is not None:
            ohlc = OhlcPayload.from_raw(current)
            data = compute_volatility_range(
                ohlc.high, ohlc.low, ohlc.close, prior_ranges, self.config.average_window
            )
            range_pct = data.range_percent
            prior = data.prior_range_percent
            average = data.average_range_percent
        else:
            range_pct = float(current.computed_value)
            prior = prior_ranges[0] if prior_ranges else None
            window = self.config.average_window
            average = (
                sum(prior_ranges[:window]) / window if len(prior_ranges) >= window else None
            )

        spike = None
        if prior is not None and prior > 0:
            spike = (range_pct - prior) / prior * 100.0

        context: Context = {
            "range_pct": range_pct,
            "prior_range_pct": prior,
            "spike_pct": spike,
            "average_pct": average,
            "window": self.config.average_window,
            "prior_points": len(prior_ranges),
        }
        return self._evaluate(context)
