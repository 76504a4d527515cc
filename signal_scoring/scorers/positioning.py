"""
Signal Scoring - Positioning Scorers.

============================================================
INDICATORS
============================================================
#1 Open Interest: week-over-week change in total OI
#4 COT Speculator Net: percentile of net long in baseline
#5 COT Commercial Net Short: percentile of net short

============================================================
PERCENTILE BOOTSTRAPPING
============================================================
The COT scorers rank the current value within a multi-year
baseline. Below HistoryConfig.min_percentile_history points
the rank is not meaningful, so the scorers switch to an
absolute mode: only the week-over-week rule can fire RED,
everything else is YELLOW "insufficient history".

============================================================
"""

from typing import Optional

from ..config import CommercialConfig, HistoryConfig, OpenInterestConfig, SpeculatorConfig
from ..history import ObservationHistory
from ..percentile import has_sufficient_history, ordinal, percentile_rank
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, usable, week_over_week_percent, yellow


# ============================================================
# OPEN INTEREST (#1)
# ============================================================


class OpenInterestScorer(BaseScorer):
    """
    Score total open interest against the prior week.

    - RED: OI drops >10% in a week (forced liquidation)
    - YELLOW: OI drops 5-10%, or no prior week to compare
    - GREEN: OI stable or rising
    """

    def __init__(self, config: Optional[OpenInterestConfig] = None) -> None:
        super().__init__(config or OpenInterestConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.OPEN_INTEREST

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "open_interest",
            [
                Rule(
                    "insufficient_history",
                    lambda ctx: ctx["prior"] is None,
                    yellow("WATCH: OI at {current:,.0f} contracts - insufficient history for trend"),
                ),
                Rule(
                    "liquidation",
                    lambda ctx: ctx["change_pct"] < -c.red_drop_pct,
                    red(
                        "CRITICAL: OI dropped {drop_pct:.1f}% ({drop_contracts:,.0f} contracts) "
                        "- forced liquidation"
                    ),
                ),
                Rule(
                    "declining",
                    lambda ctx: ctx["change_pct"] < -c.yellow_drop_pct,
                    yellow(
                        "WATCH: OI down {drop_pct:.1f}% ({drop_contracts:,.0f} contracts) - monitoring"
                    ),
                ),
                Rule(
                    "healthy",
                    lambda ctx: ctx["change_pct"] >= 0,
                    green(
                        "BULLISH: OI at {current:,.0f} contracts (+{change_pct:.1f}%) "
                        "- healthy positioning"
                    ),
                ),
                Rule(
                    "softening",
                    always,
                    yellow("WATCH: OI at {current:,.0f} contracts ({change_pct:.1f}%)"),
                ),
            ],
        )

    def score(self, current: Observation, prior: Optional[Observation] = None) -> ScoreResult:
        """
        Score open interest.

        Args:
            current: Latest OI observation (computed_value = total OI)
            prior: Observation about one week earlier, if any
        """
        failure = self._check_current(current)
        if failure is not None:
            return failure

        value = float(current.computed_value)
        prior = usable(prior)
        context: Context = {"current": value, "prior": None, "change_pct": 0.0}

        if prior is not None:
            prior_value = float(prior.computed_value)
            change = value - prior_value
            change_pct = change / prior_value * 100.0 if prior_value > 0 else 0.0
            context.update(
                prior=prior_value,
                change=change,
                change_pct=change_pct,
                drop_pct=abs(change_pct),
                drop_contracts=abs(change),
            )

        return self._evaluate(context)


# ============================================================
# COT - PERCENTILE SCORERS
# ============================================================


class _PercentileScorer(BaseScorer):
    """Shared baseline handling for the two COT scorers."""

    def __init__(self, config, history_config: Optional[HistoryConfig] = None) -> None:
        self.history_config = history_config or HistoryConfig()
        super().__init__(config)

    def _baseline_context(
        self,
        current: Observation,
        prior: Optional[Observation],
        history: Optional[ObservationHistory],
    ) -> Context:
        value = float(current.computed_value)
        baseline = (history or ObservationHistory()).successful().deduplicated()
        values = [
            float(o.computed_value) for o in baseline if o.data_date != current.data_date
        ]
        sufficient = has_sufficient_history(
            len(values), self.history_config.min_percentile_history
        )
        percentile = percentile_rank(value, values)

        prior = usable(prior)
        prior_value = float(prior.computed_value) if prior is not None else None

        return {
            "current": value,
            "prior": prior_value,
            "percentile": percentile,
            "pct_label": ordinal(percentile),
            "history_points": len(values),
            "min_points": self.history_config.min_percentile_history,
            "sufficient_history": sufficient,
        }


class SpeculatorNetScorer(_PercentileScorer):
    """
    Score non-commercial (speculator) net long positioning.

    - RED: above 80th percentile, or drops >20% week-over-week
    - YELLOW: above 60th (crowded) or below 20th (washed out)
    - GREEN: 20th-60th percentile
    """

    def __init__(
        self,
        config: Optional[SpeculatorConfig] = None,
        history_config: Optional[HistoryConfig] = None,
    ) -> None:
        super().__init__(config or SpeculatorConfig(), history_config)

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.COT_SPECULATOR

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "cot_speculator",
            [
                Rule(
                    "extremely_crowded",
                    lambda ctx: ctx["sufficient_history"] and ctx["percentile"] > c.red_percentile,
                    red(
                        "CRITICAL: Speculator net long at {pct_label} percentile "
                        "({current:,.0f} contracts) - extremely crowded, vulnerable to slam"
                    ),
                ),
                Rule(
                    "liquidation",
                    lambda ctx: ctx["wow_change_pct"] is not None
                    and ctx["wow_change_pct"] < -c.red_wow_drop_pct,
                    red(
                        "CRITICAL: Speculator net long dropped {wow_drop_pct:.1f}% week-over-week "
                        "({current:,.0f} contracts) - forced liquidation"
                    ),
                ),
                Rule(
                    "insufficient_history",
                    lambda ctx: not ctx["sufficient_history"],
                    yellow(
                        "WATCH: Speculator net long at {current:,.0f} contracts - insufficient "
                        "history for percentile ({history_points} of {min_points} weeks)"
                    ),
                ),
                Rule(
                    "crowded",
                    lambda ctx: ctx["percentile"] > c.crowded_percentile,
                    yellow(
                        "WATCH: Speculator net long at {pct_label} percentile "
                        "({current:,.0f} contracts) - crowded positioning"
                    ),
                ),
                Rule(
                    "washed_out",
                    lambda ctx: ctx["percentile"] < c.washed_out_percentile,
                    yellow(
                        "WATCH: Speculator net long at {pct_label} percentile "
                        "({current:,.0f} contracts) - washed out"
                    ),
                ),
                Rule(
                    "healthy",
                    always,
                    green(
                        "BULLISH: Speculator net long at {pct_label} percentile "
                        "({current:,.0f} contracts) - healthy positioning"
                    ),
                ),
            ],
        )

    def score(
        self,
        current: Observation,
        prior: Optional[Observation] = None,
        history: Optional[ObservationHistory] = None,
    ) -> ScoreResult:
        """
        Score speculator net positioning.

        Args:
            current: Latest COT observation (computed_value = net long)
            prior: Prior week's observation, if any
            history: Baseline observations (typically 3 years)
        """
        failure = self._check_current(current)
        if failure is not None:
            return failure

        context = self._baseline_context(current, prior, history)
        wow = week_over_week_percent(context["current"], context["prior"])
        context["wow_change_pct"] = wow
        context["wow_drop_pct"] = abs(wow) if wow is not None else None

        return self._evaluate(context)


class CommercialNetShortScorer(_PercentileScorer):
    """
    Score commercial net short positioning.

    - RED: above 80th percentile, or shorts grow >10,000
      contracts week-over-week
    - YELLOW: 60th-80th percentile
    - GREEN: below 60th percentile
    """

    def __init__(
        self,
        config: Optional[CommercialConfig] = None,
        history_config: Optional[HistoryConfig] = None,
    ) -> None:
        super().__init__(config or CommercialConfig(), history_config)

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.COT_COMMERCIAL

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "cot_commercial",
            [
                Rule(
                    "maximum_short",
                    lambda ctx: ctx["sufficient_history"] and ctx["percentile"] > c.red_percentile,
                    red(
                        "CRITICAL: Commercial net short at {pct_label} percentile "
                        "({current:,.0f} contracts) - maximum slam ammunition"
                    ),
                ),
                Rule(
                    "short_build",
                    lambda ctx: ctx["wow_increase"] is not None
                    and ctx["wow_increase"] > c.red_wow_increase_contracts,
                    red(
                        "CRITICAL: Commercial shorts increased by {wow_increase:,.0f} contracts "
                        "week-over-week - aggressive short building"
                    ),
                ),
                Rule(
                    "insufficient_history",
                    lambda ctx: not ctx["sufficient_history"],
                    yellow(
                        "WATCH: Commercial net short at {current:,.0f} contracts - insufficient "
                        "history for percentile ({history_points} of {min_points} weeks)"
                    ),
                ),
                Rule(
                    "elevated",
                    lambda ctx: ctx["percentile"] > c.elevated_percentile,
                    yellow(
                        "WATCH: Commercial net short at {pct_label} percentile "
                        "({current:,.0f} contracts) - elevated"
                    ),
                ),
                Rule(
                    "low_slam_risk",
                    always,
                    green(
                        "BULLISH: Commercial net short at {pct_label} percentile "
                        "({current:,.0f} contracts) - low slam risk"
                    ),
                ),
            ],
        )

    def score(
        self,
        current: Observation,
        prior: Optional[Observation] = None,
        history: Optional[ObservationHistory] = None,
    ) -> ScoreResult:
        failure = self._check_current(current)
        if failure is not None:
            return failure

        context = self._baseline_context(current, prior, history)
        prior_value = context["prior"]
        context["wow_increase"] = (
            context["current"] - prior_value if prior_value is not None else None
        )

        return self._evaluate(context)
