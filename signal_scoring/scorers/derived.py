"""
Signal Scoring - Derived Indicator Scorers.

============================================================
INDICATORS
============================================================
#9  Lease Rates: implied from the backwardation spread
#11 FND Ratio: delivery-month OI in ounces vs registered

Both read their upstream observations as explicit
parameters. A missing, failed or fallback-tagged upstream
yields an ERROR result naming the missing dependency; the
scorer never substitutes a default.

FND ratio is a posture override indicator: RED forces SELL.

============================================================
"""

from abc import abstractmethod
from datetime import date
from typing import Optional

from ..config import FndRatioConfig, LeaseRateConfig, MetalProfile, SILVER_PROFILE
from ..derived import derive_fnd_ratio, derive_lease_rate
from ..exceptions import MissingDependencyError
from ..indicators import get_indicator_spec
from ..payloads import require_number
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, yellow


class _DerivedScorer(BaseScorer):
    """Dependency error handling shared by derived scorers."""

    def dependency_error(self, error: MissingDependencyError) -> ScoreResult:
        dependency = get_indicator_spec(error.dependency_id)
        return ScoreResult.error(
            f"ERROR: requires {dependency.name} (indicator {int(error.dependency_id)}) "
            f"- {error.details.get('reason', 'unavailable')}",
            rule="missing_dependency",
            dependency_id=int(error.dependency_id),
        )

    @abstractmethod
    def score_observation(self, observation: Observation) -> ScoreResult:
        """Score an already-derived observation."""


class LeaseRateScorer(_DerivedScorer):
    """
    Score the implied lease rate.

    - RED: above 10% annualized (above 50% = crisis)
    - YELLOW: 2-10%
    - GREEN: below 2%, or no backwardation at all
    """

    def __init__(self, config: Optional[LeaseRateConfig] = None) -> None:
        super().__init__(config or LeaseRateConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.LEASE_RATES

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "lease_rates",
            [
                Rule(
                    "no_backwardation",
                    lambda ctx: ctx["spread"] <= 0,
                    green(
                        "BULLISH: No backwardation (spread ${spread:.2f}), implied lease rate ~0%. "
                        "Normal lending conditions."
                    ),
                ),
                Rule(
                    "crisis",
                    lambda ctx: ctx["rate"] > c.extreme_pct,
                    red(
                        "EXTREME: Implied lease rate at {rate:.0f}% annualized. "
                        "Crisis-level scarcity - holders hoarding metal."
                    ),
                ),
                Rule(
                    "acute_scarcity",
                    lambda ctx: ctx["rate"] > c.red_pct,
                    red(
                        "CRITICAL: Implied lease rate at {rate:.1f}%. "
                        "Acute scarcity - nobody lending physical metal."
                    ),
                ),
                Rule(
                    "elevated",
                    lambda ctx: ctx["rate"] > c.yellow_pct,
                    yellow(
                        "WATCH: Implied lease rate at {rate:.1f}%. Elevated borrowing costs "
                        "suggest tightening supply."
                    ),
                ),
                Rule(
                    "normal",
                    always,
                    green("BULLISH: Implied lease rate at {rate:.1f}%. Normal lending conditions."),
                ),
            ],
        )

    def score_observation(self, observation: Observation) -> ScoreResult:
        failure = self._check_current(observation)
        if failure is not None:
            return failure

        raw = observation.raw_value or {}
        context: Context = {
            "rate": float(observation.computed_value),
            "spread": require_number(raw, "spread", self.indicator_id),
            "spot": require_number(raw, "spot_price", self.indicator_id),
            "days_to_expiry": int(require_number(raw, "days_to_expiry", self.indicator_id)),
        }
        return self._evaluate(context)

    def score(self, backwardation: Optional[Observation]) -> ScoreResult:
        """
        Derive and score the lease rate.

        Args:
            backwardation: Latest backwardation observation
        """
        try:
            fetched_at = backwardation.fetched_at if backwardation is not None else None
            derived = derive_lease_rate(backwardation, fetched_at)
        except MissingDependencyError as e:
            return self.dependency_error(e)
        return self.score_observation(derived)


class FndRatioScorer(_DerivedScorer):
    """
    Score First Notice Day proximity and delivery pressure.

    - RED: ratio above 1.0 any time, or above 0.7 with fewer
      than 10 days to FND
    - YELLOW: ratio above 0.3 within 30 days, or above 0.5
    - GREEN: more than 30 days to FND, or low ratio
    """

    def __init__(
        self,
        config: Optional[FndRatioConfig] = None,
        profile: Optional[MetalProfile] = None,
    ) -> None:
        self.profile = profile or SILVER_PROFILE
        super().__init__(config or FndRatioConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.FND_RATIO

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "fnd_ratio",
            [
                Rule(
                    "over_claimed",
                    lambda ctx: ctx["ratio"] > c.critical_ratio,
                    red(
                        "CRITICAL: Delivery pressure ratio at {ratio:.2f}. OI claims "
                        "{claimed_moz:.1f}M oz vs {registered_moz:.1f}M oz registered. "
                        "Theoretical default territory."
                    ),
                ),
                Rule(
                    "imminent_stress",
                    lambda ctx: ctx["ratio"] > c.red_ratio
                    and ctx["days_to_fnd"] < c.red_days_to_fnd,
                    red(
                        "CRITICAL: Ratio {ratio:.2f} with only {days_to_fnd} days to FND. "
                        "High delivery stress imminent."
                    ),
                ),
                Rule(
                    "claims_building",
                    lambda ctx: ctx["ratio"] > c.watch_ratio
                    and ctx["days_to_fnd"] < c.watch_days_to_fnd,
                    yellow(
                        "WATCH: Ratio {ratio:.2f} with {days_to_fnd} days to FND. Delivery claims "
                        "building relative to registered stocks."
                    ),
                ),
                Rule(
                    "elevated_ratio",
                    lambda ctx: ctx["ratio"] > c.elevated_ratio,
                    yellow(
                        "WATCH: Ratio at {ratio:.2f}. Half of registered stocks claimed by "
                        "delivery-month OI."
                    ),
                ),
                Rule(
                    "distant_fnd",
                    lambda ctx: ctx["days_to_fnd"] > c.comfortable_days_to_fnd,
                    green(
                        "BULLISH: {days_to_fnd} days to FND, ratio at {ratio:.2f}. Plenty of "
                        "time for rolls or inventory adjustment."
                    ),
                ),
                Rule(
                    "covered",
                    always,
                    green(
                        "BULLISH: Ratio at {ratio:.2f}. Registered stocks adequately cover "
                        "delivery claims."
                    ),
                ),
            ],
        )

    def score_observation(self, observation: Observation) -> ScoreResult:
        failure = self._check_current(observation)
        if failure is not None:
            return failure

        raw = observation.raw_value or {}
        front_oi = require_number(raw, "front_month_oi", self.indicator_id)
        registered = require_number(raw, "registered_ounces", self.indicator_id)
        context: Context = {
            "ratio": float(observation.computed_value),
            "days_to_fnd": int(require_number(raw, "days_to_fnd", self.indicator_id)),
            "front_oi": front_oi,
            "claimed_moz": front_oi * self.profile.contract_size_oz / 1_000_000,
            "registered_moz": registered / 1_000_000,
        }
        return self._evaluate(context)

    def score(
        self,
        open_interest: Optional[Observation],
        vault: Optional[Observation],
        as_of: date,
    ) -> ScoreResult:
        """
        Derive and score the FND ratio.

        Args:
            open_interest: Latest open interest observation
            vault: Latest vault inventory observation
            as_of: Evaluation date (drives days to FND)
        """
        try:
            fetched_at = open_interest.fetched_at if open_interest is not None else None
            derived = derive_fnd_ratio(open_interest, vault, as_of, fetched_at, self.profile)
        except MissingDependencyError as e:
            return self.dependency_error(e)
        return self.score_observation(derived)
