"""
Signal Scoring - Inventory Scorers.

#2 Vault Inventory: registered share of vault stocks and
   weekly registered drawdown.
#3 Delivery Activity: stops relative to registered stocks,
   active only during delivery months.
"""

from datetime import date
from typing import Optional

from ..calendar_dates import is_delivery_month
from ..config import DeliveryActivityConfig, MetalProfile, SILVER_PROFILE, VaultInventoryConfig
from ..indicators import format_ounces
from ..payloads import DeliveryPayload, VaultStocksPayload
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult, Signal
from .base import BaseScorer, Context, Verdict, green, red, usable, yellow


class VaultInventoryScorer(BaseScorer):
    """
    Score registered vs eligible vault stocks.

    The ratio rule needs no prior; the drawdown rules compare
    registered ounces with the prior week.
    """

    def __init__(self, config: Optional[VaultInventoryConfig] = None) -> None:
        super().__init__(config or VaultInventoryConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.VAULT_INVENTORY

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "vault_inventory",
            [
                Rule(
                    "critical_ratio",
                    lambda ctx: ctx["ratio_pct"] < c.red_ratio_pct,
                    red(
                        "CRITICAL: Registered at {ratio_pct:.1f}% of total ({registered_label}) "
                        "- delivery default risk"
                    ),
                ),
                Rule(
                    "rapid_drain",
                    lambda ctx: ctx["weekly_change"] < -c.red_weekly_drawdown_oz,
                    red(
                        "CRITICAL: Registered dropped {drawdown_label} this week "
                        "- accelerating drain"
                    ),
                ),
                Rule(
                    "low_ratio",
                    lambda ctx: ctx["ratio_pct"] < c.yellow_ratio_pct,
                    yellow(
                        "WATCH: Registered at {ratio_pct:.1f}% of total ({registered_label}) "
                        "- below comfort zone"
                    ),
                ),
                Rule(
                    "draining",
                    lambda ctx: ctx["weekly_change"] < -c.yellow_weekly_drawdown_oz,
                    yellow(
                        "WATCH: Registered declined {drawdown_label} this week "
                        "(now {registered_label})"
                    ),
                ),
                Rule(
                    "healthy",
                    always,
                    green(
                        "BULLISH: Registered at {ratio_pct:.1f}% of total ({registered_label}) "
                        "- healthy levels"
                    ),
                ),
            ],
        )

    def score(self, current: Observation, prior: Optional[Observation] = None) -> ScoreResult:
        failure = self._check_current(current)
        if failure is not None:
            return failure

        stocks = VaultStocksPayload.from_raw(current)
        prior = usable(prior)

        weekly_change = 0.0
        prior_registered = None
        if prior is not None:
            prior_registered = float(prior.raw("total_registered", prior.computed_value))
            weekly_change = stocks.total_registered - prior_registered

        context: Context = {
            "registered": stocks.total_registered,
            "eligible": stocks.total_eligible,
            "ratio_pct": stocks.registered_ratio_pct,
            "prior_registered": prior_registered,
            "weekly_change": weekly_change,
            "registered_label": format_ounces(stocks.total_registered),
            "drawdown_label": format_ounces(abs(weekly_change)),
        }
        return self._evaluate(context)


class DeliveryActivityScorer(BaseScorer):
    """
    Score issues & stops during delivery months.

    Outside a delivery month the indicator is not applicable:
    the result is GREEN with not_applicable set, and the
    display resolver keeps it out of posture tallies.
    """

    def __init__(
        self,
        config: Optional[DeliveryActivityConfig] = None,
        profile: Optional[MetalProfile] = None,
    ) -> None:
        self.profile = profile or SILVER_PROFILE
        super().__init__(config or DeliveryActivityConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.DELIVERY_ACTIVITY

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "delivery_activity",
            [
                Rule(
                    "not_delivery_month",
                    lambda ctx: not ctx["delivery_month"],
                    Verdict(
                        Signal.GREEN,
                        "INACTIVE: {month_name} is not a delivery month - issues & stops not active",
                        not_applicable=True,
                    ),
                ),
                Rule(
                    "registered_unknown",
                    lambda ctx: ctx["registered"] is None,
                    yellow(
                        "WATCH: {stops:,.0f} stops today but registered stocks unavailable "
                        "- cannot size delivery demand"
                    ),
                ),
                Rule(
                    "heavy_demand",
                    lambda ctx: ctx["stops_pct"] > c.red_stops_pct
                    or ctx["cumulative_pct"] > c.red_cumulative_pct,
                    red(
                        "CRITICAL: {stops:,.0f} stops today ({stops_pct:.1f}% of registered, "
                        "{cumulative_pct:.1f}% cumulative) - high delivery demand"
                    ),
                ),
                Rule(
                    "elevated_demand",
                    lambda ctx: ctx["stops_pct"] > c.yellow_stops_pct
                    or ctx["cumulative_pct"] > c.yellow_cumulative_pct,
                    yellow(
                        "WATCH: {stops:,.0f} stops today ({stops_pct:.1f}% of registered, "
                        "{cumulative_pct:.1f}% cumulative) - elevated demand"
                    ),
                ),
                Rule(
                    "normal_delivery",
                    always,
                    green(
                        "BULLISH: {stops:,.0f} stops today ({stops_pct:.1f}% of registered) "
                        "- normal delivery"
                    ),
                ),
            ],
        )

    def score(
        self,
        current: Observation,
        registered_ounces: Optional[float],
        as_of: date,
    ) -> ScoreResult:
        """
        Score delivery activity.

        Args:
            current: Latest delivery observation (computed_value = stops)
            registered_ounces: Registered vault ounces, None if unknown
            as_of: Evaluation date (decides delivery-month status)
        """
        failure = self._check_current(current)
        if failure is not None:
            return failure

        if not is_delivery_month(as_of, self.profile):
            return self._evaluate(
                {
                    "delivery_month": False,
                    "month_name": as_of.strftime("%B"),
                    "stops": float(current.computed_value),
                }
            )

        delivery = DeliveryPayload.from_raw(current)
        contract_oz = self.profile.contract_size_oz

        registered = None
        if registered_ounces is not None and registered_ounces > 0:
            registered = float(registered_ounces)

        stops_pct = 0.0
        cumulative_pct = 0.0
        if registered is not None:
            stops_pct = delivery.stops * contract_oz / registered * 100.0
            cumulative_pct = delivery.cumulative_stops * contract_oz / registered * 100.0

        context: Context = {
            "delivery_month": True,
            "month_name": as_of.strftime("%B"),
            "stops": delivery.stops,
            "issues": delivery.issues,
            "cumulative_stops": delivery.cumulative_stops,
            "registered": registered,
            "stops_pct": stops_pct,
            "cumulative_pct": cumulative_pct,
        }
        return self._evaluate(context)
