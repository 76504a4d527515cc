"""
Signal Scoring - Spread and Premium Scorers.

============================================================
INDICATORS
============================================================
#7 Backwardation: spot minus front-month futures (USD/oz).
   Positive = backwardation (physical shortage),
   negative = contango (normal cost of carry).
#10 Shanghai Premium: SGE price over COMEX spot (percent).

Dollar bands differ per metal; see get_gold_config().

============================================================
"""

from typing import Optional

from ..config import BackwardationConfig, ShanghaiPremiumConfig
from ..payloads import ShanghaiPremiumPayload, SpotPricePayload
from ..rules import Rule, RuleTable, always
from ..types import IndicatorId, Observation, ScoreResult
from .base import BaseScorer, Context, green, red, yellow


class BackwardationScorer(BaseScorer):
    """
    Score the spot / futures spread.

    The extreme rule precedes the ordinary RED rule so that
    spreads beyond the extreme threshold get the EXTREME
    reason instead of being shadowed.
    """

    def __init__(self, config: Optional[BackwardationConfig] = None) -> None:
        super().__init__(config or BackwardationConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.BACKWARDATION

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "backwardation",
            [
                Rule(
                    "extreme_backwardation",
                    lambda ctx: ctx["spread"] > c.extreme_spread,
                    red(
                        "EXTREME: Backwardation at ${spread:.2f}. Spot (${spot:.2f}) > futures "
                        "(${futures:.2f}) - historically extreme physical shortage."
                    ),
                ),
                Rule(
                    "backwardation",
                    lambda ctx: ctx["spread"] > c.red_spread,
                    red(
                        "CRITICAL: Backwardation at ${spread:.2f}. Spot (${spot:.2f}) > futures "
                        "(${futures:.2f}). Physical shortage signal."
                    ),
                ),
                Rule(
                    "mild_backwardation",
                    lambda ctx: ctx["spread"] > 0,
                    yellow(
                        "WATCH: Mild backwardation at ${spread:.2f}. "
                        "Physical demand elevated but not acute."
                    ),
                ),
                Rule(
                    "near_flat",
                    lambda ctx: ctx["spread"] > c.flat_floor,
                    yellow(
                        "WATCH: Near-flat spread at ${abs_spread:.2f}. Contango unusually tight."
                    ),
                ),
                Rule(
                    "normal_contango",
                    lambda ctx: ctx["spread"] >= c.wide_contango,
                    green(
                        "BULLISH: Normal contango at ${abs_spread:.2f}. "
                        "Cost of carry reflects storage/insurance."
                    ),
                ),
                Rule(
                    "wide_contango",
                    always,
                    yellow(
                        "WATCH: Wide contango at ${abs_spread:.2f}. May indicate elevated "
                        "storage costs or low near-term demand."
                    ),
                ),
            ],
        )

    def score(self, current: Observation) -> ScoreResult:
        failure = self._check_current(current)
        if failure is not None:
            return failure

        prices = SpotPricePayload.from_raw(current)
        context: Context = {
            "spread": prices.spread,
            "abs_spread": abs(prices.spread),
            "spot": prices.spot_price,
            "futures": prices.futures_price,
            "days_to_expiry": prices.days_to_expiry,
        }
        return self._evaluate(context)


class ShanghaiPremiumScorer(BaseScorer):
    """
    Score the Shanghai premium over COMEX.

    - RED: premium above 5% (above 10% = structural)
    - YELLOW: 2-5%, or a discount beyond -2%
    - GREEN: normal transaction and shipping costs
    """

    def __init__(self, config: Optional[ShanghaiPremiumConfig] = None) -> None:
        super().__init__(config or ShanghaiPremiumConfig())

    @property
    def indicator_id(self) -> IndicatorId:
        return IndicatorId.SHANGHAI_PREMIUM

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "shanghai_premium",
            [
                Rule(
                    "structural_disconnect",
                    lambda ctx: ctx["premium_pct"] > c.structural_pct,
                    red(
                        "CRITICAL: Shanghai premium at {premium_pct:.1f}% (${premium_dollars:.2f}/oz). "
                        "Structural paper-physical disconnect. Asian buyers paying ${sge:.2f} "
                        "vs COMEX ${comex:.2f}."
                    ),
                ),
                Rule(
                    "supply_tightness",
                    lambda ctx: ctx["premium_pct"] > c.red_pct,
                    red(
                        "CRITICAL: Shanghai premium at {premium_pct:.1f}%. Physical metal flowing "
                        "to Asia where buyers pay more. Supply tightness confirmed."
                    ),
                ),
                Rule(
                    "elevated_demand",
                    lambda ctx: ctx["premium_pct"] > c.yellow_pct,
                    yellow(
                        "WATCH: Shanghai premium at {premium_pct:.1f}%. Elevated Asian demand."
                    ),
                ),
                Rule(
                    "discount",
                    lambda ctx: ctx["premium_pct"] < c.discount_pct,
                    yellow(
                        "WATCH: Shanghai discount at {abs_premium_pct:.1f}%. "
                        "Metal flowing West. Unusual pattern."
                    ),
                ),
                Rule(
                    "normal",
                    always,
                    green(
                        "BULLISH: Shanghai premium at {premium_pct:.1f}%. Normal transaction and "
                        "shipping costs. No arbitrage pressure."
                    ),
                ),
            ],
        )

    def score(self, current: Observation) -> ScoreResult:
        failure = self._check_current(current)
        if failure is not None:
            return failure

        prices = ShanghaiPremiumPayload.from_raw(current)
        context: Context = {
            "premium_pct": prices.premium_percent,
            "abs_premium_pct": abs(prices.premium_percent),
            "premium_dollars": prices.premium_dollars,
            "sge": prices.sge_price,
            "comex": prices.comex_spot_price,
        }
        return self._evaluate(context)
