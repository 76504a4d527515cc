"""
Signal Scoring - Posture Synthesizer.

============================================================
PURPOSE
============================================================
Collapses the resolved indicator set into one market
posture. Rules are evaluated in order; the first match wins:

1. Fewer than 8 available readings   -> INSUFFICIENT_DATA
2. 4+ RED, or an override indicator
   (margin, FND ratio) is RED        -> SELL
3. 7+ GREEN and no RED               -> BUY
4. 3+ RED, or any RED with <5 GREEN  -> CAUTION
5. Otherwise                         -> NEUTRAL

============================================================
AVAILABILITY
============================================================
Only readings in SUCCESS display state are available and
counted. ERROR, AWAITING, STALE and NOT_APPLICABLE readings
are excluded from every tally, override detection included.

The override veto beats any tally: a RED margin signal
yields SELL even with eleven GREEN readings alongside it.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .config import PostureConfig
from .display import ResolvedIndicator
from .indicators import get_indicator_spec
from .rules import Rule, RuleTable, always
from .types import IndicatorId, Posture, PostureResult, Signal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostureTally:
    """Counts over the available readings of one pass."""

    available: int
    total: int
    green: int
    yellow: int
    red: int
    red_overrides: Tuple[IndicatorId, ...]


class PostureSynthesizer:
    """
    Synthesize overall posture from resolved indicators.

    Usage:
        synthesizer = PostureSynthesizer()
        result = synthesizer.synthesize(resolved_indicators)
    """

    def __init__(self, config: Optional[PostureConfig] = None) -> None:
        self.config = config or PostureConfig()
        self._table = self._build_table()

    @property
    def table(self) -> RuleTable:
        return self._table

    def _build_table(self) -> RuleTable:
        c = self.config
        return RuleTable(
            "posture",
            [
                Rule(
                    "insufficient_data",
                    lambda t: t.available < c.min_available,
                    lambda t: (
                        Posture.INSUFFICIENT_DATA,
                        f"Only {t.available} of {t.total} indicators have current readings; "
                        f"at least {c.min_available} are needed for a posture.",
                    ),
                ),
                Rule(
                    "override_veto",
                    lambda t: bool(t.red_overrides),
                    lambda t: (
                        Posture.SELL,
                        f"{_override_names(t.red_overrides)} flashing RED overrides the tally "
                        f"of {t.green} green, {t.yellow} yellow and {t.red} red indicators.",
                    ),
                ),
                Rule(
                    "red_majority",
                    lambda t: t.red >= c.sell_red_count,
                    lambda t: (
                        Posture.SELL,
                        f"{t.red} of {t.available} available indicators are RED "
                        f"(sell threshold {c.sell_red_count}).",
                    ),
                ),
                Rule(
                    "broad_green",
                    lambda t: t.green >= c.buy_green_count and t.red == 0,
                    lambda t: (
                        Posture.BUY,
                        f"{t.green} of {t.available} available indicators are GREEN "
                        f"with no RED signals.",
                    ),
                ),
                Rule(
                    "caution",
                    lambda t: t.red >= c.caution_red_count
                    or (t.red > 0 and t.green < c.caution_green_floor),
                    lambda t: (
                        Posture.CAUTION,
                        f"{t.red} RED against {t.green} GREEN of {t.available} available "
                        f"indicators warrants caution.",
                    ),
                ),
                Rule(
                    "neutral",
                    always,
                    lambda t: (
                        Posture.NEUTRAL,
                        f"Mixed readings: {t.green} green, {t.yellow} yellow, {t.red} red "
                        f"of {t.available} available indicators.",
                    ),
                ),
            ],
        )

    def tally(self, resolved: Iterable[ResolvedIndicator]) -> PostureTally:
        """Count available readings by signal."""
        available = [r for r in resolved if r.is_available]
        reds = [r for r in available if r.signal == Signal.RED]
        overrides = tuple(
            sorted(r.indicator_id for r in reds if r.indicator_id in self.config.override_indicators)
        )
        return PostureTally(
            available=len(available),
            total=self.config.total_indicators,
            green=sum(1 for r in available if r.signal == Signal.GREEN),
            yellow=sum(1 for r in available if r.signal == Signal.YELLOW),
            red=len(reds),
            red_overrides=overrides,
        )

    def synthesize(self, resolved: Iterable[ResolvedIndicator]) -> PostureResult:
        """
        Synthesize the posture for one pass.

        Args:
            resolved: Resolved indicators (any order)

        Returns:
            PostureResult with counts and a one-sentence reason
        """
        tally = self.tally(resolved)
        rule_name, (posture, reason) = self._table.evaluate(tally)

        logger.info(
            f"Posture {posture.value} via {rule_name} "
            f"({tally.available}/{tally.total} available, "
            f"{tally.green}G/{tally.yellow}Y/{tally.red}R)"
        )

        return PostureResult(
            posture=posture,
            reason=reason,
            available_count=tally.available,
            total_count=tally.total,
            green_count=tally.green,
            yellow_count=tally.yellow,
            red_count=tally.red,
            rule=rule_name,
            override_indicators=tally.red_overrides if rule_name == "override_veto" else (),
        )


def _override_names(indicator_ids: Tuple[IndicatorId, ...]) -> str:
    names = [get_indicator_spec(i).name for i in indicator_ids]
    if len(names) == 1:
        return names[0]
    return " and ".join(names)
