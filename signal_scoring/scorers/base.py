"""
Signal Scoring - Base Scorer.

============================================================
PURPOSE
============================================================
Common machinery for the twelve per-indicator scorers.

Each scorer:
1. Builds a numeric context from its typed inputs
2. Runs its ordered RuleTable (first match wins)
3. Renders the matched Verdict's reason from the context

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: same input = same output
- No wall-clock reads; calendar-aware scorers take `as_of`
- Thresholds come from the indicator's config dataclass
- Every reason embeds the numbers that produced it

============================================================
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..rules import RuleTable
from ..types import IndicatorId, Observation, ScoreResult, Signal


logger = logging.getLogger(__name__)


Context = Dict[str, Any]


@dataclass(frozen=True)
class Verdict:
    """
    Outcome of one scoring rule.

    template is a str.format() pattern over the scoring
    context, e.g. "CRITICAL: OI dropped {drop_pct:.1f}%".
    """

    signal: Signal
    template: str
    not_applicable: bool = False

    def render(self, context: Context) -> str:
        return self.template.format(**context)


def red(template: str) -> Verdict:
    return Verdict(Signal.RED, template)


def yellow(template: str) -> Verdict:
    return Verdict(Signal.YELLOW, template)


def green(template: str) -> Verdict:
    return Verdict(Signal.GREEN, template)


def week_over_week_percent(current: float, prior: Optional[float]) -> Optional[float]:
    """(current - prior) / |prior| * 100; None without a usable prior."""
    if prior is None or prior == 0:
        return None
    return (current - prior) / abs(prior) * 100.0


def usable(observation: Optional[Observation]) -> Optional[Observation]:
    """The observation if it is a genuine successful reading, else None."""
    if observation is not None and observation.is_usable:
        return observation
    return None


class BaseScorer(ABC):
    """
    Abstract base class for indicator scorers.

    Subclasses declare their indicator and build their rule
    table from config in _build_table().
    """

    def __init__(self, config: Any) -> None:
        self.config = config
        self._table = self._build_table()

    @property
    @abstractmethod
    def indicator_id(self) -> IndicatorId:
        """Indicator this scorer handles."""
        pass

    @abstractmethod
    def _build_table(self) -> RuleTable:
        """Build the ordered rule table from config."""
        pass

    @property
    def table(self) -> RuleTable:
        return self._table

    def _evaluate(self, context: Context) -> ScoreResult:
        """Run the rule table and package the matched verdict."""
        rule_name, verdict = self._table.evaluate(context)
        result = ScoreResult(
            signal=verdict.signal,
            reason=verdict.render(context),
            rule=rule_name,
            metrics=self._metrics(context),
            not_applicable=verdict.not_applicable,
        )
        logger.debug(
            f"Indicator {int(self.indicator_id)} scored {result.signal.value} "
            f"via {rule_name}: {result.reason}"
        )
        return result

    @staticmethod
    def _metrics(context: Context) -> Dict[str, Any]:
        """Numeric context values, for audit and persistence."""
        metrics = {}
        for key, value in context.items():
            if isinstance(value, bool) or value is None:
                metrics[key] = value
            elif isinstance(value, (int, float)) and math.isfinite(value):
                metrics[key] = value
        return metrics

    def _check_current(self, current: Observation) -> Optional[ScoreResult]:
        """
        Validate the observation being scored.

        Returns an ERROR result for failed or fallback readings,
        None when the observation can be scored.
        """
        current.validate()
        if current.indicator_id != self.indicator_id:
            raise ValueError(
                f"Scorer for indicator {int(self.indicator_id)} "
                f"given indicator {int(current.indicator_id)}"
            )
        if not current.is_success:
            return ScoreResult.error(
                current.signal_reason
                or f"ERROR: {current.fetch_status.value} - {current.error_detail or 'fetch failed'}",
                rule="fetch_failed",
            )
        if current.is_fallback:
            return ScoreResult.error(
                f"ERROR: fallback value {current.computed_value:g} is not a genuine reading",
                rule="fallback_value",
            )
        return None
