"""
Signal Scoring - Trend Calculator.

Week-over-week direction of an indicator's computed_value.
Pure numeric comparison; it knows nothing about whether up
is good or bad for a given indicator.
"""

from datetime import date
from typing import Optional

from .config import HistoryConfig
from .history import ObservationHistory
from .types import Observation, TrendDirection, TrendInfo


def calculate(current: float, prior: Optional[float]) -> TrendInfo:
    """
    Compare a current value with the prior week's.

    Returns:
        TrendInfo; FLAT with no change or prior when the prior
        is absent, and no change percent when the prior is 0
    """
    if prior is None:
        return TrendInfo(direction=TrendDirection.FLAT)

    if current > prior:
        direction = TrendDirection.UP
    elif current < prior:
        direction = TrendDirection.DOWN
    else:
        direction = TrendDirection.FLAT

    change = None
    if prior != 0:
        change = (current - prior) / abs(prior) * 100.0

    return TrendInfo(
        direction=direction,
        week_over_week_change_percent=change,
        prior_value=float(prior),
    )


class TrendCalculator:
    """Locates the prior-week reading in a history and compares."""

    def __init__(self, config: Optional[HistoryConfig] = None) -> None:
        self.config = config or HistoryConfig()

    def prior_for(
        self,
        history: ObservationHistory,
        as_of: date,
    ) -> Optional[Observation]:
        return history.prior_week(
            as_of,
            days=self.config.prior_week_days,
            tolerance_days=self.config.prior_week_tolerance_days,
        )

    def trend(
        self,
        current: Optional[Observation],
        history: ObservationHistory,
        as_of: date,
    ) -> TrendInfo:
        """
        Trend of `current` against the reading about a week
        before as_of, searched among older observations only.
        """
        if current is None or not current.is_usable:
            return TrendInfo(direction=TrendDirection.FLAT)

        older = ObservationHistory(
            o for o in history.before(current) if o.data_date < current.data_date
        )
        prior = self.prior_for(older, as_of)

        prior_value = float(prior.computed_value) if prior is not None else None
        return calculate(float(current.computed_value), prior_value)
