"""
Signal Scoring - Observation History.

============================================================
PURPOSE
============================================================
Read-only, append-only views over stored observations.

ObservationHistory is an immutable, time-ordered sequence of
observations for ONE indicator and ONE metal. Appending
returns a new history; nothing is ever updated in place.

HistoryProvider is the accessor contract the persistence
layer implements. The scoring core reads history only
through it.

============================================================
ORDERING
============================================================
Observations are ordered by (data_date, fetched_at, id).
Duplicate data_date rows are tolerated; deduplicated()
keeps the most recent row per date (highest id, then
latest fetched_at).

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .types import IndicatorId, Metal, Observation


def _sort_key(observation: Observation) -> Tuple[date, object, int]:
    return (
        observation.data_date,
        observation.fetched_at,
        observation.id if observation.id is not None else -1,
    )


def shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


class ObservationHistory:
    """
    Immutable time-ordered sequence of observations.

    Usage:
        history = ObservationHistory(observations)
        latest = history.latest()
        prior = history.around(as_of - timedelta(days=7), tolerance_days=3)
    """

    def __init__(self, observations: Iterable[Observation] = ()) -> None:
        self._observations: Tuple[Observation, ...] = tuple(sorted(observations, key=_sort_key))

    def __len__(self) -> int:
        return len(self._observations)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self._observations)

    def __getitem__(self, index: int) -> Observation:
        return self._observations[index]

    def __bool__(self) -> bool:
        return bool(self._observations)

    def __repr__(self) -> str:
        return f"ObservationHistory({len(self)} observations)"

    @property
    def observations(self) -> Tuple[Observation, ...]:
        return self._observations

    def append(self, observation: Observation) -> "ObservationHistory":
        """Return a new history including the observation."""
        return ObservationHistory(self._observations + (observation,))

    # --------------------------------------------------------
    # VIEWS
    # --------------------------------------------------------

    def latest(self) -> Optional[Observation]:
        if not self._observations:
            return None
        return self._observations[-1]

    def latest_n(self, count: int) -> "ObservationHistory":
        """Most recent `count` observations, oldest first."""
        if count <= 0:
            return ObservationHistory()
        return ObservationHistory(self._observations[-count:])

    def last_days(self, days: int, as_of: date) -> "ObservationHistory":
        """Observations with as_of - days <= data_date <= as_of."""
        start = as_of - timedelta(days=days)
        return ObservationHistory(
            o for o in self._observations if start <= o.data_date <= as_of
        )

    def last_years(self, years: int, as_of: date) -> "ObservationHistory":
        start = shift_years(as_of, years)
        return ObservationHistory(
            o for o in self._observations if start <= o.data_date <= as_of
        )

    def before(self, observation: Observation) -> "ObservationHistory":
        """Observations strictly older than the given one."""
        key = _sort_key(observation)
        return ObservationHistory(o for o in self._observations if _sort_key(o) < key)

    def successful(self) -> "ObservationHistory":
        """Genuine successful readings only."""
        return ObservationHistory(o for o in self._observations if o.is_usable)

    def deduplicated(self) -> "ObservationHistory":
        """Keep the most recent row per data_date."""
        by_date: Dict[date, Observation] = {}
        for observation in self._observations:
            by_date[observation.data_date] = observation
        return ObservationHistory(by_date.values())

    def values(self) -> List[float]:
        return [float(o.computed_value) for o in self._observations]

    def around(self, target_date: date, tolerance_days: int = 3) -> Optional[Observation]:
        """
        Closest observation to target_date within +/- tolerance.

        Ties on distance resolve to the most recent observation.
        """
        best: Optional[Observation] = None
        best_distance: Optional[int] = None
        for observation in self._observations:
            distance = abs((observation.data_date - target_date).days)
            if distance > tolerance_days:
                continue
            # Ascending order, so "<=" lets the later one win ties
            if best_distance is None or distance <= best_distance:
                best = observation
                best_distance = distance
        return best

    def prior_week(
        self,
        as_of: date,
        days: int = 7,
        tolerance_days: int = 3,
    ) -> Optional[Observation]:
        """Usable observation closest to as_of - days."""
        return self.successful().deduplicated().around(
            as_of - timedelta(days=days), tolerance_days
        )


# ============================================================
# ACCESSOR CONTRACT
# ============================================================


class HistoryProvider(ABC):
    """
    Read-only history accessor contract.

    Implemented in-memory for tests and batch runs, and by the
    SQLAlchemy repository for stored snapshots.
    """

    @abstractmethod
    def history(self, indicator_id: IndicatorId, metal: Metal) -> ObservationHistory:
        """Full history for one indicator and metal."""

    def latest(self, indicator_id: IndicatorId, metal: Metal) -> Optional[Observation]:
        return self.history(indicator_id, metal).latest()

    def prior_week(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        as_of: date,
        days: int = 7,
        tolerance_days: int = 3,
    ) -> Optional[Observation]:
        return self.history(indicator_id, metal).prior_week(as_of, days, tolerance_days)

    def last_days(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        days: int,
        as_of: date,
    ) -> ObservationHistory:
        return self.history(indicator_id, metal).last_days(days, as_of)

    def baseline(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        years: int,
        as_of: date,
    ) -> ObservationHistory:
        """Deduplicated usable readings over the trailing `years`."""
        return self.history(indicator_id, metal).last_years(years, as_of).successful().deduplicated()


class InMemoryHistoryProvider(HistoryProvider):
    """
    HistoryProvider backed by in-memory histories.

    Usage:
        provider = InMemoryHistoryProvider()
        provider.add(observation)
        provider.latest(IndicatorId.OPEN_INTEREST, Metal.SILVER)
    """

    def __init__(self, observations: Iterable[Observation] = ()) -> None:
        self._histories: Dict[Tuple[IndicatorId, Metal], ObservationHistory] = {}
        for observation in observations:
            self.add(observation)

    def add(self, observation: Observation) -> None:
        key = (observation.indicator_id, observation.metal)
        self._histories[key] = self._histories.get(key, ObservationHistory()).append(observation)

    def extend(self, observations: Sequence[Observation]) -> None:
        for observation in observations:
            self.add(observation)

    def history(
        self,
        indicator_id: Union[IndicatorId, int],
        metal: Metal,
    ) -> ObservationHistory:
        key = (IndicatorId(int(indicator_id)), Metal.parse(metal))
        return self._histories.get(key, ObservationHistory())
