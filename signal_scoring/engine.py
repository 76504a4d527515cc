"""
Signal Scoring Engine - Main Orchestrator.

============================================================
PURPOSE
============================================================
The SignalEngine is the main entry point for one evaluation
pass over one metal.

It orchestrates:
1. Input validation
2. Per-indicator scoring (deriving #9 and #11 from their
   upstream observations)
3. Trend calculation
4. Display-state resolution
5. Posture synthesis
6. Slam-risk checklist evaluation
7. Result packaging

============================================================
DESIGN PRINCIPLES
============================================================
- Orchestration only; all verdicts come from scorers
- Deterministic: the clock is EvaluationInput.as_of
- Failures are local to one indicator for one pass: they
  are logged, converted to ERROR, and the pass continues
- Read-only: history is never mutated; scoring returns new
  observations

============================================================
USAGE
============================================================
    from signal_scoring import SignalEngine, EvaluationInput

    engine = SignalEngine()

    inputs = EvaluationInput.from_provider(
        provider,
        metal=Metal.SILVER,
        as_of=datetime(2026, 3, 6, 22, 0, tzinfo=timezone.utc),
        key_dates=seed_key_dates(2026),
    )

    result = engine.evaluate(inputs)

    print(f"Posture: {result.posture.posture.value}")
    print(result.posture.reason)

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .calendar_dates import upcoming_key_dates
from .config import ScoringConfig, get_config_for_metal, get_default_config
from .derived import derive_fnd_ratio, derive_lease_rate
from .display import DisplayStateResolver, ResolvedIndicator
from .exceptions import MalformedObservationError, MissingDependencyError, SignalScoringError
from .history import HistoryProvider, InMemoryHistoryProvider, ObservationHistory
from .indicators import get_indicator_spec
from .payloads import VaultStocksPayload
from .posture import PostureSynthesizer
from .scorers import build_scorers, get_scorer
from .slam_risk import SlamRiskEvaluator
from .trend import TrendCalculator
from .types import (
    FetchStatus,
    IndicatorId,
    KeyDate,
    Metal,
    Observation,
    PostureResult,
    ScoreResult,
    Signal,
    SlamRiskChecklist,
)


logger = logging.getLogger(__name__)


DERIVED_INDICATORS = (IndicatorId.LEASE_RATES, IndicatorId.FND_RATIO)


# ============================================================
# INPUT
# ============================================================


@dataclass(frozen=True)
class EvaluationInput:
    """
    Everything one evaluation pass reads.

    histories: recent observations per indicator (the latest
        one is the reading being scored)
    baselines: multi-year percentile baselines for the COT
        indicators
    """

    metal: Metal
    as_of: datetime
    histories: Mapping[IndicatorId, ObservationHistory] = field(default_factory=dict)
    baselines: Mapping[IndicatorId, ObservationHistory] = field(default_factory=dict)
    key_dates: Tuple[KeyDate, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "metal", Metal.parse(self.metal))
        if self.as_of.tzinfo is None:
            object.__setattr__(self, "as_of", self.as_of.replace(tzinfo=timezone.utc))
        object.__setattr__(self, "key_dates", tuple(self.key_dates))

    @property
    def as_of_date(self) -> date:
        return self.as_of.date()

    def history(self, indicator_id: IndicatorId) -> ObservationHistory:
        return self.histories.get(IndicatorId(int(indicator_id)), ObservationHistory())

    def baseline(self, indicator_id: IndicatorId) -> ObservationHistory:
        return self.baselines.get(IndicatorId(int(indicator_id)), ObservationHistory())

    def latest(self, indicator_id: IndicatorId) -> Optional[Observation]:
        """Most recent reading on or before the evaluation date."""
        history = self.history(indicator_id)
        eligible = [o for o in history if o.data_date <= self.as_of_date]
        return eligible[-1] if eligible else None

    def validate(self) -> None:
        """
        Check that every history belongs to this metal and key.

        Raises:
            MalformedObservationError: On a misfiled observation
        """
        for indicator_id, history in list(self.histories.items()) + list(self.baselines.items()):
            for observation in history:
                if observation.indicator_id != indicator_id:
                    raise MalformedObservationError(
                        f"observation for indicator {int(observation.indicator_id)} "
                        f"filed under indicator {int(indicator_id)}",
                        indicator_id=indicator_id,
                    )
                if observation.metal != self.metal:
                    raise MalformedObservationError(
                        f"{observation.metal.value} observation in a {self.metal.value} pass",
                        indicator_id=indicator_id,
                        field_name="metal",
                        value=observation.metal.value,
                    )

    @classmethod
    def from_provider(
        cls,
        provider: HistoryProvider,
        metal: Metal,
        as_of: datetime,
        key_dates: Iterable[KeyDate] = (),
        config: Optional[ScoringConfig] = None,
    ) -> "EvaluationInput":
        """
        Read one pass's inputs through a HistoryProvider.

        Only observations dated on or before as_of are read.
        """
        config = config or get_default_config()
        metal = Metal.parse(metal)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        as_of_date = as_of.date()

        history_config = config.history
        lookback = max(
            history_config.volatility_lookback_days,
            history_config.prior_week_days + history_config.prior_week_tolerance_days,
        )

        histories = {}
        for indicator_id in IndicatorId.all_indicators():
            window = provider.last_days(indicator_id, metal, lookback, as_of_date)
            if not window:
                # Readings older than the window still count as current (and stale)
                latest = _latest_on_or_before(provider, indicator_id, metal, as_of_date)
                if latest is not None:
                    window = window.append(latest)
            histories[indicator_id] = window

        baselines = {
            indicator_id: provider.baseline(
                indicator_id, metal, history_config.baseline_years, as_of_date
            )
            for indicator_id in (IndicatorId.COT_SPECULATOR, IndicatorId.COT_COMMERCIAL)
        }

        return cls(
            metal=metal,
            as_of=as_of,
            histories=histories,
            baselines=baselines,
            key_dates=tuple(k for k in key_dates if Metal.parse(k.metal) == metal),
        )

    @classmethod
    def from_observations(
        cls,
        observations: Iterable[Observation],
        metal: Metal,
        as_of: datetime,
        key_dates: Iterable[KeyDate] = (),
        config: Optional[ScoringConfig] = None,
    ) -> "EvaluationInput":
        """Build inputs from a flat list of observations."""
        provider = InMemoryHistoryProvider(observations)
        return cls.from_provider(provider, metal, as_of, key_dates, config)


# ============================================================
# OUTPUT
# ============================================================


@dataclass(frozen=True)
class EvaluationResult:
    """
    Everything one pass produced.

    indicators hold the resolved display view; scores hold the
    raw scorer output (None for AWAITING indicators).
    """

    metal: Metal
    as_of: datetime
    indicators: Dict[IndicatorId, ResolvedIndicator]
    scores: Dict[IndicatorId, Optional[ScoreResult]]
    posture: PostureResult
    slam_risk: SlamRiskChecklist
    history_values: Dict[IndicatorId, List[float]] = field(default_factory=dict)
    key_dates: Tuple[KeyDate, ...] = ()
    errors: Tuple[Dict[str, Any], ...] = ()
    engine_version: str = ""

    def signal(self, indicator_id: IndicatorId) -> Optional[Signal]:
        return self.indicators[IndicatorId(int(indicator_id))].signal

    @property
    def derived_observations(self) -> List[Observation]:
        """New observations for the derived indicators, for persistence."""
        derived = []
        for indicator_id in DERIVED_INDICATORS:
            observation = self.indicators[indicator_id].observation
            if observation is not None:
                derived.append(observation)
        return derived

    def to_dict(self) -> Dict[str, Any]:
        """Persistence / API view of the pass."""
        indicators = []
        for indicator_id in IndicatorId.all_indicators():
            entry = self.indicators[indicator_id].to_dict()
            score = self.scores.get(indicator_id)
            entry["rule"] = score.rule if score else None
            entry["metrics"] = dict(score.metrics) if score else {}
            entry["not_applicable"] = score.not_applicable if score else False
            indicators.append(entry)

        return {
            "metal": self.metal.value,
            "as_of": self.as_of.isoformat(),
            "engine_version": self.engine_version,
            "indicators": indicators,
            "posture": self.posture.to_dict(),
            "slam_risk": self.slam_risk.to_dict(),
            "errors": list(self.errors),
        }

    def narration_context(self) -> Dict[str, Any]:
        """
        Context handed to the narrative generator.

        Reasons are passed through unmodified; history arrays
        are raw computed values, oldest first.
        """
        indicators = []
        for indicator_id in IndicatorId.all_indicators():
            resolved = self.indicators[indicator_id]
            indicators.append(
                {
                    "indicator_id": int(indicator_id),
                    "name": resolved.name,
                    "display_state": resolved.display_state.value,
                    "signal": resolved.signal.value if resolved.signal else None,
                    "signal_reason": resolved.reason,
                    "computed_value": resolved.observation.computed_value
                    if resolved.observation
                    else None,
                    "formatted_value": resolved.formatted_value,
                    "trend": resolved.trend.to_dict(),
                    "history": list(self.history_values.get(indicator_id, [])),
                }
            )

        return {
            "metal": self.metal.value,
            "as_of": self.as_of.isoformat(),
            "posture": self.posture.posture.value,
            "posture_reason": self.posture.reason,
            "indicators": indicators,
            "slam_risk": self.slam_risk.to_dict(),
            "upcoming_key_dates": [
                {
                    "event_date": k.event_date.isoformat(),
                    "event_name": k.event_name,
                    "event_type": k.event_type.value,
                }
                for k in upcoming_key_dates(list(self.key_dates), self.as_of.date())
            ],
        }


# ============================================================
# ENGINE
# ============================================================


class SignalEngine:
    """
    Main orchestrator for signal scoring.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Build the twelve scorers from configuration
    2. Score each indicator in isolation
    3. Derive lease rates and FND ratio from upstream readings
    4. Resolve display states and trends
    5. Synthesize posture and slam risk
    6. Package output

    ============================================================
    """

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        """
        Initialize the engine.

        Args:
            config: Scoring configuration. Uses silver defaults
                    if not provided.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = config or get_default_config()
        self.config.validate()

        self._scorers = build_scorers(self.config)
        self._resolver = DisplayStateResolver(self.config.display)
        self._trend = TrendCalculator(self.config.history)
        self._posture = PostureSynthesizer(self.config.posture)
        self._slam_risk = SlamRiskEvaluator(self.config.slam_risk)

    def evaluate(self, inputs: EvaluationInput) -> EvaluationResult:
        """
        Run one evaluation pass.

        Args:
            inputs: Histories, baselines, key dates and clock

        Returns:
            EvaluationResult with every indicator, the posture
            and the slam-risk checklist

        Raises:
            MalformedObservationError: If inputs are misfiled
        """
        # --------------------------------------------------
        # Step 1: Validate input
        # --------------------------------------------------
        if inputs.metal != self.config.metal:
            logger.warning(
                f"Evaluating {inputs.metal.value} with {self.config.metal.value} thresholds"
            )
        inputs.validate()

        # --------------------------------------------------
        # Step 2: Score every indicator
        # --------------------------------------------------
        scored: Dict[IndicatorId, Optional[Observation]] = {}
        priors: Dict[IndicatorId, Optional[Observation]] = {}
        scores: Dict[IndicatorId, Optional[ScoreResult]] = {}
        errors: List[Dict[str, Any]] = []

        for indicator_id in IndicatorId.all_indicators():
            try:
                current = self._current(indicator_id, inputs, scored)
            except Exception as e:
                logger.exception(f"Unexpected error deriving indicator {int(indicator_id)}")
                errors.append(_error_entry(indicator_id, e))
                result = ScoreResult.error(
                    f"ERROR: {type(e).__name__} - {e}", rule="derivation_failed"
                )
                failed = self._failed_reading(indicator_id, inputs, str(e))
                scores[indicator_id] = result
                scored[indicator_id] = failed.with_score(result)
                priors[indicator_id] = None
                continue

            prior = self._prior(indicator_id, current, inputs)
            priors[indicator_id] = prior

            if current is None:
                scored[indicator_id] = None
                scores[indicator_id] = None
                continue

            try:
                result = self._score(indicator_id, current, prior, inputs, scored)
            except SignalScoringError as e:
                logger.error(f"Scoring failed for indicator {int(indicator_id)}: {e}")
                errors.append(e.to_dict())
                result = ScoreResult.error(f"ERROR: {e.message}", rule="scoring_failed")
            except Exception as e:
                logger.exception(f"Unexpected error scoring indicator {int(indicator_id)}")
                errors.append(_error_entry(indicator_id, e))
                result = ScoreResult.error(
                    f"ERROR: {type(e).__name__} - {e}", rule="scoring_failed"
                )

            scores[indicator_id] = result
            scored[indicator_id] = current.with_score(result)

        # --------------------------------------------------
        # Step 3: Resolve display states and trends
        # --------------------------------------------------
        resolved: Dict[IndicatorId, ResolvedIndicator] = {}
        for indicator_id in IndicatorId.all_indicators():
            observation = scored[indicator_id]
            result = scores[indicator_id]
            trend = None
            if observation is not None:
                trend = self._trend.trend(
                    observation, inputs.history(indicator_id), observation.data_date
                )
            resolved[indicator_id] = self._resolver.resolve(
                indicator_id,
                observation,
                inputs.as_of,
                trend=trend,
                not_applicable=bool(result and result.not_applicable),
            )

        # --------------------------------------------------
        # Step 4: Posture and slam risk
        # --------------------------------------------------
        posture = self._posture.synthesize(resolved.values())
        slam_risk = self._slam_risk.evaluate(
            {k: v for k, v in scored.items() if v is not None},
            {k: v for k, v in priors.items() if v is not None},
            inputs.key_dates,
            inputs.as_of_date,
        )

        # --------------------------------------------------
        # Step 5: Build output
        # --------------------------------------------------
        history_values = {
            indicator_id: inputs.history(indicator_id).successful().deduplicated().values()
            for indicator_id in IndicatorId.all_indicators()
        }

        logger.info(
            f"Evaluated {inputs.metal.value} as of {inputs.as_of.isoformat()}: "
            f"posture {posture.posture.value}, "
            f"slam risk {slam_risk.active_count}/5, {len(errors)} errors"
        )

        return EvaluationResult(
            metal=inputs.metal,
            as_of=inputs.as_of,
            indicators=resolved,
            scores=scores,
            posture=posture,
            slam_risk=slam_risk,
            history_values=history_values,
            key_dates=inputs.key_dates,
            errors=tuple(errors),
            engine_version=self.config.engine_version,
        )

    # --------------------------------------------------------
    # PER-INDICATOR HELPERS
    # --------------------------------------------------------

    def _current(
        self,
        indicator_id: IndicatorId,
        inputs: EvaluationInput,
        scored: Dict[IndicatorId, Optional[Observation]],
    ) -> Optional[Observation]:
        """The observation to score; derived ones are built here."""
        if indicator_id == IndicatorId.LEASE_RATES:
            upstream = scored.get(IndicatorId.BACKWARDATION)
            try:
                return derive_lease_rate(upstream, upstream.fetched_at if upstream else inputs.as_of)
            except MissingDependencyError as e:
                return self._dependency_failure(indicator_id, e, inputs)
            except MalformedObservationError as e:
                return self._dependency_failure(indicator_id, _malformed_upstream(indicator_id, e), inputs)

        if indicator_id == IndicatorId.FND_RATIO:
            oi = scored.get(IndicatorId.OPEN_INTEREST)
            vault = scored.get(IndicatorId.VAULT_INVENTORY)
            fetched_at = min(
                (o.fetched_at for o in (oi, vault) if o is not None), default=inputs.as_of
            )
            try:
                return derive_fnd_ratio(
                    oi, vault, inputs.as_of_date, fetched_at, self.config.profile
                )
            except MissingDependencyError as e:
                return self._dependency_failure(indicator_id, e, inputs)
            except MalformedObservationError as e:
                return self._dependency_failure(indicator_id, _malformed_upstream(indicator_id, e), inputs)

        return inputs.latest(indicator_id)

    def _dependency_failure(
        self,
        indicator_id: IndicatorId,
        error: MissingDependencyError,
        inputs: EvaluationInput,
    ) -> Observation:
        logger.warning(str(error))
        scorer = get_scorer(self._scorers, indicator_id)
        result = scorer.dependency_error(error)
        failed = self._failed_reading(
            indicator_id,
            inputs,
            error.message,
            source_url=f"derived from {get_indicator_spec(error.dependency_id).name}",
        )
        return failed.with_score(result)

    @staticmethod
    def _failed_reading(
        indicator_id: IndicatorId,
        inputs: EvaluationInput,
        error_detail: str,
        source_url: Optional[str] = None,
    ) -> Observation:
        """Placeholder reading for a derived indicator that could not be built."""
        return Observation.failed(
            indicator_id=indicator_id,
            data_date=inputs.as_of_date,
            fetched_at=inputs.as_of,
            fetch_status=FetchStatus.ERROR,
            error_detail=error_detail,
            metal=inputs.metal,
            source_url=source_url,
        )

    def _prior(
        self,
        indicator_id: IndicatorId,
        current: Optional[Observation],
        inputs: EvaluationInput,
    ) -> Optional[Observation]:
        """Comparison reading: previous one for margin, prior week otherwise."""
        if current is None:
            return None
        history = inputs.history(indicator_id)
        older = ObservationHistory(
            o for o in history.before(current) if o.data_date < current.data_date
        )
        if indicator_id == IndicatorId.MARGIN_REQUIREMENTS:
            return older.successful().deduplicated().latest()
        return self._trend.prior_for(older, current.data_date)

    def _score(
        self,
        indicator_id: IndicatorId,
        current: Observation,
        prior: Optional[Observation],
        inputs: EvaluationInput,
        scored: Dict[IndicatorId, Optional[Observation]],
    ) -> ScoreResult:
        """Dispatch one indicator to its scorer."""
        scorer = get_scorer(self._scorers, indicator_id)
        as_of = inputs.as_of_date

        if indicator_id in DERIVED_INDICATORS:
            if current.signal == Signal.ERROR:
                # Dependency failure already scored in _current
                return ScoreResult.error(current.signal_reason, rule="missing_dependency")
            return scorer.score_observation(current)

        if indicator_id in (IndicatorId.OPEN_INTEREST, IndicatorId.VAULT_INVENTORY):
            return scorer.score(current, prior)

        if indicator_id == IndicatorId.DELIVERY_ACTIVITY:
            return scorer.score(current, self._registered_ounces(scored), as_of)

        if indicator_id in (IndicatorId.COT_SPECULATOR, IndicatorId.COT_COMMERCIAL):
            return scorer.score(current, prior, inputs.baseline(indicator_id))

        if indicator_id == IndicatorId.MARGIN_REQUIREMENTS:
            return scorer.score(current, prior, as_of)

        if indicator_id == IndicatorId.CVOL:
            return scorer.score(current, inputs.history(indicator_id))

        return scorer.score(current)

    @staticmethod
    def _registered_ounces(scored: Dict[IndicatorId, Optional[Observation]]) -> Optional[float]:
        vault = scored.get(IndicatorId.VAULT_INVENTORY)
        if vault is None or not vault.is_usable:
            return None
        return VaultStocksPayload.from_raw(vault).total_registered

    def get_config(self) -> ScoringConfig:
        """Return the current engine configuration."""
        return self.config


def _latest_on_or_before(
    provider: HistoryProvider,
    indicator_id: IndicatorId,
    metal: Metal,
    as_of: date,
) -> Optional[Observation]:
    latest = provider.latest(indicator_id, metal)
    if latest is None or latest.data_date <= as_of:
        return latest
    eligible = (o for o in provider.history(indicator_id, metal) if o.data_date <= as_of)
    return ObservationHistory(eligible).latest()


def _error_entry(indicator_id: IndicatorId, error: Exception) -> Dict[str, Any]:
    """Error record for an exception outside the SignalScoringError tree."""
    return {
        "error_type": type(error).__name__,
        "message": str(error),
        "indicator_id": int(indicator_id),
        "details": {},
    }


def _malformed_upstream(
    indicator_id: IndicatorId,
    error: MalformedObservationError,
) -> MissingDependencyError:
    """An unparseable upstream payload counts as a missing dependency."""
    return MissingDependencyError(indicator_id, error.indicator_id, error.message)


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def evaluate(
    provider: HistoryProvider,
    metal: Metal = Metal.SILVER,
    as_of: Optional[datetime] = None,
    key_dates: Iterable[KeyDate] = (),
    config: Optional[ScoringConfig] = None,
) -> EvaluationResult:
    """
    One-shot evaluation through a HistoryProvider.

    as_of is required in practice; it defaults to the current
    UTC time only for interactive use.
    """
    if as_of is None:
        as_of = datetime.now(timezone.utc)
    config = config or get_config_for_metal(metal)
    engine = SignalEngine(config)
    inputs = EvaluationInput.from_provider(provider, metal, as_of, key_dates, config)
    return engine.evaluate(inputs)
