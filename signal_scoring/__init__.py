"""
Signal Scoring - Package.

============================================================
PURPOSE
============================================================
Turns noisy precious-metals market observations into
per-indicator traffic-light signals, a synthesized market
posture, and a slam-risk early-warning checklist.

============================================================
WHAT IT IS
============================================================
- Deterministic, threshold-based rule tables per indicator
- Percentile ranking against a multi-year baseline
- Pure and idempotent: the clock is passed in as `as_of`
- Silver and gold tracked independently, same 12 indicators

============================================================
WHAT IT IS NOT
============================================================
- NOT a data fetcher or parser
- NOT a renderer or narrative generator
- NOT a real-time streaming evaluator

============================================================
POSTURE
============================================================
- INSUFFICIENT_DATA: fewer than 8 current readings
- SELL: 4+ RED, or margin / FND ratio RED (override veto)
- BUY: 7+ GREEN and no RED
- CAUTION: 3+ RED, or any RED with fewer than 5 GREEN
- NEUTRAL: otherwise

============================================================
USAGE
============================================================
    from datetime import datetime, timezone
    from signal_scoring import (
        EvaluationInput,
        InMemoryHistoryProvider,
        Metal,
        SignalEngine,
        seed_key_dates,
    )

    provider = InMemoryHistoryProvider(observations)
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

# Types
from .types import (
    # Enums
    IndicatorId,
    Metal,
    Signal,
    FetchStatus,
    DisplayState,
    Posture,
    TrendDirection,
    EventType,
    UpdateCadence,
    # Input types
    Observation,
    KeyDate,
    # Output types
    ScoreResult,
    TrendInfo,
    PostureResult,
    SlamRiskItem,
    SlamRiskChecklist,
)

# Exceptions
from .exceptions import (
    SignalScoringError,
    MalformedObservationError,
    MissingDependencyError,
    ScorerNotFoundError,
    ConfigurationError,
    PersistenceError,
)

# Configuration
from .config import (
    MetalProfile,
    SILVER_PROFILE,
    GOLD_PROFILE,
    ScoringConfig,
    get_default_config,
    get_silver_config,
    get_gold_config,
    get_config_for_metal,
    load_config,
)

# History and percentile
from .history import ObservationHistory, HistoryProvider, InMemoryHistoryProvider
from .percentile import percentile_rank, has_sufficient_history

# Calendar and derived calculators
from .calendar_dates import (
    first_notice_day,
    next_first_notice_day,
    days_to_next_fnd,
    contract_expiry,
    is_delivery_month,
    seed_key_dates,
    upcoming_key_dates,
)
from .derived import compute_lease_rate, compute_fnd_ratio, compute_volatility_range

# Rules and scorers
from .rules import Rule, RuleTable
from .scorers import build_scorers, get_scorer

# Aggregation
from .trend import TrendCalculator
from .display import DisplayStateResolver, ResolvedIndicator
from .posture import PostureSynthesizer
from .slam_risk import SlamRiskEvaluator

# Engine
from .engine import SignalEngine, EvaluationInput, EvaluationResult, evaluate


__all__ = [
    # Enums
    "IndicatorId",
    "Metal",
    "Signal",
    "FetchStatus",
    "DisplayState",
    "Posture",
    "TrendDirection",
    "EventType",
    "UpdateCadence",
    # Types
    "Observation",
    "KeyDate",
    "ScoreResult",
    "TrendInfo",
    "PostureResult",
    "SlamRiskItem",
    "SlamRiskChecklist",
    # Exceptions
    "SignalScoringError",
    "MalformedObservationError",
    "MissingDependencyError",
    "ScorerNotFoundError",
    "ConfigurationError",
    "PersistenceError",
    # Configuration
    "MetalProfile",
    "SILVER_PROFILE",
    "GOLD_PROFILE",
    "ScoringConfig",
    "get_default_config",
    "get_silver_config",
    "get_gold_config",
    "get_config_for_metal",
    "load_config",
    # History
    "ObservationHistory",
    "HistoryProvider",
    "InMemoryHistoryProvider",
    "percentile_rank",
    "has_sufficient_history",
    # Calendar / derived
    "first_notice_day",
    "next_first_notice_day",
    "days_to_next_fnd",
    "contract_expiry",
    "is_delivery_month",
    "seed_key_dates",
    "upcoming_key_dates",
    "compute_lease_rate",
    "compute_fnd_ratio",
    "compute_volatility_range",
    # Rules and scorers
    "Rule",
    "RuleTable",
    "build_scorers",
    "get_scorer",
    # Aggregation
    "TrendCalculator",
    "DisplayStateResolver",
    "ResolvedIndicator",
    "PostureSynthesizer",
    "SlamRiskEvaluator",
    # Engine
    "SignalEngine",
    "EvaluationInput",
    "EvaluationResult",
    "evaluate",
]


__version__ = "1.0.0"
