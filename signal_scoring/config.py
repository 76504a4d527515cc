"""
Signal Scoring - Configuration.

============================================================
PURPOSE
============================================================
Defines all configuration dataclasses and threshold values
for the signal scoring core.

Every threshold used by a scorer, the posture synthesizer
or the slam-risk checklist lives here; scorers never carry
inline magic numbers.

============================================================
DESIGN PRINCIPLES
============================================================
- One immutable config dataclass per indicator
- Silver defaults; gold presets via get_gold_config()
- Overrides from environment variables or a YAML file
- Invalid configuration fails at startup, not mid-pass

============================================================
THRESHOLD PHILOSOPHY
============================================================
Each indicator has RED and YELLOW thresholds:
- Beyond RED threshold = RED
- Between YELLOW and RED = YELLOW
- Otherwise = GREEN

Rate-of-change thresholds can force RED independently of
the level band.

============================================================
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .types import IndicatorId, Metal


logger = logging.getLogger(__name__)


ENV_PREFIX = "SIGNAL_"


# ============================================================
# METAL PROFILE
# ============================================================


@dataclass(frozen=True)
class MetalProfile:
    """
    Contract and calendar facts for one metal.

    Delivery months are 1-indexed (1 = January).
    """

    metal: Metal = Metal.SILVER
    display_name: str = "Silver"
    contract_size_oz: int = 5000
    delivery_months: Tuple[int, ...] = (3, 5, 7, 9, 12)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metal": self.metal.value,
            "display_name": self.display_name,
            "contract_size_oz": self.contract_size_oz,
            "delivery_months": list(self.delivery_months),
        }


SILVER_PROFILE = MetalProfile()

GOLD_PROFILE = MetalProfile(
    metal=Metal.GOLD,
    display_name="Gold",
    contract_size_oz=100,
    delivery_months=(2, 4, 6, 8, 10, 12),
)


# ============================================================
# POSITIONING (OI / COT)
# ============================================================


@dataclass(frozen=True)
class OpenInterestConfig:
    """
    Open interest week-over-week change thresholds.

    - RED when OI drops more than 10% (forced liquidation)
    - YELLOW when OI drops 5-10%
    """

    red_drop_pct: float = 10.0
    yellow_drop_pct: float = 5.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SpeculatorConfig:
    """
    Speculator net-long percentile thresholds.

    Percentiles are ranked within the multi-year baseline.
    """

    red_percentile: float = 80.0
    crowded_percentile: float = 60.0
    washed_out_percentile: float = 20.0
    red_wow_drop_pct: float = 20.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CommercialConfig:
    """Commercial net-short percentile thresholds."""

    red_percentile: float = 80.0
    elevated_percentile: float = 60.0
    red_wow_increase_contracts: float = 10_000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# INVENTORY / DELIVERY
# ============================================================


@dataclass(frozen=True)
class VaultInventoryConfig:
    """
    Registered-to-total vault ratio bands and weekly drawdowns.

    - RED below 25% registered, or >5M oz drained in a week
    - YELLOW at 25-40%, or 1-5M oz drained in a week
    """

    red_ratio_pct: float = 25.0
    yellow_ratio_pct: float = 40.0
    red_weekly_drawdown_oz: float = 5_000_000
    yellow_weekly_drawdown_oz: float = 1_000_000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DeliveryActivityConfig:
    """Stops as a share of registered stocks during delivery months."""

    red_stops_pct: float = 15.0
    yellow_stops_pct: float = 5.0
    red_cumulative_pct: float = 50.0
    yellow_cumulative_pct: float = 25.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FndRatioConfig:
    """
    Delivery pressure ratio = delivery-month OI oz / registered oz.

    Above 1.0 there are more claims than metal.
    """

    critical_ratio: float = 1.0
    red_ratio: float = 0.7
    red_days_to_fnd: int = 10
    watch_ratio: float = 0.3
    watch_days_to_fnd: int = 30
    elevated_ratio: float = 0.5
    comfortable_days_to_fnd: int = 30

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RollPatternConfig:
    """Front-month roll pace thresholds near First Notice Day."""

    red_days_to_fnd: int = 5
    red_front_month_oi: float = 10_000
    slow_roll_days_to_fnd: int = 10
    slow_roll_min_decline: float = 1_000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# MARGIN
# ============================================================


@dataclass(frozen=True)
class MarginConfig:
    """
    Exchange margin hike thresholds.

    - RED on 2+ hikes within 14 days, or one hike >= 25%
    - YELLOW on any change within 14 days, or a level 20%
      above the historical median
    """

    hike_window_days: int = 14
    stable_days: int = 30
    red_hike_count: int = 2
    red_single_hike_pct: float = 25.0
    historical_median_pct: float = 11.0
    median_multiplier: float = 1.2

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# SPREADS / PREMIUMS / VOLATILITY
# ============================================================


@dataclass(frozen=True)
class BackwardationConfig:
    """
    Spot minus front-month futures spread, in USD/oz.

    Positive spread = backwardation (physical shortage).
    Negative spread = contango (normal cost of carry).
    """

    extreme_spread: float = 2.0
    red_spread: float = 0.5
    flat_floor: float = -0.1
    wide_contango: float = -0.5

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LeaseRateConfig:
    """Implied annualized lease rate thresholds (percent)."""

    extreme_pct: float = 50.0
    red_pct: float = 10.0
    yellow_pct: float = 2.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ShanghaiPremiumConfig:
    """SGE premium over COMEX spot (percent)."""

    structural_pct: float = 10.0
    red_pct: float = 5.0
    yellow_pct: float = 2.0
    discount_pct: float = -2.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CvolConfig:
    """Daily range proxy for implied volatility (percent of close)."""

    spike_pct: float = 30.0
    extreme_range_pct: float = 10.0
    elevated_range_pct: float = 5.0
    average_multiplier: float = 1.5
    average_window: int = 30

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# HISTORY / DISPLAY / POSTURE / SLAM RISK
# ============================================================


@dataclass(frozen=True)
class HistoryConfig:
    """
    History access bounds.

    min_percentile_history: below this many baseline points
    percentile scorers switch to absolute-threshold mode.
    """

    min_percentile_history: int = 26
    baseline_years: int = 3
    prior_week_days: int = 7
    prior_week_tolerance_days: int = 3
    volatility_lookback_days: int = 45

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DisplayConfig:
    """Freshness: stale once age exceeds multiplier x cadence."""

    stale_multiplier: float = 2.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PostureConfig:
    """
    Posture synthesis thresholds.

    override_indicators individually force SELL when RED.
    """

    min_available: int = 8
    total_indicators: int = 12
    sell_red_count: int = 4
    buy_green_count: int = 7
    caution_red_count: int = 3
    caution_green_floor: int = 5
    override_indicators: Tuple[IndicatorId, ...] = (
        IndicatorId.MARGIN_REQUIREMENTS,
        IndicatorId.FND_RATIO,
    )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["override_indicators"] = [int(i) for i in self.override_indicators]
        return data


@dataclass(frozen=True)
class SlamRiskConfig:
    """Pre-slam checklist thresholds."""

    oi_drop_pct: float = 5.0
    spread_threshold: float = 0.5
    liquidity_window_days: int = 3
    elevated_count: int = 3
    # Monday=0 ... Sunday=6
    weekend_weekdays: Tuple[int, ...] = (4, 5, 6)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["weekend_weekdays"] = list(self.weekend_weekdays)
        return data


# ============================================================
# MASTER CONFIGURATION
# ============================================================


_SECTIONS = (
    "open_interest",
    "vault_inventory",
    "delivery_activity",
    "speculator",
    "commercial",
    "margin",
    "backwardation",
    "roll_patterns",
    "lease_rates",
    "shanghai_premium",
    "fnd_ratio",
    "cvol",
    "history",
    "display",
    "posture",
    "slam_risk",
)


@dataclass(frozen=True)
class ScoringConfig:
    """
    Master configuration for the signal scoring core.

    Aggregates the metal profile, every indicator config and
    the aggregation settings.
    """

    profile: MetalProfile = field(default_factory=MetalProfile)

    open_interest: OpenInterestConfig = field(default_factory=OpenInterestConfig)
    vault_inventory: VaultInventoryConfig = field(default_factory=VaultInventoryConfig)
    delivery_activity: DeliveryActivityConfig = field(default_factory=DeliveryActivityConfig)
    speculator: SpeculatorConfig = field(default_factory=SpeculatorConfig)
    commercial: CommercialConfig = field(default_factory=CommercialConfig)
    margin: MarginConfig = field(default_factory=MarginConfig)
    backwardation: BackwardationConfig = field(default_factory=BackwardationConfig)
    roll_patterns: RollPatternConfig = field(default_factory=RollPatternConfig)
    lease_rates: LeaseRateConfig = field(default_factory=LeaseRateConfig)
    shanghai_premium: ShanghaiPremiumConfig = field(default_factory=ShanghaiPremiumConfig)
    fnd_ratio: FndRatioConfig = field(default_factory=FndRatioConfig)
    cvol: CvolConfig = field(default_factory=CvolConfig)

    history: HistoryConfig = field(default_factory=HistoryConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    posture: PostureConfig = field(default_factory=PostureConfig)
    slam_risk: SlamRiskConfig = field(default_factory=SlamRiskConfig)

    engine_version: str = "1.0.0"

    @property
    def metal(self) -> Metal:
        return self.profile.metal

    def validate(self) -> None:
        """
        Check threshold ordering.

        Raises:
            ConfigurationError: If any band is inverted
        """
        vault = self.vault_inventory
        if vault.red_ratio_pct >= vault.yellow_ratio_pct:
            raise ConfigurationError(
                "vault_inventory.red_ratio_pct",
                "must be below yellow_ratio_pct",
                vault.red_ratio_pct,
            )
        if self.speculator.washed_out_percentile >= self.speculator.crowded_percentile:
            raise ConfigurationError(
                "speculator.washed_out_percentile",
                "must be below crowded_percentile",
                self.speculator.washed_out_percentile,
            )
        if self.lease_rates.yellow_pct >= self.lease_rates.red_pct:
            raise ConfigurationError(
                "lease_rates.yellow_pct", "must be below red_pct", self.lease_rates.yellow_pct
            )
        if self.backwardation.red_spread >= self.backwardation.extreme_spread:
            raise ConfigurationError(
                "backwardation.red_spread",
                "must be below extreme_spread",
                self.backwardation.red_spread,
            )
        if not 0 < self.posture.min_available <= self.posture.total_indicators:
            raise ConfigurationError(
                "posture.min_available",
                f"must be between 1 and {self.posture.total_indicators}",
                self.posture.min_available,
            )
        if self.history.min_percentile_history < 1:
            raise ConfigurationError(
                "history.min_percentile_history",
                "must be positive",
                self.history.min_percentile_history,
            )
        if self.display.stale_multiplier <= 0:
            raise ConfigurationError(
                "display.stale_multiplier", "must be positive", self.display.stale_multiplier
            )

    # --------------------------------------------------------
    # LOADERS
    # --------------------------------------------------------

    @classmethod
    def from_env(cls, base: Optional["ScoringConfig"] = None) -> "ScoringConfig":
        """
        Apply SIGNAL_* environment overrides.

        Supported variables:
            SIGNAL_METAL, SIGNAL_MIN_PERCENTILE_HISTORY,
            SIGNAL_BASELINE_YEARS, SIGNAL_POSTURE_MIN_AVAILABLE,
            SIGNAL_STALE_MULTIPLIER
        """
        config = base
        if config is None:
            config = get_config_for_metal(Metal.parse(os.getenv(f"{ENV_PREFIX}METAL")))

        history = config.history
        if os.getenv(f"{ENV_PREFIX}MIN_PERCENTILE_HISTORY"):
            history = replace(
                history,
                min_percentile_history=int(os.getenv(f"{ENV_PREFIX}MIN_PERCENTILE_HISTORY")),
            )
        if os.getenv(f"{ENV_PREFIX}BASELINE_YEARS"):
            history = replace(history, baseline_years=int(os.getenv(f"{ENV_PREFIX}BASELINE_YEARS")))

        posture = config.posture
        if os.getenv(f"{ENV_PREFIX}POSTURE_MIN_AVAILABLE"):
            posture = replace(
                posture, min_available=int(os.getenv(f"{ENV_PREFIX}POSTURE_MIN_AVAILABLE"))
            )

        display = config.display
        if os.getenv(f"{ENV_PREFIX}STALE_MULTIPLIER"):
            display = replace(
                display, stale_multiplier=float(os.getenv(f"{ENV_PREFIX}STALE_MULTIPLIER"))
            )

        return replace(config, history=history, posture=posture, display=display)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ScoringConfig":
        """
        Load configuration from a YAML file.

        The file may name a `metal` and any section of this
        class with field overrides, e.g.:

            metal: gold
            history:
              min_percentile_history: 52
            posture:
              min_available: 9
        """
        try:
            import yaml

            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}

            config = get_config_for_metal(Metal.parse(data.get("metal")))
            return config.with_overrides(data)

        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(f"Failed to load YAML config from {path}: {e}")
            return cls()

    def with_overrides(self, data: Dict[str, Any]) -> "ScoringConfig":
        """Return a copy with section field overrides applied."""
        updates: Dict[str, Any] = {}
        for section_name, values in data.items():
            if section_name == "metal":
                continue
            if section_name not in _SECTIONS:
                logger.warning(f"Ignoring unknown config section: {section_name}")
                continue
            if not isinstance(values, dict):
                raise ConfigurationError(section_name, "section must be a mapping", values)

            section = getattr(self, section_name)
            known = {f.name for f in fields(section)}
            accepted = {}
            for key, value in values.items():
                if key not in known:
                    logger.warning(f"Ignoring unknown config key: {section_name}.{key}")
                    continue
                if key == "override_indicators":
                    value = tuple(IndicatorId(int(v)) for v in value)
                elif isinstance(value, list):
                    value = tuple(value)
                accepted[key] = value
            updates[section_name] = replace(section, **accepted)

        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"profile": self.profile.to_dict()}
        for section_name in _SECTIONS:
            data[section_name] = getattr(self, section_name).to_dict()
        data["engine_version"] = self.engine_version
        return data


# ============================================================
# PRESETS
# ============================================================


def get_silver_config() -> ScoringConfig:
    """Return the silver configuration (the default)."""
    return ScoringConfig(profile=SILVER_PROFILE)


def get_gold_config() -> ScoringConfig:
    """
    Return the gold configuration.

    Gold trades at a much higher price per ounce in 100 oz
    contracts, so dollar spreads and premium bands are wider
    and lease/premium percentages tighter.
    """
    return ScoringConfig(
        profile=GOLD_PROFILE,
        vault_inventory=VaultInventoryConfig(
            red_weekly_drawdown_oz=1_000_000,
            yellow_weekly_drawdown_oz=250_000,
        ),
        margin=MarginConfig(historical_median_pct=7.0),
        backwardation=BackwardationConfig(
            extreme_spread=20.0,
            red_spread=5.0,
            flat_floor=-2.0,
            wide_contango=-10.0,
        ),
        roll_patterns=RollPatternConfig(red_front_month_oi=20_000),
        lease_rates=LeaseRateConfig(extreme_pct=10.0, red_pct=5.0, yellow_pct=1.0),
        shanghai_premium=ShanghaiPremiumConfig(
            structural_pct=5.0,
            red_pct=3.0,
            yellow_pct=1.0,
            discount_pct=-1.0,
        ),
        slam_risk=SlamRiskConfig(spread_threshold=5.0),
    )


def get_config_for_metal(metal: Union[Metal, str, None]) -> ScoringConfig:
    """Return the preset for a metal, defaulting to silver."""
    if Metal.parse(metal) == Metal.GOLD:
        return get_gold_config()
    return get_silver_config()


def get_default_config() -> ScoringConfig:
    """
    Return the default configuration.

    Silver thresholds, no environment overrides.
    """
    return get_silver_config()


def load_config(
    metal: Union[Metal, str, None] = None,
    path: Optional[Union[str, Path]] = None,
) -> ScoringConfig:
    """
    Load the runtime configuration.

    Order: metal preset (or YAML file) then SIGNAL_*
    environment overrides; a local .env file is honoured.
    """
    load_dotenv()

    if path is not None:
        base = ScoringConfig.from_yaml(path)
    elif metal is not None:
        base = get_config_for_metal(metal)
    else:
        base = None

    config = ScoringConfig.from_env(base)
    config.validate()
    return config
