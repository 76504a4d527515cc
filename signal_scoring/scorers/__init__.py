"""
Signal Scoring - Per-Indicator Scorers.

One scorer per indicator, each built on an ordered
RuleTable. build_scorers() wires them from a ScoringConfig.
"""

from typing import Dict, Optional

from ..config import ScoringConfig, get_default_config
from ..exceptions import ScorerNotFoundError
from ..types import IndicatorId
from .base import BaseScorer, Verdict
from .derived import FndRatioScorer, LeaseRateScorer
from .inventory import DeliveryActivityScorer, VaultInventoryScorer
from .margin import MarginScorer
from .positioning import CommercialNetShortScorer, OpenInterestScorer, SpeculatorNetScorer
from .roll import RollPatternScorer
from .spreads import BackwardationScorer, ShanghaiPremiumScorer
from .volatility import VolatilityScorer


def build_scorers(config: Optional[ScoringConfig] = None) -> Dict[IndicatorId, BaseScorer]:
    """Instantiate all twelve scorers from one configuration."""
    config = config or get_default_config()
    profile = config.profile
    scorers = [
        OpenInterestScorer(config.open_interest),
        VaultInventoryScorer(config.vault_inventory),
        DeliveryActivityScorer(config.delivery_activity, profile),
        SpeculatorNetScorer(config.speculator, config.history),
        CommercialNetShortScorer(config.commercial, config.history),
        MarginScorer(config.margin),
        BackwardationScorer(config.backwardation),
        RollPatternScorer(config.roll_patterns),
        LeaseRateScorer(config.lease_rates),
        ShanghaiPremiumScorer(config.shanghai_premium),
        FndRatioScorer(config.fnd_ratio, profile),
        VolatilityScorer(config.cvol),
    ]
    return {scorer.indicator_id: scorer for scorer in scorers}


def get_scorer(
    scorers: Dict[IndicatorId, BaseScorer],
    indicator_id: IndicatorId,
) -> BaseScorer:
    """Look up a scorer, raising ScorerNotFoundError if absent."""
    try:
        return scorers[IndicatorId(int(indicator_id))]
    except (KeyError, ValueError):
        raise ScorerNotFoundError(int(indicator_id))


__all__ = [
    "BaseScorer",
    "Verdict",
    "build_scorers",
    "get_scorer",
    "OpenInterestScorer",
    "VaultInventoryScorer",
    "DeliveryActivityScorer",
    "SpeculatorNetScorer",
    "CommercialNetShortScorer",
    "MarginScorer",
    "BackwardationScorer",
    "RollPatternScorer",
    "LeaseRateScorer",
    "ShanghaiPremiumScorer",
    "FndRatioScorer",
    "VolatilityScorer",
]
