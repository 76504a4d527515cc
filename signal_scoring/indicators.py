"""
Signal Scoring - Indicator Registry.

============================================================
PURPOSE
============================================================
Static metadata for the twelve indicators:
- Display name and short description
- Update cadence (drives staleness)
- Source name
- Whether the indicator is derived from other indicators
- How computed_value is formatted for display

============================================================
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from .types import IndicatorId, UpdateCadence


@dataclass(frozen=True)
class IndicatorSpec:
    """Metadata for one indicator."""

    indicator_id: IndicatorId
    name: str
    short_description: str
    cadence: UpdateCadence
    source_name: str
    depends_on: Tuple[IndicatorId, ...] = ()

    @property
    def is_derived(self) -> bool:
        return bool(self.depends_on)

    @property
    def cadence_hours(self) -> float:
        return self.cadence.hours


INDICATOR_SPECS: Dict[IndicatorId, IndicatorSpec] = {
    spec.indicator_id: spec
    for spec in (
        IndicatorSpec(
            IndicatorId.OPEN_INTEREST,
            "Open Interest (OI)",
            "Active futures contracts",
            UpdateCadence.DAILY,
            "CME Daily Volume/OI Report",
        ),
        IndicatorSpec(
            IndicatorId.VAULT_INVENTORY,
            "Registered vs Eligible Vault Inventory",
            "COMEX vault stocks",
            UpdateCadence.DAILY,
            "CME Stocks Report",
        ),
        IndicatorSpec(
            IndicatorId.DELIVERY_ACTIVITY,
            "Issues & Stops (Delivery Activity)",
            "Delivery notices",
            UpdateCadence.DAILY,
            "CME Delivery Reports",
        ),
        IndicatorSpec(
            IndicatorId.COT_SPECULATOR,
            "COT - Speculator Net Position",
            "Hedge fund positioning",
            UpdateCadence.WEEKLY,
            "CFTC COT Report",
        ),
        IndicatorSpec(
            IndicatorId.COT_COMMERCIAL,
            "COT - Commercial Short Position",
            "Bank short positions",
            UpdateCadence.WEEKLY,
            "CFTC COT Report",
        ),
        IndicatorSpec(
            IndicatorId.MARGIN_REQUIREMENTS,
            "Margin Requirements",
            "CME margin levels",
            UpdateCadence.EVENT_DRIVEN,
            "CME Margins Page",
        ),
        IndicatorSpec(
            IndicatorId.BACKWARDATION,
            "Backwardation / Contango Spread",
            "Spot vs futures",
            UpdateCadence.DAILY,
            "Spot + Futures Prices",
        ),
        IndicatorSpec(
            IndicatorId.ROLL_PATTERNS,
            "Contract Roll Patterns",
            "Front-month roll pace",
            UpdateCadence.DAILY,
            "CME Volume Report",
        ),
        IndicatorSpec(
            IndicatorId.LEASE_RATES,
            "Lease Rates",
            "Implied borrowing cost",
            UpdateCadence.DAILY,
            "Computed from Backwardation",
            depends_on=(IndicatorId.BACKWARDATION,),
        ),
        IndicatorSpec(
            IndicatorId.SHANGHAI_PREMIUM,
            "Shanghai / Dubai Spot Premium",
            "Asian physical premium",
            UpdateCadence.DAILY,
            "SGE Benchmark",
        ),
        IndicatorSpec(
            IndicatorId.FND_RATIO,
            "FND Proximity & Delivery Pressure Ratio",
            "Claims vs registered metal",
            UpdateCadence.DAILY,
            "Derived Calculation",
            depends_on=(IndicatorId.OPEN_INTEREST, IndicatorId.VAULT_INVENTORY),
        ),
        IndicatorSpec(
            IndicatorId.CVOL,
            "CVOL (Volatility Proxy)",
            "Daily price range",
            UpdateCadence.DAILY,
            "Computed from OHLC",
        ),
    )
}


def get_indicator_spec(indicator_id: IndicatorId) -> IndicatorSpec:
    return INDICATOR_SPECS[IndicatorId(int(indicator_id))]


# ============================================================
# VALUE FORMATTING
# ============================================================


def format_compact(value: float) -> str:
    """1234567 -> '1.2M', 45300 -> '45.3K'."""
    magnitude = abs(value)
    if magnitude >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.1f}K"
    return f"{value:,.0f}"


def format_ounces(ounces: float) -> str:
    if ounces >= 1_000_000:
        return f"{ounces / 1_000_000:.1f}M oz"
    if ounces >= 1_000:
        return f"{ounces / 1_000:.0f}K oz"
    return f"{ounces:,.0f} oz"


def format_value(indicator_id: IndicatorId, value: float) -> str:
    """Human-readable rendering of an indicator's computed_value."""
    indicator_id = IndicatorId(int(indicator_id))

    if indicator_id == IndicatorId.OPEN_INTEREST:
        return f"{format_compact(value)} contracts"
    if indicator_id == IndicatorId.VAULT_INVENTORY:
        return format_ounces(value)
    if indicator_id == IndicatorId.DELIVERY_ACTIVITY:
        return f"{format_compact(value)} stops"
    if indicator_id in (IndicatorId.COT_SPECULATOR, IndicatorId.COT_COMMERCIAL):
        return f"Net {format_compact(value)} contracts"
    if indicator_id == IndicatorId.MARGIN_REQUIREMENTS:
        return f"{value:.1f}% margin"
    if indicator_id == IndicatorId.BACKWARDATION:
        # spread = spot - futures; positive is backwardation
        if value > 0:
            return f"${value:.2f} backwardation"
        return f"${abs(value):.2f} contango"
    if indicator_id == IndicatorId.ROLL_PATTERNS:
        return f"{format_compact(value)} front-month OI"
    if indicator_id == IndicatorId.LEASE_RATES:
        return f"{value:.1f}% annualized"
    if indicator_id == IndicatorId.SHANGHAI_PREMIUM:
        return f"{value:.1f}% premium"
    if indicator_id == IndicatorId.FND_RATIO:
        return f"{value:.2f} ratio"
    return f"{value:.1f}% range"
