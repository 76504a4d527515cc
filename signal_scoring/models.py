"""
Signal Scoring - Persistence Models.

============================================================
PURPOSE
============================================================
ORM models for storing indicator observations and the
outcome of each evaluation pass.

Enables:
- Append-only history for percentile baselines and trends
- Audit trail of every signal and its reason
- Posture and slam-risk history for review

============================================================
MODELS
============================================================
1. IndicatorSnapshotRecord: One observation of one indicator
2. PostureSnapshotRecord: Posture of one evaluation pass
3. SlamRiskItemRecord: One checklist item (child of
   PostureSnapshotRecord)

Snapshot rows are never updated. A re-fetch of the same
data_date is a new row; readers keep the most recent one.

============================================================
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# INDICATOR SNAPSHOT MODEL
# ============================================================


class IndicatorSnapshotRecord(Base):
    """
    One observation of one indicator for one metal.

    ============================================================
    WHAT IT STORES
    ============================================================
    - Indicator id and metal
    - Data date and fetch timestamp
    - Raw payload (JSON) and computed value
    - Fetch status, signal and signal reason
    - Fallback tag for values fabricated by the fetch layer

    ============================================================
    """

    __tablename__ = "indicator_snapshots"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    indicator_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Indicator 1-12",
    )

    metal: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="silver",
        comment="silver or gold",
    )

    # Timestamps
    data_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Market date the reading describes",
    )

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the reading was pulled",
    )

    # Values
    raw_value: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Indicator-specific raw payload",
    )

    computed_value: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )

    # Status and scoring
    fetch_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="success",
        comment="success, error, timeout, parse_error",
    )

    signal: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
        comment="green, yellow, red, error",
    )

    signal_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_fallback: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Value fabricated by the fetch layer",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("ix_indicator_snapshots_lookup", "indicator_id", "metal", "data_date"),
        Index("ix_indicator_snapshots_fetched_at", "fetched_at"),
    )

    def __repr__(self) -> str:
        return (
            f"IndicatorSnapshotRecord("
            f"id={self.id}, "
            f"indicator={self.indicator_id}, "
            f"metal={self.metal}, "
            f"date={self.data_date}, "
            f"signal={self.signal})"
        )


# ============================================================
# POSTURE SNAPSHOT MODEL
# ============================================================


class PostureSnapshotRecord(Base):
    """
    Posture and slam-risk count of one evaluation pass.

    ============================================================
    RELATIONSHIPS
    ============================================================
    - Has many SlamRiskItemRecord (five per pass)

    ============================================================
    """

    __tablename__ = "posture_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    metal: Mapped[str] = mapped_column(String(10), nullable=False)

    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="as_of clock of the pass",
    )

    posture: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="BUY, SELL, CAUTION, NEUTRAL, INSUFFICIENT_DATA",
    )

    posture_reason: Mapped[str] = mapped_column(Text, nullable=False)

    available_count: Mapped[int] = mapped_column(Integer, nullable=False)
    green_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yellow_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    red_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    slam_risk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    engine_version: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="1.0.0",
    )

    # Full EvaluationResult.to_dict() for debugging
    raw_output_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    slam_risk_items: Mapped[List["SlamRiskItemRecord"]] = relationship(
        "SlamRiskItemRecord",
        back_populates="snapshot",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_posture_snapshots_metal_evaluated", "metal", "evaluated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"PostureSnapshotRecord("
            f"id={self.id}, "
            f"metal={self.metal}, "
            f"posture={self.posture}, "
            f"evaluated_at={self.evaluated_at})"
        )


# ============================================================
# SLAM RISK ITEM MODEL
# ============================================================


class SlamRiskItemRecord(Base):
    """One slam-risk checklist item of one pass."""

    __tablename__ = "slam_risk_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    snapshot_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("posture_snapshots.id", ondelete="CASCADE"),
        nullable=False,
    )

    checklist_item_id: Mapped[str] = mapped_column(String(40), nullable=False)
    label: Mapped[str] = mapped_column(String(80), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    snapshot: Mapped["PostureSnapshotRecord"] = relationship(
        "PostureSnapshotRecord",
        back_populates="slam_risk_items",
    )

    __table_args__ = (
        Index("ix_slam_risk_items_snapshot_id", "snapshot_id"),
    )

    def __repr__(self) -> str:
        return f"SlamRiskItemRecord(item={self.checklist_item_id}, active={self.active})"
