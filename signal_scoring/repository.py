"""
Signal Scoring - Repository.

============================================================
PURPOSE
============================================================
Repository pattern implementation for signal persistence.

Provides:
- HistoryProvider over stored indicator snapshots
- Append-only observation inserts
- Posture / slam-risk snapshots per evaluation pass

The scoring core never imports this module; it reads
history through the HistoryProvider contract only.

============================================================
USAGE
============================================================
    engine = create_database_engine("sqlite:///signals.db")
    create_all_tables(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    with session_scope(factory) as session:
        repository = SnapshotRepository(session)
        repository.insert_observation(observation)

============================================================
"""

import logging
import os
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import and_, create_engine, desc, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .engine import EvaluationResult
from .exceptions import PersistenceError
from .history import HistoryProvider, ObservationHistory, shift_years
from .models import Base, IndicatorSnapshotRecord, PostureSnapshotRecord, SlamRiskItemRecord
from .types import FetchStatus, IndicatorId, Metal, Observation, Signal


logger = logging.getLogger(__name__)


DATABASE_URL_ENV = "SIGNAL_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite:///signal_scoring.db"


# =============================================================
# ENGINE AND SESSIONS
# =============================================================


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv(DATABASE_URL_ENV)
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"{DATABASE_URL_ENV} not set, using default: {url}")
    return url


def create_database_engine(url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the snapshot store."""
    url = url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")
    return create_engine(url, echo=echo, future=True)


def create_all_tables(engine: Engine) -> None:
    """
    Create the snapshot tables if they do not exist.

    Raises:
        PersistenceError: If table creation fails
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Signal snapshot tables ready")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create signal snapshot tables: {e}")
        raise PersistenceError("create_all_tables", str(e)) from e


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Transaction boundary: commit on success, roll back on any
    exception and re-raise.
    """
    session = factory()
    try:
        yield session
        session.commit()
        logger.debug("Signal snapshot transaction committed")
    except SQLAlchemyError as e:
        logger.error(f"Signal snapshot transaction failed, rolling back: {e}")
        session.rollback()
        raise PersistenceError("transaction", str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# CONVERSION
# =============================================================


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored values are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def record_to_observation(record: IndicatorSnapshotRecord) -> Observation:
    """Convert a stored row into an Observation."""
    return Observation(
        indicator_id=IndicatorId(record.indicator_id),
        data_date=record.data_date,
        fetched_at=_aware(record.fetched_at),
        computed_value=float(record.computed_value),
        raw_value=dict(record.raw_value or {}),
        fetch_status=FetchStatus(record.fetch_status),
        metal=Metal.parse(record.metal),
        signal=Signal(record.signal) if record.signal else None,
        signal_reason=record.signal_reason,
        id=record.id,
        source_url=record.source_url,
        error_detail=record.error_detail,
        is_fallback=bool(record.is_fallback),
    )


def observation_to_record(observation: Observation) -> IndicatorSnapshotRecord:
    """Convert an Observation into a new (unsaved) row."""
    return IndicatorSnapshotRecord(
        indicator_id=int(observation.indicator_id),
        metal=observation.metal.value,
        data_date=observation.data_date,
        fetched_at=observation.fetched_at,
        raw_value=dict(observation.raw_value or {}),
        computed_value=float(observation.computed_value),
        fetch_status=observation.fetch_status.value,
        signal=observation.signal.value if observation.signal else None,
        signal_reason=observation.signal_reason,
        source_url=observation.source_url,
        error_detail=observation.error_detail,
        is_fallback=observation.is_fallback,
    )


# =============================================================
# REPOSITORY
# =============================================================


class SnapshotRepository(HistoryProvider):
    """
    Repository for signal snapshot persistence.

    ============================================================
    METHODS
    ============================================================
    - history / latest / last_days / baseline: HistoryProvider
    - insert_observation: Append one observation
    - insert_observations: Append a batch
    - save_evaluation: Persist posture and slam-risk items
    - get_latest_posture: Most recent posture for a metal

    Rows in indicator_snapshots are never updated or deleted
    here.

    ============================================================
    """

    def __init__(self, session: Session) -> None:
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session; the caller owns the
                     transaction
        """
        self._session = session

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def _query(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> ObservationHistory:
        conditions = [
            IndicatorSnapshotRecord.indicator_id == int(indicator_id),
            IndicatorSnapshotRecord.metal == Metal.parse(metal).value,
        ]
        if start is not None:
            conditions.append(IndicatorSnapshotRecord.data_date >= start)
        if end is not None:
            conditions.append(IndicatorSnapshotRecord.data_date <= end)

        stmt = (
            select(IndicatorSnapshotRecord)
            .where(and_(*conditions))
            .order_by(
                IndicatorSnapshotRecord.data_date,
                IndicatorSnapshotRecord.fetched_at,
                IndicatorSnapshotRecord.id,
            )
        )
        try:
            records = self._session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read history for indicator {int(indicator_id)}: {e}")
            raise PersistenceError("history", str(e)) from e

        return ObservationHistory(record_to_observation(r) for r in records)

    def history(self, indicator_id: IndicatorId, metal: Metal) -> ObservationHistory:
        return self._query(indicator_id, metal)

    def latest(self, indicator_id: IndicatorId, metal: Metal) -> Optional[Observation]:
        stmt = (
            select(IndicatorSnapshotRecord)
            .where(
                and_(
                    IndicatorSnapshotRecord.indicator_id == int(indicator_id),
                    IndicatorSnapshotRecord.metal == Metal.parse(metal).value,
                )
            )
            .order_by(
                desc(IndicatorSnapshotRecord.data_date),
                desc(IndicatorSnapshotRecord.fetched_at),
                desc(IndicatorSnapshotRecord.id),
            )
            .limit(1)
        )
        record = self._session.execute(stmt).scalar_one_or_none()
        return record_to_observation(record) if record is not None else None

    def last_days(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        days: int,
        as_of: date,
    ) -> ObservationHistory:
        return self._query(indicator_id, metal, as_of - timedelta(days=days), as_of)

    def baseline(
        self,
        indicator_id: IndicatorId,
        metal: Metal,
        years: int,
        as_of: date,
    ) -> ObservationHistory:
        start = shift_years(as_of, years)
        return self._query(indicator_id, metal, start, as_of).successful().deduplicated()

    def get_latest_posture(self, metal: Metal) -> Optional[PostureSnapshotRecord]:
        """
        Get the most recent posture snapshot for a metal.

        Returns:
            Latest PostureSnapshotRecord or None
        """
        stmt = (
            select(PostureSnapshotRecord)
            .where(PostureSnapshotRecord.metal == Metal.parse(metal).value)
            .order_by(desc(PostureSnapshotRecord.evaluated_at), desc(PostureSnapshotRecord.id))
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    def insert_observation(self, observation: Observation) -> Observation:
        """
        Append one observation.

        Returns:
            The observation with its assigned id

        Raises:
            MalformedObservationError: If the observation is invalid
            PersistenceError: If the insert fails
        """
        observation.validate()
        record = observation_to_record(observation)
        self._session.add(record)
        try:
            self._session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert indicator {int(observation.indicator_id)}: {e}")
            raise PersistenceError("insert_observation", str(e)) from e

        logger.debug(
            f"Inserted indicator {int(observation.indicator_id)} "
            f"({observation.metal.value}, {observation.data_date}) as row {record.id}"
        )
        return record_to_observation(record)

    def insert_observations(self, observations: Iterable[Observation]) -> List[Observation]:
        """Append a batch of observations."""
        saved = [self.insert_observation(o) for o in observations]
        logger.info(f"Inserted {len(saved)} indicator snapshots")
        return saved

    def save_evaluation(
        self,
        result: EvaluationResult,
        include_raw_json: bool = False,
        include_derived: bool = True,
    ) -> PostureSnapshotRecord:
        """
        Save the outcome of one evaluation pass.

        Creates:
        - PostureSnapshotRecord
        - SlamRiskItemRecord for each checklist item
        - IndicatorSnapshotRecord for each derived reading
          (lease rate, FND ratio) when include_derived is set

        Args:
            result: The EvaluationResult to persist
            include_raw_json: Whether to store the full output
            include_derived: Whether to append derived readings

        Returns:
            Created PostureSnapshotRecord with ID
        """
        posture = result.posture
        snapshot = PostureSnapshotRecord(
            metal=result.metal.value,
            evaluated_at=result.as_of,
            posture=posture.posture.value,
            posture_reason=posture.reason,
            available_count=posture.available_count,
            green_count=posture.green_count,
            yellow_count=posture.yellow_count,
            red_count=posture.red_count,
            slam_risk_count=result.slam_risk.active_count,
            engine_version=result.engine_version,
            raw_output_json=result.to_dict() if include_raw_json else None,
        )
        for item in result.slam_risk.items:
            snapshot.slam_risk_items.append(
                SlamRiskItemRecord(
                    checklist_item_id=item.item_id,
                    label=item.label,
                    active=item.active,
                    reason=item.reason,
                )
            )
        self._session.add(snapshot)

        if include_derived:
            for observation in result.derived_observations:
                if observation.is_success:
                    self.insert_observation(observation)

        try:
            self._session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save {result.metal.value} evaluation: {e}")
            raise PersistenceError("save_evaluation", str(e)) from e

        logger.info(
            f"Saved {result.metal.value} posture {posture.posture.value} "
            f"as snapshot {snapshot.id}"
        )
        return snapshot
