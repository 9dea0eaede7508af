"""
Readiness Store

SQLAlchemy-backed persistence for the readiness engine:
    - SqlWeightStore: the model's 5 weights in a single-row table
    - SqlDayRepository: per-day energy reports + health snapshot
    - SqlReadinessScoreRepository: one score per day (upsert)
    - SqlPredictionRepository: next-day predictions, resolved once

Weights are stored as a JSON array. Python's float repr is the shortest
string that parses back to the same double, so values round-trip exactly.

Usage:
    store = SqlWeightStore(SessionLocal)
    model = PersonalizedReadinessModel(store=store)
    model.load_saved_model()
"""

from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence
import logging
import math

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import WeightStoreError
from models import DailyRecord, ModelWeightsRecord, PredictionRecord, ReadinessScoreRecord
from services.health_metrics import MetricsRecord
from services.prediction_engine import Prediction, PredictionSource
from services.readiness_calculator import ReadinessBreakdown, ReadinessConfidence, ReadinessScore
from services.readiness_model import WEIGHT_COUNT, ModelWeights

logger = logging.getLogger(__name__)

WEIGHTS_ROW_ID = 1


def _is_weight(value) -> bool:
    # bool is an int subclass; JSON true/false is not a weight
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# MODEL WEIGHTS
# =============================================================================

class SqlWeightStore:
    """
    WeightStore over the ``readiness_model_weights`` table.

    Opens a short-lived session per call, so one instance can live as long
    as the model that owns it.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def save(self, weights: Sequence[float], example_count: int, timestamp: datetime) -> None:
        db = self.session_factory()
        try:
            row = db.get(ModelWeightsRecord, WEIGHTS_ROW_ID)
            if row is None:
                row = ModelWeightsRecord(id=WEIGHTS_ROW_ID)
                db.add(row)
            row.weights = [float(w) for w in weights]
            row.example_count = example_count
            row.last_trained_at = timestamp
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise WeightStoreError(f"Could not save model weights: {e}") from e
        finally:
            db.close()

    def load(self) -> Optional[ModelWeights]:
        db = self.session_factory()
        try:
            row = db.get(ModelWeightsRecord, WEIGHTS_ROW_ID)
        except SQLAlchemyError as e:
            raise WeightStoreError(f"Could not load model weights: {e}") from e
        finally:
            db.close()

        if row is None:
            return None

        values = row.weights
        if (
            not isinstance(values, list)
            or len(values) != WEIGHT_COUNT
            or not all(_is_weight(v) for v in values)
        ):
            logger.warning(f"Ignoring malformed stored weights: {values!r}")
            return None

        return ModelWeights(
            values=values,
            trained_example_count=row.example_count or 0,
            last_trained_at=_as_utc(row.last_trained_at),
        )


# =============================================================================
# DAYS
# =============================================================================

class SqlDayRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, day: date) -> Optional[DailyRecord]:
        return self.db.query(DailyRecord).filter(DailyRecord.date == day).first()

    def upsert(
        self,
        day: date,
        first_energy: Optional[int] = None,
        second_energy: Optional[int] = None,
        metrics: Optional[MetricsRecord] = None,
    ) -> DailyRecord:
        """Create or update a day. Only the values passed in are overwritten."""
        record = self.get(day)
        if record is None:
            record = DailyRecord(date=day)
            self.db.add(record)

        if first_energy is not None:
            record.first_energy = first_energy
        if second_energy is not None:
            record.second_energy = second_energy
        if metrics is not None:
            record.resting_heart_rate = metrics.resting_heart_rate
            record.hrv = metrics.hrv
            record.sleep_duration = metrics.sleep_duration
            record.steps = metrics.steps
            record.active_energy = metrics.active_energy

        self.db.flush()
        return record

    def get_completed_days(self) -> List[DailyRecord]:
        """Days with both energy reports, oldest first."""
        return (
            self.db.query(DailyRecord)
            .filter(
                DailyRecord.first_energy.isnot(None),
                DailyRecord.second_energy.isnot(None),
            )
            .order_by(DailyRecord.date.asc())
            .all()
        )


# =============================================================================
# READINESS SCORES
# =============================================================================

def score_to_record(score: ReadinessScore, record: Optional[ReadinessScoreRecord] = None) -> ReadinessScoreRecord:
    record = record or ReadinessScoreRecord(date=score.date)
    record.score = score.score
    record.confidence = score.confidence.value
    record.hrv_score = score.breakdown.hrv
    record.resting_heart_rate_score = score.breakdown.resting_heart_rate
    record.sleep_score = score.breakdown.sleep
    record.energy_score = score.breakdown.energy
    record.source_metrics = score.source_metrics.to_dict() if score.source_metrics else None
    record.source_energy_level = score.source_energy_level
    return record


def record_to_score(record: ReadinessScoreRecord) -> ReadinessScore:
    return ReadinessScore(
        date=record.date,
        score=record.score,
        breakdown=ReadinessBreakdown(
            hrv=record.hrv_score,
            resting_heart_rate=record.resting_heart_rate_score,
            sleep=record.sleep_score,
            energy=record.energy_score,
        ),
        confidence=ReadinessConfidence(record.confidence),
        source_metrics=MetricsRecord.from_dict(record.source_metrics) if record.source_metrics else None,
        source_energy_level=record.source_energy_level,
    )


class SqlReadinessScoreRepository:
    def __init__(self, db: Session):
        self.db = db

    def save(self, score: ReadinessScore) -> ReadinessScore:
        """Insert or replace the score for ``score.date``."""
        existing = (
            self.db.query(ReadinessScoreRecord)
            .filter(ReadinessScoreRecord.date == score.date)
            .first()
        )
        record = score_to_record(score, existing)
        if existing is None:
            self.db.add(record)
        self.db.flush()
        return score

    def get(self, day: date) -> Optional[ReadinessScore]:
        record = self.db.query(ReadinessScoreRecord).filter(ReadinessScoreRecord.date == day).first()
        return record_to_score(record) if record else None

    def get_range(self, start: date, end: date) -> List[ReadinessScore]:
        """Scores with start <= date <= end, oldest first."""
        records = (
            self.db.query(ReadinessScoreRecord)
            .filter(ReadinessScoreRecord.date >= start, ReadinessScoreRecord.date <= end)
            .order_by(ReadinessScoreRecord.date.asc())
            .all()
        )
        return [record_to_score(r) for r in records]


# =============================================================================
# PREDICTIONS
# =============================================================================

def prediction_to_record(prediction: Prediction) -> PredictionRecord:
    return PredictionRecord(
        id=prediction.id,
        created_at=prediction.created_at,
        target_date=prediction.target_date,
        predicted_score=prediction.predicted_score,
        confidence=prediction.confidence.value,
        source=prediction.source.value,
        input_metrics=prediction.input_metrics.to_dict() if prediction.input_metrics else None,
        input_energy_level=prediction.input_energy_level,
        actual_score=prediction.actual_score,
        actual_score_recorded_at=prediction.actual_score_recorded_at,
    )


def record_to_prediction(record: PredictionRecord) -> Prediction:
    return Prediction(
        id=record.id,
        created_at=record.created_at,
        target_date=record.target_date,
        predicted_score=record.predicted_score,
        confidence=ReadinessConfidence(record.confidence),
        source=PredictionSource(record.source),
        input_metrics=MetricsRecord.from_dict(record.input_metrics) if record.input_metrics else None,
        input_energy_level=record.input_energy_level,
        actual_score=record.actual_score,
        actual_score_recorded_at=record.actual_score_recorded_at,
    )


class SqlPredictionRepository:
    """PredictionRepository over the ``readiness_prediction`` table."""

    def __init__(self, db: Session):
        self.db = db

    def save(self, prediction: Prediction) -> None:
        self.db.add(prediction_to_record(prediction))
        self.db.flush()

    def update(self, prediction: Prediction) -> None:
        record = self.db.get(PredictionRecord, prediction.id)
        if record is None:
            logger.warning(f"Prediction {prediction.id} not found for update")
            return
        record.actual_score = prediction.actual_score
        record.actual_score_recorded_at = prediction.actual_score_recorded_at
        self.db.flush()

    def get_by_target_date(self, target_date: date) -> Optional[Prediction]:
        record = (
            self.db.query(PredictionRecord)
            .filter(PredictionRecord.target_date == target_date)
            .first()
        )
        return record_to_prediction(record) if record else None

    def get_range(self, start: date, end: date) -> List[Prediction]:
        records = (
            self.db.query(PredictionRecord)
            .filter(PredictionRecord.target_date >= start, PredictionRecord.target_date <= end)
            .order_by(PredictionRecord.target_date.desc())
            .all()
        )
        return [record_to_prediction(r) for r in records]

    def get_unresolved(self, as_of: date) -> List[Prediction]:
        records = (
            self.db.query(PredictionRecord)
            .filter(
                PredictionRecord.actual_score.is_(None),
                PredictionRecord.target_date <= as_of,
            )
            .order_by(PredictionRecord.target_date.asc())
            .all()
        )
        return [record_to_prediction(r) for r in records]

    def get_resolved(self, limit: Optional[int] = None) -> List[Prediction]:
        query = (
            self.db.query(PredictionRecord)
            .filter(PredictionRecord.actual_score.isnot(None))
            .order_by(PredictionRecord.target_date.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [record_to_prediction(r) for r in query.all()]
