"""
Readiness API Router

Daily readiness score, personalized model status/retraining, and next-day
predictions with accuracy tracking.

The ReadinessService is process-wide: it owns the model weights and the
blend state. Score and retrain calls go through a lock so only one request
touches it at a time.
"""

from datetime import date, datetime
from typing import List, Optional
import logging
import threading

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.config import settings
from core.database import SessionLocal, get_db
from core.exceptions import ConflictError, NotFoundError, ValidationError
from schemas import (
    DayRecordCreate,
    DayRecordResponse,
    HealthMetricsOut,
    ModelStatusResponse,
    PredictionAccuracyResponse,
    PredictionRequest,
    PredictionResponse,
    ReadinessBreakdownResponse,
    ReadinessScoreRequest,
    ReadinessScoreResponse,
    ResolvePredictionRequest,
)
from services.health_metrics import HealthDataSource, MetricsRecord, build_health_source
from services.prediction_engine import Prediction, PredictionEngine
from services.prediction_service import PredictionService
from services.readiness_calculator import ReadinessCalculator, ReadinessScore
from services.readiness_model import PersonalizedReadinessModel
from services.readiness_service import ReadinessService
from services.readiness_store import (
    SqlDayRepository,
    SqlPredictionRepository,
    SqlReadinessScoreRepository,
    SqlWeightStore,
)
from services.training_data import ObservationHistory, TrainingDataCollector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/readiness", tags=["Readiness"])

_service: Optional[ReadinessService] = None
_health_source: Optional[HealthDataSource] = None
_service_lock = threading.Lock()


# =============================================================================
# DEPENDENCIES
# =============================================================================

def build_readiness_service() -> ReadinessService:
    """Wire the readiness service from settings, persisting weights to the database."""
    model = PersonalizedReadinessModel(
        store=SqlWeightStore(SessionLocal),
        ridge_lambda=settings.READINESS_RIDGE_LAMBDA,
        min_examples=settings.READINESS_MIN_TRAINING_EXAMPLES,
        linear_threshold=settings.READINESS_LINEAR_NORMALIZATION_THRESHOLD,
    )
    return ReadinessService(
        calculator=ReadinessCalculator(),
        model=model,
        collector=TrainingDataCollector(
            linear_threshold=settings.READINESS_LINEAR_NORMALIZATION_THRESHOLD,
        ),
        transition_days=settings.READINESS_TRANSITION_DAYS,
    )


def get_readiness_service() -> ReadinessService:
    global _service
    with _service_lock:
        if _service is None:
            _service = build_readiness_service()
        return _service


def get_health_source() -> HealthDataSource:
    global _health_source
    if _health_source is None:
        _health_source = build_health_source(settings.HEALTH_DATA_SOURCE, settings.SAMPLE_DATA_SEED)
    return _health_source


def get_prediction_service(db: Session = Depends(get_db)) -> PredictionService:
    return PredictionService(
        engine=PredictionEngine(damping_factor=settings.PREDICTION_DAMPING_FACTOR),
        repository=SqlPredictionRepository(db),
    )


# =============================================================================
# RESPONSE HELPERS
# =============================================================================

def _metrics_out(metrics: Optional[MetricsRecord]) -> Optional[HealthMetricsOut]:
    if metrics is None:
        return None
    return HealthMetricsOut.model_validate(metrics, from_attributes=True)


def _score_response(score: ReadinessScore, ml_weight: float) -> ReadinessScoreResponse:
    return ReadinessScoreResponse(
        date=score.date,
        score=score.score,
        score_description=score.score_description,
        confidence=score.confidence.value,
        breakdown=ReadinessBreakdownResponse(**score.breakdown.to_dict()),
        source_metrics=_metrics_out(score.source_metrics),
        source_energy_level=score.source_energy_level,
        ml_weight=ml_weight,
    )


def _prediction_response(prediction: Prediction) -> PredictionResponse:
    return PredictionResponse(
        id=prediction.id,
        created_at=prediction.created_at,
        target_date=prediction.target_date,
        predicted_score=prediction.predicted_score,
        confidence=prediction.confidence.value,
        source=prediction.source.value,
        input_energy_level=prediction.input_energy_level,
        actual_score=prediction.actual_score,
        actual_score_recorded_at=prediction.actual_score_recorded_at,
        is_resolved=prediction.is_resolved,
        absolute_error=prediction.absolute_error,
        accuracy_description=prediction.accuracy_description,
    )


def _status_response(service: ReadinessService) -> ModelStatusResponse:
    status = service.status
    return ModelStatusResponse(
        state=status.state.value,
        example_count=status.example_count,
        last_trained_at=status.last_trained_at,
        reason=status.reason,
        days_of_data=service.days_of_data,
        transition_days=service.transition_days,
        ml_weight=service.ml_weight,
    )


# =============================================================================
# MODEL
# =============================================================================

@router.get("/status", response_model=ModelStatusResponse)
def get_model_status(service: ReadinessService = Depends(get_readiness_service)):
    """Personalized model state and how much of the score it currently drives."""
    return _status_response(service)


@router.post("/retrain", response_model=ModelStatusResponse)
def retrain_model(
    db: Session = Depends(get_db),
    service: ReadinessService = Depends(get_readiness_service),
):
    """
    Retrain the personalized model from every completed day on record.

    Always from scratch. Too few usable days leaves the model untrained and
    scoring stays rules-only.
    """
    days = SqlDayRepository(db).get_completed_days()
    with _service_lock:
        service.retrain(ObservationHistory.from_day_records(days))
        return _status_response(service)


# =============================================================================
# DAYS
# =============================================================================

@router.post("/days", response_model=DayRecordResponse)
def record_day(
    payload: DayRecordCreate,
    db: Session = Depends(get_db),
):
    """
    Record energy check-ins and/or the health snapshot for a day.

    Fields that are omitted keep their stored values.
    """
    metrics = payload.metrics.to_record(payload.date) if payload.metrics else None
    record = SqlDayRepository(db).upsert(
        payload.date,
        first_energy=payload.first_energy,
        second_energy=payload.second_energy,
        metrics=metrics,
    )
    return DayRecordResponse(
        date=record.date,
        first_energy=record.first_energy,
        second_energy=record.second_energy,
        is_completed=record.is_completed,
        metrics=_metrics_out(record.metrics),
    )


# =============================================================================
# SCORING
# =============================================================================

@router.post("/score", response_model=ReadinessScoreResponse)
def score_day(
    payload: ReadinessScoreRequest,
    db: Session = Depends(get_db),
    service: ReadinessService = Depends(get_readiness_service),
    health_source: HealthDataSource = Depends(get_health_source),
    predictions: PredictionService = Depends(get_prediction_service),
):
    """
    Calculate and store the readiness score for a day (default today).

    The stored score also resolves any prediction made for that day.
    """
    day = payload.day or date.today()
    if payload.metrics is not None:
        metrics = payload.metrics.to_record(day)
    else:
        metrics = health_source.fetch(day)

    with _service_lock:
        score = service.calculate(
            metrics if metrics.has_any_data else None,
            payload.energy_level,
            today=day,
        )
        ml_weight = service.ml_weight

    if score is None:
        raise ValidationError("No health metrics or energy level to score", field="metrics")

    SqlReadinessScoreRepository(db).save(score)
    predictions.resolve_unresolved_predictions([score], today=day)

    logger.info(f"Readiness for {day}: {score.score} ({score.confidence.value}, ml_weight={ml_weight:.2f})")
    return _score_response(score, ml_weight)


# =============================================================================
# PREDICTIONS
# =============================================================================

@router.post("/predictions", response_model=PredictionResponse)
def create_prediction(
    payload: PredictionRequest,
    db: Session = Depends(get_db),
    health_source: HealthDataSource = Depends(get_health_source),
    predictions: PredictionService = Depends(get_prediction_service),
):
    """
    Predict tomorrow's readiness from today's data.

    One prediction per day: repeating the call returns the stored one.
    """
    today = date.today()
    if payload.metrics is not None:
        metrics = payload.metrics.to_record(today)
    else:
        metrics = health_source.fetch(today)

    today_score = payload.today_score
    if today_score is None:
        stored = SqlReadinessScoreRepository(db).get(today)
        today_score = stored.score if stored else None

    prediction = predictions.create_prediction(
        metrics if metrics.has_any_data else None,
        payload.energy_level,
        today_score,
    )
    if prediction is None:
        raise ValidationError("Not enough data to predict tomorrow", field="metrics")
    return _prediction_response(prediction)


@router.get("/predictions/today", response_model=PredictionResponse)
def get_todays_prediction(predictions: PredictionService = Depends(get_prediction_service)):
    prediction = predictions.get_todays_prediction()
    if prediction is None:
        raise NotFoundError("Prediction", date.today().isoformat())
    return _prediction_response(prediction)


@router.post("/predictions/resolve", response_model=PredictionResponse)
def resolve_todays_prediction(
    payload: ResolvePredictionRequest,
    predictions: PredictionService = Depends(get_prediction_service),
):
    """Attach today's actual score to the prediction made yesterday."""
    today = date.today()
    existing = predictions.get_todays_prediction(today)
    if existing is None:
        raise NotFoundError("Prediction", today.isoformat())
    if existing.is_resolved:
        raise ConflictError(f"Prediction for {today.isoformat()} is already resolved")

    resolved = predictions.resolve_todays_prediction(payload.actual_score, today=today, now=datetime.now())
    return _prediction_response(resolved)


@router.get("/predictions/recent", response_model=List[PredictionResponse])
def get_recent_predictions(
    days: int = Query(default=7, ge=1, le=365),
    predictions: PredictionService = Depends(get_prediction_service),
):
    return [_prediction_response(p) for p in predictions.get_recent_predictions(days)]


@router.get("/predictions/accuracy", response_model=PredictionAccuracyResponse)
def get_prediction_accuracy(predictions: PredictionService = Depends(get_prediction_service)):
    return PredictionAccuracyResponse(**predictions.get_accuracy_stats().to_dict())
