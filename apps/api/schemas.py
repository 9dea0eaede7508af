from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional

from services.health_metrics import MetricsRecord


class HealthMetricsIn(BaseModel):
    """Health snapshot as sent by a client. Omitted fields mean no data."""
    resting_heart_rate: Optional[float] = Field(default=None, gt=0)  # bpm
    hrv: Optional[float] = Field(default=None, ge=0)  # ms, SDNN
    sleep_duration: Optional[float] = Field(default=None, ge=0)  # seconds
    steps: Optional[int] = Field(default=None, ge=0)
    active_energy: Optional[float] = Field(default=None, ge=0)  # kcal

    model_config = ConfigDict(allow_inf_nan=False)

    def to_record(self, day: date) -> MetricsRecord:
        return MetricsRecord(date=day, **self.model_dump())


class HealthMetricsOut(BaseModel):
    date: date
    resting_heart_rate: Optional[float] = None
    hrv: Optional[float] = None
    sleep_duration: Optional[float] = None
    steps: Optional[int] = None
    active_energy: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


# ===== Days =====

class DayRecordCreate(BaseModel):
    date: date
    first_energy: Optional[int] = Field(default=None, ge=1, le=5)
    second_energy: Optional[int] = Field(default=None, ge=1, le=5)
    metrics: Optional[HealthMetricsIn] = None


class DayRecordResponse(BaseModel):
    date: date
    first_energy: Optional[int] = None
    second_energy: Optional[int] = None
    is_completed: bool
    metrics: Optional[HealthMetricsOut] = None

    model_config = ConfigDict(from_attributes=True)


# ===== Readiness =====

class ReadinessScoreRequest(BaseModel):
    """Score a day. Without metrics, they are fetched from the health data source."""
    day: Optional[date] = None
    energy_level: Optional[int] = Field(default=None, ge=1, le=5)
    metrics: Optional[HealthMetricsIn] = None


class ReadinessBreakdownResponse(BaseModel):
    hrv: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    sleep: Optional[int] = None
    energy: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ReadinessScoreResponse(BaseModel):
    date: date
    score: int
    score_description: str
    confidence: str
    breakdown: ReadinessBreakdownResponse
    source_metrics: Optional[HealthMetricsOut] = None
    source_energy_level: Optional[int] = None
    ml_weight: float

    model_config = ConfigDict(from_attributes=True)


class ModelStatusResponse(BaseModel):
    state: str
    example_count: int
    last_trained_at: Optional[datetime] = None
    reason: Optional[str] = None
    days_of_data: int
    transition_days: int
    ml_weight: float


# ===== Predictions =====

class PredictionRequest(BaseModel):
    """Predict tomorrow. today_score defaults to today's stored readiness score."""
    energy_level: Optional[int] = Field(default=None, ge=1, le=5)
    today_score: Optional[int] = Field(default=None, ge=0, le=100)
    metrics: Optional[HealthMetricsIn] = None


class PredictionResponse(BaseModel):
    id: UUID
    created_at: datetime
    target_date: date
    predicted_score: int
    confidence: str
    source: str
    input_energy_level: Optional[int] = None
    actual_score: Optional[int] = None
    actual_score_recorded_at: Optional[datetime] = None
    is_resolved: bool
    absolute_error: Optional[int] = None
    accuracy_description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ResolvePredictionRequest(BaseModel):
    actual_score: int = Field(ge=0, le=100)


class PredictionAccuracyResponse(BaseModel):
    total_predictions: int
    average_error: float
    average_accuracy: float
    excellent_count: int
    good_count: int
    fair_count: int
    poor_count: int
    recent_trend: Optional[float] = None
    success_rate: float

    model_config = ConfigDict(from_attributes=True)
