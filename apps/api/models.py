from sqlalchemy import Column, Integer, Float, Date, DateTime, JSON, Text, Index, Uuid
from sqlalchemy.sql import func
from core.database import Base
import uuid
from typing import Optional

from services.health_metrics import MetricsRecord


class DailyRecord(Base):
    """
    One calendar day: both energy self-reports plus the health snapshot.

    A day is "completed" (usable for training) once both energies are set.
    """
    __tablename__ = "daily_record"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Self-reported energy, 1-5
    first_energy = Column(Integer, nullable=True)   # morning check-in
    second_energy = Column(Integer, nullable=True)  # evening check-in

    # Health snapshot (any may be null: no data, not zero)
    resting_heart_rate = Column(Float, nullable=True)  # bpm
    hrv = Column(Float, nullable=True)  # ms, SDNN
    sleep_duration = Column(Float, nullable=True)  # seconds
    steps = Column(Integer, nullable=True)
    active_energy = Column(Float, nullable=True)  # kcal

    @property
    def is_completed(self) -> bool:
        return self.first_energy is not None and self.second_energy is not None

    @property
    def metrics(self) -> Optional[MetricsRecord]:
        record = MetricsRecord(
            date=self.date,
            resting_heart_rate=self.resting_heart_rate,
            hrv=self.hrv,
            sleep_duration=self.sleep_duration,
            steps=self.steps,
            active_energy=self.active_energy,
        )
        return record if record.has_any_data else None


class ReadinessScoreRecord(Base):
    __tablename__ = "readiness_score"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True)
    score = Column(Integer, nullable=False)
    confidence = Column(Text, nullable=False)  # 'full' | 'partial' | 'limited'

    # Component breakdown (0-100 each, null if unavailable)
    hrv_score = Column(Integer, nullable=True)
    resting_heart_rate_score = Column(Integer, nullable=True)
    sleep_score = Column(Integer, nullable=True)
    energy_score = Column(Integer, nullable=True)

    source_metrics = Column(JSON, nullable=True)  # MetricsRecord.to_dict()
    source_energy_level = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class PredictionRecord(Base):
    __tablename__ = "readiness_prediction"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False)
    target_date = Column(Date, nullable=False, unique=True)
    predicted_score = Column(Integer, nullable=False)  # 15-95
    confidence = Column(Text, nullable=False)
    source = Column(Text, nullable=False, default="rules")  # 'rules' | 'blended' | 'ml'
    input_metrics = Column(JSON, nullable=True)
    input_energy_level = Column(Integer, nullable=True)

    # Set exactly once, when the target day is scored
    actual_score = Column(Integer, nullable=True)
    actual_score_recorded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_readiness_prediction_actual_score", "actual_score"),
    )


class ModelWeightsRecord(Base):
    """Single-row table holding the personalized model's current weights."""
    __tablename__ = "readiness_model_weights"

    id = Column(Integer, primary_key=True)  # always 1
    weights = Column(JSON, nullable=False)  # [bias, hrv, rhr, sleep, day_of_week]
    example_count = Column(Integer, nullable=False, default=0)
    last_trained_at = Column(DateTime(timezone=True), nullable=False)
