"""
Prediction Engine (next-day readiness)

Forecasts tomorrow's readiness from today's signals with rules-based
heuristics. Independent of the rules scorer's curves: it works in point
adjustments around a baseline, not in 0-100 component scores.

    predicted = clamp(baseline + damping * Σ(adj_i * w_i) / Σw_i, 15, 95)

Baseline is today's score when known, else a neutral 65. Damping (0.7) keeps
forecasts from swinging wildly day to day.

Rules (adjustment points, weight):
    1. Sleep      (0.35)  <4h -20 ... 8-9h +5 ... 10h+ -3
    2. HRV        (0.25)  <20 -15 ... 100+ +12
    3. Resting HR (0.15)  90+ -10 ... <50 +8
    4. Steps      (0.10)  high activity drains unless well rested (>= 7 h)
    5. Energy     (0.15)  1 -> -10 ... 5 -> +8

Every prediction is later resolved against the real score, which is how
accuracy gets tracked (see prediction_service.py).
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID, uuid4
import logging

from services.health_metrics import MetricsRecord
from services.readiness_calculator import ReadinessConfidence
from services.score_math import clamp, clamp_score

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

DAMPING_FACTOR = 0.7
NEUTRAL_BASELINE = 65.0

PREDICTED_SCORE_MIN = 15
PREDICTED_SCORE_MAX = 95

SLEEP_WEIGHT = 0.35
HRV_WEIGHT = 0.25
RHR_WEIGHT = 0.15
STEPS_WEIGHT = 0.10
ENERGY_WEIGHT = 0.15

WELL_RESTED_HOURS = 7.0


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class PredictionSource(str, Enum):
    RULES = "rules"        # heuristics only
    BLENDED = "blended"    # rules + personalized model
    ML = "ml"              # personalized model only


@dataclass(frozen=True)
class Prediction:
    """
    A forecast of tomorrow's readiness, later resolved with the actual score.

    Scores are clamped at construction: predicted to 15-95, actual to 0-100.
    """
    created_at: datetime
    target_date: date
    predicted_score: int
    confidence: ReadinessConfidence
    source: PredictionSource = PredictionSource.RULES
    input_metrics: Optional[MetricsRecord] = None
    input_energy_level: Optional[int] = None
    actual_score: Optional[int] = None
    actual_score_recorded_at: Optional[datetime] = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        object.__setattr__(
            self,
            "predicted_score",
            int(clamp(self.predicted_score, PREDICTED_SCORE_MIN, PREDICTED_SCORE_MAX)),
        )
        if self.actual_score is not None:
            object.__setattr__(self, "actual_score", int(clamp(self.actual_score, 0, 100)))

    @property
    def is_resolved(self) -> bool:
        return self.actual_score is not None

    @property
    def absolute_error(self) -> Optional[int]:
        if self.actual_score is None:
            return None
        return abs(self.predicted_score - self.actual_score)

    @property
    def signed_error(self) -> Optional[int]:
        """Positive = overpredicted, negative = underpredicted."""
        if self.actual_score is None:
            return None
        return self.predicted_score - self.actual_score

    @property
    def accuracy_percentage(self) -> Optional[float]:
        error = self.absolute_error
        if error is None:
            return None
        return max(0.0, 100.0 - error)

    @property
    def accuracy_description(self) -> Optional[str]:
        error = self.absolute_error
        if error is None:
            return None
        if error <= 5:
            return "Excellent"
        if error <= 10:
            return "Good"
        if error <= 15:
            return "Fair"
        if error <= 25:
            return "Poor"
        return "Very Poor"

    def resolved(self, actual_score: int, recorded_at: Optional[datetime] = None) -> "Prediction":
        """Copy of this prediction with the actual score attached."""
        return replace(
            self,
            actual_score=actual_score,
            actual_score_recorded_at=recorded_at or datetime.now(),
        )


# =============================================================================
# ENGINE
# =============================================================================

class PredictionEngine:
    """
    Rules-based next-day forecaster. Pure for a given ``now``.
    """

    def __init__(
        self,
        damping_factor: float = DAMPING_FACTOR,
        source: PredictionSource = PredictionSource.RULES,
    ):
        self.damping_factor = damping_factor
        self.source = source

    def predict_tomorrow(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today_score: Optional[int],
        now: Optional[datetime] = None,
    ) -> Optional[Prediction]:
        """
        Forecast tomorrow's readiness from today's data.

        Returns None when there are no metrics, no energy level and no score.
        """
        has_metrics = metrics is not None and metrics.has_any_data
        if not (has_metrics or energy_level is not None or today_score is not None):
            return None

        now = now or datetime.now()
        return Prediction(
            created_at=now,
            target_date=now.date() + timedelta(days=1),
            predicted_score=self.predicted_score(metrics, energy_level, today_score),
            confidence=self.confidence(metrics, energy_level, today_score),
            source=self.source,
            input_metrics=metrics,
            input_energy_level=energy_level,
        )

    def adjustments(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
    ) -> List[Tuple[float, float]]:
        """(adjustment, weight) for each available signal."""
        rules: List[Tuple[float, float]] = []

        if metrics is not None and metrics.sleep_hours is not None:
            rules.append((sleep_adjustment(metrics.sleep_hours), SLEEP_WEIGHT))

        if metrics is not None and metrics.hrv is not None:
            rules.append((hrv_adjustment(metrics.hrv), HRV_WEIGHT))

        if metrics is not None and metrics.resting_heart_rate is not None:
            rules.append((rhr_adjustment(metrics.resting_heart_rate), RHR_WEIGHT))

        if metrics is not None and metrics.steps is not None:
            rules.append((
                activity_adjustment(metrics.steps, metrics.sleep_hours or 0.0),
                STEPS_WEIGHT,
            ))

        if energy_level is not None:
            rules.append((energy_adjustment(energy_level), ENERGY_WEIGHT))

        return rules

    def predicted_score(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today_score: Optional[int],
    ) -> int:
        baseline = float(today_score) if today_score is not None else NEUTRAL_BASELINE

        rules = self.adjustments(metrics, energy_level)
        total_weight = sum(weight for _, weight in rules)
        adjustment = 0.0
        if total_weight > 0:
            adjustment = sum(adj * weight for adj, weight in rules) / total_weight

        raw = baseline + adjustment * self.damping_factor
        return clamp_score(raw, PREDICTED_SCORE_MIN, PREDICTED_SCORE_MAX)

    @staticmethod
    def confidence(
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today_score: Optional[int],
    ) -> ReadinessConfidence:
        data_points = sum(1 for value in (
            metrics.sleep_duration if metrics else None,
            metrics.hrv if metrics else None,
            metrics.resting_heart_rate if metrics else None,
            metrics.steps if metrics else None,
            energy_level,
            today_score,
        ) if value is not None)

        if data_points >= 5:
            return ReadinessConfidence.FULL
        if data_points >= 3:
            return ReadinessConfidence.PARTIAL
        return ReadinessConfidence.LIMITED


# =============================================================================
# RULES
# =============================================================================

def sleep_adjustment(hours: float) -> float:
    """Short sleep costs tomorrow; oversleep can signal fatigue or illness."""
    if hours < 4:
        return -20.0
    if hours < 5:
        return -15.0
    if hours < 6:
        return -10.0
    if hours < 7:
        return -3.0
    if hours < 8:
        return 3.0
    if hours < 9:
        return 5.0
    if hours < 10:
        return 2.0
    return -3.0


def hrv_adjustment(hrv: float) -> float:
    if hrv < 20:
        return -15.0
    if hrv < 35:
        return -8.0
    if hrv < 50:
        return -2.0
    if hrv < 70:
        return 3.0
    if hrv < 100:
        return 8.0
    return 12.0


def rhr_adjustment(rhr: float) -> float:
    if rhr >= 90:
        return -10.0
    if rhr >= 80:
        return -5.0
    if rhr >= 70:
        return -2.0
    if rhr >= 60:
        return 2.0
    if rhr >= 50:
        return 5.0
    return 8.0


def activity_adjustment(steps: int, sleep_hours: float) -> float:
    """Steps as an activity proxy. Hard days drain more when under-slept."""
    well_rested = sleep_hours >= WELL_RESTED_HOURS
    if steps < 3000:
        return 0.0
    if steps < 7000:
        return 3.0
    if steps < 12000:
        return 5.0 if well_rested else -2.0
    if steps < 18000:
        return 2.0 if well_rested else -8.0
    return -3.0 if well_rested else -12.0


def energy_adjustment(level: int) -> float:
    """Energy carries momentum into the next day."""
    return {1: -10.0, 2: -5.0, 3: 0.0, 4: 5.0, 5: 8.0}.get(level, 0.0)
