"""
Prediction Service

Lifecycle of next-day predictions:
    1. Predict tomorrow from today's data (prediction_engine.py)
    2. Store it, at most one per target date
    3. When the target day is scored, attach the actual score (once)
    4. Summarize accuracy over resolved predictions

Storage sits behind the PredictionRepository protocol. The in-memory
implementation lives here; the SQL one is in readiness_store.py.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Sequence
from uuid import UUID
import logging

from services.health_metrics import MetricsRecord
from services.prediction_engine import Prediction, PredictionEngine
from services.readiness_calculator import ReadinessScore

logger = logging.getLogger(__name__)

# Resolved predictions needed before a trend is reported
TREND_MIN_PREDICTIONS = 10
TREND_WINDOW = 5


# =============================================================================
# ACCURACY
# =============================================================================

@dataclass(frozen=True)
class PredictionAccuracyStats:
    total_predictions: int
    average_error: float
    average_accuracy: float
    excellent_count: int   # within 5 points
    good_count: int        # 6-10
    fair_count: int        # 11-15
    poor_count: int        # more than 15
    recent_trend: Optional[float] = None  # positive = error shrinking

    @property
    def success_rate(self) -> float:
        """Share of predictions that were excellent or good, 0-100."""
        if self.total_predictions == 0:
            return 0.0
        return (self.excellent_count + self.good_count) / self.total_predictions * 100

    def to_dict(self) -> dict:
        return {
            "total_predictions": self.total_predictions,
            "average_error": self.average_error,
            "average_accuracy": self.average_accuracy,
            "excellent_count": self.excellent_count,
            "good_count": self.good_count,
            "fair_count": self.fair_count,
            "poor_count": self.poor_count,
            "recent_trend": self.recent_trend,
            "success_rate": self.success_rate,
        }


def summarize_accuracy(predictions: Iterable[Prediction]) -> PredictionAccuracyStats:
    """
    Accuracy over the resolved predictions in ``predictions``.

    The trend compares the mean error of the 5 newest predictions against the
    5 before them, and needs at least 10 resolved predictions.
    """
    resolved = sorted(
        (p for p in predictions if p.is_resolved),
        key=lambda p: p.target_date,
        reverse=True,
    )
    if not resolved:
        return PredictionAccuracyStats(
            total_predictions=0,
            average_error=0.0,
            average_accuracy=0.0,
            excellent_count=0,
            good_count=0,
            fair_count=0,
            poor_count=0,
        )

    errors = [p.absolute_error for p in resolved]
    average_error = sum(errors) / len(errors)

    recent_trend = None
    if len(errors) >= TREND_MIN_PREDICTIONS:
        recent = errors[:TREND_WINDOW]
        older = errors[TREND_WINDOW:TREND_WINDOW * 2]
        recent_trend = sum(older) / len(older) - sum(recent) / len(recent)

    return PredictionAccuracyStats(
        total_predictions=len(errors),
        average_error=average_error,
        average_accuracy=max(0.0, 100.0 - average_error),
        excellent_count=sum(1 for e in errors if e <= 5),
        good_count=sum(1 for e in errors if 5 < e <= 10),
        fair_count=sum(1 for e in errors if 10 < e <= 15),
        poor_count=sum(1 for e in errors if e > 15),
        recent_trend=recent_trend,
    )


# =============================================================================
# REPOSITORY
# =============================================================================

class PredictionRepository(Protocol):
    def save(self, prediction: Prediction) -> None:
        ...

    def update(self, prediction: Prediction) -> None:
        """Persist the actual score of an already-saved prediction."""
        ...

    def get_by_target_date(self, target_date: date) -> Optional[Prediction]:
        ...

    def get_range(self, start: date, end: date) -> List[Prediction]:
        """Predictions with start <= target_date <= end, newest first."""
        ...

    def get_unresolved(self, as_of: date) -> List[Prediction]:
        """Unresolved predictions whose target date has arrived, oldest first."""
        ...

    def get_resolved(self, limit: Optional[int] = None) -> List[Prediction]:
        """Resolved predictions, newest first."""
        ...


class InMemoryPredictionRepository:
    def __init__(self, predictions: Iterable[Prediction] = ()):
        self._predictions: Dict[UUID, Prediction] = {p.id: p for p in predictions}

    def save(self, prediction: Prediction) -> None:
        self._predictions[prediction.id] = prediction

    def update(self, prediction: Prediction) -> None:
        if prediction.id in self._predictions:
            self._predictions[prediction.id] = prediction

    def get_by_target_date(self, target_date: date) -> Optional[Prediction]:
        for prediction in self._predictions.values():
            if prediction.target_date == target_date:
                return prediction
        return None

    def get_range(self, start: date, end: date) -> List[Prediction]:
        found = [p for p in self._predictions.values() if start <= p.target_date <= end]
        return sorted(found, key=lambda p: p.target_date, reverse=True)

    def get_unresolved(self, as_of: date) -> List[Prediction]:
        found = [
            p for p in self._predictions.values()
            if not p.is_resolved and p.target_date <= as_of
        ]
        return sorted(found, key=lambda p: p.target_date)

    def get_resolved(self, limit: Optional[int] = None) -> List[Prediction]:
        found = sorted(
            (p for p in self._predictions.values() if p.is_resolved),
            key=lambda p: p.target_date,
            reverse=True,
        )
        return found[:limit] if limit is not None else found


# =============================================================================
# SERVICE
# =============================================================================

class PredictionService:
    def __init__(
        self,
        engine: Optional[PredictionEngine] = None,
        repository: Optional[PredictionRepository] = None,
    ):
        self.engine = engine or PredictionEngine()
        self.repository = repository if repository is not None else InMemoryPredictionRepository()

    def create_prediction(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today_score: Optional[int],
        now: Optional[datetime] = None,
    ) -> Optional[Prediction]:
        """Predict tomorrow and store it. Returns the existing prediction if there is one."""
        prediction = self.engine.predict_tomorrow(metrics, energy_level, today_score, now=now)
        if prediction is None:
            logger.debug("Prediction: not enough data to predict tomorrow")
            return None

        existing = self.repository.get_by_target_date(prediction.target_date)
        if existing is not None:
            return existing

        self.repository.save(prediction)
        logger.info(
            f"Prediction for {prediction.target_date}: {prediction.predicted_score} "
            f"({prediction.confidence.value}, {prediction.source.value})"
        )
        return prediction

    def get_todays_prediction(self, today: Optional[date] = None) -> Optional[Prediction]:
        return self.repository.get_by_target_date(today or date.today())

    def resolve_todays_prediction(
        self,
        actual_score: int,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Prediction]:
        """
        Attach today's actual score to the prediction made for today.

        Returns the resolved prediction, or None when there was nothing to
        resolve (no prediction, or already resolved).
        """
        prediction = self.get_todays_prediction(today)
        if prediction is None or prediction.is_resolved:
            return None

        resolved = prediction.resolved(actual_score, now)
        self.repository.update(resolved)
        logger.info(
            f"Prediction for {resolved.target_date} resolved: predicted {resolved.predicted_score}, "
            f"actual {resolved.actual_score} ({resolved.accuracy_description})"
        )
        return resolved

    def resolve_unresolved_predictions(
        self,
        scores: Sequence[ReadinessScore],
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> List[Prediction]:
        """Catch up on predictions whose target day has a score but was never resolved."""
        scores_by_date = {score.date: score.score for score in scores}

        resolved = []
        for prediction in self.repository.get_unresolved(today or date.today()):
            actual = scores_by_date.get(prediction.target_date)
            if actual is None:
                continue
            updated = prediction.resolved(actual, now)
            self.repository.update(updated)
            resolved.append(updated)

        if resolved:
            logger.info(f"Resolved {len(resolved)} outstanding predictions")
        return resolved

    def get_recent_predictions(self, days: int, today: Optional[date] = None) -> List[Prediction]:
        """Predictions targeting the last ``days`` days through today, newest first."""
        end = today or date.today()
        return self.repository.get_range(end - timedelta(days=days), end)

    def get_accuracy_stats(self) -> PredictionAccuracyStats:
        return summarize_accuracy(self.repository.get_resolved())
