"""
Readiness Service (blend controller)

Combines the rules scorer with the personalized model. The model's share
ramps linearly with the number of usable training days:

    ml_weight = min(days_of_data, transition_days) / transition_days
    score     = round(rules * (1 - ml_weight) + ml * ml_weight)

Rules always run first and are the floor: if they have nothing to score the
call returns None, and any model failure falls back to the rules score
unchanged. Only the number is blended; breakdown and confidence stay the
rules scorer's.
"""

from dataclasses import replace
from datetime import date
from typing import Iterable, Optional, Union
import logging

from services.health_metrics import MetricsRecord
from services.readiness_calculator import ReadinessCalculator, ReadinessScore
from services.readiness_model import PersonalizedReadinessModel, TrainingStatus
from services.score_math import round_half_away
from services.training_data import CompletedDay, ObservationHistory, TrainingDataCollector

logger = logging.getLogger(__name__)

DEFAULT_TRANSITION_DAYS = 30


class ReadinessService:
    """
    Owns the blend state (days_of_data) and the model it blends in.

    Single coordinator: calculate/retrain must not run concurrently against
    the same instance.
    """

    def __init__(
        self,
        calculator: Optional[ReadinessCalculator] = None,
        model: Optional[PersonalizedReadinessModel] = None,
        collector: Optional[TrainingDataCollector] = None,
        transition_days: int = DEFAULT_TRANSITION_DAYS,
    ):
        if transition_days <= 0:
            raise ValueError(f"transition_days must be positive, got {transition_days}")
        self.calculator = calculator or ReadinessCalculator()
        self.model = model or PersonalizedReadinessModel()
        self.collector = collector or TrainingDataCollector()
        self.transition_days = transition_days
        self._days_of_data = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def days_of_data(self) -> int:
        return self._days_of_data

    def set_days_of_data(self, days: int) -> None:
        self._days_of_data = max(0, int(days))

    @property
    def ml_weight(self) -> float:
        return min(self._days_of_data, self.transition_days) / self.transition_days

    @property
    def training_example_count(self) -> int:
        return self.model.training_example_count

    @property
    def status(self) -> TrainingStatus:
        return self.model.status

    def load_saved_model(self) -> bool:
        """Restore persisted weights and resume the blend where it left off."""
        loaded = self.model.load_saved_model()
        self.set_days_of_data(self.model.training_example_count if loaded else 0)
        return loaded

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def calculate(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today: Optional[date] = None,
    ) -> Optional[ReadinessScore]:
        rules_score = self.calculator.calculate(metrics, energy_level, today=today)
        if rules_score is None:
            return None

        ml_weight = self.ml_weight
        if ml_weight <= 0:
            return rules_score

        result = self.model.predict_from_metrics(metrics)
        if not result.succeeded:
            logger.debug(f"Readiness: model unavailable ({result.outcome.value}), using rules score")
            return rules_score

        blended = round_half_away(rules_score.score * (1 - ml_weight) + result.score * ml_weight)
        logger.debug(
            f"Readiness: rules={rules_score.score} ml={result.score} "
            f"weight={ml_weight:.2f} -> {blended}"
        )
        return replace(rules_score, score=blended)

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def retrain(self, history: Union[ObservationHistory, Iterable[CompletedDay]]) -> bool:
        """
        Re-collect examples from the complete history and train from scratch.

        Returns whether the model trained. A failed train leaves any previous
        weights in place.
        """
        current_count = self.model.training_example_count
        examples = self.collector.collect(history, current_example_count=current_count)
        self.set_days_of_data(len(examples))

        trained = self.model.train(examples)
        logger.info(
            f"Readiness retrain: {len(examples)} examples, status={self.model.status.state.value}, "
            f"ml_weight={self.ml_weight:.2f}"
        )
        return trained
