"""
Feature Extractor

Turns a day's health metrics into the bounded feature vector consumed by the
personalized readiness model.

Features (all 0-1):
    - hrv:          HRV clamped to 20-100 ms, higher is better
    - rhr:          resting HR clamped to 40-90 bpm, inverted (lower is better)
    - sleep:        sleep duration, policy-dependent (see below)
    - day_of_week:  Sunday = 0 ... Saturday = 1, always present

Normalization policy depends on how much the model has seen:
    - Opinionated (< 30 trained examples): 7-9 h of sleep scores highest,
      so a young model starts from a sensible prior.
    - Linear (30+): sleep scales linearly over 4-12 h and the model learns
      the personal optimum itself.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from services.health_metrics import MetricsRecord
from services.score_math import clamp

# Trained-example count at which sleep switches to linear normalization
LINEAR_NORMALIZATION_THRESHOLD = 30

# Value substituted for a missing physiological feature at inference time
MISSING_FEATURE_DEFAULT = 0.5

HRV_MIN, HRV_MAX = 20.0, 100.0
RHR_MIN, RHR_MAX = 40.0, 90.0
SLEEP_MIN_HOURS, SLEEP_MAX_HOURS = 4.0, 12.0
SLEEP_OPTIMAL_MIN_HOURS, SLEEP_OPTIMAL_MAX_HOURS = 7.0, 9.0


@dataclass(frozen=True)
class FeatureVector:
    """Normalized model input. None marks a missing physiological signal."""
    hrv: Optional[float]
    rhr: Optional[float]
    sleep: Optional[float]
    day_of_week: float

    def to_array(self, default: float = MISSING_FEATURE_DEFAULT) -> List[float]:
        """[hrv, rhr, sleep, day_of_week] with missing values replaced by default."""
        return [
            self.hrv if self.hrv is not None else default,
            self.rhr if self.rhr is not None else default,
            self.sleep if self.sleep is not None else default,
            self.day_of_week,
        ]

    @property
    def available_feature_count(self) -> int:
        present = sum(1 for value in (self.hrv, self.rhr, self.sleep) if value is not None)
        return present + 1  # day_of_week always counts


def day_of_week_feature(day: date) -> float:
    """Sunday -> 0.0, Monday -> 1/6, ..., Saturday -> 1.0."""
    return (day.isoweekday() % 7) / 6.0


class FeatureExtractor:
    """
    Extracts normalized features from health metrics.

    The policy is fixed at construction from the trained-example count so that
    training and inference for the same model use the same normalization.
    """

    def __init__(
        self,
        training_example_count: int = 0,
        linear_threshold: int = LINEAR_NORMALIZATION_THRESHOLD,
    ):
        self.use_linear_normalization = training_example_count >= linear_threshold

    def extract(self, metrics: Optional[MetricsRecord], today: Optional[date] = None) -> FeatureVector:
        if metrics is None:
            return FeatureVector(
                hrv=None,
                rhr=None,
                sleep=None,
                day_of_week=day_of_week_feature(today or date.today()),
            )

        sleep_hours = metrics.sleep_hours
        return FeatureVector(
            hrv=self.normalize_hrv(metrics.hrv) if metrics.hrv is not None else None,
            rhr=(
                self.normalize_rhr(metrics.resting_heart_rate)
                if metrics.resting_heart_rate is not None
                else None
            ),
            sleep=self.normalize_sleep(sleep_hours) if sleep_hours is not None else None,
            day_of_week=day_of_week_feature(metrics.date),
        )

    @staticmethod
    def normalize_hrv(hrv: float) -> float:
        return (clamp(hrv, HRV_MIN, HRV_MAX) - HRV_MIN) / (HRV_MAX - HRV_MIN)

    @staticmethod
    def normalize_rhr(rhr: float) -> float:
        # Inverted so a lower resting HR gives a higher value
        return 1.0 - (clamp(rhr, RHR_MIN, RHR_MAX) - RHR_MIN) / (RHR_MAX - RHR_MIN)

    def normalize_sleep(self, hours: float) -> float:
        if self.use_linear_normalization:
            clamped = clamp(hours, SLEEP_MIN_HOURS, SLEEP_MAX_HOURS)
            return (clamped - SLEEP_MIN_HOURS) / (SLEEP_MAX_HOURS - SLEEP_MIN_HOURS)

        # Optimal band: 0.8 at either edge, 1.0 at 8 h
        if SLEEP_OPTIMAL_MIN_HOURS <= hours <= SLEEP_OPTIMAL_MAX_HOURS:
            band = SLEEP_OPTIMAL_MAX_HOURS - SLEEP_OPTIMAL_MIN_HOURS
            position = (hours - SLEEP_OPTIMAL_MIN_HOURS) / band
            distance_from_middle = abs(position - 0.5) * 2
            return 1.0 - distance_from_middle * 0.2

        # Short sleep: 0.2 at 4 h (and below) up to 0.8 at 7 h
        if hours < SLEEP_OPTIMAL_MIN_HOURS:
            span = SLEEP_OPTIMAL_MIN_HOURS - SLEEP_MIN_HOURS
            position = max(0.0, hours - SLEEP_MIN_HOURS) / span
            return 0.2 + position * 0.6

        # Long sleep: 0.8 just past 9 h down to 0.5 at 12 h (and beyond)
        span = SLEEP_MAX_HOURS - SLEEP_OPTIMAL_MAX_HOURS
        position = min(hours - SLEEP_OPTIMAL_MAX_HOURS, span) / span
        return 0.8 - position * 0.3


def extract_features(
    metrics: Optional[MetricsRecord],
    training_example_count: int = 0,
) -> FeatureVector:
    """Convenience wrapper: pick the policy and extract in one call."""
    return FeatureExtractor(training_example_count).extract(metrics)
