"""
Readiness Score Calculator (rules)

Population-based readiness scoring. Works from day one with no history and is
the mandatory floor under the personalized model.

Each available signal maps to a 0-100 component via a fixed piecewise-linear
curve:
    - HRV: higher is better
    - Resting HR: lower is better, but < 40 bpm caps at 85 (bradycardia guard)
    - Sleep: 7-9 h is optimal; too little or too much scores lower
    - Energy: 1-5 self-report, x20

Weights (renormalized over the components that are present):
    HRV 0.30, Sleep 0.25, Energy 0.25, Resting HR 0.20

Confidence: 4 components -> full, 2-3 -> partial, 0-1 -> limited.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional
import logging

from services.health_metrics import MetricsRecord
from services.score_math import clamp, clamp_score

logger = logging.getLogger(__name__)


class ReadinessConfidence(str, Enum):
    FULL = "full"          # all four components
    PARTIAL = "partial"    # two or three
    LIMITED = "limited"    # one or none, score is speculative

    @classmethod
    def from_component_count(cls, count: int) -> "ReadinessConfidence":
        if count >= 4:
            return cls.FULL
        if count >= 2:
            return cls.PARTIAL
        return cls.LIMITED


class ReadinessComponent(str, Enum):
    HRV = "hrv"
    RESTING_HEART_RATE = "resting_heart_rate"
    SLEEP = "sleep"
    ENERGY = "energy"


COMPONENT_WEIGHTS: Dict[ReadinessComponent, float] = {
    ReadinessComponent.HRV: 0.30,
    ReadinessComponent.SLEEP: 0.25,
    ReadinessComponent.ENERGY: 0.25,
    ReadinessComponent.RESTING_HEART_RATE: 0.20,
}


@dataclass(frozen=True)
class ReadinessBreakdown:
    """Per-component scores (0-100). None means the signal was unavailable."""
    hrv: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    sleep: Optional[int] = None
    energy: Optional[int] = None

    def __post_init__(self):
        for name in ("hrv", "resting_heart_rate", "sleep", "energy"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, int(clamp(value, 0, 100)))

    @property
    def component_scores(self) -> Dict[ReadinessComponent, int]:
        scores = {
            ReadinessComponent.HRV: self.hrv,
            ReadinessComponent.RESTING_HEART_RATE: self.resting_heart_rate,
            ReadinessComponent.SLEEP: self.sleep,
            ReadinessComponent.ENERGY: self.energy,
        }
        return {component: value for component, value in scores.items() if value is not None}

    @property
    def available_components(self) -> List[ReadinessComponent]:
        return list(self.component_scores)

    @property
    def component_count(self) -> int:
        return len(self.component_scores)

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {
            "hrv": self.hrv,
            "resting_heart_rate": self.resting_heart_rate,
            "sleep": self.sleep,
            "energy": self.energy,
        }


@dataclass(frozen=True)
class ReadinessScore:
    """A day's readiness. The score is clamped to 0-100 at construction."""
    date: date
    score: int
    breakdown: ReadinessBreakdown
    confidence: ReadinessConfidence
    source_metrics: Optional[MetricsRecord] = None
    source_energy_level: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "score", int(clamp(self.score, 0, 100)))

    @property
    def score_description(self) -> str:
        return describe_score(self.score)


def describe_score(score: int) -> str:
    if score <= 40:
        return "Poor"
    if score <= 60:
        return "Moderate"
    if score <= 80:
        return "Good"
    return "Excellent"


class ReadinessCalculator:
    """
    Rules-based readiness scorer. Pure: no state, no I/O.
    """

    def __init__(self, weights: Optional[Dict[ReadinessComponent, float]] = None):
        self.weights = weights or dict(COMPONENT_WEIGHTS)

    def calculate(
        self,
        metrics: Optional[MetricsRecord],
        energy_level: Optional[int],
        today: Optional[date] = None,
    ) -> Optional[ReadinessScore]:
        """
        Score a day. Returns None when no component has data.

        Args:
            metrics: Health metrics for the day (any field may be None)
            energy_level: Subjective 1-5 energy, None without a check-in
            today: Score date when metrics are absent (defaults to today)
        """
        breakdown = ReadinessBreakdown(
            hrv=score_hrv(metrics.hrv) if metrics and metrics.hrv is not None else None,
            resting_heart_rate=(
                score_resting_heart_rate(metrics.resting_heart_rate)
                if metrics and metrics.resting_heart_rate is not None
                else None
            ),
            sleep=score_sleep(metrics.sleep_hours) if metrics and metrics.sleep_hours is not None else None,
            energy=score_energy(energy_level) if energy_level is not None else None,
        )

        if breakdown.component_count == 0:
            logger.debug("Readiness: no metrics and no energy level, nothing to score")
            return None

        return ReadinessScore(
            date=metrics.date if metrics else (today or date.today()),
            score=self._weighted_score(breakdown),
            breakdown=breakdown,
            confidence=ReadinessConfidence.from_component_count(breakdown.component_count),
            source_metrics=metrics,
            source_energy_level=energy_level,
        )

    def _weighted_score(self, breakdown: ReadinessBreakdown) -> int:
        # Missing components' weight is redistributed proportionally
        components = breakdown.component_scores
        total_weight = sum(self.weights[c] for c in components)
        if total_weight <= 0:
            return 0
        weighted = sum(score * self.weights[c] for c, score in components.items())
        return clamp_score(weighted / total_weight)


# =============================================================================
# COMPONENT CURVES
# =============================================================================

def score_hrv(hrv: float) -> int:
    """
    HRV (SDNN, ms) -> 0-100.

    < 20 very low, 20-40 below average, 40-60 average,
    60-100 above average, 100+ excellent.
    """
    if hrv < 20:
        return int(10 + (hrv / 20) * 20)
    if hrv < 40:
        return int(30 + ((hrv - 20) / 20) * 20)
    if hrv < 60:
        return int(50 + ((hrv - 40) / 20) * 20)
    if hrv < 100:
        return int(70 + ((hrv - 60) / 40) * 20)
    return min(100, int(90 + ((hrv - 100) / 50) * 10))


def score_resting_heart_rate(rhr: float) -> int:
    """Resting HR (bpm) -> 0-100, lower is better down to 40 bpm."""
    if rhr >= 90:
        return max(10, int(30 - ((rhr - 90) / 20) * 20))
    if rhr >= 80:
        return int(50 - ((rhr - 80) / 10) * 20)
    if rhr >= 70:
        return int(65 - ((rhr - 70) / 10) * 15)
    if rhr >= 60:
        return int(80 - ((rhr - 60) / 10) * 15)
    if rhr >= 50:
        return int(95 - ((rhr - 50) / 10) * 15)
    if rhr >= 40:
        return int(90 + ((50 - rhr) / 10) * 10)
    # Very low RHR may be bradycardia rather than fitness
    return 85


def score_sleep(hours: float) -> int:
    """Sleep duration (hours) -> 0-100, peaking at 8-9 h."""
    if hours < 4:
        return int(10 + (hours / 4) * 15)
    if hours < 5:
        return int(25 + (hours - 4) * 15)
    if hours < 6:
        return int(40 + (hours - 5) * 20)
    if hours < 7:
        return int(60 + (hours - 6) * 20)
    if hours < 8:
        return int(80 + (hours - 7) * 15)
    if hours < 9:
        return int(95 + (hours - 8) * 5)
    if hours < 10:
        return int(95 - (hours - 9) * 5)
    return max(70, int(90 - ((hours - 10) / 2) * 10))


def score_energy(level: int) -> int:
    """1-5 self-report -> 20-100."""
    return int(clamp(level, 1, 5)) * 20

