"""
Training Data Collector

Builds labeled training examples for the personalized readiness model from
completed days (days with both energy self-reports).

Label:
    label = (first_energy * 0.4 + second_energy * 0.6) * 20

The second (evening) report weighs more because it reflects how the day
actually went. The 1-5 scale maps onto 20-100.

Observations arrive from one of two sources, tagged by ObservationKind:
    - PAIRED_CHECK_INS: raw morning/evening check-ins, paired by calendar day
    - DAY_RECORDS: unified per-day records that already hold both reports
Both are adapted to CompletedDay before the collector sees them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
import logging

from services.feature_extractor import FeatureExtractor, FeatureVector
from services.health_metrics import MetricsRecord

logger = logging.getLogger(__name__)

FIRST_ENERGY_WEIGHT = 0.4
SECOND_ENERGY_WEIGHT = 0.6
ENERGY_SCALE = 20

# Examples need at least one physiological feature besides day_of_week
MIN_AVAILABLE_FEATURES = 2


@dataclass(frozen=True)
class TrainingExample:
    """One labeled day: normalized features and the blended energy label."""
    features: FeatureVector
    label: float
    date: date


@dataclass(frozen=True)
class CompletedDay:
    """A day with both energy reports and the metrics snapshot taken that day."""
    date: date
    first_energy: int
    second_energy: int
    metrics: Optional[MetricsRecord] = None

    @property
    def label(self) -> float:
        return blended_energy_label(self.first_energy, self.second_energy)


def blended_energy_label(first_energy: int, second_energy: int) -> float:
    """Blend two 1-5 energy reports into a 20-100 label."""
    blended = first_energy * FIRST_ENERGY_WEIGHT + second_energy * SECOND_ENERGY_WEIGHT
    return blended * ENERGY_SCALE


# =============================================================================
# OBSERVATION SOURCES
# =============================================================================

class CheckInKind(str, Enum):
    MORNING = "morning"
    EVENING = "evening"


@dataclass(frozen=True)
class CheckIn:
    """A single energy self-report with the metrics snapshot taken at the time."""
    timestamp: datetime
    kind: CheckInKind
    energy_level: int
    health_snapshot: Optional[MetricsRecord] = None


class ObservationKind(str, Enum):
    PAIRED_CHECK_INS = "paired_check_ins"
    DAY_RECORDS = "day_records"


@dataclass(frozen=True)
class ObservationHistory:
    """
    A source of completed daily observations.

    DAY_RECORDS items may be any object exposing ``date``, ``first_energy``,
    ``second_energy`` and ``metrics`` (the ORM DailyRecord does).
    """
    kind: ObservationKind
    items: Sequence[Any]

    @classmethod
    def from_check_ins(cls, check_ins: Iterable[CheckIn]) -> "ObservationHistory":
        return cls(kind=ObservationKind.PAIRED_CHECK_INS, items=tuple(check_ins))

    @classmethod
    def from_day_records(cls, records: Iterable[Any]) -> "ObservationHistory":
        return cls(kind=ObservationKind.DAY_RECORDS, items=tuple(records))

    def completed_days(self) -> List[CompletedDay]:
        if self.kind == ObservationKind.PAIRED_CHECK_INS:
            return _pair_check_ins(self.items)
        if self.kind == ObservationKind.DAY_RECORDS:
            return _adapt_day_records(self.items)
        raise ValueError(f"Unsupported observation kind: {self.kind}")


def _pair_check_ins(check_ins: Iterable[CheckIn]) -> List[CompletedDay]:
    by_day: Dict[date, Dict[CheckInKind, CheckIn]] = {}
    for check_in in check_ins:
        # A later report of the same kind replaces an earlier one
        by_day.setdefault(check_in.timestamp.date(), {})[check_in.kind] = check_in

    days = []
    for day, pair in by_day.items():
        morning = pair.get(CheckInKind.MORNING)
        evening = pair.get(CheckInKind.EVENING)
        if morning is None or evening is None:
            continue
        days.append(CompletedDay(
            date=day,
            first_energy=morning.energy_level,
            second_energy=evening.energy_level,
            # Prefer the morning snapshot
            metrics=morning.health_snapshot or evening.health_snapshot,
        ))
    return days


def _adapt_day_records(records: Iterable[Any]) -> List[CompletedDay]:
    days = []
    for record in records:
        if record.first_energy is None or record.second_energy is None:
            continue
        day = record.date.date() if isinstance(record.date, datetime) else record.date
        days.append(CompletedDay(
            date=day,
            first_energy=int(record.first_energy),
            second_energy=int(record.second_energy),
            metrics=record.metrics,
        ))
    return days


# =============================================================================
# COLLECTOR
# =============================================================================

class TrainingDataCollector:
    """
    Turns completed days into training examples.

    The extractor policy comes from ``current_example_count`` so new examples
    are normalized the same way the model will see features at inference.
    """

    def __init__(self, linear_threshold: Optional[int] = None):
        self.linear_threshold = linear_threshold

    def _extractor(self, current_example_count: int) -> FeatureExtractor:
        if self.linear_threshold is None:
            return FeatureExtractor(current_example_count)
        return FeatureExtractor(current_example_count, linear_threshold=self.linear_threshold)

    def collect(
        self,
        history: Union[ObservationHistory, Iterable[CompletedDay]],
        current_example_count: int = 0,
    ) -> List[TrainingExample]:
        days = history.completed_days() if isinstance(history, ObservationHistory) else list(history)
        extractor = self._extractor(current_example_count)

        examples = []
        skipped = 0
        for day in days:
            features = extractor.extract(day.metrics, today=day.date)
            if features.available_feature_count < MIN_AVAILABLE_FEATURES:
                skipped += 1
                continue
            examples.append(TrainingExample(features=features, label=day.label, date=day.date))

        examples.sort(key=lambda example: example.date)
        logger.info(
            f"Collected {len(examples)} training examples from {len(days)} completed days "
            f"(skipped {skipped} without physiological data, "
            f"linear={extractor.use_linear_normalization})"
        )
        return examples
