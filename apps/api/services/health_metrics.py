"""
Daily Health Metrics

A MetricsRecord is one day's snapshot from the platform health store. Every
signal is independently optional: None means "no data", which is not the
same as zero.

Health data sources:
    - StaticHealthDataSource: dict-backed, for tests and imports
    - SampleHealthDataSource: realistic random values for development

Sources never raise for "no data available"; they return an empty record.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Protocol
import logging
import math
import random

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0

SIGNAL_FIELDS = ("resting_heart_rate", "hrv", "sleep_duration", "steps", "active_energy")


@dataclass(frozen=True)
class MetricsRecord:
    """Per-day health snapshot."""
    date: date
    resting_heart_rate: Optional[float] = None   # bpm
    hrv: Optional[float] = None                  # ms, SDNN
    sleep_duration: Optional[float] = None       # seconds
    steps: Optional[int] = None
    active_energy: Optional[float] = None        # kcal

    def __post_init__(self):
        # Non-finite readings count as no data
        for name in SIGNAL_FIELDS:
            value = getattr(self, name)
            if isinstance(value, float) and not math.isfinite(value):
                logger.warning(f"Dropping non-finite {name}={value} for {self.date}")
                object.__setattr__(self, name, None)

    @property
    def has_any_data(self) -> bool:
        return any(
            value is not None
            for value in (
                self.resting_heart_rate,
                self.hrv,
                self.sleep_duration,
                self.steps,
                self.active_energy,
            )
        )

    @property
    def sleep_hours(self) -> Optional[float]:
        if self.sleep_duration is None:
            return None
        return self.sleep_duration / SECONDS_PER_HOUR

    @property
    def formatted_sleep_duration(self) -> Optional[str]:
        """Sleep as "7h 30m" (or "45m" under an hour)."""
        if self.sleep_duration is None:
            return None
        total = int(self.sleep_duration)
        hours, minutes = total // 3600, (total % 3600) // 60
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricsRecord":
        raw_date = data["date"]
        if isinstance(raw_date, str):
            raw_date = date.fromisoformat(raw_date)
        elif isinstance(raw_date, datetime):
            raw_date = raw_date.date()
        return cls(
            date=raw_date,
            resting_heart_rate=data.get("resting_heart_rate"),
            hrv=data.get("hrv"),
            sleep_duration=data.get("sleep_duration"),
            steps=data.get("steps"),
            active_energy=data.get("active_energy"),
        )


class HealthDataSource(Protocol):
    """Supplies one day's metrics. Raises only on genuine I/O failure."""

    def fetch(self, day: date) -> MetricsRecord:
        ...


class StaticHealthDataSource:
    """Serves metrics from a fixed mapping of day -> record."""

    def __init__(self, records: Optional[Mapping[date, MetricsRecord]] = None):
        self._records: Dict[date, MetricsRecord] = dict(records or {})
        self.fetched_dates = []

    def add(self, record: MetricsRecord) -> None:
        self._records[record.date] = record

    def fetch(self, day: date) -> MetricsRecord:
        self.fetched_dates.append(day)
        record = self._records.get(day)
        if record is None:
            logger.debug(f"No metrics stored for {day}")
            return MetricsRecord(date=day)
        return record


class SampleHealthDataSource:
    """
    Generates realistic sample metrics for development.

    Values are drawn from healthy adult ranges:
    RHR 55-70 bpm, HRV 30-60 ms, sleep 6-8.5 h, 4k-12k steps, 200-600 kcal.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def fetch(self, day: date) -> MetricsRecord:
        return MetricsRecord(
            date=day,
            resting_heart_rate=self._rng.uniform(55, 70),
            hrv=self._rng.uniform(30, 60),
            sleep_duration=self._rng.uniform(6 * SECONDS_PER_HOUR, 8.5 * SECONDS_PER_HOUR),
            steps=self._rng.randint(4000, 12000),
            active_energy=self._rng.uniform(200, 600),
        )


def build_health_source(kind: str, seed: Optional[int] = None) -> HealthDataSource:
    """Construct the configured health data source ("sample" or "none")."""
    if kind == "sample":
        return SampleHealthDataSource(seed=seed)
    if kind == "none":
        return StaticHealthDataSource()
    raise ValueError(f"Unknown health data source: {kind!r}")
