"""
Tests for the rules-based readiness calculator

Covers:
1. Component curves and their bounds
2. Weight renormalization over available components
3. Confidence tiers
4. Absent result when nothing can be scored
"""

import pytest
from datetime import date

from services.health_metrics import MetricsRecord
from services.readiness_calculator import (
    ReadinessBreakdown,
    ReadinessCalculator,
    ReadinessConfidence,
    ReadinessScore,
    describe_score,
    score_energy,
    score_hrv,
    score_resting_heart_rate,
    score_sleep,
)
from services.score_math import clamp_score, round_half_away

HOUR = 3600.0
DAY = date(2025, 3, 10)


@pytest.fixture
def calculator():
    return ReadinessCalculator()


class TestComponentCurves:

    @pytest.mark.parametrize("hrv,expected", [
        (0, 10), (10, 20), (20, 30), (40, 50), (60, 70), (80, 80), (100, 90), (150, 100), (300, 100),
    ])
    def test_hrv(self, hrv, expected):
        assert score_hrv(hrv) == expected

    @pytest.mark.parametrize("rhr,expected", [
        (120, 10), (95, 25), (90, 30), (80, 50), (70, 65), (60, 80), (55, 87), (50, 95), (45, 95), (40, 100), (35, 85),
    ])
    def test_resting_heart_rate(self, rhr, expected):
        assert score_resting_heart_rate(rhr) == expected

    @pytest.mark.parametrize("hours,expected", [
        (0, 10), (3, 21), (4, 25), (5, 40), (6, 60), (7, 80), (8, 95), (8.5, 97), (9, 95), (9.5, 92), (10, 90), (12, 80), (20, 70),
    ])
    def test_sleep(self, hours, expected):
        assert score_sleep(hours) == expected

    @pytest.mark.parametrize("level,expected", [(1, 20), (3, 60), (5, 100), (0, 20), (9, 100)])
    def test_energy(self, level, expected):
        assert score_energy(level) == expected


class TestCalculate:

    def test_full_day_scores_high_with_full_confidence(self, calculator):
        metrics = MetricsRecord(date=DAY, hrv=80, resting_heart_rate=55, sleep_duration=8 * HOUR)

        result = calculator.calculate(metrics, energy_level=4)

        assert result.confidence == ReadinessConfidence.FULL
        assert result.breakdown.component_count == 4
        assert result.breakdown.to_dict() == {
            "hrv": 80,
            "resting_heart_rate": 87,
            "sleep": 95,
            "energy": 80,
        }
        assert result.score == 85
        assert 75 <= result.score <= 95
        assert result.date == DAY

    def test_nothing_to_score_is_absent(self, calculator):
        assert calculator.calculate(None, None) is None
        assert calculator.calculate(MetricsRecord(date=DAY, steps=12000), None) is None

    def test_three_hours_sleep_only(self, calculator):
        result = calculator.calculate(MetricsRecord(date=DAY, sleep_duration=3 * HOUR), None)

        assert result.breakdown.sleep < 25
        assert result.score == result.breakdown.sleep
        assert result.confidence == ReadinessConfidence.LIMITED

    def test_missing_component_weight_is_redistributed(self, calculator):
        metrics = MetricsRecord(date=DAY, hrv=80, resting_heart_rate=55, sleep_duration=8 * HOUR)

        result = calculator.calculate(metrics, energy_level=None)

        # (80*0.30 + 95*0.25 + 87*0.20) / 0.75
        assert result.score == 87
        assert result.confidence == ReadinessConfidence.PARTIAL

    def test_confidence_falls_as_components_are_removed(self, calculator):
        full = MetricsRecord(date=DAY, hrv=60, resting_heart_rate=60, sleep_duration=7 * HOUR)
        cases = [
            (full, 3),
            (MetricsRecord(date=DAY, hrv=60, resting_heart_rate=60), 3),
            (MetricsRecord(date=DAY, hrv=60), 3),
            (MetricsRecord(date=DAY, hrv=60), None),
        ]
        tiers = [calculator.calculate(m, e).confidence for m, e in cases]

        assert tiers == [
            ReadinessConfidence.FULL,
            ReadinessConfidence.PARTIAL,
            ReadinessConfidence.PARTIAL,
            ReadinessConfidence.LIMITED,
        ]

    def test_energy_only_uses_given_date(self, calculator):
        result = calculator.calculate(None, 3, today=DAY)

        assert result.date == DAY
        assert result.score == 60
        assert result.source_metrics is None
        assert result.source_energy_level == 3

    @pytest.mark.parametrize("hrv,rhr,hours,energy", [
        (0, 200, 0, 1),
        (500, 20, 24, 5),
        (45, 72, 6.2, 2),
        (19.9, 89.9, 3.99, None),
    ])
    def test_scores_stay_in_range(self, calculator, hrv, rhr, hours, energy):
        metrics = MetricsRecord(date=DAY, hrv=hrv, resting_heart_rate=rhr, sleep_duration=hours * HOUR)

        result = calculator.calculate(metrics, energy)

        assert 0 <= result.score <= 100
        assert all(0 <= v <= 100 for v in result.breakdown.component_scores.values())

    @pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_signal_is_treated_as_missing(self, calculator, bad):
        metrics = MetricsRecord(date=DAY, hrv=bad, resting_heart_rate=bad, sleep_duration=8 * HOUR)

        result = calculator.calculate(metrics, energy_level=None)

        assert result.breakdown.hrv is None
        assert result.breakdown.resting_heart_rate is None
        assert result.score == result.breakdown.sleep == 95
        assert result.confidence == ReadinessConfidence.LIMITED

    def test_only_non_finite_signals_is_absent(self, calculator):
        metrics = MetricsRecord(date=DAY, hrv=float("inf"), sleep_duration=float("nan"))

        assert not metrics.has_any_data
        assert calculator.calculate(metrics, None) is None


class TestDataStructures:

    def test_score_is_clamped(self):
        score = ReadinessScore(date=DAY, score=140, breakdown=ReadinessBreakdown(), confidence=ReadinessConfidence.LIMITED)
        assert score.score == 100

    def test_breakdown_components_are_clamped(self):
        breakdown = ReadinessBreakdown(hrv=-5, sleep=120)
        assert breakdown.hrv == 0
        assert breakdown.sleep == 100
        assert breakdown.component_count == 2

    @pytest.mark.parametrize("score,label", [(40, "Poor"), (41, "Moderate"), (60, "Moderate"), (80, "Good"), (81, "Excellent")])
    def test_descriptions(self, score, label):
        assert describe_score(score) == label


class TestRounding:

    def test_halves_round_away_from_zero(self):
        assert round_half_away(72.5) == 73
        assert round_half_away(2.5) == 3
        assert round_half_away(-2.5) == -3
        assert round_half_away(72.49) == 72

    def test_clamp_score(self):
        assert clamp_score(101.2) == 100
        assert clamp_score(10.6, 15, 95) == 15
        assert clamp_score(50.5) == 51
