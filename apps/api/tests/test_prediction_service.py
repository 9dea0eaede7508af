"""
Tests for the prediction service

Covers:
1. Idempotent creation (one prediction per target date)
2. Resolving today's prediction exactly once
3. Catch-up resolution from stored scores
4. Accuracy statistics and trend
"""

import pytest
from datetime import date, datetime, timedelta

from services.prediction_engine import Prediction
from services.prediction_service import (
    InMemoryPredictionRepository,
    PredictionService,
    summarize_accuracy,
)
from services.readiness_calculator import ReadinessBreakdown, ReadinessConfidence, ReadinessScore

NOW = datetime(2025, 3, 10, 21, 0)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)


def _prediction(target, predicted=70, actual=None):
    return Prediction(
        created_at=datetime.combine(target - timedelta(days=1), datetime.min.time()),
        target_date=target,
        predicted_score=predicted,
        confidence=ReadinessConfidence.PARTIAL,
        actual_score=actual,
    )


def _score(day, value):
    return ReadinessScore(
        date=day,
        score=value,
        breakdown=ReadinessBreakdown(energy=value),
        confidence=ReadinessConfidence.LIMITED,
    )


@pytest.fixture
def repository():
    return InMemoryPredictionRepository()


@pytest.fixture
def service(repository):
    return PredictionService(repository=repository)


class TestCreatePrediction:

    def test_creates_and_stores(self, service, repository, full_metrics):
        prediction = service.create_prediction(full_metrics, 4, 70, now=NOW)

        assert prediction.target_date == TOMORROW
        assert repository.get_by_target_date(TOMORROW) == prediction

    def test_second_call_returns_existing(self, service, full_metrics):
        first = service.create_prediction(full_metrics, 4, 70, now=NOW)
        second = service.create_prediction(None, 1, 30, now=NOW + timedelta(hours=1))

        assert second == first

    def test_not_enough_data(self, service, repository):
        assert service.create_prediction(None, None, None, now=NOW) is None
        assert repository.get_range(TODAY, TOMORROW) == []


class TestResolveTodaysPrediction:

    def test_resolves_once(self, service, repository):
        repository.save(_prediction(TODAY, predicted=70))
        recorded_at = datetime(2025, 3, 10, 8, 0)

        resolved = service.resolve_todays_prediction(64, today=TODAY, now=recorded_at)

        assert resolved.actual_score == 64
        assert resolved.actual_score_recorded_at == recorded_at
        assert repository.get_by_target_date(TODAY).actual_score == 64

        # Already resolved: left untouched
        assert service.resolve_todays_prediction(90, today=TODAY) is None
        assert repository.get_by_target_date(TODAY).actual_score == 64

    def test_nothing_to_resolve(self, service):
        assert service.resolve_todays_prediction(64, today=TODAY) is None

    def test_get_todays_prediction(self, service, repository):
        prediction = _prediction(TODAY)
        repository.save(prediction)

        assert service.get_todays_prediction(TODAY) == prediction
        assert service.get_todays_prediction(TOMORROW) is None


class TestResolveUnresolved:

    def test_matches_scores_by_target_date(self, service, repository):
        repository.save(_prediction(TODAY - timedelta(days=2)))
        repository.save(_prediction(TODAY - timedelta(days=1)))
        repository.save(_prediction(TODAY, actual=50))

        resolved = service.resolve_unresolved_predictions(
            [_score(TODAY - timedelta(days=2), 66), _score(TODAY, 90)],
            today=TODAY,
        )

        assert [p.target_date for p in resolved] == [TODAY - timedelta(days=2)]
        assert repository.get_by_target_date(TODAY - timedelta(days=2)).actual_score == 66
        assert not repository.get_by_target_date(TODAY - timedelta(days=1)).is_resolved
        assert repository.get_by_target_date(TODAY).actual_score == 50

    def test_future_predictions_are_not_resolved(self, service, repository):
        repository.save(_prediction(TOMORROW))

        resolved = service.resolve_unresolved_predictions([_score(TOMORROW, 70)], today=TODAY)

        assert resolved == []


class TestRecentPredictions:

    def test_newest_first_within_window(self, service, repository):
        for offset in range(10):
            repository.save(_prediction(TODAY - timedelta(days=offset)))

        recent = service.get_recent_predictions(3, today=TODAY)

        assert [p.target_date for p in recent] == [TODAY - timedelta(days=i) for i in range(4)]


class TestAccuracyStats:

    def test_empty(self, service):
        stats = service.get_accuracy_stats()

        assert stats.total_predictions == 0
        assert stats.average_error == 0.0
        assert stats.success_rate == 0.0
        assert stats.recent_trend is None

    def test_buckets_and_averages(self):
        predictions = [
            _prediction(TODAY - timedelta(days=0), predicted=70, actual=68),   # 2
            _prediction(TODAY - timedelta(days=1), predicted=70, actual=62),   # 8
            _prediction(TODAY - timedelta(days=2), predicted=70, actual=82),   # 12
            _prediction(TODAY - timedelta(days=3), predicted=70, actual=40),   # 30
            _prediction(TODAY - timedelta(days=4), predicted=70),              # unresolved
        ]

        stats = summarize_accuracy(predictions)

        assert stats.total_predictions == 4
        assert stats.average_error == pytest.approx(13.0)
        assert stats.average_accuracy == pytest.approx(87.0)
        assert (stats.excellent_count, stats.good_count, stats.fair_count, stats.poor_count) == (1, 1, 1, 1)
        assert stats.success_rate == pytest.approx(50.0)
        assert stats.recent_trend is None

    def test_trend_needs_ten_predictions(self):
        # Newest five are off by 2, the five before by 10
        predictions = [
            _prediction(TODAY - timedelta(days=i), predicted=70, actual=72 if i < 5 else 80)
            for i in range(10)
        ]

        stats = summarize_accuracy(predictions)

        assert stats.recent_trend == pytest.approx(8.0)

    def test_trend_absent_below_ten(self):
        predictions = [_prediction(TODAY - timedelta(days=i), actual=60) for i in range(9)]

        assert summarize_accuracy(predictions).recent_trend is None

    def test_service_uses_resolved_predictions(self, service, repository):
        repository.save(_prediction(TODAY, predicted=70, actual=70))
        repository.save(_prediction(TOMORROW, predicted=70))

        stats = service.get_accuracy_stats()

        assert stats.total_predictions == 1
        assert stats.excellent_count == 1
