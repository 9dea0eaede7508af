"""
Tests for the SQL-backed readiness stores

Runs against in-memory SQLite (see conftest.py).
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from core.database import SessionLocal
from core.exceptions import WeightStoreError
from models import ModelWeightsRecord
from services.feature_extractor import FeatureVector
from services.health_metrics import MetricsRecord
from services.prediction_engine import Prediction, PredictionSource
from services.prediction_service import PredictionService
from services.readiness_calculator import ReadinessCalculator, ReadinessConfidence
from services.readiness_model import PersonalizedReadinessModel, TrainingState
from services.readiness_store import (
    SqlDayRepository,
    SqlPredictionRepository,
    SqlReadinessScoreRepository,
    SqlWeightStore,
)
from services.training_data import ObservationHistory, TrainingDataCollector

HOUR = 3600.0
TRAINED_AT = datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc)


class TestSqlWeightStore:

    def test_round_trip_is_exact(self, db_session):
        store = SqlWeightStore(SessionLocal)
        weights = [0.1 + 0.2, 1 / 3, -1.23456789e-5, 1e-300, 72.00000000000001]

        store.save(weights, 42, TRAINED_AT)
        loaded = store.load()

        assert list(loaded.values) == weights
        assert loaded.trained_example_count == 42
        assert loaded.last_trained_at == TRAINED_AT

    def test_save_overwrites_single_row(self, db_session):
        store = SqlWeightStore(SessionLocal)

        store.save([1.0] * 5, 3, TRAINED_AT)
        store.save([2.0] * 5, 4, TRAINED_AT + timedelta(days=1))

        assert db_session.query(ModelWeightsRecord).count() == 1
        assert list(store.load().values) == [2.0] * 5

    def test_empty_table(self, db_session):
        assert SqlWeightStore(SessionLocal).load() is None

    def test_malformed_row_is_ignored(self, db_session):
        db_session.add(ModelWeightsRecord(id=1, weights=[1.0, 2.0, 3.0, 4.0], example_count=4, last_trained_at=TRAINED_AT))
        db_session.commit()

        assert SqlWeightStore(SessionLocal).load() is None

    @pytest.mark.parametrize("bad", [None, "0.5", True])
    def test_non_numeric_weight_is_ignored(self, db_session, bad):
        db_session.add(ModelWeightsRecord(id=1, weights=[1.0, 2.0, 3.0, 4.0, bad], example_count=4, last_trained_at=TRAINED_AT))
        db_session.commit()

        model = PersonalizedReadinessModel(store=SqlWeightStore(SessionLocal))

        assert SqlWeightStore(SessionLocal).load() is None
        assert model.load_saved_model() is False
        assert model.status.state == TrainingState.NOT_TRAINED

    def test_database_errors_are_wrapped(self):
        session = MagicMock()
        session.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
        store = SqlWeightStore(lambda: session)

        with pytest.raises(WeightStoreError):
            store.load()
        with pytest.raises(WeightStoreError):
            store.save([1.0] * 5, 3, TRAINED_AT)
        session.rollback.assert_called()

    def test_model_round_trip_through_database(self, db_session, completed_days_factory):
        examples = TrainingDataCollector().collect(completed_days_factory(14))
        trained = PersonalizedReadinessModel(store=SqlWeightStore(SessionLocal))
        trained.train(examples, now=TRAINED_AT)

        restored = PersonalizedReadinessModel(store=SqlWeightStore(SessionLocal))
        restored.load_saved_model()

        assert restored.status.state == TrainingState.TRAINED
        assert restored.weights == trained.weights
        sample = FeatureVector(hrv=0.37, rhr=0.81, sleep=0.66, day_of_week=0.5)
        assert restored.predict(sample) == trained.predict(sample)

    def test_unreachable_store_leaves_model_untrained(self):
        session = MagicMock()
        session.get.side_effect = OperationalError("SELECT", {}, Exception("no such table"))
        model = PersonalizedReadinessModel(store=SqlWeightStore(lambda: session))

        assert model.load_saved_model() is False
        assert model.status.state == TrainingState.NOT_TRAINED


class TestSqlDayRepository:

    def test_upsert_keeps_omitted_values(self, db_session):
        repo = SqlDayRepository(db_session)
        day = date(2025, 3, 10)

        repo.upsert(day, first_energy=3, metrics=MetricsRecord(date=day, hrv=48.0, steps=9000))
        record = repo.upsert(day, second_energy=4)

        assert record.first_energy == 3
        assert record.second_energy == 4
        assert record.is_completed
        assert record.metrics == MetricsRecord(date=day, hrv=48.0, steps=9000)

    def test_day_without_metrics(self, db_session):
        record = SqlDayRepository(db_session).upsert(date(2025, 3, 10), first_energy=2)

        assert record.metrics is None
        assert not record.is_completed

    def test_completed_days_feed_the_collector(self, db_session, completed_days_factory):
        repo = SqlDayRepository(db_session)
        for day in completed_days_factory(6):
            repo.upsert(day.date, day.first_energy, day.second_energy, day.metrics)
        repo.upsert(date(2025, 6, 1), first_energy=5)

        records = repo.get_completed_days()
        examples = TrainingDataCollector().collect(ObservationHistory.from_day_records(records))

        assert len(records) == 6
        assert [r.date for r in records] == sorted(r.date for r in records)
        assert len(examples) == 6


class TestSqlReadinessScoreRepository:

    def test_save_and_get(self, db_session, full_metrics):
        repo = SqlReadinessScoreRepository(db_session)
        score = ReadinessCalculator().calculate(full_metrics, 4)

        repo.save(score)

        assert repo.get(full_metrics.date) == score

    def test_save_replaces_same_day(self, db_session):
        repo = SqlReadinessScoreRepository(db_session)
        day = date(2025, 3, 10)

        repo.save(ReadinessCalculator().calculate(None, 2, today=day))
        repo.save(ReadinessCalculator().calculate(None, 5, today=day))

        assert repo.get(day).score == 100
        assert len(repo.get_range(day, day)) == 1

    def test_range_oldest_first(self, db_session):
        repo = SqlReadinessScoreRepository(db_session)
        start = date(2025, 3, 1)
        for offset in (3, 0, 5, 1):
            repo.save(ReadinessCalculator().calculate(None, 3, today=start + timedelta(days=offset)))

        scores = repo.get_range(start, start + timedelta(days=3))

        assert [s.date for s in scores] == [start, start + timedelta(days=1), start + timedelta(days=3)]


class TestSqlPredictionRepository:

    def _prediction(self, target, actual=None, metrics=None):
        return Prediction(
            created_at=datetime(2025, 3, 9, 21, 0),
            target_date=target,
            predicted_score=71,
            confidence=ReadinessConfidence.FULL,
            source=PredictionSource.RULES,
            input_metrics=metrics,
            input_energy_level=4,
            actual_score=actual,
        )

    def test_round_trip(self, db_session, full_metrics):
        repo = SqlPredictionRepository(db_session)
        prediction = self._prediction(date(2025, 3, 10), metrics=full_metrics)

        repo.save(prediction)

        assert repo.get_by_target_date(date(2025, 3, 10)) == prediction

    def test_update_attaches_actual_score(self, db_session):
        repo = SqlPredictionRepository(db_session)
        prediction = self._prediction(date(2025, 3, 10))
        repo.save(prediction)

        repo.update(prediction.resolved(66, datetime(2025, 3, 10, 8, 0)))
        stored = repo.get_by_target_date(date(2025, 3, 10))

        assert stored.actual_score == 66
        assert stored.actual_score_recorded_at == datetime(2025, 3, 10, 8, 0)

    def test_resolved_and_unresolved_queries(self, db_session):
        repo = SqlPredictionRepository(db_session)
        repo.save(self._prediction(date(2025, 3, 8), actual=60))
        repo.save(self._prediction(date(2025, 3, 9)))
        repo.save(self._prediction(date(2025, 3, 11)))

        unresolved = repo.get_unresolved(as_of=date(2025, 3, 10))
        resolved = repo.get_resolved()

        assert [p.target_date for p in unresolved] == [date(2025, 3, 9)]
        assert [p.target_date for p in resolved] == [date(2025, 3, 8)]
        assert [p.target_date for p in repo.get_range(date(2025, 3, 8), date(2025, 3, 11))] == [
            date(2025, 3, 11), date(2025, 3, 9), date(2025, 3, 8),
        ]

    def test_prediction_service_over_sql(self, db_session, full_metrics):
        service = PredictionService(repository=SqlPredictionRepository(db_session))
        now = datetime(2025, 3, 10, 21, 0)

        first = service.create_prediction(full_metrics, 4, 70, now=now)
        again = service.create_prediction(full_metrics, 2, 40, now=now)
        resolved = service.resolve_todays_prediction(73, today=date(2025, 3, 11))

        assert again == first
        assert resolved.actual_score == 73
        assert service.get_accuracy_stats().total_predictions == 1
