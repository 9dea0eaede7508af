"""
Personalized Readiness Model

Learns what "readiness" means for this user from their own completed days,
instead of the population curves the rules scorer uses.

Algorithm:
    Closed-form ridge regression on 5 weights [bias, hrv, rhr, sleep, day_of_week]

        w = (XᵗX + λI')⁻¹ Xᵗy

    where I' is the identity with its bias entry zeroed (the bias is never
    regularized). The 5x5 system is solved with Gaussian elimination and
    partial pivoting; no numerical library is needed for a system this small.

    - Input: normalized features (see feature_extractor.py)
    - Output: score 20-100
    - Label: blended energy (see training_data.py)

State machine:
    not_trained -> training -> trained | failed

Training is always from scratch on the complete history. Weights persist
through an injected WeightStore and are loaded once at startup.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Protocol, Sequence
import logging
import math

from core.exceptions import WeightStoreError
from core.logging import log_context
from services.feature_extractor import FeatureExtractor, FeatureVector
from services.health_metrics import MetricsRecord
from services.score_math import clamp_score
from services.training_data import TrainingExample

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

WEIGHT_COUNT = 5  # bias + hrv + rhr + sleep + day_of_week
MIN_TRAINING_EXAMPLES = 3
RIDGE_LAMBDA = 0.1
SINGULARITY_EPSILON = 1e-10
MIN_PREDICTION_FEATURES = 2

MODEL_SCORE_MIN = 20
MODEL_SCORE_MAX = 100


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class TrainingState(str, Enum):
    NOT_TRAINED = "not_trained"
    TRAINING = "training"
    TRAINED = "trained"
    FAILED = "failed"


@dataclass(frozen=True)
class TrainingStatus:
    """Where the model is in its lifecycle. Governs whether inference is attempted."""
    state: TrainingState
    example_count: int = 0
    last_trained_at: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def not_trained(cls) -> "TrainingStatus":
        return cls(TrainingState.NOT_TRAINED)

    @classmethod
    def training(cls) -> "TrainingStatus":
        return cls(TrainingState.TRAINING)

    @classmethod
    def trained(cls, example_count: int, last_trained_at: datetime) -> "TrainingStatus":
        return cls(TrainingState.TRAINED, example_count=example_count, last_trained_at=last_trained_at)

    @classmethod
    def failed(cls, reason: str) -> "TrainingStatus":
        return cls(TrainingState.FAILED, reason=reason)

    @property
    def is_trained(self) -> bool:
        return self.state == TrainingState.TRAINED

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "example_count": self.example_count,
            "last_trained_at": self.last_trained_at.isoformat() if self.last_trained_at else None,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ModelWeights:
    """Persisted model: exactly 5 weights plus training metadata."""
    values: Sequence[float]
    trained_example_count: int
    last_trained_at: datetime

    def __post_init__(self):
        if len(self.values) != WEIGHT_COUNT:
            raise ValueError(f"Expected {WEIGHT_COUNT} weights, got {len(self.values)}")
        try:
            values = tuple(float(v) for v in self.values)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Non-numeric weight in {list(self.values)!r}") from e
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"Non-finite weight in {list(values)!r}")
        object.__setattr__(self, "values", values)


class PredictionOutcome(str, Enum):
    SUCCESS = "success"
    INSUFFICIENT_DATA = "insufficient_data"
    MODEL_NOT_TRAINED = "model_not_trained"
    ERROR = "error"


@dataclass(frozen=True)
class PredictionResult:
    outcome: PredictionOutcome
    score: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == PredictionOutcome.SUCCESS


@dataclass
class ModelState:
    """Mutable model state. Owned by exactly one PersonalizedReadinessModel."""
    weights: Optional[List[float]] = None
    status: TrainingStatus = field(default_factory=TrainingStatus.not_trained)


# =============================================================================
# PERSISTENCE
# =============================================================================

class WeightStore(Protocol):
    """
    Storage capability for model weights.

    ``load`` returns None when nothing usable is stored (including fewer than
    5 values). Both methods raise WeightStoreError when storage is unreachable.
    """

    def save(self, weights: Sequence[float], example_count: int, timestamp: datetime) -> None:
        ...

    def load(self) -> Optional[ModelWeights]:
        ...


class InMemoryWeightStore:
    """Process-local weight store. Holds raw values so malformed saves are observable."""

    def __init__(self):
        self.values: Optional[List[float]] = None
        self.example_count: int = 0
        self.timestamp: Optional[datetime] = None
        self.save_count = 0

    def save(self, weights: Sequence[float], example_count: int, timestamp: datetime) -> None:
        self.values = list(weights)
        self.example_count = example_count
        self.timestamp = timestamp
        self.save_count += 1

    def load(self) -> Optional[ModelWeights]:
        if self.values is None or len(self.values) != WEIGHT_COUNT:
            return None
        return ModelWeights(
            values=self.values,
            trained_example_count=self.example_count,
            last_trained_at=self.timestamp or datetime.min.replace(tzinfo=timezone.utc),
        )


# =============================================================================
# LINEAR ALGEBRA
# =============================================================================

def solve_linear_system(
    a: Sequence[Sequence[float]],
    b: Sequence[float],
    epsilon: float = SINGULARITY_EPSILON,
) -> Optional[List[float]]:
    """
    Solve Ax = b with Gaussian elimination and partial pivoting.

    Returns None when a pivot's magnitude falls below epsilon (singular or
    near-singular system). Inputs are not modified.
    """
    n = len(b)
    if len(a) != n or any(len(row) != n for row in a):
        raise ValueError("A must be square and match the length of b")

    # Augmented matrix [A | b]
    aug = [list(map(float, a[i])) + [float(b[i])] for i in range(n)]

    for col in range(n):
        # Row with the largest magnitude in this column among the remaining rows
        pivot_row = max(range(col, n), key=lambda r: abs(aug[r][col]))
        if abs(aug[pivot_row][col]) < epsilon:
            return None

        if pivot_row != col:
            aug[col], aug[pivot_row] = aug[pivot_row], aug[col]

        for row in range(col + 1, n):
            factor = aug[row][col] / aug[col][col]
            for j in range(col, n + 1):
                aug[row][j] -= factor * aug[col][j]

    # Back substitution
    x = [0.0] * n
    for i in range(n - 1, -1, -1):
        total = aug[i][n]
        for j in range(i + 1, n):
            total -= aug[i][j] * x[j]
        x[i] = total / aug[i][i]
    return x


def solve_ridge_regression(
    design: Sequence[Sequence[float]],
    targets: Sequence[float],
    ridge_lambda: float = RIDGE_LAMBDA,
) -> Optional[List[float]]:
    """
    Solve (XᵗX + λI')w = Xᵗy. Column 0 of X is the bias and is not regularized.
    """
    p = len(design[0])

    xtx = [
        [sum(row[i] * row[j] for row in design) for j in range(p)]
        for i in range(p)
    ]
    for i in range(1, p):
        xtx[i][i] += ridge_lambda

    xty = [sum(row[i] * y for row, y in zip(design, targets)) for i in range(p)]

    return solve_linear_system(xtx, xty)


# =============================================================================
# MODEL
# =============================================================================

class PersonalizedReadinessModel:
    """
    Ridge regression over normalized health features.

    Not safe for concurrent use: one coordinator calls train/predict at a time.
    """

    def __init__(
        self,
        store: Optional[WeightStore] = None,
        state: Optional[ModelState] = None,
        ridge_lambda: float = RIDGE_LAMBDA,
        min_examples: int = MIN_TRAINING_EXAMPLES,
        linear_threshold: Optional[int] = None,
    ):
        self.store = store if store is not None else InMemoryWeightStore()
        self.state = state if state is not None else ModelState()
        self.ridge_lambda = ridge_lambda
        self.min_examples = min_examples
        self.linear_threshold = linear_threshold

    @property
    def status(self) -> TrainingStatus:
        return self.state.status

    @property
    def weights(self) -> Optional[List[float]]:
        return list(self.state.weights) if self.state.weights is not None else None

    @property
    def training_example_count(self) -> int:
        if self.state.status.is_trained:
            return self.state.status.example_count
        return 0

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_saved_model(self) -> bool:
        """Restore persisted weights. Anything unusable leaves the model not trained."""
        try:
            saved = self.store.load()
        except (WeightStoreError, ValueError) as e:
            logger.warning(f"Could not load readiness model weights: {e}")
            saved = None

        if saved is None:
            self.state.weights = None
            self.state.status = TrainingStatus.not_trained()
            return False

        self.state.weights = list(saved.values)
        self.state.status = TrainingStatus.trained(
            example_count=saved.trained_example_count,
            last_trained_at=saved.last_trained_at,
        )
        logger.info(
            f"Loaded readiness model trained on {saved.trained_example_count} examples "
            f"at {saved.last_trained_at}"
        )
        return True

    # -------------------------------------------------------------------------
    # Training
    # -------------------------------------------------------------------------

    def train(self, examples: Sequence[TrainingExample], now: Optional[datetime] = None) -> bool:
        """
        Train from scratch on the full example set.

        Returns True on success. Too few examples -> not_trained; a singular
        system -> failed. Neither raises.
        """
        if len(examples) < self.min_examples:
            logger.info(
                f"Not training readiness model: {len(examples)} examples, "
                f"need {self.min_examples}"
            )
            self.state.status = TrainingStatus.not_trained()
            return False

        self.state.status = TrainingStatus.training()

        design = [[1.0] + example.features.to_array() for example in examples]
        targets = [example.label for example in examples]

        weights = solve_ridge_regression(design, targets, self.ridge_lambda)
        if weights is None:
            logger.warning(f"Readiness model training failed: singular system ({len(examples)} examples)")
            self.state.status = TrainingStatus.failed("Linear algebra error during training")
            return False

        trained_at = now or datetime.now(timezone.utc)
        self.state.weights = weights
        self.state.status = TrainingStatus.trained(example_count=len(examples), last_trained_at=trained_at)

        try:
            self.store.save(weights, len(examples), trained_at)
        except WeightStoreError as e:
            # The in-memory model stays valid for this session
            logger.warning(f"Readiness model trained but weights were not persisted: {e}")

        logger.info(
            f"Trained readiness model on {len(examples)} examples",
            extra=log_context(example_count=len(examples), weights=weights, ridge_lambda=self.ridge_lambda),
        )
        return True

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def predict(self, features: FeatureVector) -> PredictionResult:
        weights = self.state.weights
        if weights is None:
            return PredictionResult(PredictionOutcome.MODEL_NOT_TRAINED)

        if features.available_feature_count < MIN_PREDICTION_FEATURES:
            return PredictionResult(PredictionOutcome.INSUFFICIENT_DATA)

        x = features.to_array()
        raw = weights[0] + sum(w * value for w, value in zip(weights[1:], x))
        if not math.isfinite(raw):
            return PredictionResult(PredictionOutcome.ERROR, error="Non-finite model output")
        return PredictionResult(
            PredictionOutcome.SUCCESS,
            score=clamp_score(raw, MODEL_SCORE_MIN, MODEL_SCORE_MAX),
        )

    def predict_from_metrics(self, metrics: Optional[MetricsRecord]) -> PredictionResult:
        """Extract features with the policy matching this model's training, then predict."""
        if self.linear_threshold is None:
            extractor = FeatureExtractor(self.training_example_count)
        else:
            extractor = FeatureExtractor(self.training_example_count, linear_threshold=self.linear_threshold)
        return self.predict(extractor.extract(metrics))
