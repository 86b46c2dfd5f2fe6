from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from selfheal.config.schema import LearningSettings
from selfheal.core.exceptions import ModelUnavailable
from selfheal.core.metadata import FeatureVector, TrainingSample
from selfheal.utils.features import FEATURE_COUNT, encode_features

INITIAL_WEIGHT = 0.1
GENERIC_TAGS = frozenset({"div", "span"})


class LocatorModel(ABC):
    """Interface for learned locator-reliability predictors."""

    name = "unknown"

    @abstractmethod
    def predict(self, features: FeatureVector) -> float:
        raise NotImplementedError

    @abstractmethod
    def train(self, samples: Sequence[TrainingSample]) -> None:
        raise NotImplementedError

    @abstractmethod
    def save(self) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def load(self, state: dict[str, Any] | None) -> None:
        raise NotImplementedError


class LogisticLocatorModel(LocatorModel):
    """Logistic regression over the encoded feature vector.

    Until the first training run the model answers with a fixed heuristic. Training is
    full-batch: each call starts again from the initial weights and fits the whole sample
    list, so the result only depends on the samples passed in. Weights are swapped in as one
    tuple under a lock; ``predict`` never sees a partially updated vector.
    """

    name = "logistic"

    def __init__(self, learning_rate: float = 0.01, epochs: int = 100) -> None:
        self.learning_rate = learning_rate
        self.epochs = epochs
        self._state_lock = threading.Lock()
        self._train_lock = threading.Lock()
        self._weights: tuple[float, ...] = ()
        self._bias = 0.0
        self._trained = False

    @property
    def trained(self) -> bool:
        with self._state_lock:
            return self._trained

    def predict(self, features: FeatureVector) -> float:
        with self._state_lock:
            weights, bias, trained = self._weights, self._bias, self._trained
        if not trained:
            return heuristic_prediction(features)

        vector = encode_features(features)
        if len(weights) != len(vector):
            raise ModelUnavailable(
                f"Model expects {len(weights)} features but received {len(vector)}"
            )
        return _sigmoid(bias + sum(value * weight for value, weight in zip(vector, weights)))

    def train(self, samples: Sequence[TrainingSample]) -> None:
        if not samples:
            return
        vectors = [(encode_features(sample.features), float(sample.label)) for sample in samples]
        with self._train_lock:
            weights = [INITIAL_WEIGHT] * len(vectors[0][0])
            bias = 0.0
            for _ in range(self.epochs):
                for vector, label in vectors:
                    prediction = _sigmoid(bias + sum(value * weight for value, weight in zip(vector, weights)))
                    error = label - prediction
                    for index, value in enumerate(vector):
                        weights[index] += self.learning_rate * error * value
                    bias += self.learning_rate * error
            with self._state_lock:
                self._weights = tuple(weights)
                self._bias = bias
                self._trained = True

    def save(self) -> dict[str, Any]:
        with self._state_lock:
            return {
                "weights": list(self._weights),
                "bias": self._bias,
                "trained": self._trained,
            }

    def load(self, state: dict[str, Any] | None) -> None:
        if not state:
            return
        if not isinstance(state, Mapping):
            raise ModelUnavailable(f"Saved model state must be a mapping, got {type(state).__name__}")
        if not state.get("weights"):
            return
        try:
            weights = tuple(float(item) for item in state["weights"])
            bias = float(state.get("bias", 0.0) or 0.0)
        except (TypeError, ValueError) as exc:
            raise ModelUnavailable("Saved model state is malformed") from exc
        if len(weights) != FEATURE_COUNT:
            raise ModelUnavailable(
                f"Saved model has {len(weights)} weights, expected {FEATURE_COUNT}"
            )
        with self._state_lock:
            self._weights = weights
            self._bias = bias
            self._trained = bool(state.get("trained", False))


def heuristic_prediction(features: FeatureVector) -> float:
    score = 0.5

    if features.has_test_id:
        score += 0.3
    if features.has_id and not features.has_numeric_id:
        score += 0.25
    if features.has_aria_label:
        score += 0.2
    if features.has_role:
        score += 0.15

    if features.has_numeric_id:
        score -= 0.3
    if features.has_css_module_class:
        score -= 0.2
    if features.has_timestamp:
        score -= 0.15
    if features.has_uuid:
        score -= 0.25

    if features.is_clickable:
        score += 0.1

    if features.element_type in GENERIC_TAGS:
        if not features.has_id and not features.has_test_id and not features.has_class:
            score -= 0.2

    return max(0.0, min(1.0, score))


def create_locator_model(settings: LearningSettings | None = None) -> LocatorModel:
    settings = settings or LearningSettings()
    return LogisticLocatorModel(learning_rate=settings.learning_rate, epochs=settings.epochs)


def _sigmoid(value: float) -> float:
    if value >= 0:
        return 1.0 / (1.0 + math.exp(-value))
    exp_value = math.exp(value)
    return exp_value / (1.0 + exp_value)
