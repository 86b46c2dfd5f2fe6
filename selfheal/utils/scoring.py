from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, Iterable

from selfheal.config.schema import StrategyPrior, default_strategy_priors
from selfheal.core.exceptions import ModelUnavailable
from selfheal.core.metadata import ElementDescriptor, LocatorCandidate, PriorHistory
from selfheal.learning.model import LocatorModel
from selfheal.utils.features import FeatureExtractor

logger = logging.getLogger(__name__)

DEFAULT_STABILITY = 0.5
STABILITY_WEIGHT = 0.6
UNIQUENESS_WEIGHT = 0.4
GENERIC_TAG_PATTERN = re.compile(r"(?<![\w-])(div|span)(?![\w-])", re.IGNORECASE)

PriorHistoryLookup = Callable[[LocatorCandidate], PriorHistory | None]


class ConfidenceScorer:
    """Blends strategy stability, uniqueness, the learned model and past successes."""

    def __init__(
        self,
        priors: Iterable[StrategyPrior] | None = None,
        model: LocatorModel | None = None,
        extractor: FeatureExtractor | None = None,
        use_model: bool = True,
        blend_weight: float = 0.3,
        success_boost: float = 0.1,
    ) -> None:
        self.priors = list(priors) if priors is not None else default_strategy_priors()
        self.model = model
        self.extractor = extractor or FeatureExtractor()
        self.use_model = use_model
        self.blend_weight = blend_weight
        self.success_boost = success_boost

    def score(
        self,
        candidate: LocatorCandidate,
        element: ElementDescriptor,
        prior_history: PriorHistory | None = None,
    ) -> float:
        confidence, _ = self._score(candidate, element, prior_history)
        return confidence

    def score_candidate(
        self,
        candidate: LocatorCandidate,
        element: ElementDescriptor,
        prior_history: PriorHistory | None = None,
    ) -> LocatorCandidate:
        confidence, model_assisted = self._score(candidate, element, prior_history)
        return replace(candidate, confidence=confidence, model_assisted=model_assisted)

    def _score(
        self,
        candidate: LocatorCandidate,
        element: ElementDescriptor,
        prior_history: PriorHistory | None,
    ) -> tuple[float, bool]:
        stability = self.stability_for(candidate.strategy)
        uniqueness = _uniqueness_score(candidate, element)
        confidence = stability * STABILITY_WEIGHT + uniqueness * UNIQUENESS_WEIGHT

        model_assisted = False
        prediction = self._model_prediction(element)
        if prediction is not None:
            confidence = confidence * (1.0 - self.blend_weight) + prediction * self.blend_weight
            model_assisted = True

        if prior_history is not None and prior_history.recent_success_count > 0:
            confidence += self.success_boost

        return _clamp(confidence), model_assisted

    def stability_for(self, kind: str) -> float:
        for prior in self.priors:
            if prior.kind == kind:
                return prior.stability
        return DEFAULT_STABILITY

    def _model_prediction(self, element: ElementDescriptor) -> float | None:
        if not self.use_model or self.model is None:
            return None
        try:
            features = self.extractor.extract(element)
            prediction = float(self.model.predict(features))
        except ModelUnavailable as exc:
            logger.warning("Learned model unavailable, using heuristic confidence: %s", exc)
            return None
        except Exception as exc:  # noqa: BLE001 - any model failure degrades to heuristic scoring.
            logger.warning("Learned model prediction failed, using heuristic confidence", exc_info=exc)
            return None
        if prediction != prediction:
            logger.warning("Learned model returned NaN, using heuristic confidence")
            return None
        return _clamp(prediction)


def score_candidates(
    scorer: ConfidenceScorer,
    element: ElementDescriptor,
    candidates: Iterable[LocatorCandidate],
    history_lookup: PriorHistoryLookup | None = None,
) -> list[LocatorCandidate]:
    """Scores candidates and returns them ordered by confidence, keeping priority order on ties."""

    scored: list[LocatorCandidate] = []
    for candidate in candidates:
        prior_history = history_lookup(candidate) if history_lookup else None
        scored.append(scorer.score_candidate(candidate, element, prior_history))
    scored.sort(key=lambda item: item.confidence or 0.0, reverse=True)
    return scored


def _uniqueness_score(candidate: LocatorCandidate, element: ElementDescriptor) -> float:
    score = 0.5
    if candidate.strategy in {"id", "testid"}:
        score += 0.3
    if candidate.strategy in {"aria", "role"}:
        score += 0.2
    if GENERIC_TAG_PATTERN.search(candidate.locator):
        score -= 0.2
    if element.attr("data-testid") or element.id:
        score += 0.2
    return _clamp(score)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
