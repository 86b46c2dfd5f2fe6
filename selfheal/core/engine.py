from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from selfheal.config.loader import ConfigLoader
from selfheal.config.schema import AutoHealingConfig, EngineConfig, StrategyPrior, normalize_strategy_priors
from selfheal.core.exceptions import ModelUnavailable, PersistenceError
from selfheal.core.healer import Healer
from selfheal.core.history import HistoryStore
from selfheal.core.metadata import (
    ElementDescriptor,
    HealingContext,
    HealingDecision,
    HealingRecord,
    HealingStatistics,
    LocatorCandidate,
    PriorHistory,
    UnstableReport,
)
from selfheal.learning.model import create_locator_model
from selfheal.logging.audit import HealingAuditLogger
from selfheal.storage.repository import (
    CONFIG_KEY,
    MODEL_KEY,
    STRATEGIES_KEY,
    InMemoryStateRepository,
    StateRepository,
)
from selfheal.utils.candidates import CandidateGenerator
from selfheal.utils.features import FeatureExtractor
from selfheal.utils.patterns import UnstablePatternDetector
from selfheal.utils.scoring import ConfidenceScorer
from selfheal.utils.visual import RenderSnapshotProvider, VisualSimilarityComparator

logger = logging.getLogger(__name__)

SUGGESTION_CONFIDENCE_FLOOR = 0.7


class HealingEngine:
    """In-process entry point wiring generation, scoring, healing policy and history together."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        repository: StateRepository | None = None,
        snapshot_provider: RenderSnapshotProvider | None = None,
        audit_logger: HealingAuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.repository = repository or InMemoryStateRepository()
        self.extractor = FeatureExtractor()
        self.model = create_locator_model(self.config.learning)
        self.generator = CandidateGenerator(self.config.strategy_priors)
        self.scorer = ConfidenceScorer(
            priors=self.config.strategy_priors,
            model=self.model,
            extractor=self.extractor,
            use_model=self.config.learning.enabled,
            blend_weight=self.config.learning.blend_weight,
            success_boost=self.config.history.success_boost,
        )
        self.detector = UnstablePatternDetector(self.extractor, use_features=self.config.learning.enabled)
        self.comparator = VisualSimilarityComparator(snapshot_provider)
        self.history = HistoryStore(
            repository=self.repository,
            settings=self.config.history,
            max_training_samples=self.config.learning.max_training_samples,
            clock=clock,
        )
        self.healer = Healer(
            config=self.config,
            generator=self.generator,
            scorer=self.scorer,
            history=self.history,
            model=self.model,
            extractor=self.extractor,
            audit_logger=audit_logger,
            repository=self.repository,
            clock=clock,
        )

    @classmethod
    def from_config_file(
        cls,
        path: str | Path | None,
        repository: StateRepository | None = None,
        **kwargs: Any,
    ) -> HealingEngine:
        engine = cls(ConfigLoader.load_or_default(path), repository=repository, **kwargs)
        engine.load()
        return engine

    def load(self) -> None:
        """Restores persisted config, strategy priors, model weights and history."""

        config = self.config
        stored_config = self._read(CONFIG_KEY)
        if stored_config and not isinstance(stored_config, Mapping):
            logger.warning("Stored engine config is not a mapping; keeping defaults")
        elif stored_config:
            try:
                merged = config.model_dump(mode="json", exclude={"strategy_priors"})
                merged.update(stored_config)
                merged["strategy_priors"] = config.model_dump(mode="json")["strategy_priors"]
                config = EngineConfig.model_validate(merged)
            except ValidationError:
                logger.warning("Stored engine config is invalid; keeping defaults", exc_info=True)

        stored_priors = self._read(STRATEGIES_KEY)
        if stored_priors:
            try:
                config = config.model_copy(
                    update={"strategy_priors": _validate_priors(stored_priors)}
                )
            except (ValidationError, ValueError, TypeError):
                logger.warning("Stored strategy priors are invalid; keeping defaults", exc_info=True)

        self._apply_config(config)

        stored_model = self._read(MODEL_KEY)
        if stored_model:
            try:
                self.model.load(stored_model)
            except ModelUnavailable:
                logger.warning("Stored model state is unusable; using heuristic predictions", exc_info=True)

        self.history.load()

    def generate_candidates(self, element: ElementDescriptor) -> list[LocatorCandidate]:
        return self.generator.generate(element)

    def score_confidence(
        self,
        candidate: LocatorCandidate,
        element: ElementDescriptor,
        history: PriorHistory | None = None,
    ) -> float:
        return self.scorer.score(candidate, element, history)

    def detect_unstable(self, locator: str, element: ElementDescriptor | None = None) -> UnstableReport:
        report = self.detector.detect(locator, element)
        if report.is_unstable and element is not None:
            report.suggestions = [
                candidate
                for candidate in self.healer.rank(element, suppressed=(locator,))
                if (candidate.confidence or 0.0) > SUGGESTION_CONFIDENCE_FLOOR
            ]
        return report

    def compare_visual_similarity(self, first: ElementDescriptor, second: ElementDescriptor) -> float:
        return self.comparator.compare(first, second)

    def auto_heal(
        self,
        failed_locator: str,
        element: ElementDescriptor,
        context: HealingContext | str,
    ) -> HealingDecision:
        return self.healer.auto_heal(failed_locator, element, _as_context(context))

    def record_outcome(self, record_id: str, success: bool, error_message: str | None = None) -> HealingRecord:
        return self.healer.record_outcome(record_id, success, error_message)

    def approve(self, record_id: str) -> HealingRecord:
        return self.healer.approve(record_id)

    def reject(self, record_id: str) -> HealingRecord:
        return self.healer.reject(record_id)

    def record_suggestion(
        self,
        failed_locator: str,
        healed_locator: str,
        context: HealingContext | str,
        element: ElementDescriptor | None = None,
        confidence: float | None = None,
    ) -> HealingRecord:
        return self.healer.record_suggestion(
            failed_locator,
            healed_locator,
            _as_context(context),
            element=element,
            confidence=confidence,
        )

    def get_suggestions(
        self,
        failed_locator: str | None = None,
        context: HealingContext | str | None = None,
        status: str | None = None,
    ) -> list[HealingRecord]:
        resolved = _as_context(context) if context is not None else None
        if failed_locator is not None and resolved is not None:
            return self.history.suggestions(resolved.key(failed_locator), status)
        records = self.history.suggestions(None, status)
        if failed_locator is not None:
            records = [record for record in records if record.original_locator == failed_locator]
        if resolved is not None:
            records = [record for record in records if record.url == resolved.url]
        return records

    def find_alternative_locator(self, element: ElementDescriptor) -> LocatorCandidate | None:
        ranked = self.healer.rank(element)
        return ranked[0] if ranked else None

    def get_statistics(self) -> HealingStatistics:
        return self.history.statistics()

    def cleanup(self, days_old: int | None = None) -> int:
        return self.history.cleanup(days_old)

    def get_config(self) -> AutoHealingConfig:
        return self.config.auto_healing.model_copy()

    def update_config(self, **changes: Any) -> AutoHealingConfig:
        merged = self.config.auto_healing.model_dump()
        merged.update(changes)
        auto_healing = AutoHealingConfig.model_validate(merged)
        self._apply_config(self.config.model_copy(update={"auto_healing": auto_healing}))
        self._persist_config()
        return self.get_config()

    def get_strategy_priors(self) -> list[StrategyPrior]:
        return [prior.model_copy() for prior in self.config.strategy_priors]

    def update_strategy_priors(self, priors: Iterable[StrategyPrior | Mapping[str, Any]]) -> list[StrategyPrior]:
        normalized = _validate_priors(priors)
        self._apply_config(self.config.model_copy(update={"strategy_priors": normalized}))
        self._write(STRATEGIES_KEY, [prior.model_dump(mode="json") for prior in normalized])
        return self.get_strategy_priors()

    def set_model_enabled(self, enabled: bool) -> None:
        learning = self.config.learning.model_copy(update={"enabled": enabled})
        self._apply_config(self.config.model_copy(update={"learning": learning}))
        self._persist_config()

    def _apply_config(self, config: EngineConfig) -> None:
        self.config = config
        self.healer.config = config
        self.generator.priors = list(config.strategy_priors)
        self.scorer.priors = list(config.strategy_priors)
        self.scorer.use_model = config.learning.enabled
        self.scorer.blend_weight = config.learning.blend_weight
        self.scorer.success_boost = config.history.success_boost
        self.detector.use_features = config.learning.enabled
        self.history.settings = config.history
        self.history.max_training_samples = config.learning.max_training_samples

    def _persist_config(self) -> None:
        self._write(CONFIG_KEY, self.config.model_dump(mode="json", exclude={"strategy_priors"}))

    def _read(self, key: str) -> Any | None:
        try:
            return self.repository.get(key)
        except PersistenceError:
            logger.warning("Could not read stored state %s; keeping defaults", key, exc_info=True)
            return None

    def _write(self, key: str, value: Any) -> None:
        try:
            self.repository.set(key, value)
        except PersistenceError:
            logger.error("Failed to persist %s", key, exc_info=True)


def _validate_priors(priors: Iterable[StrategyPrior | Mapping[str, Any]]) -> list[StrategyPrior]:
    validated = [
        prior.model_copy() if isinstance(prior, StrategyPrior) else StrategyPrior.model_validate(prior)
        for prior in priors
    ]
    return normalize_strategy_priors(validated)


def _as_context(context: HealingContext | str) -> HealingContext:
    if isinstance(context, HealingContext):
        return context
    return HealingContext(url=str(context))
