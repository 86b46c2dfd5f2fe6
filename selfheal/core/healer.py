from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Collection

from selfheal.config.schema import EngineConfig
from selfheal.core.exceptions import (
    HealingDisabled,
    InvalidTransition,
    NoSuitableLocator,
    PersistenceError,
    RecordNotFound,
)
from selfheal.core.history import HistoryStore, utc_now
from selfheal.core.metadata import (
    ElementDescriptor,
    HealingContext,
    HealingDecision,
    HealingRecord,
    LocatorCandidate,
    OutcomeEvent,
    RollbackInfo,
    TrainingSample,
)
from selfheal.learning.model import LocatorModel
from selfheal.logging.audit import HealingAuditLogger
from selfheal.storage.repository import MODEL_KEY, StateRepository
from selfheal.utils.candidates import CandidateGenerator
from selfheal.utils.features import FeatureExtractor
from selfheal.utils.parser import infer_strategy_kind
from selfheal.utils.scoring import ConfidenceScorer, score_candidates

logger = logging.getLogger(__name__)

APPROVAL_BOOST = 0.1
DEFAULT_SUGGESTION_CONFIDENCE = 0.5


class Healer:
    """Picks a healed locator for a failed one and tracks how it performs afterwards."""

    def __init__(
        self,
        config: EngineConfig,
        generator: CandidateGenerator,
        scorer: ConfidenceScorer,
        history: HistoryStore,
        model: LocatorModel,
        extractor: FeatureExtractor | None = None,
        audit_logger: HealingAuditLogger | None = None,
        repository: StateRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.generator = generator
        self.scorer = scorer
        self.history = history
        self.model = model
        self.extractor = extractor or FeatureExtractor()
        self.audit_logger = audit_logger
        self.repository = repository
        self.clock = clock or utc_now

    def rank(
        self,
        element: ElementDescriptor,
        context_key: str | None = None,
        suppressed: Collection[str] = (),
    ) -> list[LocatorCandidate]:
        candidates = self.generator.generate(element, suppressed=suppressed)
        if context_key is None:
            return score_candidates(self.scorer, element, candidates)
        return score_candidates(
            self.scorer,
            element,
            candidates,
            history_lookup=lambda candidate: self.history.prior_history(context_key, candidate.locator),
        )

    def auto_heal(
        self,
        failed_locator: str,
        element: ElementDescriptor,
        context: HealingContext,
    ) -> HealingDecision:
        policy = self.config.auto_healing
        if not policy.enabled:
            raise HealingDisabled("Auto-healing is disabled")

        context_key = context.key(failed_locator)
        with self.history.context_lock(context_key):
            failing = self.history.unresolved_failures(context_key)
            if failing and failing >= policy.max_retries:
                raise NoSuitableLocator(
                    f"Retry budget exhausted for {failed_locator!r}: {failing} failing healings"
                )

            suppressed = self.history.unreliable_locators(context_key) | {failed_locator}
            ranked = self.rank(element, context_key, suppressed)
            chosen = next(
                (item for item in ranked if (item.confidence or 0.0) >= policy.confidence_threshold),
                None,
            )
            if chosen is None:
                best = ranked[0].confidence if ranked else None
                raise NoSuitableLocator(
                    f"No candidate for {failed_locator!r} reached confidence {policy.confidence_threshold}",
                    best_confidence=best,
                )

            auto_applied = policy.auto_approve_high_confidence and not policy.require_user_approval
            record = HealingRecord(
                id=uuid.uuid4().hex,
                context_key=context_key,
                url=context.url,
                original_locator=failed_locator,
                healed_locator=chosen.locator,
                strategy=chosen.strategy,
                confidence=chosen.confidence or 0.0,
                status="auto-applied" if auto_applied else "pending",
                created_at=self.clock(),
                auto_applied=auto_applied,
                model_assisted=chosen.model_assisted,
                failure_reason=context.failure_reason,
                element=element,
            )
            self.history.append(record)

        self.history.save()
        self._audit("healing_created", record)
        logger.info(
            "Healed %s -> %s (%s, confidence %.3f, %s)",
            failed_locator,
            record.healed_locator,
            record.strategy,
            record.confidence,
            record.status,
        )
        return HealingDecision(
            record_id=record.id,
            healed_locator=record.healed_locator,
            strategy=record.strategy,
            confidence=record.confidence,
            auto_applied=auto_applied,
            requires_approval=not auto_applied,
        )

    def record_outcome(self, record_id: str, success: bool, error_message: str | None = None) -> HealingRecord:
        record = self._require(record_id)
        rolled_back = False
        with self.history.context_lock(record.context_key):
            record.register_outcome(OutcomeEvent(timestamp=self.clock(), success=success, error=error_message))
            if not success:
                rolled_back = self._apply_rollback_policy(record)

        self._learn_from(record, label=1 if success else 0)
        self.history.save()
        self._audit("outcome_recorded", record, success=success, error=error_message)
        if rolled_back:
            self._audit("rolled_back", record, reason=record.rollback.reason if record.rollback else "")
        return record

    def approve(self, record_id: str) -> HealingRecord:
        record = self._transition(record_id, "approved")
        record.confidence = min(1.0, record.confidence + APPROVAL_BOOST)
        self._learn_from(record, label=1)
        self.history.save()
        self._audit("approved", record)
        return record

    def reject(self, record_id: str) -> HealingRecord:
        record = self._transition(record_id, "rejected")
        self._learn_from(record, label=0)
        self.history.save()
        self._audit("rejected", record)
        return record

    def record_suggestion(
        self,
        failed_locator: str,
        healed_locator: str,
        context: HealingContext,
        element: ElementDescriptor | None = None,
        confidence: float | None = None,
    ) -> HealingRecord:
        context_key = context.key(failed_locator)
        with self.history.context_lock(context_key):
            existing = self.history.find_pair(context_key, failed_locator, healed_locator)
            if existing is not None:
                return existing
            value = DEFAULT_SUGGESTION_CONFIDENCE if confidence is None else confidence
            record = HealingRecord(
                id=uuid.uuid4().hex,
                context_key=context_key,
                url=context.url,
                original_locator=failed_locator,
                healed_locator=healed_locator,
                strategy=infer_strategy_kind(healed_locator),
                confidence=min(1.0, max(0.0, value)),
                status="pending",
                created_at=self.clock(),
                failure_reason=context.failure_reason,
                element=element,
            )
            self.history.append(record)
        self.history.save()
        self._audit("healing_created", record, source="manual")
        return record

    def retrain(self) -> None:
        samples = self.history.training_samples()
        if not samples:
            return
        try:
            self.model.train(samples)
        except Exception:  # noqa: BLE001 - a failed retrain keeps the previous weights.
            logger.warning("Model retraining failed; keeping previous weights", exc_info=True)
            return
        if self.repository is not None:
            try:
                self.repository.set(MODEL_KEY, self.model.save())
            except PersistenceError:
                logger.error("Failed to persist model state", exc_info=True)

    def _apply_rollback_policy(self, record: HealingRecord) -> bool:
        threshold = self.config.auto_healing.rollback_after_failures
        failures = self.history.count_recent_failures(record.context_key, record.healed_locator)
        if failures < threshold:
            return False

        self.history.mark_unreliable(record.context_key, record.healed_locator)
        if record.status != "auto-applied" or record.rollback is not None:
            return False

        record.status = "rolled-back"
        record.rollback = RollbackInfo(
            timestamp=self.clock(),
            reason=f"Auto-rollback after {failures} failures",
        )
        logger.warning(
            "Rolled back %s -> %s after %s failures",
            record.original_locator,
            record.healed_locator,
            failures,
        )
        return True

    def _transition(self, record_id: str, target: str) -> HealingRecord:
        record = self._require(record_id)
        with self.history.context_lock(record.context_key):
            if record.status != "pending":
                raise InvalidTransition(f"Cannot move record {record_id} from {record.status} to {target}")
            record.status = target
        return record

    def _require(self, record_id: str) -> HealingRecord:
        record = self.history.find(record_id)
        if record is None:
            logger.error("Healing record %s not found", record_id)
            raise RecordNotFound(record_id)
        return record

    def _learn_from(self, record: HealingRecord, label: int) -> None:
        if record.element is None:
            return
        self.history.add_training_sample(
            TrainingSample(features=self.extractor.extract(record.element), label=label)
        )
        if self.scorer.use_model:
            self.retrain()

    def _audit(self, event: str, record: HealingRecord, **details) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.write(event, record, **details)
        except (OSError, ValueError):
            logger.error("Failed to write healing audit event %s", event, exc_info=True)
