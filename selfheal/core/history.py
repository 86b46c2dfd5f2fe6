from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Mapping

from selfheal.config.schema import HistorySettings
from selfheal.core.exceptions import PersistenceError
from selfheal.core.metadata import (
    HealingRecord,
    HealingStatistics,
    PriorHistory,
    StrategyStats,
    TrainingSample,
)
from selfheal.storage.repository import HISTORY_KEY, StateRepository
from selfheal.utils.parser import infer_strategy_kind

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TOP_STRATEGY_LIMIT = 5
ACTIVE_STATUSES = frozenset({"pending", "approved", "auto-applied"})


def utc_now() -> datetime:
    return datetime.now(UTC)


class HistoryStore:
    """Append-only log of healing records, partitioned by context key.

    Appends and outcome updates for one context are serialized through ``context_lock``;
    different contexts do not block each other.
    """

    def __init__(
        self,
        repository: StateRepository | None = None,
        settings: HistorySettings | None = None,
        max_training_samples: int = 500,
        clock: Clock | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or HistorySettings()
        self.max_training_samples = max_training_samples
        self.clock = clock or utc_now
        self._records: dict[str, list[HealingRecord]] = defaultdict(list)
        self._index: dict[str, HealingRecord] = {}
        self._unreliable: dict[str, list[str]] = defaultdict(list)
        self._samples: list[TrainingSample] = []
        self._lock = threading.RLock()
        self._context_locks: dict[str, threading.RLock] = {}

    def context_lock(self, context_key: str) -> threading.RLock:
        with self._lock:
            lock = self._context_locks.get(context_key)
            if lock is None:
                lock = threading.RLock()
                self._context_locks[context_key] = lock
            return lock

    def append(self, record: HealingRecord) -> None:
        with self.context_lock(record.context_key):
            with self._lock:
                self._records[record.context_key].append(record)
                self._index[record.id] = record

    def get(self, context_key: str) -> list[HealingRecord]:
        with self._lock:
            return list(self._records.get(context_key, []))

    def find(self, record_id: str) -> HealingRecord | None:
        with self._lock:
            return self._index.get(record_id)

    def all_records(self) -> list[HealingRecord]:
        with self._lock:
            return [record for records in self._records.values() for record in records]

    def find_pair(self, context_key: str, original_locator: str, healed_locator: str) -> HealingRecord | None:
        for record in self.get(context_key):
            if record.original_locator == original_locator and record.healed_locator == healed_locator:
                return record
        return None

    def prior_history(self, context_key: str, healed_locator: str) -> PriorHistory:
        window_start = self.clock() - timedelta(days=self.settings.retention_days)
        prior = PriorHistory()
        for record in self.get(context_key):
            if record.healed_locator != healed_locator:
                continue
            prior.success_count += record.success_count
            prior.failure_count += record.failure_count
            prior.recent_success_count += sum(
                1 for event in record.outcomes if event.success and event.timestamp >= window_start
            )
        return prior

    def count_recent_failures(self, context_key: str, healed_locator: str) -> int:
        window_start = self.clock() - timedelta(days=self.settings.rollback_window_days)
        return sum(
            1
            for record in self.get(context_key)
            if record.healed_locator == healed_locator
            for event in record.outcomes
            if not event.success and event.timestamp >= window_start
        )

    def unresolved_failures(self, context_key: str) -> int:
        """Counts active healings that failed since the context last saw a success."""

        records = self.get(context_key)
        last_success: datetime | None = None
        for record in records:
            for event in record.outcomes:
                if event.success and (last_success is None or event.timestamp > last_success):
                    last_success = event.timestamp
        return sum(
            1
            for record in records
            if record.status in ACTIVE_STATUSES
            and record.last_outcome == "failure"
            and (last_success is None or record.created_at > last_success)
        )

    def mark_unreliable(self, context_key: str, locator: str) -> None:
        with self._lock:
            if locator not in self._unreliable[context_key]:
                self._unreliable[context_key].append(locator)

    def unreliable_locators(self, context_key: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._unreliable.get(context_key, []))

    def add_training_sample(self, sample: TrainingSample) -> None:
        with self._lock:
            self._samples.append(sample)
            overflow = len(self._samples) - self.max_training_samples
            if overflow > 0:
                del self._samples[:overflow]

    def training_samples(self) -> list[TrainingSample]:
        with self._lock:
            return list(self._samples)

    def suggestions(self, context_key: str | None = None, status: str | None = None) -> list[HealingRecord]:
        records = self.get(context_key) if context_key is not None else self.all_records()
        if status is not None:
            records = [record for record in records if record.status == status]
        records.sort(key=lambda record: record.created_at, reverse=True)
        records.sort(key=lambda record: record.confidence, reverse=True)
        return records

    def cleanup(self, days_old: int | None = None) -> int:
        """Drops rejected records older than the cutoff; other statuses are kept."""

        days = self.settings.retention_days if days_old is None else days_old
        cutoff = self.clock() - timedelta(days=days)
        removed = 0
        with self._lock:
            for context_key, records in self._records.items():
                kept: list[HealingRecord] = []
                for record in records:
                    if record.status == "rejected" and record.created_at < cutoff:
                        self._index.pop(record.id, None)
                        removed += 1
                    else:
                        kept.append(record)
                self._records[context_key] = kept
        if removed:
            self.save()
        return removed

    def statistics(self) -> HealingStatistics:
        records = self.all_records()
        total = len(records)
        by_status: dict[str, int] = defaultdict(int)
        for record in records:
            by_status[record.status] += 1

        successes = sum(1 for record in records if record.last_outcome == "success")
        outcome_successes = sum(record.success_count for record in records)
        outcome_total = sum(record.success_count + record.failure_count for record in records)

        return HealingStatistics(
            total=total,
            pending=by_status["pending"],
            approved=by_status["approved"],
            rejected=by_status["rejected"],
            auto_applied=by_status["auto-applied"],
            rolled_back=by_status["rolled-back"],
            success_rate=_ratio(successes, total),
            outcome_success_rate=_ratio(outcome_successes, outcome_total),
            auto_heal_rate=_ratio(sum(1 for record in records if record.auto_applied), total),
            rollback_rate=_ratio(sum(1 for record in records if record.rollback), total),
            average_confidence=_ratio(sum(record.confidence for record in records), total),
            model_assisted_count=sum(1 for record in records if record.model_assisted),
            top_strategies=_top_strategies(records),
        )

    def save(self) -> None:
        if self.repository is None:
            return
        try:
            self.repository.set(HISTORY_KEY, self.to_dict())
        except PersistenceError:
            logger.error("Failed to persist healing history", exc_info=True)

    def load(self) -> None:
        if self.repository is None:
            return
        try:
            payload = self.repository.get(HISTORY_KEY)
        except PersistenceError:
            logger.error("Failed to read healing history", exc_info=True)
            return
        if not payload:
            return
        try:
            if not isinstance(payload, Mapping):
                raise TypeError(f"expected a mapping, got {type(payload).__name__}")
            records = {
                key: [HealingRecord.from_dict(item) for item in items]
                for key, items in payload.get("records", {}).items()
            }
            samples = [TrainingSample.from_dict(item) for item in payload.get("training_samples", [])]
            unreliable = {key: list(values) for key, values in payload.get("unreliable", {}).items()}
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Stored healing history is corrupted; starting empty", exc_info=True)
            return
        with self._lock:
            self._records = defaultdict(list, records)
            self._index = {record.id: record for items in records.values() for record in items}
            self._unreliable = defaultdict(list, unreliable)
            self._samples = samples[-self.max_training_samples :]

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "records": {
                    key: [record.to_dict() for record in records]
                    for key, records in self._records.items()
                    if records
                },
                "unreliable": {key: list(values) for key, values in self._unreliable.items() if values},
                "training_samples": [sample.to_dict() for sample in self._samples],
            }


def _top_strategies(records: list[HealingRecord]) -> list[StrategyStats]:
    counts: dict[str, int] = defaultdict(int)
    successes: dict[str, int] = defaultdict(int)
    for record in records:
        strategy = infer_strategy_kind(record.healed_locator)
        counts[strategy] += 1
        if record.last_outcome == "success":
            successes[strategy] += 1
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        StrategyStats(strategy=strategy, count=count, success_rate=_ratio(successes[strategy], count))
        for strategy, count in ranked[:TOP_STRATEGY_LIMIT]
    ]


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0
