from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from selfheal.core.metadata import HealingRecord

APPLIED_EVENTS = frozenset({"healing_created", "approved"})
REVOKED_EVENTS = frozenset({"rolled_back", "rejected"})

logger = logging.getLogger(__name__)


class HealingAuditLogger:
    """Appends healing events as JSON lines and keeps the applied selector overrides."""

    def __init__(self, root: str | Path = "artifacts") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.events_path = self.root / "healing_events.jsonl"
        self.selector_overrides_path = self.root / "selector_overrides.json"
        self._lock = threading.Lock()

    def write(self, event: str, record: HealingRecord, **details: Any) -> None:
        payload = {
            "event": event,
            "logged_at": datetime.now(UTC).isoformat(),
            "record_id": record.id,
            "url": record.url,
            "original_locator": record.original_locator,
            "healed_locator": record.healed_locator,
            "strategy": record.strategy,
            "confidence": record.confidence,
            "status": record.status,
            "success_count": record.success_count,
            "failure_count": record.failure_count,
        }
        payload.update(details)
        with self._lock:
            with self.events_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload) + "\n")

            if event in APPLIED_EVENTS and record.status in {"auto-applied", "approved"}:
                overrides = self._read_overrides_unlocked()
                overrides[record.original_locator] = record.healed_locator
                self._write_overrides_unlocked(overrides)
            elif event in REVOKED_EVENTS:
                overrides = self._read_overrides_unlocked()
                if overrides.get(record.original_locator) == record.healed_locator:
                    del overrides[record.original_locator]
                    self._write_overrides_unlocked(overrides)

    def read_overrides(self) -> dict[str, str]:
        with self._lock:
            return self._read_overrides_unlocked()

    def read_events(self) -> list[dict[str, Any]]:
        with self._lock:
            if not self.events_path.exists():
                return []
            lines = self.events_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    def _read_overrides_unlocked(self) -> dict[str, str]:
        if not self.selector_overrides_path.exists():
            return {}
        try:
            overrides = json.loads(self.selector_overrides_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Selector overrides file %s is corrupted; rebuilding it", self.selector_overrides_path)
            return {}
        if not isinstance(overrides, dict):
            logger.warning("Selector overrides file %s is not a mapping; rebuilding it", self.selector_overrides_path)
            return {}
        return overrides

    def _write_overrides_unlocked(self, overrides: dict[str, str]) -> None:
        self.selector_overrides_path.write_text(
            json.dumps(overrides, indent=2, sort_keys=True),
            encoding="utf-8",
        )
