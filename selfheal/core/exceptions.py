from __future__ import annotations


class HealingError(RuntimeError):
    """Raised when selector healing fails."""


class HealingDisabled(HealingError):
    """Raised when auto-healing is switched off in the configuration."""


class NoSuitableLocator(HealingError):
    """Raised when no candidate locator clears the confidence threshold."""

    def __init__(self, message: str, best_confidence: float | None = None) -> None:
        super().__init__(message)
        self.best_confidence = best_confidence


class RecordNotFound(HealingError):
    """Raised when an outcome is reported for an unknown healing record."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Healing record not found: {record_id}")
        self.record_id = record_id


class InvalidTransition(HealingError):
    """Raised when a healing record cannot move to the requested status."""


class ModelUnavailable(HealingError):
    """Raised by the learned model when it cannot produce a prediction."""


class PersistenceError(HealingError):
    """Raised when a state repository cannot read or write a blob."""
