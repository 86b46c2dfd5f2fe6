from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from selfheal.core.metadata import STRATEGY_KINDS


class AutoHealingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    enabled: bool = True
    confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_retries: int = Field(default=3, ge=0)
    rollback_after_failures: int = Field(default=3, ge=1)
    require_user_approval: bool = False
    auto_approve_high_confidence: bool = True


class StrategyPrior(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str
    priority: int
    stability: float = Field(ge=0.0, le=1.0)
    enabled: bool = True

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in STRATEGY_KINDS:
            raise ValueError(f"Unsupported strategy kind: {value}")
        return normalized


DEFAULT_STRATEGY_PRIORS: tuple[StrategyPrior, ...] = (
    StrategyPrior(kind="testid", priority=1, stability=0.95),
    StrategyPrior(kind="id", priority=2, stability=0.90),
    StrategyPrior(kind="aria", priority=3, stability=0.85),
    StrategyPrior(kind="role", priority=4, stability=0.80),
    StrategyPrior(kind="name", priority=5, stability=0.75),
    StrategyPrior(kind="placeholder", priority=6, stability=0.70),
    StrategyPrior(kind="text", priority=7, stability=0.65),
    StrategyPrior(kind="css", priority=8, stability=0.50),
    StrategyPrior(kind="xpath", priority=9, stability=0.40),
)


def default_strategy_priors() -> list[StrategyPrior]:
    return [prior.model_copy() for prior in DEFAULT_STRATEGY_PRIORS]


def normalize_strategy_priors(priors: list[StrategyPrior]) -> list[StrategyPrior]:
    """Validates a prior table and returns it ordered by priority."""

    kinds = [prior.kind for prior in priors]
    duplicates = sorted({kind for kind in kinds if kinds.count(kind) > 1})
    if duplicates:
        raise ValueError(f"Duplicate strategy kinds: {', '.join(duplicates)}")
    return sorted(priors, key=lambda prior: prior.priority)


class LearningSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    learning_rate: float = Field(default=0.01, gt=0.0)
    epochs: int = Field(default=100, ge=1)
    blend_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    max_training_samples: int = Field(default=500, ge=1)


class HistorySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    retention_days: int = Field(default=30, ge=0)
    rollback_window_days: int = Field(default=7, ge=0)
    success_boost: float = Field(default=0.1, ge=0.0, le=1.0)


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    auto_healing: AutoHealingConfig = Field(default_factory=AutoHealingConfig)
    strategy_priors: list[StrategyPrior] = Field(default_factory=default_strategy_priors)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)

    @field_validator("strategy_priors")
    @classmethod
    def validate_strategy_priors(cls, value: list[StrategyPrior]) -> list[StrategyPrior]:
        return normalize_strategy_priors(value)
