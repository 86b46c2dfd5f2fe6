from __future__ import annotations

import json
from pathlib import Path

from selfheal.config.schema import EngineConfig


class ConfigLoader:
    """Reads and writes the JSON engine configuration."""

    @staticmethod
    def load(path: str | Path) -> EngineConfig:
        config_path = Path(path)
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return EngineConfig.model_validate(payload)

    @staticmethod
    def load_or_default(path: str | Path | None) -> EngineConfig:
        if path is None or not Path(path).exists():
            return EngineConfig()
        return ConfigLoader.load(path)

    @staticmethod
    def save(config: EngineConfig, path: str | Path) -> Path:
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(
            json.dumps(config.model_dump(mode="json"), indent=2, sort_keys=True),
            encoding="utf-8",
        )
        return config_path
