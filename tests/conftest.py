from __future__ import annotations

import pytest

from selfheal.config.schema import EngineConfig, LearningSettings
from selfheal.core.engine import HealingEngine
from selfheal.core.metadata import HealingContext
from selfheal.logging.audit import HealingAuditLogger
from selfheal.storage.repository import InMemoryStateRepository
from tests.helpers import MutableClock


@pytest.fixture()
def clock():
    return MutableClock()


@pytest.fixture()
def repository():
    return InMemoryStateRepository()


@pytest.fixture()
def audit_logger(tmp_path):
    return HealingAuditLogger(tmp_path / "artifacts")


@pytest.fixture()
def context():
    return HealingContext(url="https://app.test/login", failure_reason="NoSuchElementException")


@pytest.fixture()
def engine(repository, audit_logger, clock):
    return HealingEngine(repository=repository, audit_logger=audit_logger, clock=clock)


@pytest.fixture()
def heuristic_engine(repository, audit_logger, clock):
    config = EngineConfig(learning=LearningSettings(enabled=False))
    return HealingEngine(config, repository=repository, audit_logger=audit_logger, clock=clock)
