from __future__ import annotations

from selfheal.logging.audit import HealingAuditLogger
from tests.helpers import make_record


def test_applied_healings_write_overrides(tmp_path):
    logger = HealingAuditLogger(tmp_path)
    record = make_record("a", status="auto-applied")

    logger.write("healing_created", record)

    assert logger.read_overrides() == {"#old-login": "#login-button"}
    events = logger.read_events()
    assert events[0]["event"] == "healing_created"
    assert events[0]["record_id"] == "a"
    assert events[0]["confidence"] == 0.9


def test_pending_healings_do_not_override(tmp_path):
    logger = HealingAuditLogger(tmp_path)

    logger.write("healing_created", make_record("a", status="pending"), source="manual")

    assert logger.read_overrides() == {}
    assert logger.read_events()[0]["source"] == "manual"


def test_rollback_and_rejection_remove_matching_override(tmp_path):
    logger = HealingAuditLogger(tmp_path)
    applied = make_record("a", status="auto-applied")
    logger.write("healing_created", applied)

    unrelated = make_record("b", status="rejected", healed_locator=".btn")
    logger.write("rejected", unrelated)
    assert logger.read_overrides() == {"#old-login": "#login-button"}

    applied.status = "rolled-back"
    logger.write("rolled_back", applied, reason="Auto-rollback after 3 failures")
    assert logger.read_overrides() == {}
    assert [event["event"] for event in logger.read_events()] == ["healing_created", "rejected", "rolled_back"]


def test_outcome_events_carry_details(tmp_path):
    logger = HealingAuditLogger(tmp_path)
    record = make_record("a", status="auto-applied", outcomes=(False,))

    logger.write("outcome_recorded", record, success=False, error="element not interactable")

    event = logger.read_events()[0]
    assert event["success"] is False
    assert event["error"] == "element not interactable"
    assert event["failure_count"] == 1


def test_corrupted_overrides_file_is_rebuilt(tmp_path, caplog):
    logger = HealingAuditLogger(tmp_path)
    logger.selector_overrides_path.write_text("{not json", encoding="utf-8")

    assert logger.read_overrides() == {}
    logger.write("healing_created", make_record("a", status="auto-applied"))

    assert logger.read_overrides() == {"#old-login": "#login-button"}
    assert "is corrupted" in caplog.text


def test_non_mapping_overrides_file_is_ignored(tmp_path):
    logger = HealingAuditLogger(tmp_path)
    logger.selector_overrides_path.write_text('["#old-login"]', encoding="utf-8")

    logger.write("rejected", make_record("a", status="rejected"))

    assert logger.read_overrides() == {}
