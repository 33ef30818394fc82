"""Tests for NotificationGate cooldown and retention."""

from datetime import UTC, datetime, timedelta

from watchpost.tasks.gate import NotificationGate

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=UTC)
COOLDOWN = timedelta(hours=24)
FLOOR = timedelta(days=7)


def test_unknown_key_should_notify() -> None:
    gate = NotificationGate()
    assert gate.should_notify("owner/repo#1", COOLDOWN, NOW) is True
    assert gate.last_notified("owner/repo#1") is None


def test_within_cooldown_is_suppressed() -> None:
    gate = NotificationGate()
    gate.record_notified("k", NOW - timedelta(hours=1))
    assert gate.should_notify("k", COOLDOWN, NOW) is False


def test_cooldown_boundary_is_inclusive() -> None:
    gate = NotificationGate()
    gate.record_notified("k", NOW - COOLDOWN)
    assert gate.should_notify("k", COOLDOWN, NOW) is True


def test_record_restarts_cooldown() -> None:
    gate = NotificationGate()
    gate.record_notified("k", NOW - timedelta(days=2))
    gate.record_notified("k", NOW)
    assert gate.last_notified("k") == NOW
    assert gate.should_notify("k", COOLDOWN, NOW + timedelta(hours=1)) is False


def test_keys_are_independent() -> None:
    gate = NotificationGate()
    gate.record_notified("a/b#1", NOW)
    assert gate.should_notify("a/b#2", COOLDOWN, NOW) is True
    assert "a/b#1" in gate
    assert "a/b#2" not in gate


# -- cleanup -------------------------------------------------------------------


def test_cleanup_uses_retention_floor_when_cooldown_is_short() -> None:
    gate = NotificationGate()
    cooldown = timedelta(hours=1)
    gate.record_notified("recent", NOW - cooldown / 2)
    gate.record_notified("old", NOW - FLOOR - timedelta(minutes=1))

    removed = gate.cleanup(FLOOR, cooldown, NOW)

    assert removed == 1
    assert "recent" in gate
    assert "old" not in gate


def test_cleanup_keeps_entries_inside_the_floor() -> None:
    gate = NotificationGate()
    # Older than the cooldown but younger than the floor.
    gate.record_notified("k", NOW - timedelta(days=3))
    assert gate.cleanup(FLOOR, timedelta(hours=1), NOW) == 0
    assert len(gate) == 1


def test_cleanup_uses_cooldown_when_it_exceeds_floor() -> None:
    gate = NotificationGate()
    cooldown = timedelta(days=10)
    gate.record_notified("k", NOW - timedelta(days=8))
    assert gate.cleanup(FLOOR, cooldown, NOW) == 0
    gate.record_notified("older", NOW - timedelta(days=11))
    assert gate.cleanup(FLOOR, cooldown, NOW) == 1
    assert "k" in gate


def test_cleanup_on_empty_gate() -> None:
    assert NotificationGate().cleanup(FLOOR, COOLDOWN, NOW) == 0
