"""Tests for the schedule and tick gates."""

from datetime import datetime, timezone

from agentgraph.clock import ManualClock
from agentgraph.workflow.gates import (
    TickGate,
    is_within_schedule,
    validate_schedule,
    validate_tick_config,
    wait_until_ms,
)
from agentgraph.workflow.models import ScheduleWindow, TickConfig

WEEKDAYS = ScheduleWindow(start_time="09:00", end_time="17:00", timezone="UTC", days_of_week=(1, 2, 3, 4, 5))

# 2024-01-06 is a Saturday, 2024-01-08 a Monday
SATURDAY_EVENING = datetime(2024, 1, 6, 20, 0, tzinfo=timezone.utc)
MONDAY = datetime(2024, 1, 8, tzinfo=timezone.utc)


def test_unrestricted_window_is_always_open():
    window = ScheduleWindow()

    assert is_within_schedule(window, SATURDAY_EVENING) is True
    assert is_within_schedule(None, SATURDAY_EVENING) is True
    assert wait_until_ms(window, SATURDAY_EVENING) == 0


def test_weekend_is_outside_weekday_window():
    assert is_within_schedule(WEEKDAYS, SATURDAY_EVENING) is False


def test_wait_from_saturday_evening_until_monday_morning():
    expected = (datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc) - SATURDAY_EVENING).total_seconds() * 1000

    assert wait_until_ms(WEEKDAYS, SATURDAY_EVENING) == expected
    assert expected == 37 * 3600 * 1000


def test_boundaries_are_inclusive():
    assert is_within_schedule(WEEKDAYS, MONDAY.replace(hour=9, minute=0)) is True
    assert is_within_schedule(WEEKDAYS, MONDAY.replace(hour=17, minute=0)) is True
    assert is_within_schedule(WEEKDAYS, MONDAY.replace(hour=17, minute=1)) is False
    assert is_within_schedule(WEEKDAYS, MONDAY.replace(hour=8, minute=59)) is False


def test_wait_until_start_later_today():
    now = MONDAY.replace(hour=8, minute=30)

    assert wait_until_ms(WEEKDAYS, now) == 30 * 60 * 1000
    assert wait_until_ms(WEEKDAYS, MONDAY.replace(hour=12)) == 0


def test_wait_after_end_rolls_to_next_allowed_day():
    friday_evening = datetime(2024, 1, 12, 18, 0, tzinfo=timezone.utc)

    # next opening is Monday 09:00, not Saturday
    assert wait_until_ms(WEEKDAYS, friday_evening) == (2 * 24 + 15) * 3600 * 1000


def test_day_and_time_use_configured_timezone():
    window = ScheduleWindow(start_time="09:00", end_time="17:00", timezone="America/New_York",
                            days_of_week=(1, 2, 3, 4, 5))

    # 15:00 UTC on Monday is 10:00 in New York
    assert is_within_schedule(window, MONDAY.replace(hour=15)) is True
    # 03:00 UTC on Monday is still Sunday 22:00 in New York
    assert is_within_schedule(window, MONDAY.replace(hour=3)) is False


def test_wait_across_spring_forward_counts_real_time():
    window = ScheduleWindow(start_time="09:00", end_time="17:00", timezone="America/New_York",
                            days_of_week=(1, 2, 3, 4, 5))
    # Saturday 2024-03-09 20:00 EST; clocks jump forward early Sunday
    saturday_evening = datetime(2024, 3, 10, 1, 0, tzinfo=timezone.utc)

    # Monday 09:00 EDT is 13:00 UTC, 36 hours later rather than 37
    assert wait_until_ms(window, saturday_evening) == 36 * 3600 * 1000


def test_validate_schedule_collects_all_errors():
    window = ScheduleWindow(start_time="25:00", end_time="17:00", days_of_week=(1, 7))

    errors = validate_schedule(window)

    assert any("Invalid startTime format: 25:00" in e for e in errors)
    assert "startTime must be before endTime" in errors
    assert any("Invalid day of week: 7" in e for e in errors)


def test_validate_schedule_accepts_good_window():
    assert validate_schedule(WEEKDAYS) == []
    assert validate_schedule(ScheduleWindow(start_time="10:00", end_time="10:00")) == [
        "startTime must be before endTime"
    ]


def test_validate_schedule_rejects_unknown_timezone():
    errors = validate_schedule(ScheduleWindow(timezone="Mars/Olympus_Mons"))

    assert errors == ["Unknown timezone: Mars/Olympus_Mons"]


def test_tick_interval_is_respected():
    clock = ManualClock()
    gate = TickGate(clock)
    config = TickConfig(enabled=True, interval_ms=5000)

    assert gate.should_execute("poller", config) is True
    gate.record_tick("poller")

    clock.advance(6000)
    assert gate.should_execute("poller", config) is True
    gate.record_tick("poller")

    clock.advance(100)
    assert gate.should_execute("poller", config) is False
    assert gate.time_until_next_tick("poller", config) == 4900


def test_reset_round_keeps_interval_check():
    clock = ManualClock()
    gate = TickGate(clock)
    config = TickConfig(enabled=True, interval_ms=5000, max_ticks_per_round=1)

    assert gate.should_execute("poller", config) is True
    gate.record_tick("poller")
    clock.advance(6000)
    assert gate.should_execute("poller", config) is False
    assert gate.round_exhausted("poller", config) is True

    gate.reset_round("poller")
    assert gate.tick_count("poller") == 0
    assert gate.should_execute("poller", config) is True

    gate.record_tick("poller")
    gate.reset_round("poller")
    clock.advance(100)
    # round reset, but the interval still applies
    assert gate.should_execute("poller", config) is False


def test_disabled_tick_config_always_permits():
    clock = ManualClock()
    gate = TickGate(clock)
    config = TickConfig(enabled=False, interval_ms=5000)

    gate.record_tick("poller")
    assert gate.should_execute("poller", config) is True
    assert gate.should_execute("poller", None) is True


def test_tick_state_is_per_key():
    clock = ManualClock()
    gate = TickGate(clock)
    config = TickConfig(enabled=True, interval_ms=5000)

    gate.record_tick("a")
    assert gate.should_execute("a", config) is False
    assert gate.should_execute("b", config) is True


def test_validate_tick_config():
    assert validate_tick_config(TickConfig(enabled=True, interval_seconds=5)) == []
    assert validate_tick_config(TickConfig(enabled=False)) == []

    errors = validate_tick_config(TickConfig(enabled=True))
    assert any("at least one interval" in e for e in errors)

    errors = validate_tick_config(TickConfig(enabled=True, interval_ms=-1, max_ticks_per_round=0))
    assert "intervalMs must be positive" in errors
    assert "maxTicksPerRound must be positive" in errors
