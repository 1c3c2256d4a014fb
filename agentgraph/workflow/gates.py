"""
Execution gates: time-of-day/day-of-week windows and tick frequency limits.

Gates never fail a run; they only say "not yet" and how long to wait.
"""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import ScheduleWindow, TickConfig

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")

DEFAULT_TICK_INTERVAL_MS = 1000


# -------------------------
# SCHEDULE GATE
# -------------------------

def _local(window: ScheduleWindow, now: datetime) -> datetime:
    return now.astimezone(ZoneInfo(window.timezone or "UTC"))


def _day_of_week(moment: datetime) -> int:
    """ 0 = Sunday ... 6 = Saturday """
    return (moment.weekday() + 1) % 7


def is_within_schedule(window: Optional[ScheduleWindow], now: datetime) -> bool:
    """ True when `now` falls inside the window, boundaries included. """
    if window is None or window.is_unrestricted:
        return True

    local = _local(window, now)

    if window.days_of_week:
        day = _day_of_week(local)
        if day not in window.days_of_week:
            logger.debug("Not in allowed days. Current day: %s, allowed: %s", day, window.days_of_week)
            return False

    current = local.strftime("%H:%M")
    if window.start_time and current < window.start_time:
        logger.debug("Before start time. Current: %s, start: %s", current, window.start_time)
        return False
    if window.end_time and current > window.end_time:
        logger.debug("After end time. Current: %s, end: %s", current, window.end_time)
        return False
    return True


def wait_until_ms(window: Optional[ScheduleWindow], now: datetime) -> float:
    """
    Milliseconds until the window next opens; 0 when already open.

    The next opening is the start time today if it has not passed yet,
    otherwise the first following day allowed by `days_of_week`,
    otherwise tomorrow.
    """
    if is_within_schedule(window, now):
        return 0

    local = _local(window, now)
    tz = local.tzinfo
    hours, minutes = (int(p) for p in (window.start_time or "00:00").split(":"))

    for offset in range(0, 8):
        day = local.date() + timedelta(days=offset)
        opening = datetime.combine(day, time(hours, minutes), tzinfo=tz)
        if _ms_between(local, opening) <= 0:
            continue
        if window.days_of_week and _day_of_week(opening) not in window.days_of_week:
            continue
        return _ms_between(local, opening)

    tomorrow = datetime.combine(local.date() + timedelta(days=1), time(hours, minutes), tzinfo=tz)
    return _ms_between(local, tomorrow)


def _ms_between(start: datetime, end: datetime) -> float:
    # same-zone subtraction is wall-clock; go through UTC so DST shifts count
    return (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds() * 1000


def validate_schedule(window: ScheduleWindow) -> List[str]:
    """ Collect every problem with a schedule window rather than stopping at the first. """
    errors: List[str] = []

    if window.start_time and not _HHMM.match(str(window.start_time)):
        errors.append(
            f"Invalid startTime format: {window.start_time}. "
            "Use HH:MM in 24-hour format (e.g., \"09:00\", \"14:30\")"
        )
    if window.end_time and not _HHMM.match(str(window.end_time)):
        errors.append(
            f"Invalid endTime format: {window.end_time}. "
            "Use HH:MM in 24-hour format (e.g., \"17:00\", \"23:30\")"
        )
    if window.start_time and window.end_time and str(window.start_time) >= str(window.end_time):
        errors.append("startTime must be before endTime")

    for day in window.days_of_week or ():
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            errors.append(f"Invalid day of week: {day}. Must be 0-6 (Sunday-Saturday)")

    if window.timezone:
        try:
            ZoneInfo(window.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown timezone: {window.timezone}")

    return errors


# -------------------------
# TICK GATE
# -------------------------

@dataclass
class TickState:
    last_tick_at_ms: Optional[float] = None
    ticks_this_round: int = 0


class TickGate:
    """
    Frequency limiter keyed by actor (usually an agent ref).

    State lives in an arena of per-key entries, each behind its own lock,
    so concurrent runs touching the same actor stay consistent.
    """

    def __init__(self, clock):
        self._clock = clock
        self._states: Dict[str, TickState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._arena_lock = threading.Lock()

    def _entry(self, key: str):
        with self._arena_lock:
            if key not in self._states:
                self._states[key] = TickState()
                self._locks[key] = threading.Lock()
            return self._states[key], self._locks[key]

    def should_execute(self, key: str, config: Optional[TickConfig]) -> bool:
        if config is None or not config.enabled:
            return True
        state, lock = self._entry(key)
        with lock:
            if state.last_tick_at_ms is not None:
                elapsed = self._clock.monotonic_ms() - state.last_tick_at_ms
                if elapsed < _interval(config):
                    return False
            if config.max_ticks_per_round and state.ticks_this_round >= config.max_ticks_per_round:
                logger.debug("Actor %s has reached max ticks: %s", key, state.ticks_this_round)
                return False
        return True

    def record_tick(self, key: str) -> None:
        """ Call right before acting, so state reflects confirmed executions only. """
        state, lock = self._entry(key)
        with lock:
            state.last_tick_at_ms = self._clock.monotonic_ms()
            state.ticks_this_round += 1

    def reset_round(self, key: str) -> None:
        state, lock = self._entry(key)
        with lock:
            state.ticks_this_round = 0

    def tick_count(self, key: str) -> int:
        state, lock = self._entry(key)
        with lock:
            return state.ticks_this_round

    def round_exhausted(self, key: str, config: Optional[TickConfig]) -> bool:
        if config is None or not config.enabled or not config.max_ticks_per_round:
            return False
        return self.tick_count(key) >= config.max_ticks_per_round

    def time_until_next_tick(self, key: str, config: Optional[TickConfig]) -> float:
        if config is None or not config.enabled:
            return 0
        state, lock = self._entry(key)
        with lock:
            if state.last_tick_at_ms is None:
                return 0
            elapsed = self._clock.monotonic_ms() - state.last_tick_at_ms
        return max(_interval(config) - elapsed, 0)


def _interval(config: TickConfig) -> float:
    if config.interval_ms:
        return config.interval_ms
    if config.interval_seconds:
        return config.interval_seconds * 1000
    if config.interval_minutes:
        return config.interval_minutes * 60_000
    return DEFAULT_TICK_INTERVAL_MS


def validate_tick_config(config: TickConfig) -> List[str]:
    errors: List[str] = []
    if not config.enabled:
        return errors

    if not config.interval_ms and not config.interval_seconds and not config.interval_minutes:
        errors.append(
            "Tick config must specify at least one interval "
            "(intervalMs, intervalSeconds, or intervalMinutes)"
        )
    if config.interval_ms is not None and config.interval_ms <= 0:
        errors.append("intervalMs must be positive")
    if config.interval_seconds is not None and config.interval_seconds <= 0:
        errors.append("intervalSeconds must be positive")
    if config.interval_minutes is not None and config.interval_minutes <= 0:
        errors.append("intervalMinutes must be positive")
    if config.max_ticks_per_round is not None and config.max_ticks_per_round <= 0:
        errors.append("maxTicksPerRound must be positive")
    return errors
