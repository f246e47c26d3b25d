"""Time based task visibility."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, tzinfo
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from geohunt.core.models import Schedule, TaskPoint, TimerConfig
    from geohunt.core.types import Millis

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000


def _resolve_tz(name: str | None) -> tzinfo | None:
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timer timezone {name!r}; cannot resolve game end.")
        return None


def _parse_wall_clock(end_time: str) -> tuple[int, int] | None:
    hours_s, sep, minutes_s = end_time.strip().partition(":")
    if not sep:
        return None
    try:
        hours, minutes = int(hours_s), int(minutes_s)
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours, minutes


def resolve_game_end(
    timer: TimerConfig | None,
    team_start_ms: Millis | None,
    now_ms: Millis,
) -> Millis | None:
    """
    Epoch ms at which the game ends for a team, or None if it cannot be computed.

    `scheduled_end` anchors "HH:MM" on the calendar day of `now_ms` in the
    timer's timezone (UTC when unset). `countdown` needs the team start time.
    """
    if timer is None:
        return None

    match timer.mode:
        case "scheduled_end":
            if not timer.end_time:
                return None
            parsed = _parse_wall_clock(timer.end_time)
            tz = _resolve_tz(timer.timezone)
            if parsed is None or tz is None:
                return None
            hours, minutes = parsed
            today = datetime.fromtimestamp(now_ms / 1000, tz)
            end = today.replace(hour=hours, minute=minutes, second=0, microsecond=0)
            return int(end.timestamp() * 1000)
        case "countdown":
            if not timer.duration_minutes or team_start_ms is None:
                return None
            return team_start_ms + int(timer.duration_minutes * MINUTE_MS)
        case "countup" | "none":
            return None
        case _:
            logger.warning(f"Unknown timer mode {timer.mode!r}; game end unresolved.")
            return None


def is_visible(
    schedule: Schedule | None,
    team_start_ms: Millis | None,
    timer: TimerConfig | None,
    now_ms: Millis,
) -> bool:
    """Pure visibility predicate; identical inputs always give identical results."""
    if schedule is None or not schedule.enabled:
        return True

    match schedule.mode:
        case "absolute_window":
            if schedule.show_at is not None and now_ms < schedule.show_at:
                return False
            if schedule.hide_at is not None and now_ms > schedule.hide_at:
                return False
            return True

        case "start_offset":
            # Hidden until the team has actually started.
            if team_start_ms is None:
                return False
            show_after_ms = (schedule.show_after_minutes or 0) * MINUTE_MS
            return now_ms - team_start_ms >= show_after_ms

        case "end_offset":
            if timer is None or timer.mode == "none":
                return True
            game_end = resolve_game_end(timer, team_start_ms, now_ms)
            if game_end is None:
                return True
            show_before_ms = (schedule.show_before_end_minutes or 0) * MINUTE_MS
            time_until_end = game_end - now_ms
            return 0 < time_until_end <= show_before_ms

        case _:
            logger.warning(f"Unknown schedule mode {schedule.mode!r}; showing task.")
            return True


def filter_by_schedule(
    tasks: Iterable[TaskPoint],
    team_start_ms: Millis | None,
    timer: TimerConfig | None,
    now_ms: Millis,
) -> list[TaskPoint]:
    return [
        task
        for task in tasks
        if is_visible(task.schedule, team_start_ms, timer, now_ms)
    ]
