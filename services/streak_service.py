"""
Streak calculation. Pure functions, no DB access.

A streak is the number of consecutive local calendar days containing at least
one completed work session.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import ValidationError

WORK = 'work'
BREAK = 'break'
SESSION_TYPES = (WORK, BREAK)

TimezoneLike = Union[tzinfo, str, None]


@dataclass(frozen=True)
class SessionRecord:
    id: object
    user_id: object
    completed_at: Union[datetime, str, None]
    duration: int = 0
    type: str = WORK
    completed: bool = True

    @classmethod
    def from_model(cls, session):
        return cls(
            id=session.id,
            user_id=session.user_id,
            completed_at=session.completed_at,
            duration=session.duration,
            type=session.type,
            completed=session.completed,
        )


@dataclass(frozen=True)
class StreakResult:
    current: int = 0
    longest: int = 0
    last_active_date: Optional[date] = None


def is_qualifying(session):
    return session.completed is True and session.type == WORK


def resolve_timezone(tz: TimezoneLike) -> Optional[tzinfo]:
    """Turn an IANA name into a tzinfo. None means the host's local zone."""
    if tz is None or isinstance(tz, tzinfo):
        return tz
    if isinstance(tz, str):
        if not tz.strip():
            return None
        try:
            return ZoneInfo(tz)
        # Names like 'America' hit a tzdata directory and raise IsADirectoryError
        except (ZoneInfoNotFoundError, ValueError, OSError):
            raise ValidationError(f"Unknown timezone: {tz}")
    raise ValidationError(f"Unsupported timezone value: {tz!r}")


def get_today(tz: TimezoneLike = None) -> date:
    return datetime.now(resolve_timezone(tz)).date()


def _parse_instant(value, session_id):
    if value is None:
        raise ValidationError(f"Session {session_id} has no completed_at")
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Session {session_id} has an invalid completed_at: {value!r}")
    if not isinstance(value, datetime):
        raise ValidationError(f"Session {session_id} has an invalid completed_at: {value!r}")
    # Naive timestamps come from storage, which records UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def local_day(instant, tz: Optional[tzinfo]) -> date:
    # astimezone(None) converts to the host's local zone
    return instant.astimezone(tz).date()


def active_days(sessions: Iterable, tz: TimezoneLike = None) -> List[date]:
    """Sorted distinct local days that contain a qualifying session."""
    zone = resolve_timezone(tz)
    days = set()
    for session in sessions:
        if not is_qualifying(session):
            continue
        instant = _parse_instant(session.completed_at, session.id)
        days.add(local_day(instant, zone))
    return sorted(days)


def _runs(days):
    """Split sorted distinct days into (first, last) runs of consecutive days."""
    runs = []
    for day in days:
        if runs and day - runs[-1][1] == timedelta(days=1):
            runs[-1][1] = day
        else:
            runs.append([day, day])
    return runs


def calculate_streak(sessions: Iterable, tz: TimezoneLike = None, today: Optional[date] = None) -> StreakResult:
    """
    Compute current and longest streaks from a user's session history.

    Only completed work sessions count, and several sessions on the same local
    day count once. The current streak is the run that reaches today, or
    yesterday if nothing has been logged yet today; anything older is broken.
    """
    zone = resolve_timezone(tz)
    days = active_days(sessions, zone)
    if not days:
        return StreakResult()

    runs = _runs(days)
    longest = max((last - first).days + 1 for first, last in runs)

    if today is None:
        today = get_today(zone)
    yesterday = today - timedelta(days=1)

    current = 0
    for anchor in (today, yesterday):
        for first, last in runs:
            if first <= anchor <= last:
                current = (last - first).days + 1
                break
        if current:
            break

    return StreakResult(current=current, longest=longest, last_active_date=days[-1])
