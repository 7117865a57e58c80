"""
Statistics refresh and reconciliation.

Stats rows are always rebuilt from the full session history, so refreshing
twice with the same sessions leaves the row untouched.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import DatabaseError, ValidationError
from models import db, PomodoroSession, Stats, User
from services.achievement_service import check_achievements
from services.streak_service import (
    SESSION_TYPES, WORK, SessionRecord, calculate_streak, get_today, is_qualifying, resolve_timezone,
)
from services.task_service import count_tasks, credit_pomodoro, get_user_task
from utils import create_notification, parse_iso_datetime, to_utc_naive

logger = logging.getLogger(__name__)


def user_timezone(user, tz=None):
    """Explicit tz wins, then the user's saved zone, then DEFAULT_TIMEZONE, then host local."""
    if tz:
        return resolve_timezone(tz)
    if user.timezone:
        return resolve_timezone(user.timezone)
    return resolve_timezone(current_app.config.get('DEFAULT_TIMEZONE') or None)


def fetch_session_records(user_id):
    try:
        rows = PomodoroSession.query.filter_by(user_id=user_id, completed=True).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not load sessions: {e}") from e
    return [SessionRecord.from_model(row) for row in rows]


def compute_totals(records):
    qualifying = [r for r in records if is_qualifying(r)]
    return {
        'total_sessions': len(qualifying),
        'total_focus_time': sum(r.duration // 60 for r in qualifying),
    }


def _apply(stats, values):
    changed = False
    for field, value in values.items():
        if getattr(stats, field) != value:
            setattr(stats, field, value)
            changed = True
    if changed:
        stats.updated_at = datetime.utcnow()
    return changed


def upsert_stats(user_id, values):
    """Insert or update the stats row for user_id. Identical values are a no-op."""
    try:
        stats = Stats.query.filter_by(user_id=user_id).first()
        if stats is None:
            stats = Stats(user_id=user_id)
            db.session.add(stats)
        _apply(stats, values)
        db.session.commit()
        return stats
    except IntegrityError:
        # Another request created the row first
        db.session.rollback()
        stats = Stats.query.filter_by(user_id=user_id).first()
        if stats is None:
            raise DatabaseError("Could not create stats row")
        _apply(stats, values)
        db.session.commit()
        return stats
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not save stats: {e}") from e


def refresh_stats(user, tz=None):
    zone = user_timezone(user, tz)
    records = fetch_session_records(user.id)
    try:
        streak = calculate_streak(records, zone)
    except ValidationError:
        logger.error("Streak calculation failed for user %s", user.id, exc_info=True)
        raise

    values = compute_totals(records)
    values.update(count_tasks(user.id))
    values.update(
        streak=streak.current,
        longest_streak=streak.longest,
        last_active_date=streak.last_active_date,
    )
    stats = upsert_stats(user.id, values)
    logger.debug("Refreshed stats for user %s: streak=%s longest=%s", user.id, streak.current, streak.longest)
    return stats


def _parse_optional_datetime(data, field):
    value = data.get(field)
    if value is None:
        return None
    try:
        return to_utc_naive(parse_iso_datetime(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp")


def validate_session_payload(data):
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")

    session_type = data.get('type', WORK)
    if session_type not in SESSION_TYPES:
        raise ValidationError(f"type must be one of {', '.join(SESSION_TYPES)}")

    duration = data.get('duration')
    if isinstance(duration, bool):
        raise ValidationError("duration must be a positive number of seconds")
    try:
        duration = int(duration)
    except (TypeError, ValueError):
        raise ValidationError("duration must be a positive number of seconds")
    if duration <= 0:
        raise ValidationError("duration must be a positive number of seconds")

    completed = data.get('completed', True)
    if not isinstance(completed, bool):
        raise ValidationError("completed must be a boolean")

    completed_at = _parse_optional_datetime(data, 'completed_at') or datetime.utcnow()
    started_at = _parse_optional_datetime(data, 'started_at')
    if started_at and started_at > completed_at:
        raise ValidationError("started_at must be before completed_at")

    task_label = data.get('task_label')
    if task_label is not None:
        task_label = str(task_label)[:200]

    return {
        'type': session_type,
        'duration': duration,
        'completed': completed,
        'completed_at': completed_at,
        'started_at': started_at,
        'task_label': task_label,
    }


def _linked_task(user, data):
    task_id = data.get('task_id')
    if task_id is None:
        return None
    if isinstance(task_id, bool) or not isinstance(task_id, int):
        raise ValidationError("task_id must be an integer")
    task = get_user_task(user, task_id)
    if task is None:
        raise ValidationError(f"Unknown task: {task_id}")
    return task


def record_session(user, data, tz=None):
    # Everything that can reject the request is checked before the row is written
    fields = validate_session_payload(data)
    zone = user_timezone(user, tz)
    task = _linked_task(user, data)

    session = PomodoroSession(user_id=user.id, task_id=task.id if task else None, **fields)
    if task and session.completed and session.type == WORK:
        credit_pomodoro(task)
    try:
        db.session.add(session)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not save session: {e}") from e

    stats = refresh_stats(user, zone)

    if session.completed and session.type == WORK:
        create_notification(user.id, f"Focus session of {session.duration // 60} mins completed!", type='success')
        check_achievements(user, stats)

    return session, stats


def reset_stale_streaks(today=None):
    """
    Zero out streaks whose last active day is before yesterday and tell the user.

    today overrides every user's local date; by default each user's own
    timezone decides what today is.
    """
    users_checked = 0
    streaks_reset = 0
    notifications_sent = 0

    try:
        rows = (db.session.query(Stats, User)
                .join(User, Stats.user_id == User.id)
                .filter(Stats.streak > 0)
                .all())
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not load stats: {e}") from e

    for stats, user in rows:
        users_checked += 1
        if stats.last_active_date is None:
            continue

        user_today = today or get_today(user_timezone(user))
        if stats.last_active_date >= user_today - timedelta(days=1):
            continue

        lost = stats.streak
        stats.streak = 0
        stats.updated_at = datetime.utcnow()
        streaks_reset += 1

        create_notification(
            user.id,
            f"Your {lost}-day streak was reset. Start a new one today!",
            type='streak_lost',
            title='Streak lost',
            commit=False,
        )
        notifications_sent += 1

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not reset streaks: {e}") from e

    summary = {
        'users_checked': users_checked,
        'streaks_reset': streaks_reset,
        'notifications_sent': notifications_sent,
    }
    logger.info("Streak check completed: %s", summary)
    return summary


def get_leaderboard(limit=50):
    rows = (db.session.query(Stats, User)
            .join(User, Stats.user_id == User.id)
            .order_by(Stats.total_focus_time.desc(), Stats.longest_streak.desc())
            .limit(limit)
            .all())
    return [{
        'id': user.id,
        'username': user.username,
        'stats': stats.to_dict(),
    } for stats, user in rows]
