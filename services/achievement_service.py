import logging

from models import db, Achievement, UserAchievement
from utils import create_notification

logger = logging.getLogger(__name__)

def _progress(criteria_type, stats):
    if criteria_type == 'session_count':
        return stats.total_sessions
    if criteria_type == 'streak_days':
        # Longest, so a streak that was reached once stays earned
        return max(stats.streak, stats.longest_streak)
    if criteria_type == 'focus_minutes':
        return stats.total_focus_time
    return 0

def check_achievements(user, stats):
    """Award every achievement the user's stats now satisfy. Returns the new unlocks."""
    if stats is None:
        return []

    earned_ids = {ua.achievement_id for ua in user.achievements}
    unearned = [ach for ach in Achievement.query.all() if ach.id not in earned_ids]
    if not unearned:
        return []

    new_unlocks = []
    for ach in unearned:
        if _progress(ach.criteria_type, stats) >= ach.criteria_value:
            db.session.add(UserAchievement(user_id=user.id, achievement_id=ach.id))
            new_unlocks.append(ach)

    if new_unlocks:
        db.session.commit()
        for ach in new_unlocks:
            logger.info("User %s unlocked achievement %s", user.id, ach.name)
            create_notification(user.id, f"{ach.icon} Achievement Unlocked: {ach.name}",
                                type='achievement', title=ach.name)
    return new_unlocks

def list_achievements(user):
    earned_map = {ua.achievement_id: ua.earned_at for ua in user.achievements}
    achievements = Achievement.query.order_by(Achievement.criteria_type, Achievement.criteria_value.asc()).all()
    return [{
        'id': ach.id,
        'name': ach.name,
        'description': ach.description,
        'icon': ach.icon,
        'criteria_type': ach.criteria_type,
        'target': ach.criteria_value,
        'earned_at': earned_map[ach.id].isoformat() if ach.id in earned_map else None,
    } for ach in achievements]

def seed_achievements():
    all_badges = [
        # Sessions
        ('First Focus', 'Complete your first pomodoro session', '🍅', 'session_count', 1),
        ('Focused Warrior', 'Complete 10 pomodoro sessions', '⚔️', 'session_count', 10),
        ('Focus Master', 'Complete 50 pomodoro sessions', '👑', 'session_count', 50),
        ('Centurion', 'Complete 100 pomodoro sessions', '🏆', 'session_count', 100),

        # Streaks
        ('3-Day Streak', 'Work 3 days in a row', '🔥', 'streak_days', 3),
        ('Week Warrior', 'Work 7 days in a row', '⚡', 'streak_days', 7),
        ('Monthly Master', 'Work 30 days in a row', '💎', 'streak_days', 30),

        # Focus time
        ('Hour of Power', 'Focus for 60 minutes in total', '⏰', 'focus_minutes', 60),
        ('Deep Work Champion', 'Focus for 4 hours in total', '🧠', 'focus_minutes', 240),
    ]

    for name, desc, icon, c_type, c_val in all_badges:
        existing = Achievement.query.filter_by(name=name).first()
        if not existing:
            a = Achievement(name=name, description=desc, icon=icon, criteria_type=c_type, criteria_value=c_val)
            db.session.add(a)

    db.session.commit()
