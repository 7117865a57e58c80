from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

db = SQLAlchemy()

class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    date_joined = db.Column(db.DateTime, default=datetime.utcnow)
    # IANA name, e.g. 'Europe/Paris'. None means the server's local zone.
    timezone = db.Column(db.String(64), nullable=True)

    sessions = db.relationship('PomodoroSession', backref='user', lazy=True, cascade="all, delete-orphan")
    stats = db.relationship('Stats', backref='user', uselist=False, lazy=True, cascade="all, delete-orphan")
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade="all, delete-orphan")
    tasks = db.relationship('Task', backref='user', lazy=True, cascade="all, delete-orphan")

class Friendship(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False) # sender
    friend_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False) # receiver
    status = db.Column(db.String(20), default='pending') # pending, accepted
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[user_id])
    receiver = db.relationship('User', foreign_keys=[friend_id])

    __table_args__ = (db.UniqueConstraint('user_id', 'friend_id', name='_user_friend_uc'),)

    def to_dict(self):
        return {
            'id': self.id,
            'sender_id': self.user_id,
            'receiver_id': self.friend_id,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
            'sender': {'username': self.sender.username},
            'receiver': {'username': self.receiver.username},
        }

class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default='pending', nullable=False) # pending, in_progress, completed, failed
    priority = db.Column(db.String(10), default='medium', nullable=False) # low, medium, high
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    due_date = db.Column(db.DateTime, nullable=True, index=True) # UTC
    completed_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    estimated_pomodoros = db.Column(db.Integer, default=1, nullable=False)
    completed_pomodoros = db.Column(db.Integer, default=0, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'failed_at': self.failed_at.isoformat() if self.failed_at else None,
            'estimated_pomodoros': self.estimated_pomodoros,
            'completed_pomodoros': self.completed_pomodoros,
            'created_at': self.created_at.isoformat(),
        }

class PomodoroSession(db.Model):
    __tablename__ = 'pomodoro_session'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=True)
    task_label = db.Column(db.String(200), nullable=True)
    type = db.Column(db.String(10), nullable=False, default='work') # work, break
    duration = db.Column(db.Integer, nullable=False) # seconds
    completed = db.Column(db.Boolean, default=True, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow) # UTC
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'task_id': self.task_id,
            'task_label': self.task_label,
            'type': self.type,
            'duration': self.duration,
            'completed': self.completed,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat(),
        }

class Stats(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    total_sessions = db.Column(db.Integer, default=0, nullable=False)
    total_focus_time = db.Column(db.Integer, default=0, nullable=False) # minutes
    completed_tasks = db.Column(db.Integer, default=0, nullable=False)
    total_tasks = db.Column(db.Integer, default=0, nullable=False)
    streak = db.Column(db.Integer, default=0, nullable=False)
    longest_streak = db.Column(db.Integer, default=0, nullable=False)
    last_active_date = db.Column(db.Date, nullable=True, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'total_sessions': self.total_sessions,
            'total_focus_time': self.total_focus_time,
            'completed_tasks': self.completed_tasks,
            'total_tasks': self.total_tasks,
            'streak': self.streak,
            'longest_streak': self.longest_streak,
            'last_active_date': self.last_active_date.isoformat() if self.last_active_date else None,
        }

class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=True)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    is_read = db.Column(db.Boolean, default=False)
    type = db.Column(db.String(20), default='info') # info, success, warning, streak_lost, achievement, friend_request
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat(),
        }

class Achievement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=False)
    icon = db.Column(db.String(50), default='🏆')
    criteria_type = db.Column(db.String(50), nullable=False) # session_count, streak_days, focus_minutes
    criteria_value = db.Column(db.Integer, nullable=False)

    user_achievements = db.relationship('UserAchievement', backref='achievement', lazy=True)

class UserAchievement(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    achievement_id = db.Column(db.Integer, db.ForeignKey('achievement.id'), nullable=False)
    earned_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref='achievements', lazy=True)

    __table_args__ = (db.UniqueConstraint('user_id', 'achievement_id', name='_user_achievement_uc'),)
