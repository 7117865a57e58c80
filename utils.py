from models import db, Notification
from datetime import datetime, timezone

def create_notification(user_id, message, type='info', title=None, commit=True):
    n = Notification(user_id=user_id, message=message, type=type, title=title)
    db.session.add(n)
    if commit:
        db.session.commit()
    return n

def to_utc_naive(value):
    """Normalize an aware datetime to the naive UTC form stored in the database."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def parse_iso_datetime(value):
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Not a datetime: {value!r}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)
