import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from errors import DatabaseError, ValidationError
from models import db, PomodoroSession, Task
from utils import parse_iso_datetime, to_utc_naive

logger = logging.getLogger(__name__)

PENDING = 'pending'
IN_PROGRESS = 'in_progress'
COMPLETED = 'completed'
FAILED = 'failed'
TASK_STATUSES = (PENDING, IN_PROGRESS, COMPLETED, FAILED)
PRIORITIES = ('low', 'medium', 'high')


def _text(data, field, max_length, required=False):
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    value = str(value).strip()
    if required and not value:
        raise ValidationError(f"{field} is required")
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def validate_task_payload(data, partial=False):
    """Clean a create (partial=False) or update (partial=True) payload."""
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object")

    fields = {}
    if not partial or 'title' in data:
        fields['title'] = _text(data, 'title', 200, required=True)
    if 'description' in data:
        fields['description'] = _text(data, 'description', 1000)

    if 'priority' in data or not partial:
        priority = data.get('priority', 'medium')
        if priority not in PRIORITIES:
            raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")
        fields['priority'] = priority

    if 'status' in data:
        if data['status'] not in TASK_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(TASK_STATUSES)}")
        fields['status'] = data['status']

    if 'due_date' in data:
        if data['due_date'] is None:
            fields['due_date'] = None
        else:
            try:
                fields['due_date'] = to_utc_naive(parse_iso_datetime(data['due_date']))
            except ValueError:
                raise ValidationError("due_date must be an ISO-8601 timestamp")

    if 'estimated_pomodoros' in data:
        estimate = data['estimated_pomodoros']
        if isinstance(estimate, bool) or not isinstance(estimate, int) or estimate <= 0:
            raise ValidationError("estimated_pomodoros must be a positive integer")
        fields['estimated_pomodoros'] = estimate

    return fields


def _set_status(task, status, now):
    if status == task.status:
        return
    task.status = status
    task.completed_at = now if status == COMPLETED else None
    task.failed_at = now if status == FAILED else None


def create_task(user, data):
    fields = validate_task_payload(data)
    status = fields.pop('status', PENDING)
    task = Task(user_id=user.id, **fields)
    _set_status(task, status, datetime.utcnow())
    _commit(task, "create task")
    return task


def update_task(task, data):
    fields = validate_task_payload(data, partial=True)
    status = fields.pop('status', None)
    for field, value in fields.items():
        setattr(task, field, value)
    if status:
        _set_status(task, status, datetime.utcnow())
    _commit(task, "update task")
    return task


def delete_task(task):
    try:
        PomodoroSession.query.filter_by(task_id=task.id).update({'task_id': None})
        db.session.delete(task)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not delete task: {e}") from e


def _commit(task, action):
    try:
        db.session.add(task)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not {action}: {e}") from e


def get_user_task(user, task_id):
    """The user's task with this id, or None if it does not exist or belongs to someone else."""
    task = db.session.get(Task, task_id)
    if task is None or task.user_id != user.id:
        return None
    return task


def credit_pomodoro(task):
    """Count a completed focus session against a task, finishing it once the estimate is reached."""
    task.completed_pomodoros = (task.completed_pomodoros or 0) + 1
    if task.status in (PENDING, IN_PROGRESS):
        if task.completed_pomodoros >= task.estimated_pomodoros:
            _set_status(task, COMPLETED, datetime.utcnow())
        else:
            task.status = IN_PROGRESS


def overdue_tasks_query(user_id, now=None):
    """Unfinished tasks whose due date has passed, failed or not yet marked."""
    now = now or datetime.utcnow()
    return (Task.query
            .filter(Task.user_id == user_id,
                    Task.status != COMPLETED,
                    Task.due_date.isnot(None),
                    Task.due_date < now)
            .order_by(Task.due_date.asc()))


def count_tasks(user_id):
    total = Task.query.filter_by(user_id=user_id).count()
    completed = Task.query.filter_by(user_id=user_id, status=COMPLETED).count()
    return {'total_tasks': total, 'completed_tasks': completed}


def mark_overdue_tasks(now=None):
    """Mark every unfinished task past its due date as failed. Returns the number marked."""
    now = now or datetime.utcnow()
    try:
        marked = (Task.query
                  .filter(Task.status.in_((PENDING, IN_PROGRESS)),
                          Task.due_date.isnot(None),
                          Task.due_date < now)
                  .update({'status': FAILED, 'failed_at': now}, synchronize_session=False))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(f"Could not mark overdue tasks: {e}") from e

    logger.info("Marked %s task(s) as failed", marked)
    return marked
