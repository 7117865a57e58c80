from flask import request, jsonify, abort
from flask_login import login_required, current_user
from . import api_bp
from models import Task
from errors import ValidationError
from middleware import rate_limit
from services.task_service import (
    TASK_STATUSES, create_task, delete_task, get_user_task, overdue_tasks_query, update_task,
)

def _owned_task_or_404(task_id):
    task = get_user_task(current_user, task_id)
    if task is None:
        abort(404)
    return task

@api_bp.route('/tasks', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def list_tasks():
    limit = request.args.get('limit', 20, type=int) or 20
    query = Task.query.filter_by(user_id=current_user.id)

    status = request.args.get('status')
    if status:
        if status not in TASK_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(TASK_STATUSES)}")
        query = query.filter_by(status=status)

    tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).limit(min(max(limit, 1), 100)).all()
    return jsonify([t.to_dict() for t in tasks])

@api_bp.route('/tasks', methods=['POST'])
@login_required
@rate_limit('standard', per_user=True)
def add_task():
    task = create_task(current_user, request.get_json(silent=True))
    return jsonify(task.to_dict()), 201

@api_bp.route('/tasks/failed', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def failed_tasks():
    return jsonify([t.to_dict() for t in overdue_tasks_query(current_user.id).all()])

@api_bp.route('/tasks/<int:task_id>', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def get_task(task_id):
    return jsonify(_owned_task_or_404(task_id).to_dict())

@api_bp.route('/tasks/<int:task_id>', methods=['PATCH'])
@login_required
@rate_limit('standard', per_user=True)
def edit_task(task_id):
    task = update_task(_owned_task_or_404(task_id), request.get_json(silent=True))
    return jsonify(task.to_dict())

@api_bp.route('/tasks/<int:task_id>', methods=['DELETE'])
@login_required
@rate_limit('standard', per_user=True)
def remove_task(task_id):
    delete_task(_owned_task_or_404(task_id))
    return jsonify({'status': 'success'})
