from flask import request, jsonify
from flask_login import login_required, current_user
from . import api_bp
from models import PomodoroSession
from middleware import rate_limit
from services.stats_service import record_session

@api_bp.route('/sessions', methods=['POST'])
@login_required
@rate_limit('standard', per_user=True)
def log_session():
    data = request.get_json(silent=True)
    session, stats = record_session(current_user, data, tz=request.args.get('tz'))
    return jsonify({
        'status': 'success',
        'session': session.to_dict(),
        'stats': stats.to_dict(),
    }), 201

@api_bp.route('/sessions', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def list_sessions():
    limit = request.args.get('limit', 50, type=int) or 50
    limit = min(max(limit, 1), 200)
    query = PomodoroSession.query.filter_by(user_id=current_user.id)

    session_type = request.args.get('type')
    if session_type:
        query = query.filter_by(type=session_type)

    sessions = query.order_by(PomodoroSession.completed_at.desc()).limit(limit).all()
    return jsonify([s.to_dict() for s in sessions])
