from flask import request, jsonify
from flask_login import login_required, current_user
from . import stats_bp
from middleware import rate_limit
from services.achievement_service import list_achievements
from services.stats_service import refresh_stats, get_leaderboard

@stats_bp.route('/stats', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def get_stats():
    # Always reconcile against the session history before answering
    stats = refresh_stats(current_user, tz=request.args.get('tz'))
    return jsonify(stats.to_dict())

@stats_bp.route('/leaderboard', methods=['GET'])
@rate_limit('generous')
def leaderboard():
    limit = request.args.get('limit', 50, type=int) or 50
    return jsonify(get_leaderboard(limit=min(max(limit, 1), 100)))

@stats_bp.route('/achievements', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def achievements():
    return jsonify(list_achievements(current_user))
