from flask import request, jsonify
from flask_login import login_required, current_user
from . import api_bp
from models import db
from errors import ValidationError
from middleware import rate_limit
from services.streak_service import resolve_timezone

@api_bp.route('/user/preferences', methods=['GET'])
@login_required
@rate_limit('standard', per_user=True)
def get_preferences():
    return jsonify({'timezone': current_user.timezone})

@api_bp.route('/user/preferences', methods=['PATCH'])
@login_required
@rate_limit('standard', per_user=True)
def update_preferences():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')

    if 'timezone' in data:
        tz = data['timezone']
        if tz is not None and (not isinstance(tz, str) or resolve_timezone(tz) is None):
            raise ValidationError('timezone must be an IANA zone name or null')
        current_user.timezone = tz

    db.session.commit()
    return jsonify({'timezone': current_user.timezone})
