from flask import request, jsonify, abort
from flask_login import login_required, current_user
from . import notifications_bp
from models import db, Notification
from middleware import rate_limit, rate_limit_custom

@notifications_bp.route('/notifications', methods=['GET'])
@login_required
@rate_limit_custom(window_ms=60 * 1000, max_requests=30, per_user=True)
def get_notifications():
    query = Notification.query.filter_by(user_id=current_user.id)
    if request.args.get('unread') == '1':
        query = query.filter_by(is_read=False)
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return jsonify([n.to_dict() for n in notifications])

@notifications_bp.route('/notifications/<int:notif_id>/read', methods=['POST'])
@login_required
@rate_limit('standard', per_user=True)
def mark_notification_read(notif_id):
    notif = db.session.get(Notification, notif_id)
    if not notif or notif.user_id != current_user.id:
        abort(404)
    notif.is_read = True
    db.session.commit()
    return jsonify({'status': 'success'})

@notifications_bp.route('/notifications/read_all', methods=['POST'])
@login_required
@rate_limit('standard', per_user=True)
def mark_all_read():
    updated = (Notification.query.filter_by(user_id=current_user.id, is_read=False)
               .update({'is_read': True}))
    db.session.commit()
    return jsonify({'status': 'success', 'updated': updated})
