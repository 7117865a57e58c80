from flask import request, jsonify, abort
from flask_login import login_required, current_user
from sqlalchemy import or_
from . import social_bp
from models import db, User, Friendship
from errors import ValidationError
from middleware import rate_limit
from utils import create_notification

def _between(user_id, other_id):
    return Friendship.query.filter(
        or_(
            (Friendship.user_id == user_id) & (Friendship.friend_id == other_id),
            (Friendship.user_id == other_id) & (Friendship.friend_id == user_id)
        )
    ).first()

@social_bp.route('/friends', methods=['GET'])
@login_required
@rate_limit('generous', per_user=True)
def friends_list():
    query = Friendship.query.filter(
        or_(Friendship.user_id == current_user.id, Friendship.friend_id == current_user.id)
    )
    status = request.args.get('status')
    if status:
        query = query.filter(Friendship.status == status)
    friendships = query.order_by(Friendship.created_at.desc(), Friendship.id.desc()).all()
    return jsonify([f.to_dict() for f in friendships])

@social_bp.route('/friends', methods=['POST'])
@login_required
@rate_limit('standard', per_user=True)
def send_friend_request():
    data = request.get_json(silent=True)
    receiver_id = data.get('receiver_id') if isinstance(data, dict) else None
    if isinstance(receiver_id, bool) or not isinstance(receiver_id, int):
        raise ValidationError('receiver_id must be a user id')
    if receiver_id == current_user.id:
        raise ValidationError('Cannot send friend request to yourself')

    target_user = db.session.get(User, receiver_id)
    if target_user is None:
        abort(404)
    if _between(current_user.id, target_user.id):
        return jsonify({'error': {'code': 'FRIEND_REQUEST_EXISTS', 'message': 'Friend request already exists'}}), 409

    friendship = Friendship(user_id=current_user.id, friend_id=target_user.id, status='pending')
    db.session.add(friendship)
    create_notification(
        target_user.id,
        f"{current_user.username} sent you a friend request",
        type='friend_request',
        title='New Friend Request',
        commit=False,
    )
    db.session.commit()
    return jsonify(friendship.to_dict()), 201

@social_bp.route('/friends/<int:friendship_id>', methods=['PUT'])
@login_required
@rate_limit('standard', per_user=True)
def respond_friend_request(friendship_id):
    data = request.get_json(silent=True)
    action = data.get('action') if isinstance(data, dict) else None
    if action not in ('accept', 'reject'):
        raise ValidationError('action must be either "accept" or "reject"')

    friendship = db.session.get(Friendship, friendship_id)
    if friendship is None:
        abort(404)
    if friendship.friend_id != current_user.id:
        abort(403)
    if friendship.status != 'pending':
        raise ValidationError('Request already processed')

    if action == 'accept':
        friendship.status = 'accepted'
        create_notification(
            friendship.user_id,
            f"{current_user.username} accepted your friend request!",
            type='success',
            commit=False,
        )
        db.session.commit()
        return jsonify(friendship.to_dict())

    db.session.delete(friendship)
    db.session.commit()
    return jsonify({'status': 'rejected'})

@social_bp.route('/friends/<int:friendship_id>', methods=['DELETE'])
@login_required
@rate_limit('standard', per_user=True)
def remove_friend(friendship_id):
    friendship = db.session.get(Friendship, friendship_id)
    # Either side may end the friendship or withdraw a request
    if friendship is None or current_user.id not in (friendship.user_id, friendship.friend_id):
        abort(404)
    db.session.delete(friendship)
    db.session.commit()
    return jsonify({'status': 'success'})
