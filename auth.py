from flask import Blueprint, request, jsonify
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import login_user, logout_user, login_required
from models import db, User
from errors import ValidationError
from middleware import rate_limit

auth = Blueprint('auth', __name__)

def _credentials():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    username = str(data.get('username') or '').strip()
    password = str(data.get('password') or '')
    if not username or not password:
        raise ValidationError('Username and password are required')
    return username, password

@auth.route('/login', methods=['POST'])
@rate_limit('strict')
def login():
    username, password = _credentials()
    user = User.query.filter_by(username=username).first()
    if user and check_password_hash(user.password_hash, password):
        login_user(user)
        return jsonify({'status': 'success', 'id': user.id, 'username': user.username})
    return jsonify({'error': {'code': 'INVALID_CREDENTIALS', 'message': 'Invalid username or password'}}), 401

@auth.route('/signup', methods=['POST'])
@rate_limit('strict')
def signup():
    username, password = _credentials()
    if len(username) > 150:
        raise ValidationError('Username is too long')
    user = User.query.filter_by(username=username).first()
    if user:
        return jsonify({'error': {'code': 'USERNAME_TAKEN', 'message': 'Username already exists'}}), 409

    new_user = User(username=username, password_hash=generate_password_hash(password, method='scrypt'))
    db.session.add(new_user)
    db.session.commit()
    login_user(new_user)
    return jsonify({'status': 'success', 'id': new_user.id, 'username': new_user.username}), 201

@auth.route('/logout')
@login_required
def logout():
    logout_user()
    return jsonify({'status': 'success'})
