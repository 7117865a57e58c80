from flask import Blueprint

api_bp = Blueprint('api', __name__)
stats_bp = Blueprint('stats', __name__)
notifications_bp = Blueprint('notifications', __name__)
social_bp = Blueprint('social', __name__)

from . import sessions, stats, notifications, preferences, tasks, friends
