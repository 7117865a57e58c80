import os
import logging
import click
from flask import Flask, jsonify
from flask_login import LoginManager
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv
from models import db, User
from auth import auth
from errors import FocuslyError, RateLimitExceeded
from middleware import init_rate_limiter
from routes import api_bp, stats_bp, notifications_bp, social_bp
from services.achievement_service import seed_achievements
from services.stats_service import reset_stale_streaks
from services.task_service import mark_overdue_tasks

load_dotenv()

def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')

def _env_list(name):
    value = os.environ.get(name)
    if not value:
        return None
    return tuple(h.strip() for h in value.split(',') if h.strip())

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev_key_change_in_prod')
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('SQLALCHEMY_DATABASE_URI', 'sqlite:///db.sqlite3')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['RATE_LIMIT_ENABLED'] = _env_flag('RATE_LIMIT_ENABLED', True)
app.config['RATE_LIMIT_TRUSTED_HEADERS'] = _env_list('RATE_LIMIT_TRUSTED_HEADERS')
app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', '')

db.init_app(app)
migrate = Migrate(app, db)
init_rate_limiter(app)

login_manager = LoginManager()
login_manager.init_app(app)

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))

@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': {'code': 'UNAUTHORIZED', 'message': 'Login required'}}), 401

app.register_blueprint(auth)
app.register_blueprint(api_bp, url_prefix='/api')
app.register_blueprint(stats_bp, url_prefix='/api')
app.register_blueprint(notifications_bp, url_prefix='/api')
app.register_blueprint(social_bp, url_prefix='/api')

@app.errorhandler(RateLimitExceeded)
def handle_rate_limit(e):
    body = e.to_dict()
    body['retryAfter'] = e.retry_after
    return jsonify(body), e.status_code, e.headers

@app.errorhandler(FocuslyError)
def handle_focusly_error(e):
    if e.status_code >= 500:
        logger.error("Request failed: %s", e.message)
    return jsonify(e.to_dict()), e.status_code

@app.errorhandler(SQLAlchemyError)
def handle_database_error(e):
    db.session.rollback()
    logger.error("Unhandled database error", exc_info=e)
    return jsonify({'error': {'code': 'DATABASE_ERROR', 'message': 'Database error'}}), 500

@app.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({'error': {'code': e.name.upper().replace(' ', '_'), 'message': e.description}}), e.code

@app.route('/health')
def health():
    return jsonify({'status': 'ok'})

@app.cli.command('init-db')
def init_db_command():
    """Create tables and seed the achievement catalogue."""
    db.create_all()
    seed_achievements()
    click.echo("Database initialized.")

@app.cli.command('check-streaks')
@click.option('--today', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
              help="Treat this date as today for every user.")
def check_streaks_command(today):
    """Reset streaks of users who were inactive for more than a day."""
    summary = reset_stale_streaks(today=today.date() if today else None)
    click.echo(f"Users checked: {summary['users_checked']}, "
               f"streaks reset: {summary['streaks_reset']}, "
               f"notifications sent: {summary['notifications_sent']}")

@app.cli.command('mark-failed-tasks')
def mark_failed_tasks_command():
    """Mark unfinished tasks whose due date has passed as failed."""
    marked = mark_overdue_tasks()
    click.echo(f"Marked {marked} task(s) as failed")

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
        seed_achievements()
    app.run(debug=True)
