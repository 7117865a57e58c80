import os

os.environ['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'

import pytest
from app import app
from models import db, User
from middleware import init_rate_limiter
from services.rate_limiter import RateLimiter
from werkzeug.security import generate_password_hash

class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)

@pytest.fixture
def client(limiter):
    app.config['TESTING'] = True
    app.config['RATE_LIMIT_ENABLED'] = True
    app.config['DEFAULT_TIMEZONE'] = 'UTC'
    init_rate_limiter(app, limiter)

    with app.test_client() as client:
        with app.app_context():
            db.create_all()
            yield client
            db.session.remove()
            db.drop_all()

@pytest.fixture
def auth_client(client):
    user = User(username='testuser', password_hash=generate_password_hash('password', method='scrypt'))
    db.session.add(user)
    db.session.commit()

    client.post('/login', json={'username': 'testuser', 'password': 'password'})
    return client, user

@pytest.fixture
def runner(client):
    return app.test_cli_runner()
