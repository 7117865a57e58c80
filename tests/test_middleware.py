from flask import request
from app import app
import pytest
from errors import RateLimitExceeded
from middleware import RATE_LIMIT_TIERS, get_client_identifier, rate_limit_custom

def login(client, ip='10.0.0.1'):
    return client.post('/login', json={'username': 'nobody', 'password': 'x'},
                       headers={'X-Forwarded-For': ip})

def test_strict_tier_rejects_sixth_request(client, clock):
    responses = [login(client) for _ in range(6)]
    assert [r.status_code for r in responses] == [401] * 5 + [429]

    rejected = responses[-1]
    assert rejected.json['error']['code'] == 'RATE_LIMIT_EXCEEDED'
    assert rejected.headers['Retry-After'] == '60'
    assert rejected.json['retryAfter'] == 60
    assert rejected.headers['X-RateLimit-Limit'] == '5'
    assert rejected.headers['X-RateLimit-Remaining'] == '0'
    assert rejected.headers['X-RateLimit-Reset'] == str(clock.now + 60_000)

def test_admitted_responses_carry_quota_headers(client, clock):
    first = login(client)
    second = login(client)
    assert first.headers['X-RateLimit-Limit'] == '5'
    assert first.headers['X-RateLimit-Remaining'] == '4'
    assert second.headers['X-RateLimit-Remaining'] == '3'
    assert first.headers['X-RateLimit-Reset'] == str(clock.now + 60_000)

def test_retry_after_counts_down(client, clock):
    for _ in range(5):
        login(client)
    clock.advance(45_500)
    assert login(client).headers['Retry-After'] == '15'

def test_quota_resets_after_window(client, clock):
    for _ in range(6):
        login(client)
    clock.advance(60_000)
    response = login(client)
    assert response.status_code == 401
    assert response.headers['X-RateLimit-Remaining'] == '4'

def test_clients_are_limited_separately(client):
    for _ in range(6):
        login(client, ip='10.0.0.1')
    assert login(client, ip='10.0.0.2').status_code == 401

def test_per_user_limit_uses_account(auth_client):
    client, user = auth_client
    limit = RATE_LIMIT_TIERS['standard'].max_requests
    codes = [client.post('/api/notifications/read_all', headers={'X-Forwarded-For': f'10.1.0.{i}'}).status_code
             for i in range(limit + 1)]
    assert codes == [200] * limit + [429]

def test_disabled_limiter_lets_everything_through(client):
    app.config['RATE_LIMIT_ENABLED'] = False
    try:
        codes = [login(client).status_code for _ in range(10)]
    finally:
        app.config['RATE_LIMIT_ENABLED'] = True
    assert codes == [401] * 10

def test_client_identifier_header_order(client):
    with app.test_request_context(headers={'X-Real-IP': '3.3.3.3', 'X-Forwarded-For': '2.2.2.2, 9.9.9.9'}):
        assert get_client_identifier(request) == '2.2.2.2'

    with app.test_request_context(headers={'CF-Connecting-IP': '1.1.1.1', 'X-Real-IP': '3.3.3.3'}):
        assert get_client_identifier(request) == '1.1.1.1'

    with app.test_request_context(headers={'X-Real-IP': '3.3.3.3'}):
        assert get_client_identifier(request) == '3.3.3.3'

def test_client_identifier_falls_back(client):
    with app.test_request_context(environ_base={'REMOTE_ADDR': '4.4.4.4'}):
        assert get_client_identifier(request) == '4.4.4.4'

    with app.test_request_context(environ_base={'REMOTE_ADDR': ''}):
        assert get_client_identifier(request) == 'unknown'

def test_custom_limit_on_notifications(auth_client):
    client, _ = auth_client
    codes = [client.get('/api/notifications').status_code for _ in range(31)]
    assert codes == [200] * 30 + [429]

def _profile_view():
    @rate_limit_custom(window_ms=60 * 1000, max_requests=1)
    def view():
        return 'profile'
    return view

def _settings_view():
    @rate_limit_custom(window_ms=60 * 1000, max_requests=1)
    def view():
        return 'settings'
    return view

def test_custom_limits_do_not_share_quota_across_same_named_views(client):
    profile, settings = _profile_view(), _settings_view()
    with app.test_request_context(headers={'X-Forwarded-For': '10.2.0.1'}):
        assert profile().status_code == 200
        assert settings().status_code == 200
        with pytest.raises(RateLimitExceeded):
            profile()
