import logging
import math
from functools import wraps

from flask import current_app, make_response, request
from flask_login import current_user

from errors import RateLimitExceeded
from services.rate_limiter import RateLimitConfig, RateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_TIERS = {
    'strict': RateLimitConfig(window_ms=60 * 1000, max_requests=5),
    'standard': RateLimitConfig(window_ms=10 * 1000, max_requests=10),
    'generous': RateLimitConfig(window_ms=60 * 1000, max_requests=100),
    'relaxed': RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=1000),
}

DEFAULT_TRUSTED_HEADERS = ('CF-Connecting-IP', 'X-Forwarded-For', 'X-Real-IP')
UNKNOWN_CLIENT = 'unknown'


def init_rate_limiter(app, limiter=None):
    app.extensions['rate_limiter'] = limiter or RateLimiter()
    return app.extensions['rate_limiter']


def get_rate_limiter():
    limiter = current_app.extensions.get('rate_limiter')
    if limiter is None:
        limiter = init_rate_limiter(current_app)
    return limiter


def get_client_identifier(req):
    headers = current_app.config.get('RATE_LIMIT_TRUSTED_HEADERS') or DEFAULT_TRUSTED_HEADERS
    for name in headers:
        value = req.headers.get(name)
        if value:
            # X-Forwarded-For is a chain; the client is the first hop
            first = value.split(',')[0].strip()
            if first:
                return first
    return req.remote_addr or UNKNOWN_CLIENT


def quota_headers(result):
    headers = {
        'X-RateLimit-Limit': str(result.limit),
        'X-RateLimit-Remaining': str(result.remaining if result.remaining is not None else 0),
    }
    if result.reset_time is not None:
        headers['X-RateLimit-Reset'] = str(result.reset_time)
    return headers


def _retry_after(limiter, result):
    if result.reset_time is None:
        return 60
    return max(1, math.ceil((result.reset_time - limiter.clock()) / 1000))


def _limited(view, name, config, per_user):
    @wraps(view)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('RATE_LIMIT_ENABLED', True):
            return view(*args, **kwargs)

        if per_user and current_user.is_authenticated:
            client = f"user:{current_user.id}"
        else:
            client = get_client_identifier(request)

        limiter = get_rate_limiter()
        result = limiter.check_and_consume(f"{name}:{client}", config)
        headers = quota_headers(result)

        if not result.allowed:
            retry_after = _retry_after(limiter, result)
            headers['Retry-After'] = str(retry_after)
            logger.warning("Rejected %s %s from %s (tier %s)", request.method, request.path, client, name)
            raise RateLimitExceeded(retry_after, headers)

        response = make_response(view(*args, **kwargs))
        for key, value in headers.items():
            response.headers[key] = value
        return response
    return decorated_function


def rate_limit(tier='standard', per_user=False):
    """Limit a view with one of the named tiers in RATE_LIMIT_TIERS."""
    config = RATE_LIMIT_TIERS[tier]

    def decorator(view):
        return _limited(view, tier, config, per_user)
    return decorator


def rate_limit_custom(window_ms, max_requests, per_user=False):
    config = RateLimitConfig(window_ms=window_ms, max_requests=max_requests)

    def decorator(view):
        # Qualified name so same-named views in different modules keep separate quotas
        return _limited(view, f"custom:{view.__module__}.{view.__qualname__}", config, per_user)
    return decorator
