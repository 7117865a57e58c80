class FocuslyError(Exception):
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {'error': {'code': self.code, 'message': self.message}}


class ValidationError(FocuslyError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class DatabaseError(FocuslyError):
    status_code = 500
    code = 'DATABASE_ERROR'


class RateLimitExceeded(FocuslyError):
    """Quota breach. Raised by the view decorator, never by the limiter itself."""
    status_code = 429
    code = 'RATE_LIMIT_EXCEEDED'

    def __init__(self, retry_after, headers=None):
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")
        self.retry_after = retry_after
        self.headers = headers or {}
