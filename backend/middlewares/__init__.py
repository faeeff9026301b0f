from backend.middlewares.db_middleware import get_session
from backend.middlewares.auth_middleware import (
    require_admin, get_session_store, get_email_sender, bearer_token,
)
from backend.middlewares.rate_limit_middleware import RateLimitMiddleware
from backend.middlewares.security_headers import SecurityHeadersMiddleware

__all__ = [
    "get_session", "require_admin", "get_session_store", "get_email_sender", "bearer_token",
    "RateLimitMiddleware", "SecurityHeadersMiddleware",
]
