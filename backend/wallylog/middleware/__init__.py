from wallylog.middleware.request_log import RequestLoggingMiddleware
from wallylog.middleware.security import SecurityHeadersMiddleware

__all__ = ["RequestLoggingMiddleware", "SecurityHeadersMiddleware"]
