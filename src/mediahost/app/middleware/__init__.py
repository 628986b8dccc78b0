"""HTTP middleware."""

from mediahost.app.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
