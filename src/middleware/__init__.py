"""Request observability middleware."""

from src.middleware.performance import RequestIDMiddleware, RequestTimingMiddleware

__all__ = ["RequestIDMiddleware", "RequestTimingMiddleware"]
