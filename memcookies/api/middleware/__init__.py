"""ASGI middleware for memcookies."""

from memcookies.api.middleware.mem_cookies import MemCookiesMiddleware
from memcookies.api.middleware.security import RequestIDMiddleware, SecurityHeadersMiddleware

__all__ = [
    "MemCookiesMiddleware",
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
]
