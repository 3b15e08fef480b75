# Middleware package init
"""
Twitter Clone Backend — Middleware Package
============================================

What:  Cross-cutting checks every inbound request passes through.

Middleware Chain (order matters!):
    Request → [CORS] → [Rate Limit] → [Access Log] → Router
                                                      │
                        /tweets, /users, /relationships → [CSRF] → Handler
                        /auth ─────────────────────────────────→ Handler

    1. CORS first: preflights are answered and every response, rejections
       included, carries the CORS headers
    2. Rate Limit: abusive clients are cut off before any other work
    3. Access Log: one record per admitted request, with latency
    4. CSRF: a route-group stage, only on the mutating groups
"""

from twitterclone.middleware.csrf import CSRFGuard, CSRFTokenStore
from twitterclone.middleware.logging import RequestLoggingMiddleware
from twitterclone.middleware.rate_limit import RateLimitMiddleware, RateWindowTable

__all__ = [
    "CSRFGuard",
    "CSRFTokenStore",
    "RateLimitMiddleware",
    "RateWindowTable",
    "RequestLoggingMiddleware",
]
