"""
Twitter Clone Backend — Application Package
=============================================

Bootstrap and request pipeline for the twitter clone API.

    ┌─────────────────────────────────────┐
    │      Server (listener lifecycle)    │  ← listen / listen_tls
    ├─────────────────────────────────────┤
    │   Middleware (CORS, rate, access)   │  ← every request
    ├─────────────────────────────────────┤
    │   Route groups (+ CSRF on writes)   │  ← /auth /tweets /users /relationships
    ├─────────────────────────────────────┤
    │  Feature modules (storage, cache)   │  ← own their handlers
    └─────────────────────────────────────┘
"""

__version__ = "0.1.0"
