# Routes package init
"""
Twitter Clone Backend — Route Groups
======================================

What:  Top-level path prefixes and the feature modules bound to them.
Why:   Each resource area (auth, tweets, users, relationships) owns its
       handlers; this package only decides where they live and what runs
       in front of them.

Route Inventory:
    - composer.py:  RouteGroup, RouteComposer (prefixes + per-group stages)
    - features.py:  default feature registrations

Prefixes:
    /auth            open (no CSRF)
    /tweets          CSRF-protected
    /users           CSRF-protected
    /relationships   CSRF-protected
"""

from twitterclone.routes.composer import RegisterRoutes, RouteComposer, RouteGroup, Stage

__all__ = ["RegisterRoutes", "RouteComposer", "RouteGroup", "Stage"]
