"""
Twitter Clone Backend — Default Feature Registrations
=======================================================

What:  Registration functions used when the process entry point is not
       given feature modules explicitly.
Why:   Auth, tweets, users and relationships are separate feature modules
       with their own handlers, storage access and cache usage. This core
       only needs something satisfying the registration contract so the
       server can start and report which groups are mounted.
How:   Each default registers a single index route on its group.

Registration contract:
    def routes(group: APIRouter, storage: Any, cache: Any) -> None

    - `group` already carries the prefix and any group stages (CSRF)
    - `storage` and `cache` are opaque; the feature decides how to use them
    - called exactly once, at startup
"""

from typing import Any, Dict

from fastapi import APIRouter

from twitterclone.routes.composer import RegisterRoutes


def index_routes(feature: str) -> RegisterRoutes:
    """Build a registration function that mounts `GET <prefix>` for `feature`."""

    def routes(group: APIRouter, storage: Any, cache: Any) -> None:
        @group.get("", summary=f"{feature} feature index")
        async def index() -> Dict[str, str]:
            return {"feature": feature, "status": "mounted"}

    return routes


DEFAULT_FEATURES: Dict[str, RegisterRoutes] = {
    "auth": index_routes("auth"),
    "tweet": index_routes("tweet"),
    "user": index_routes("user"),
    "relationship": index_routes("relationship"),
}
