"""
Twitter Clone Backend — Route Group Composition
=================================================

What:  Builds the four top-level route groups and hands each one to its
       feature module together with the storage and cache handles.
Why:   Feature modules own their handlers; this layer only owns the
       prefixes and which per-group stages run in front of them.
How:   A RouteGroup is plain data: prefix, ordered stages, registration
       callback. Each group becomes an APIRouter whose route class wraps
       every handler in the group's stages.
When:  Exactly once, at startup, before the listener accepts connections.

Group Layout:
    /auth            (no CSRF; login/registration need no prior token)
    /tweets          [CSRF]
    /users           [CSRF]
    /relationships   [CSRF]

Stage Order:
    Global middleware (CORS → Rate Limit → Access Log) always runs first.
    Group stages then run in list order, and the handler runs last.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence, Tuple, Type

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response

from twitterclone.exceptions import RouteCompositionError

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]
# (request, call_next) -> response; short-circuits by not calling call_next
Stage = Callable[[Request, CallNext], Awaitable[Response]]
# Feature module entry point: (group, storage, cache) -> None
RegisterRoutes = Callable[[APIRouter, Any, Any], None]


@dataclass(frozen=True)
class RouteGroup:
    """A path prefix, the stages guarding it, and the feature that fills it."""

    name: str
    prefix: str
    register: RegisterRoutes
    stages: Tuple[Stage, ...] = ()

    def build_router(self) -> APIRouter:
        return APIRouter(
            prefix=self.prefix,
            tags=[self.name],
            route_class=staged_route_class(self.stages),
        )


def staged_route_class(stages: Sequence[Stage]) -> Type[APIRoute]:
    """
    Return an APIRoute subclass that runs `stages` before every handler.

    The chain is composed once per route when FastAPI builds its handler,
    so ordering is fixed at startup.
    """
    if not stages:
        return APIRoute

    chain = tuple(stages)

    class StagedRoute(APIRoute):
        stages = chain

        def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
            handler = super().get_route_handler()
            for stage in reversed(self.stages):
                handler = _bind(stage, handler)
            return handler

    return StagedRoute


def _bind(stage: Stage, call_next: CallNext) -> CallNext:
    async def run(request: Request) -> Response:
        return await stage(request, call_next)

    return run


class RouteComposer:
    """
    Creates the route groups and invokes each feature's registration.

    Args:
        csrf_guard:  Stage attached to the mutating groups
        features:    Mapping of feature name → registration function for
                     "auth", "tweet", "user" and "relationship"
    """

    FEATURES = ("auth", "tweet", "user", "relationship")

    def __init__(self, csrf_guard: Stage, features: Mapping[str, RegisterRoutes]):
        missing = [name for name in self.FEATURES if name not in features]
        if missing:
            raise RouteCompositionError(
                message=f"No registration function for feature(s): {', '.join(missing)}",
                context={"missing": missing},
            )
        self.csrf_guard = csrf_guard
        self.features = dict(features)

    def groups(self) -> List[RouteGroup]:
        csrf = (self.csrf_guard,)
        return [
            RouteGroup("auth", "/auth", self.features["auth"]),
            RouteGroup("tweets", "/tweets", self.features["tweet"], csrf),
            RouteGroup("users", "/users", self.features["user"], csrf),
            RouteGroup("relationships", "/relationships", self.features["relationship"], csrf),
        ]

    def register_all(self, router: FastAPI, storage: Any, cache: Any) -> List[RouteGroup]:
        """Mount every group on `router`. Storage and cache pass through untouched."""
        groups = self.groups()
        validate_prefixes(groups)

        for group in groups:
            group_router = group.build_router()
            group.register(group_router, storage, cache)
            router.include_router(group_router)
            logger.debug(
                "Mounted %s at %s (%d routes, %d stages)",
                group.name,
                group.prefix,
                len(group_router.routes),
                len(group.stages),
            )

        return groups


def validate_prefixes(groups: Sequence[RouteGroup]) -> None:
    """Reject empty, duplicate and nested top-level prefixes."""
    seen: Dict[str, str] = {}
    for group in groups:
        prefix = group.prefix.rstrip("/")
        if not prefix.startswith("/") or prefix == "":
            raise RouteCompositionError(
                message=f"Invalid prefix '{group.prefix}' for group {group.name}",
                context={"group": group.name},
            )
        for other_prefix, other_name in seen.items():
            if _overlaps(prefix, other_prefix):
                raise RouteCompositionError(
                    message=(
                        f"Prefix '{group.prefix}' of group {group.name} overlaps "
                        f"'{other_prefix}' of group {other_name}"
                    ),
                    context={"group": group.name, "conflicts_with": other_name},
                )
        seen[prefix] = group.name


def _overlaps(a: str, b: str) -> bool:
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")
