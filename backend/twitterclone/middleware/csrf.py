"""
Twitter Clone Backend — CSRF Guard
====================================

What:  Anti-forgery token issuance and validation for mutating route groups.
Why:   CORS is wide open (any origin, with credentials), so a cookie alone
       cannot prove a write came from our own front end.
How:   Double-submit cookie. The token lives in the `csrf_` cookie and must
       be echoed back in the X-CSRF-Token header on every mutating request.
Who:   Attached as a route-group stage to /tweets, /users, /relationships.
       Never to /auth: login and registration must work without a token.

Token lifecycle (per session):
    {no-token} ── mutating request ──▶ issue token + Set-Cookie, reject 403
    {no-token} ── safe request ──────▶ issue token + Set-Cookie, pass through
    {active}   ── mutating request ──▶ header == cookie ? handler : 403
    {active}   ── 24h elapse ────────▶ {expired}, treated as {no-token}
    {unknown}  ── any request ───────▶ cookie never issued here, treated as {no-token}

The first mutating request from a fresh session is always rejected, even
though it receives a token. Clients retry with the token echoed back.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

from twitterclone.config import Settings
from twitterclone.exceptions import CSRFTokenError, error_response

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

TOKEN_ACTIVE = "active"
TOKEN_EXPIRED = "expired"
# Never issued, or already swept by cleanup
TOKEN_UNKNOWN = "unknown"


@dataclass(frozen=True)
class CSRFToken:
    value: str
    expires_at: float


class CSRFTokenStore:
    """
    Process-local registry of issued, unexpired tokens.

    Guarded by a lock because tokens are issued and checked from concurrent
    requests. Expired tokens are dropped lazily on lookup and in bulk every
    CLEANUP_INTERVAL issuances.
    """

    CLEANUP_INTERVAL = 1000

    def __init__(
        self,
        expiration: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.expiration = expiration
        self._clock = clock
        self._tokens: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._issued = 0

    def issue(self) -> CSRFToken:
        now = self._clock()
        token = CSRFToken(value=secrets.token_urlsafe(32), expires_at=now + self.expiration)
        with self._lock:
            self._tokens[token.value] = token.expires_at
            self._issued += 1
            if self._issued % self.CLEANUP_INTERVAL == 0:
                self._cleanup_expired(now)
        return token

    def lookup(self, value: Optional[str]) -> str:
        """Return TOKEN_ACTIVE, TOKEN_EXPIRED or TOKEN_UNKNOWN for `value`."""
        if not value:
            return TOKEN_UNKNOWN
        now = self._clock()
        with self._lock:
            expires_at = self._tokens.get(value)
            if expires_at is None:
                return TOKEN_UNKNOWN
            if now >= expires_at:
                del self._tokens[value]
                return TOKEN_EXPIRED
            return TOKEN_ACTIVE

    def is_active(self, value: Optional[str]) -> bool:
        return self.lookup(value) == TOKEN_ACTIVE

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def _cleanup_expired(self, now: float) -> None:
        expired = [value for value, expires_at in self._tokens.items() if now >= expires_at]
        for value in expired:
            del self._tokens[value]

        if expired:
            logger.debug("Cleaned up %d expired CSRF tokens", len(expired))


class CSRFGuard:
    """
    Route-group stage enforcing the double-submit token check.

    Args:
        store:        Token registry shared by every protected group
        secure:       Mark the cookie Secure (HTTPS only); true in production
        cookie_name:  Session cookie carrying the token
        header_name:  Request header the client echoes the token in
        samesite:     SameSite attribute of the cookie
    """

    def __init__(
        self,
        store: CSRFTokenStore,
        secure: bool = False,
        cookie_name: str = "csrf_",
        header_name: str = "X-CSRF-Token",
        samesite: str = "lax",
    ):
        self.store = store
        self.secure = secure
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.samesite = samesite

    @classmethod
    def from_settings(
        cls, settings: Settings, store: Optional[CSRFTokenStore] = None
    ) -> "CSRFGuard":
        return cls(
            store=(
                store if store is not None
                else CSRFTokenStore(expiration=settings.csrf_expiration)
            ),
            secure=settings.is_production,
            cookie_name=settings.csrf_cookie_name,
            header_name=settings.csrf_header_name,
            samesite=settings.csrf_cookie_samesite,
        )

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        session_token = request.cookies.get(self.cookie_name)
        state = self.store.lookup(session_token)
        has_token = state == TOKEN_ACTIVE

        if request.method in SAFE_METHODS:
            response = await call_next(request)
            if not has_token:
                self.issue(response)
            return response

        if not has_token:
            reason = state if session_token else "missing"
            logger.info(
                "CSRF token %s for %s %s, issuing a new one",
                reason,
                request.method,
                request.url.path,
            )
            response = error_response(CSRFTokenError(reason=reason))
            self.issue(response)
            return response

        submitted = request.headers.get(self.header_name)
        if not submitted:
            return error_response(CSRFTokenError(reason="missing"))
        if not secrets.compare_digest(submitted.encode(), session_token.encode()):
            logger.warning(
                "CSRF token mismatch for %s %s", request.method, request.url.path
            )
            return error_response(CSRFTokenError(reason="mismatch"))

        return await call_next(request)

    def issue(self, response: Response) -> CSRFToken:
        """Create a token and attach it to `response` as the session cookie."""
        token = self.store.issue()
        response.set_cookie(
            key=self.cookie_name,
            value=token.value,
            max_age=int(self.store.expiration),
            path="/",
            secure=self.secure,
            httponly=False,  # read by the front end
            samesite=self.samesite,
        )
        return token
