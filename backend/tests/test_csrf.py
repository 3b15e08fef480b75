"""
Twitter Clone Backend — CSRF Guard Tests
==========================================

What:  Token store lifecycle and the double-submit check on route groups.
How:   Store runs on the fake clock; the httpx client keeps cookies between
       requests the way a browser would.

What we test:
    ✅ First mutating request: token issued AND request rejected
    ✅ Second request echoing the token reaches the handler
    ✅ Missing / mismatched header rejected
    ✅ /auth never needs a token
    ✅ Secure cookie iff production
    ✅ Expired tokens behave like no token
"""

import pytest

from twitterclone.middleware.csrf import CSRFTokenStore

HEADER = "X-CSRF-Token"
COOKIE = "csrf_"


def csrf_cookie_header(response) -> str:
    cookies = [c for c in response.headers.get_list("set-cookie") if c.startswith(f"{COOKIE}=")]
    assert len(cookies) == 1, f"expected one csrf cookie, got {cookies}"
    return cookies[0]


def cookie_attributes(response) -> list:
    return [part.strip().lower() for part in csrf_cookie_header(response).split(";")[1:]]


class TestCSRFTokenStore:
    """Tests for token issuance and expiry."""

    def test_issued_token_is_active(self, csrf_store, clock):
        token = csrf_store.issue()

        assert csrf_store.is_active(token.value)
        assert token.expires_at == clock.now + 24 * 60 * 60

    def test_tokens_are_unique(self, csrf_store):
        values = {csrf_store.issue().value for _ in range(200)}
        assert len(values) == 200

    def test_token_has_adequate_length(self, csrf_store):
        assert len(csrf_store.issue().value) >= 32

    def test_unknown_and_empty_tokens_are_inactive(self, csrf_store):
        assert not csrf_store.is_active("never-issued")
        assert not csrf_store.is_active("")
        assert not csrf_store.is_active(None)

    def test_lookup_tells_expired_from_unknown(self, csrf_store, clock):
        token = csrf_store.issue()

        assert csrf_store.lookup(token.value) == "active"
        assert csrf_store.lookup("never-issued") == "unknown"
        assert csrf_store.lookup(None) == "unknown"

        clock.advance(24 * 60 * 60)
        assert csrf_store.lookup(token.value) == "expired"
        # Dropped on first expired lookup
        assert csrf_store.lookup(token.value) == "unknown"

    def test_token_expires_after_24_hours(self, csrf_store, clock):
        token = csrf_store.issue()

        clock.advance(24 * 60 * 60 - 1)
        assert csrf_store.is_active(token.value)

        clock.advance(1)
        assert not csrf_store.is_active(token.value)
        assert len(csrf_store) == 0

    def test_cleanup_drops_expired_tokens(self, clock):
        store = CSRFTokenStore(expiration=10, clock=clock)
        store.CLEANUP_INTERVAL = 3
        store.issue()
        store.issue()
        clock.advance(10)

        store.issue()

        assert len(store) == 1


class TestCSRFGuard:
    """Tests for the guard attached to mutating route groups."""

    @pytest.mark.asyncio
    async def test_follow_scenario_two_phase(self, test_client, features):
        """No session → token issued and request rejected; echo → admitted."""
        first = await test_client.post("/relationships/follow")

        assert first.status_code == 403
        assert first.json()["error"] == "csrf_token_invalid"
        assert first.json()["details"]["reason"] == "missing"
        token = first.cookies[COOKIE]
        assert token
        assert features["relationship"].hits == []

        second = await test_client.post("/relationships/follow", headers={HEADER: token})

        assert second.status_code == 200
        assert second.json() == {"feature": "relationship", "action": "follow"}
        assert features["relationship"].hits == ["follow"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prefix", ["/tweets", "/users", "/relationships"])
    async def test_mutating_request_without_token_rejected(self, test_client, prefix):
        response = await test_client.post(f"{prefix}/anything")
        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE"])
    async def test_all_unsafe_methods_are_checked(self, test_client, method):
        response = await test_client.request(method, "/tweets/1")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_auth_never_requires_token(self, test_client, features):
        response = await test_client.post("/auth/login")

        assert response.status_code == 200
        assert "set-cookie" not in response.headers
        assert features["auth"].hits == ["login"]

    @pytest.mark.asyncio
    async def test_cookie_without_header_rejected(self, test_client):
        token = (await test_client.get("/tweets")).cookies[COOKIE]
        assert token

        response = await test_client.post("/tweets/create")

        assert response.status_code == 403
        assert response.json()["details"]["reason"] == "missing"
        # Session already holds a live token; none is re-issued
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_mismatched_token_rejected(self, test_client, features):
        await test_client.get("/tweets")

        response = await test_client.post("/tweets/create", headers={HEADER: "forged"})

        assert response.status_code == 403
        assert response.json()["details"]["reason"] == "mismatch"
        assert features["tweet"].hits == ["index"]

    @pytest.mark.asyncio
    async def test_header_without_issued_cookie_rejected(self, test_client, features):
        response = await test_client.post(
            "/users/update", headers={HEADER: "guess", "Cookie": f"{COOKIE}=guess"}
        )
        assert response.status_code == 403
        assert response.json()["details"]["reason"] == "unknown"
        assert response.cookies[COOKIE] != "guess"
        assert features["user"].hits == []

    @pytest.mark.asyncio
    async def test_safe_request_issues_token_once(self, test_client):
        first = await test_client.get("/users")
        second = await test_client.get("/users")

        assert first.status_code == 200
        assert COOKIE in first.cookies
        assert "set-cookie" not in second.headers

    @pytest.mark.asyncio
    async def test_token_works_across_protected_groups(self, test_client):
        token = (await test_client.get("/tweets")).cookies[COOKIE]

        response = await test_client.post("/users/update", headers={HEADER: token})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_expired_token_is_reissued_and_request_rejected(self, test_client, clock):
        token = (await test_client.get("/tweets")).cookies[COOKIE]
        clock.advance(24 * 60 * 60)

        response = await test_client.post("/tweets/create", headers={HEADER: token})

        assert response.status_code == 403
        assert response.json()["details"]["reason"] == "expired"
        assert response.cookies[COOKIE] != token

    @pytest.mark.asyncio
    async def test_cookie_not_secure_in_development(self, test_client):
        response = await test_client.post("/tweets/create")

        attributes = cookie_attributes(response)
        assert "secure" not in attributes
        assert "max-age=86400" in attributes
        assert "samesite=lax" in attributes
        assert "path=/" in attributes

    @pytest.mark.asyncio
    async def test_cookie_secure_in_production(self, make_server, make_client):
        server = make_server(app_env="production")
        async with make_client(server.app) as client:
            response = await client.post("/tweets/create")

        assert response.status_code == 403
        assert "secure" in cookie_attributes(response)
