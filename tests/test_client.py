from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from atelier.app import create_app
from atelier.client import MemoryTokenStorage, SessionContext, SessionExpired, StorefrontClient
from atelier.config import Settings
from atelier.db import Database
from atelier.domain import TokenPair

from conftest import FakeVerifier, add_product


class FakeStorefront:
    """Accepts access tokens in ``valid``; refresh hands out the next pair or 401."""

    def __init__(self, valid: set[str], refreshes: list[TokenPair | None]) -> None:
        self.valid = valid
        self.refreshes = refreshes
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if request.method == "POST" and request.url.path == "/api/user":
            pair = self.refreshes.pop(0) if self.refreshes else None
            if pair is None:
                return httpx.Response(401, json={"error": "Unauthorized"})
            return httpx.Response(200, json={"token": pair.access, "refreshToken": pair.refresh})

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        if token not in self.valid:
            return httpx.Response(401, json={"error": "Unauthorized"})
        return httpx.Response(200, json={"items": [], "total": "0.00"})


def _client(server: FakeStorefront, tokens: TokenPair | None) -> tuple[StorefrontClient, list[TokenPair | None]]:
    session = SessionContext(MemoryTokenStorage(tokens))
    seen: list[TokenPair | None] = []
    session.subscribe(seen.append)
    http = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="http://shop.test")
    return StorefrontClient(http, session), seen


async def test_valid_token_needs_no_refresh():
    server = FakeStorefront(valid={"a1"}, refreshes=[])
    client, seen = _client(server, TokenPair("a1", "r1"))

    assert (await client.cart())["total"] == "0.00"
    assert server.calls == [("GET", "/api/cart")]
    assert seen == []


async def test_refreshes_once_and_retries():
    server = FakeStorefront(valid={"a2"}, refreshes=[TokenPair("a2", "r2")])
    client, seen = _client(server, TokenPair("a1", "r1"))

    await client.cart()

    assert server.calls == [("GET", "/api/cart"), ("POST", "/api/user"), ("GET", "/api/cart")]
    assert client.session.tokens == TokenPair("a2", "r2")
    assert seen == [TokenPair("a2", "r2")]


async def test_failed_refresh_signs_out():
    server = FakeStorefront(valid=set(), refreshes=[None])
    client, seen = _client(server, TokenPair("a1", "r1"))

    with pytest.raises(SessionExpired):
        await client.cart()

    assert server.calls == [("GET", "/api/cart"), ("POST", "/api/user")]
    assert client.session.is_authenticated is False
    assert seen == [None]


async def test_second_401_signs_out_without_another_refresh():
    server = FakeStorefront(valid=set(), refreshes=[TokenPair("a2", "r2"), TokenPair("a3", "r3")])
    client, seen = _client(server, TokenPair("a1", "r1"))

    with pytest.raises(SessionExpired):
        await client.cart()

    assert [c for c in server.calls if c[0] == "POST"] == [("POST", "/api/user")]
    assert len(server.calls) == 3
    assert seen == [TokenPair("a2", "r2"), None]


async def test_anonymous_401_is_returned_untouched():
    server = FakeStorefront(valid=set(), refreshes=[TokenPair("a2", "r2")])
    client, seen = _client(server, None)

    response = await client.request("GET", "/api/cart")

    assert response.status_code == 401
    assert server.calls == [("GET", "/api/cart")]
    assert seen == []


class UnreachableRefresh(FakeStorefront):
    """The refresh endpoint is down or answers garbage."""

    def __init__(self, failure: Exception | httpx.Response) -> None:
        super().__init__(valid=set(), refreshes=[])
        self.failure = failure

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/user":
            self.calls.append((request.method, request.url.path))
            if isinstance(self.failure, Exception):
                raise self.failure
            return self.failure
        return super().__call__(request)


@pytest.mark.parametrize(
    "failure",
    [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        httpx.Response(200, content=b"<html>oops</html>"),
        httpx.Response(200, json={"token": "a2"}),
    ],
    ids=["connect", "timeout", "not-json", "missing-field"],
)
async def test_broken_refresh_signs_out(failure):
    server = UnreachableRefresh(failure)
    client, seen = _client(server, TokenPair("a1", "r1"))

    with pytest.raises(SessionExpired):
        await client.cart()

    assert server.calls == [("GET", "/api/cart"), ("POST", "/api/user")]
    assert client.session.is_authenticated is False
    assert seen == [None]


def test_unsubscribe_stops_notifications():
    session = SessionContext(MemoryTokenStorage())
    seen: list[TokenPair | None] = []
    unsubscribe = session.subscribe(seen.append)

    session.sign_in(TokenPair("a", "r"))
    unsubscribe()
    session.logout()

    assert seen == [TokenPair("a", "r")]


# ═══════════════════════════════════════════════════════════════════════════════
# Against the real app
# ═══════════════════════════════════════════════════════════════════════════════


async def test_expired_access_is_renewed_end_to_end(settings: Settings, db: Database):
    product = await add_product(db)
    app = create_app(settings, db=db, identity=FakeVerifier())
    session = SessionContext(MemoryTokenStorage())
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://atelier.test")

    async with StorefrontClient(http, session) as client:
        user = await client.sign_in("good:ada@example.com")
        assert user["email"] == "ada@example.com"
        signed_in = session.tokens
        assert signed_in is not None

        session.sign_in(TokenPair("expired-access", signed_in.refresh))
        line = await client.add_to_cart(product, quantity=2)

        assert line["quantity"] == 2
        assert session.tokens is not None
        assert session.tokens.access != "expired-access"


async def test_short_lived_access_forces_sign_out(settings: Settings, db: Database):
    stale = settings.model_copy(update={"access_token_ttl": timedelta(seconds=-5)})
    app = create_app(stale, db=db, identity=FakeVerifier())
    session = SessionContext(MemoryTokenStorage())
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://atelier.test")

    async with StorefrontClient(http, session) as client:
        await client.sign_in("good:ada@example.com")

        # every access token the server issues is already expired
        with pytest.raises(SessionExpired):
            await client.cart()

    assert session.tokens is None
