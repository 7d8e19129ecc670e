"""
Storefront client — session state and the single refresh-and-retry policy.

    session = SessionContext(MemoryTokenStorage())
    unsubscribe = session.subscribe(lambda tokens: print("signed in:", tokens is not None))

    async with StorefrontClient.connect("https://atelier.example", session) as api:
        await api.sign_in(identity_token)
        cart = await api.cart()

On a 401 the client refreshes exactly once. A successful refresh stores the
new pair and repeats the original request once; a failed refresh, or a 401 on
the repeat, signs the session out and raises ``SessionExpired``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any, NoReturn, Protocol, Self

import httpx

from atelier.domain import TokenPair

log = logging.getLogger(__name__)

type Listener = Callable[[TokenPair | None], None]


class SessionExpired(Exception):
    """The session could not be renewed; the user must sign in again."""


# ═══════════════════════════════════════════════════════════════════════════════
# Token storage
# ═══════════════════════════════════════════════════════════════════════════════


class TokenStorage(Protocol):
    def load(self) -> TokenPair | None: ...
    def save(self, tokens: TokenPair) -> None: ...
    def clear(self) -> None: ...


class MemoryTokenStorage:
    __slots__ = ("_tokens",)

    def __init__(self, tokens: TokenPair | None = None) -> None:
        self._tokens = tokens

    def load(self) -> TokenPair | None:
        return self._tokens

    def save(self, tokens: TokenPair) -> None:
        self._tokens = tokens

    def clear(self) -> None:
        self._tokens = None


# ═══════════════════════════════════════════════════════════════════════════════
# Session context
# ═══════════════════════════════════════════════════════════════════════════════


class SessionContext:
    """Observable auth state; every change is pushed to subscribers."""

    def __init__(self, storage: TokenStorage) -> None:
        self._storage = storage
        self._listeners: list[Listener] = []

    @property
    def tokens(self) -> TokenPair | None:
        return self._storage.load()

    @property
    def is_authenticated(self) -> bool:
        return self._storage.load() is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, tokens: TokenPair) -> None:
        self._storage.save(tokens)
        self._notify(tokens)

    def logout(self) -> None:
        self._storage.clear()
        self._notify(None)

    def _notify(self, tokens: TokenPair | None) -> None:
        for listener in list(self._listeners):
            listener(tokens)


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP client
# ═══════════════════════════════════════════════════════════════════════════════


class StorefrontClient:
    REFRESH_PATH = "/api/user"

    def __init__(self, http: httpx.AsyncClient, session: SessionContext) -> None:
        self._http = http
        self._session = session

    @classmethod
    def connect(cls, base_url: str, session: SessionContext, **kwargs: Any) -> StorefrontClient:
        return cls(httpx.AsyncClient(base_url=base_url, **kwargs), session)

    @property
    def session(self) -> SessionContext:
        return self._session

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ───────────────────────────────────────────────────────────────────────────

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        tokens = self._session.tokens
        if tokens is not None:
            headers["Authorization"] = f"Bearer {tokens.access}"
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def _refresh(self) -> bool:
        tokens = self._session.tokens
        if tokens is None:
            return False
        try:
            response = await self._http.post(self.REFRESH_PATH, json={"refreshToken": tokens.refresh})
            if response.status_code != 200:
                return False
            body = response.json()
            renewed = TokenPair(access=body["token"], refresh=body["refreshToken"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            log.warning("Session refresh failed: %s", exc)
            return False
        self._session.sign_in(renewed)
        log.info("Session refreshed")
        return True

    def _expire(self) -> NoReturn:
        log.warning("Session expired; signing out")
        self._session.logout()
        raise SessionExpired("Session expired, please sign in again")

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        authenticated = self._session.is_authenticated
        response = await self._send(method, url, **kwargs)
        if response.status_code != 401 or not authenticated:
            return response

        if not await self._refresh():
            self._expire()
        retried = await self._send(method, url, **kwargs)
        if retried.status_code == 401:
            self._expire()
        return retried

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.request(method, url, **kwargs)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ───────────────────────────────────────────────────────────────────────────
    # Storefront calls
    # ───────────────────────────────────────────────────────────────────────────

    async def sign_in(self, identity_token: str) -> dict[str, Any]:
        response = await self._http.put("/api/user", json={"token": identity_token})
        response.raise_for_status()
        body = response.json()
        self._session.sign_in(TokenPair(access=body["token"], refresh=body["refreshToken"]))
        return body["user"]

    def logout(self) -> None:
        self._session.logout()

    async def cart(self) -> dict[str, Any]:
        return await self._json("GET", "/api/cart")

    async def add_to_cart(self, product_id: int, quantity: int = 1) -> dict[str, Any]:
        return await self._json("POST", "/api/cart", json={"productId": product_id, "quantity": quantity})

    async def set_quantity(self, product_id: int, quantity: int) -> dict[str, Any]:
        return await self._json("PUT", "/api/cart", json={"productId": product_id, "quantity": quantity})

    async def remove_from_cart(self, product_id: int) -> dict[str, Any]:
        return await self._json("DELETE", "/api/cart", json={"productId": product_id})

    async def validate_discount(self, code: str, cart_total: Decimal | str) -> dict[str, Any]:
        return await self._json(
            "POST", "/api/discounts", json={"code": code, "cartTotal": str(cart_total)}
        )

    async def place_order(self, shipping_address: str, discount_code: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"shippingAddress": shipping_address}
        if discount_code:
            payload["discountCode"] = discount_code
        return await self._json("POST", "/api/orders", json=payload)

    async def orders(self, page: int = 1, limit: int = 10) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/orders", params={"page": page, "limit": limit})

    async def has_purchased(self, product_id: int) -> bool:
        body = await self._json("GET", "/api/orders", params={"productId": product_id})
        return bool(body["hasPurchased"])

    async def review(self, product_id: int, rating: int, comment: str | None = None) -> dict[str, Any]:
        return await self._json(
            "POST",
            "/api/reviews",
            json={"productId": product_id, "rating": rating, "comment": comment},
        )


__all__ = (
    "SessionExpired",
    "TokenStorage",
    "MemoryTokenStorage",
    "SessionContext",
    "StorefrontClient",
)
