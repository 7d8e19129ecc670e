"""
Session tokens — short-lived access token + longer-lived refresh token.

Both are HS256 JWTs bound to a user id, each signed with its own secret.
Verification never raises: anything wrong with a token is ``Error(UNAUTHORIZED)``.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import jwt
from kungfu import Result, Ok, Error

from atelier.domain import TokenPair
from atelier.errors import Errors, Failure

log = logging.getLogger(__name__)

ALGORITHM = "HS256"

type TokenKind = Literal["access", "refresh"]


def bearer_token(headers: Mapping[str, str]) -> str:
    """``Authorization: Bearer <token>`` → ``<token>``; empty when absent."""
    raw = headers.get("authorization") or headers.get("Authorization") or ""
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


class SessionTokens:
    """
    Issuer and verifier for user sessions.

    Example:
        tokens = SessionTokens("access-secret", "refresh-secret")
        pair = tokens.issue(7)
        match tokens.verify_access(pair.access):
            case Ok(user_id): ...
            case Error(failure): ...   # expired / tampered / malformed
    """

    __slots__ = ("_access_secret", "_refresh_secret", "_access_ttl", "_refresh_ttl")

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(days=1),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    def issue(self, user_id: int) -> TokenPair:
        return TokenPair(
            access=self._sign(user_id, "access"),
            refresh=self._sign(user_id, "refresh"),
        )

    def verify_access(self, token: str) -> Result[int, Failure]:
        return self._verify(token, "access")

    def verify_refresh(self, token: str) -> Result[int, Failure]:
        return self._verify(token, "refresh")

    def refresh(self, refresh_token: str) -> Result[TokenPair, Failure]:
        """Rotate: a valid refresh token buys a brand-new pair."""
        match self.verify_refresh(refresh_token):
            case Ok(user_id):
                return Ok(self.issue(user_id))
            case Error(failure):
                return Error(failure)

    # ───────────────────────────────────────────────────────────────────────────

    def _secret(self, kind: TokenKind) -> str:
        return self._access_secret if kind == "access" else self._refresh_secret

    def _sign(self, user_id: int, kind: TokenKind) -> str:
        now = datetime.now(UTC)
        ttl = self._access_ttl if kind == "access" else self._refresh_ttl
        payload: dict[str, Any] = {
            "id": user_id,
            "sub": str(user_id),
            "typ": kind,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret(kind), algorithm=ALGORITHM)

    def _verify(self, token: str, kind: TokenKind) -> Result[int, Failure]:
        if not token:
            return Error(Errors.unauthorized())
        try:
            claims = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[ALGORITHM],
                options={"require": ["exp", "id"]},
            )
        except jwt.ExpiredSignatureError:
            return Error(Errors.unauthorized("Token expired"))
        except jwt.PyJWTError as e:
            log.debug("Rejected %s token: %s", kind, e)
            return Error(Errors.unauthorized())

        user_id = claims.get("id")
        if claims.get("typ") != kind or not isinstance(user_id, int) or isinstance(user_id, bool):
            return Error(Errors.unauthorized())
        return Ok(user_id)


__all__ = ("SessionTokens", "TokenKind", "bearer_token", "ALGORITHM")
