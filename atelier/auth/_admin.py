"""
Back-office authorization.

One policy object owns both questions an admin route can ask:
"are these the admin credentials?" and "is this an admin token?".
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from kungfu import Result, Ok, Error

from atelier.auth._tokens import ALGORITHM
from atelier.errors import Errors, Failure

log = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class AdminPrincipal:
    username: str


class AdminTokens:
    """Single long-lived admin token; no refresh."""

    __slots__ = ("_secret", "_ttl")

    def __init__(self, secret: str, ttl: timedelta = timedelta(days=7)) -> None:
        self._secret = secret
        self._ttl = ttl

    def issue(self, username: str) -> str:
        now = datetime.now(UTC)
        return jwt.encode(
            {"sub": username, "role": ADMIN_ROLE, "iat": now, "exp": now + self._ttl},
            self._secret,
            algorithm=ALGORITHM,
        )

    def verify(self, token: str) -> Result[AdminPrincipal, Failure]:
        if not token:
            return Error(Errors.unauthorized())
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as e:
            log.debug("Rejected admin token: %s", e)
            return Error(Errors.unauthorized())

        # role is checked for presence only
        if not claims.get("role"):
            return Error(Errors.unauthorized())
        return Ok(AdminPrincipal(username=str(claims["sub"])))


def same_secret(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


class AdminPolicy:
    """
    Admin credential and token check.

    Credentials come from configuration. An empty configured password means
    the back-office is closed: every login fails.
    """

    __slots__ = ("_username", "_password", "_tokens")

    def __init__(self, username: str, password: str, tokens: AdminTokens) -> None:
        self._username = username
        self._password = password
        self._tokens = tokens

    def login(self, username: str, password: str) -> Result[str, Failure]:
        if not self._password:
            log.warning("Admin login attempted but no admin password is configured")
            return Error(Errors.unauthorized("Invalid credentials"))
        # both comparisons always run
        user_ok = same_secret(username, self._username)
        pass_ok = same_secret(password, self._password)
        if not (user_ok and pass_ok):
            log.warning("Admin login failed for %r", username)
            return Error(Errors.unauthorized("Invalid credentials"))
        log.info("Admin %s logged in", username)
        return Ok(self._tokens.issue(username))

    def verify(self, token: str) -> Result[AdminPrincipal, Failure]:
        return self._tokens.verify(token)


__all__ = ("ADMIN_ROLE", "AdminPrincipal", "AdminTokens", "AdminPolicy", "same_secret")
