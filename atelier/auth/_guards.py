"""
Guards — who is calling.

A guard turns request headers into a caller (or a failure). Routes declare
their guard; the HTTP layer runs it before the request body is even looked at.
"""

from __future__ import annotations

from collections.abc import Mapping

from kungfu import Result, Ok, Error

from atelier.auth._admin import AdminPolicy, AdminPrincipal
from atelier.auth._tokens import SessionTokens, bearer_token
from atelier.errors import Errors, Failure


class UserGuard:
    """Bearer access token → user id."""

    __slots__ = ("_tokens",)

    def __init__(self, tokens: SessionTokens) -> None:
        self._tokens = tokens

    def authorize(self, headers: Mapping[str, str]) -> Result[int, Failure]:
        return self._tokens.verify_access(bearer_token(headers))


class AdminGuard:
    """Bearer admin token → principal."""

    __slots__ = ("_policy",)

    def __init__(self, policy: AdminPolicy) -> None:
        self._policy = policy

    def authorize(self, headers: Mapping[str, str]) -> Result[AdminPrincipal, Failure]:
        return self._policy.verify(bearer_token(headers))


class HeaderGuard:
    """
    Passes one header value through as the caller.

    The op receiving it decides what the value is worth; a missing header
    is rejected here.
    """

    __slots__ = ("_header",)

    def __init__(self, header: str) -> None:
        self._header = header.lower()

    def authorize(self, headers: Mapping[str, str]) -> Result[str, Failure]:
        supplied = headers.get(self._header)
        if not supplied:
            return Error(Errors.unauthorized())
        return Ok(supplied)


__all__ = ("UserGuard", "AdminGuard", "HeaderGuard")
