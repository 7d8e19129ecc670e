"""
Identity provider seam.

Sign-in exchanges a third-party identity token for a storefront session.
The provider SDK lives outside this package; anything implementing
``IdentityVerifier`` can be injected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from kungfu import Result, Error

from atelier.errors import Errors, Failure


@dataclass(frozen=True, slots=True)
class Identity:
    """What the provider vouches for."""
    email: str
    name: str | None = None
    phone_number: str | None = None


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> Result[Identity, Failure]: ...


class UnconfiguredIdentityVerifier:
    """Used when no provider is wired: every token is rejected."""

    async def verify(self, token: str) -> Result[Identity, Failure]:
        return Error(Errors.unauthorized("Identity provider is not configured"))


__all__ = ("Identity", "IdentityVerifier", "UnconfiguredIdentityVerifier")
