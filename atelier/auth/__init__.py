"""
Auth — session tokens, back-office policy and request guards.

    from atelier import auth as A

    tokens = A.SessionTokens(access_secret, refresh_secret)
    pair = tokens.issue(user_id)
    tokens.verify_access(pair.access)   # Ok(user_id) | Error(Failure)

    policy = A.AdminPolicy(username, password, A.AdminTokens(admin_secret))
    guard = A.UserGuard(tokens)         # used by the HTTP layer
"""

from atelier.auth._tokens import SessionTokens, bearer_token
from atelier.auth._admin import AdminPrincipal, AdminTokens, AdminPolicy, same_secret
from atelier.auth._identity import (
    Identity,
    IdentityVerifier,
    UnconfiguredIdentityVerifier,
)
from atelier.auth._guards import UserGuard, AdminGuard, HeaderGuard

__all__ = (
    "SessionTokens",
    "bearer_token",
    "AdminPrincipal",
    "AdminTokens",
    "AdminPolicy",
    "same_secret",
    "Identity",
    "IdentityVerifier",
    "UnconfiguredIdentityVerifier",
    "UserGuard",
    "AdminGuard",
    "HeaderGuard",
)
