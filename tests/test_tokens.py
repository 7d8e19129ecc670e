from __future__ import annotations

from datetime import timedelta

import jwt

from atelier.auth import AdminPolicy, AdminTokens, SessionTokens, bearer_token
from atelier.errors import ErrorKind

from conftest import err, ok


def _tokens(**kwargs: timedelta) -> SessionTokens:
    return SessionTokens("access-secret", "refresh-secret", **kwargs)


def test_access_token_carries_user_id():
    pair = _tokens().issue(7)

    assert ok(_tokens().verify_access(pair.access)) == 7
    assert ok(_tokens().verify_refresh(pair.refresh)) == 7


def test_expired_access_token_is_unauthorized():
    pair = _tokens(access_ttl=timedelta(seconds=-5)).issue(7)

    failure = err(_tokens().verify_access(pair.access))
    assert failure.kind is ErrorKind.UNAUTHORIZED
    assert failure.message == "Token expired"


def test_tampered_token_is_rejected():
    pair = _tokens().issue(7)
    forged = jwt.encode({"id": 1, "typ": "access", "exp": 9999999999}, "guess", algorithm="HS256")

    assert err(_tokens().verify_access(forged)).kind is ErrorKind.UNAUTHORIZED
    assert err(_tokens().verify_access(pair.access[:-2] + "xx")).kind is ErrorKind.UNAUTHORIZED
    assert err(_tokens().verify_access("")).kind is ErrorKind.UNAUTHORIZED


def test_tokens_are_not_interchangeable():
    pair = _tokens().issue(7)

    err(_tokens().verify_access(pair.refresh))
    err(_tokens().verify_refresh(pair.access))


def test_refresh_rotates_pair():
    tokens = _tokens()
    pair = tokens.issue(7)

    fresh = ok(tokens.refresh(pair.refresh))
    assert fresh.access != pair.access
    assert fresh.refresh != pair.refresh
    assert ok(tokens.verify_access(fresh.access)) == 7


def test_expired_refresh_cannot_rotate():
    pair = _tokens(refresh_ttl=timedelta(seconds=-5)).issue(7)

    assert err(_tokens().refresh(pair.refresh)).kind is ErrorKind.UNAUTHORIZED


def test_bearer_token_parsing():
    assert bearer_token({"authorization": "Bearer abc"}) == "abc"
    assert bearer_token({"authorization": "Basic abc"}) == ""
    assert bearer_token({}) == ""


# ═══════════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════════


def test_admin_login_issues_verifiable_token():
    policy = AdminPolicy("admin", "hunter2", AdminTokens("admin-secret"))

    token = ok(policy.login("admin", "hunter2"))
    assert ok(policy.verify(token)).username == "admin"


def test_admin_login_rejects_wrong_credentials():
    policy = AdminPolicy("admin", "hunter2", AdminTokens("admin-secret"))

    assert err(policy.login("admin", "nope")).message == "Invalid credentials"
    assert err(policy.login("root", "hunter2")).message == "Invalid credentials"


def test_admin_login_closed_without_password():
    policy = AdminPolicy("admin", "", AdminTokens("admin-secret"))

    assert err(policy.login("admin", "")).kind is ErrorKind.UNAUTHORIZED


def test_admin_token_requires_role_claim():
    token = jwt.encode({"sub": "admin", "exp": 9999999999}, "admin-secret", algorithm="HS256")

    err(AdminTokens("admin-secret").verify(token))


def test_user_token_is_not_an_admin_token():
    pair = _tokens().issue(7)

    err(AdminTokens("admin-secret").verify(pair.access))
