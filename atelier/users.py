"""
Users — sign-in, session refresh and the two side doors (admin, mock).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier.auth import AdminPolicy, Identity, IdentityVerifier, SessionTokens, same_secret
from atelier.config import Settings
from atelier.db import Database, UserTable
from atelier.domain import SessionGrant, TokenPair, User
from atelier.errors import Errors, Failure

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SignIn(O.Returning[SessionGrant, Failure]):
    identity_token: str


@dataclass(frozen=True, slots=True)
class RefreshSession(O.Returning[TokenPair, Failure]):
    refresh_token: str


@dataclass(frozen=True, slots=True)
class MockLogin(O.Returning[str, Failure]):
    secret: str


@dataclass(frozen=True, slots=True)
class AdminLogin(O.Returning[str, Failure]):
    username: str
    password: str


# ═══════════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════════


async def _by_email(session: AsyncSession, email: str) -> UserTable | None:
    return (
        await session.execute(select(UserTable).where(UserTable.email == email))
    ).scalar_one_or_none()


async def upsert_user(db: Database, identity: Identity) -> User:
    """Find by email, refresh the profile fields the provider supplied."""
    email = identity.email.strip().lower()
    async with db.session() as session:
        row = await _by_email(session, email)
        if row is None:
            row = UserTable(email=email, name=identity.name, phone_number=identity.phone_number)
            session.add(row)
            try:
                await session.commit()
                log.info("New user %s registered", email)
                return row.to_domain()
            except IntegrityError:
                # a concurrent sign-in created it first
                await session.rollback()
                row = await _by_email(session, email)
                if row is None:
                    raise

        if identity.name:
            row.name = identity.name
        if identity.phone_number:
            row.phone_number = identity.phone_number
        await session.commit()
        return row.to_domain()


async def sign_in(
    req: SignIn,
    db: Database,
    verifier: IdentityVerifier,
    tokens: SessionTokens,
) -> Result[SessionGrant, Failure]:
    if not req.identity_token:
        return Error(Errors.unauthorized("Identity token is required"))

    match await verifier.verify(req.identity_token):
        case Ok(identity):
            pass
        case Error(failure):
            log.warning("Identity token rejected: %s", failure.message)
            return Error(failure)

    if not identity.email.strip():
        return Error(Errors.unauthorized("Identity has no email address"))

    user = await upsert_user(db, identity)
    log.info("User %s signed in", user.id)
    return Ok(SessionGrant(user=user, tokens=tokens.issue(user.id)))


async def refresh_session(req: RefreshSession, tokens: SessionTokens) -> Result[TokenPair, Failure]:
    return tokens.refresh(req.refresh_token)


async def mock_login(
    req: MockLogin,
    db: Database,
    tokens: SessionTokens,
    settings: Settings,
) -> Result[str, Failure]:
    if not settings.mock_login_enabled:
        return Error(Errors.not_found("Not found"))
    if not same_secret(req.secret, settings.mock_user_secret or ""):
        return Error(Errors.unauthorized())

    async with db.session() as session:
        row = (
            await session.execute(select(UserTable).order_by(UserTable.id).limit(1))
        ).scalar_one_or_none()
    if row is None:
        return Error(Errors.not_found("No users found"))

    log.warning("Mock login issued a session for user %s", row.id)
    return Ok(tokens.issue(row.id).access)


async def admin_login(req: AdminLogin, policy: AdminPolicy) -> Result[str, Failure]:
    return policy.login(req.username, req.password)


def handlers() -> O.OpsBuilder:
    return (
        O.ops()
        .on(SignIn, sign_in)
        .on(RefreshSession, refresh_session)
        .on(MockLogin, mock_login)
        .on(AdminLogin, admin_login)
    )


__all__ = (
    "SignIn",
    "RefreshSession",
    "MockLogin",
    "AdminLogin",
    "upsert_user",
    "handlers",
)
