"""
Application assembly.

    runner = build_runner(settings, db)        # ops + injected collaborators
    fapp = create_app(settings)                # FastAPI app, ready for uvicorn
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import fastapi

from atelier import cart, catalog, discounts, orders, reviews, users
from atelier import ops as O
from atelier._types import Clock
from atelier.api import build_application
from atelier.auth import (
    AdminPolicy,
    AdminTokens,
    IdentityVerifier,
    SessionTokens,
    UnconfiguredIdentityVerifier,
)
from atelier.config import Settings
from atelier.db import Database, connect
from atelier.wire.contrib import fastapi as fastapi_contrib

log = logging.getLogger(__name__)


def all_handlers() -> O.OpsBuilder:
    return (
        cart.handlers()
        .merge(catalog.handlers())
        .merge(discounts.handlers())
        .merge(orders.handlers())
        .merge(reviews.handlers())
        .merge(users.handlers())
    )


def build_runner(
    settings: Settings,
    db: Database,
    identity: IdentityVerifier | None = None,
    clock: Clock | None = None,
) -> O.Runner:
    tokens = SessionTokens(
        settings.jwt_secret,
        settings.jwt_refresh_secret,
        access_ttl=settings.access_token_ttl,
        refresh_ttl=settings.refresh_token_ttl,
    )
    policy = AdminPolicy(
        settings.admin_username,
        settings.admin_password,
        AdminTokens(settings.admin_jwt_secret, settings.admin_token_ttl),
    )
    if identity is None:
        log.warning("No identity provider configured; sign-in will be refused")
        identity = UnconfiguredIdentityVerifier()

    return (
        all_handlers()
        .compile()
        .inject(Settings, settings)
        .inject(Database, db)
        .inject(Clock, clock or Clock())
        .inject(SessionTokens, tokens)
        .inject(AdminPolicy, policy)
        .inject(IdentityVerifier, identity)
    )


def create_app(
    settings: Settings | None = None,
    *,
    db: Database | None = None,
    identity: IdentityVerifier | None = None,
    clock: Clock | None = None,
) -> fastapi.FastAPI:
    """
    Build the HTTP app.

    When ``db`` is not given the app owns its database: tables are created on
    startup and the engine is disposed on shutdown.
    """
    settings = settings or Settings.from_env()
    owns_db = db is None
    database = db if db is not None else connect(settings.database_url)

    runner = build_runner(settings, database, identity=identity, clock=clock)
    application = build_application(runner, settings)

    @asynccontextmanager
    async def lifespan(_: fastapi.FastAPI) -> AsyncIterator[None]:
        if owns_db:
            await database.create_all()
        log.info(
            "Crystal Atelier up: %d routes, environment %s",
            len(application.routes()),
            settings.environment,
        )
        try:
            yield
        finally:
            if owns_db:
                await database.dispose()

    fapp = fastapi_contrib.from_application(
        application,
        title="Crystal Atelier",
        lifespan=lifespan,
    )
    fapp.state.runner = runner
    return fapp


__all__ = ("all_handlers", "build_runner", "create_app")
