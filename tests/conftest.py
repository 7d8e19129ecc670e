from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import httpx
import pytest
from kungfu import Result, Ok, Error
from sqlalchemy import update

from atelier import ops as O
from atelier._types import Clock
from atelier.app import build_runner, create_app
from atelier.auth import Identity, SessionTokens
from atelier.config import Settings
from atelier.db import (
    Database,
    DiscountCodeTable,
    OrderTable,
    ProductTable,
    UserTable,
    create_database,
)
from atelier.domain import DiscountType, OrderStatus, Tone
from atelier.errors import Errors, Failure

NOW = datetime(2025, 3, 1, 12, 0, 0)


@dataclass(frozen=True, slots=True)
class FixedClock(Clock):
    moment: datetime = NOW

    def now(self) -> datetime:
        return self.moment


class FakeVerifier:
    """Accepts ``good:<email>`` tokens."""

    async def verify(self, token: str) -> Result[Identity, Failure]:
        scheme, _, email = token.partition(":")
        if scheme != "good" or not email:
            return Error(Errors.unauthorized("Invalid identity token"))
        return Ok(Identity(email=email, name=email.split("@")[0].title()))


# ═══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        admin_jwt_secret="test-admin-secret",
        admin_username="admin",
        admin_password="hunter2",
        mock_user_secret="let-me-in",
        environment="test",
    )


@pytest.fixture
async def db() -> AsyncIterator[Database]:
    database = await create_database()
    yield database
    await database.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def runner(settings: Settings, db: Database, clock: FixedClock) -> O.Runner:
    return build_runner(settings, db, identity=FakeVerifier(), clock=clock)


@pytest.fixture
def tokens(runner: O.Runner) -> SessionTokens:
    return runner.resolve(SessionTokens)


@pytest.fixture
async def http(
    settings: Settings,
    db: Database,
    clock: FixedClock,
) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(settings, db=db, identity=FakeVerifier(), clock=clock)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://atelier.test") as client:
        yield client


# ═══════════════════════════════════════════════════════════════════════════════
# Seed helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def add_user(db: Database, email: str = "ada@example.com", name: str | None = "Ada") -> int:
    async with db.session() as session:
        row = UserTable(email=email, name=name)
        session.add(row)
        await session.commit()
        return row.id


async def add_product(
    db: Database,
    name: str = "Rose Quartz Ring",
    price: str = "500",
    tone: Tone = Tone.ROSE,
    **extra: object,
) -> int:
    async with db.session() as session:
        row = ProductTable(name=name, price=price, tone=tone, **extra)
        session.add(row)
        await session.commit()
        return row.id


async def add_code(
    db: Database,
    code: str = "SAVE10",
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    value: str = "10",
    **extra: object,
) -> int:
    async with db.session() as session:
        row = DiscountCodeTable(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            **extra,
        )
        session.add(row)
        await session.commit()
        return row.id


async def used_count(db: Database, code_id: int) -> int:
    async with db.session() as session:
        row = await session.get(DiscountCodeTable, code_id)
        assert row is not None
        return row.used_count


async def mark_orders(db: Database, user_id: int, status: OrderStatus) -> None:
    async with db.session() as session:
        await session.execute(
            update(OrderTable).where(OrderTable.user_id == user_id).values(status=status)
        )
        await session.commit()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def ok[T](result: Result[T, Failure]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(failure):
            raise AssertionError(f"expected Ok, got {failure}")
    raise AssertionError(result)


def err(result: Result[object, Failure]) -> Failure:
    match result:
        case Error(failure):
            return failure
        case Ok(value):
            raise AssertionError(f"expected Error, got {value!r}")
    raise AssertionError(result)
