"""
Discounts — code evaluation and back-office management.

Evaluation is a pure function of the stored code, the base amount and "now":

    1. active            → else INVALID
    2. not expired       → else EXPIRED
    3. below usage limit → else LIMIT_EXCEEDED
    4. amount: PERCENTAGE → base × value / 100, FIXED → min(value, base)

Validation never touches ``used_count``; only checkout increments it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier._types import Clock, as_naive_utc
from atelier.db import Database, DiscountCodeTable
from atelier.domain import DiscountCode, DiscountQuote, DiscountType, Page
from atelier.errors import DiscountRejection, Errors, Failure
from atelier.money import ZERO, quantize

log = logging.getLogger(__name__)

HUNDRED = Decimal(100)


# ═══════════════════════════════════════════════════════════════════════════════
# Evaluation
# ═══════════════════════════════════════════════════════════════════════════════


def normalize_code(raw: str) -> str:
    return raw.strip().upper()


def evaluate(code: DiscountCode, base: Decimal, now: datetime) -> Result[Decimal, Failure]:
    """Discount amount for ``base``, or why the code cannot be used right now."""
    if not code.is_active:
        return Error(
            Errors.discount_rejected(DiscountRejection.INVALID, "Discount code is not active")
        )
    if code.expires_at is not None and now > code.expires_at:
        return Error(
            Errors.discount_rejected(DiscountRejection.EXPIRED, "Discount code has expired")
        )
    if code.usage_limit is not None and code.used_count >= code.usage_limit:
        return Error(
            Errors.discount_rejected(
                DiscountRejection.LIMIT_EXCEEDED, "Discount code usage limit reached"
            )
        )

    match code.discount_type:
        case DiscountType.PERCENTAGE:
            amount = base * code.discount_value / HUNDRED
        case DiscountType.FIXED:
            amount = code.discount_value
    # never below a zero total
    return Ok(quantize(min(max(amount, ZERO), base)))


async def find_code(session: AsyncSession, raw: str) -> DiscountCodeTable | None:
    return (
        await session.execute(
            select(DiscountCodeTable).where(DiscountCodeTable.code == normalize_code(raw))
        )
    ).scalar_one_or_none()


def _check_terms(
    code: str,
    discount_type: DiscountType,
    value: Decimal,
    usage_limit: int | None,
) -> Failure | None:
    if not code:
        return Errors.invalid_argument("Discount code is required")
    if not value.is_finite() or value <= 0:
        return Errors.invalid_argument("Discount value must be positive")
    if discount_type is DiscountType.PERCENTAGE and value > HUNDRED:
        return Errors.invalid_argument("Percentage discount cannot exceed 100")
    if usage_limit is not None and usage_limit < 0:
        return Errors.invalid_argument("Usage limit cannot be negative")
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ValidateDiscount(O.Returning[DiscountQuote, Failure]):
    code: str
    cart_total: Decimal


@dataclass(frozen=True, slots=True)
class ListDiscountCodes(O.Returning[Page[DiscountCode], Failure]):
    skip: int = 0
    take: int = 50
    active_only: bool = False


@dataclass(frozen=True, slots=True)
class CreateDiscountCode(O.Returning[DiscountCode, Failure]):
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    description: str | None = None
    is_active: bool = True
    expires_at: datetime | None = None
    usage_limit: int | None = None


UPDATABLE = frozenset(
    {"code", "description", "discount_type", "discount_value", "is_active", "expires_at", "usage_limit"}
)


@dataclass(frozen=True, slots=True)
class UpdateDiscountCode(O.Returning[DiscountCode, Failure]):
    """Partial update: only keys present in ``changes`` are written."""
    discount_id: int
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DeleteDiscountCode(O.Returning[None, Failure]):
    discount_id: int


# ═══════════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════════


async def validate_discount(
    req: ValidateDiscount,
    db: Database,
    clock: Clock,
) -> Result[DiscountQuote, Failure]:
    if not req.cart_total.is_finite() or req.cart_total < 0:
        return Error(Errors.invalid_argument("Cart total must be a non-negative amount"))

    async with db.session() as session:
        row = await find_code(session, req.code)
        if row is None:
            return Error(Errors.not_found("Discount code not found"))
        code = row.to_domain()

    match evaluate(code, req.cart_total, clock.now()):
        case Ok(amount):
            return Ok(DiscountQuote(code=code, amount=amount))
        case Error(failure):
            log.info("Discount %s rejected: %s", code.code, failure.reason)
            return Error(failure)


async def list_discount_codes(
    req: ListDiscountCodes,
    db: Database,
    clock: Clock,
) -> Result[Page[DiscountCode], Failure]:
    if req.skip < 0 or not 1 <= req.take <= 100:
        return Error(Errors.invalid_argument("skip must be >= 0 and take within 1..100"))

    query = select(DiscountCodeTable)
    if req.active_only:
        now = clock.now()
        query = query.where(
            DiscountCodeTable.is_active.is_(True),
            or_(DiscountCodeTable.expires_at.is_(None), DiscountCodeTable.expires_at >= now),
        )

    async with db.session() as session:
        total = (
            await session.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        rows = (
            await session.execute(
                query.order_by(DiscountCodeTable.created_at.desc(), DiscountCodeTable.id.desc())
                .offset(req.skip)
                .limit(req.take)
            )
        ).scalars().all()

    return Ok(
        Page(items=tuple(r.to_domain() for r in rows), total=total, skip=req.skip, take=req.take)
    )


async def create_discount_code(
    req: CreateDiscountCode,
    db: Database,
) -> Result[DiscountCode, Failure]:
    code = normalize_code(req.code)
    if problem := _check_terms(code, req.discount_type, req.discount_value, req.usage_limit):
        return Error(problem)

    row = DiscountCodeTable(
        code=code,
        description=req.description,
        discount_type=req.discount_type,
        discount_value=req.discount_value,
        is_active=req.is_active,
        expires_at=as_naive_utc(req.expires_at) if req.expires_at else None,
        usage_limit=req.usage_limit,
        used_count=0,
    )
    async with db.session() as session:
        session.add(row)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return Error(Errors.conflict(f"Discount code {code} already exists"))

    log.info("Discount code %s created", code)
    return Ok(row.to_domain())


async def update_discount_code(
    req: UpdateDiscountCode,
    db: Database,
) -> Result[DiscountCode, Failure]:
    unknown = set(req.changes) - UPDATABLE
    if unknown:
        return Error(Errors.invalid_argument(f"Unknown fields: {', '.join(sorted(unknown))}"))

    async with db.session() as session:
        row = await session.get(DiscountCodeTable, req.discount_id)
        if row is None:
            return Error(Errors.not_found("Discount code not found"))

        changes = dict(req.changes)
        if "code" in changes:
            changes["code"] = normalize_code(changes["code"])
        if changes.get("expires_at") is not None:
            changes["expires_at"] = as_naive_utc(changes["expires_at"])

        merged = {name: changes.get(name, getattr(row, name)) for name in UPDATABLE}
        if problem := _check_terms(
            merged["code"],
            DiscountType(merged["discount_type"]),
            Decimal(merged["discount_value"]),
            merged["usage_limit"],
        ):
            return Error(problem)
        if merged["usage_limit"] is not None and merged["usage_limit"] < row.used_count:
            return Error(
                Errors.invalid_argument(
                    f"Usage limit cannot be below current usage ({row.used_count})"
                )
            )

        for name, value in changes.items():
            setattr(row, name, value)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return Error(Errors.conflict(f"Discount code {merged['code']} already exists"))

        log.info("Discount code %s updated: %s", row.code, ", ".join(sorted(changes)))
        return Ok(row.to_domain())


async def delete_discount_code(req: DeleteDiscountCode, db: Database) -> Result[None, Failure]:
    async with db.session() as session:
        row = await session.get(DiscountCodeTable, req.discount_id)
        if row is None:
            return Error(Errors.not_found("Discount code not found"))
        await session.delete(row)
        await session.commit()
        log.info("Discount code %s deleted", row.code)
    return Ok(None)


def handlers() -> O.OpsBuilder:
    return (
        O.ops()
        .on(ValidateDiscount, validate_discount)
        .on(ListDiscountCodes, list_discount_codes)
        .on(CreateDiscountCode, create_discount_code)
        .on(UpdateDiscountCode, update_discount_code)
        .on(DeleteDiscountCode, delete_discount_code)
    )


__all__ = (
    "normalize_code",
    "evaluate",
    "find_code",
    "ValidateDiscount",
    "ListDiscountCodes",
    "CreateDiscountCode",
    "UpdateDiscountCode",
    "DeleteDiscountCode",
    "handlers",
)
