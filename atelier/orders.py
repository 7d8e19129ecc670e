"""
Orders — checkout and fulfilment.

Checkout turns the caller's cart into an order inside one transaction:

    read cart + live prices → subtotal → discount + conditional usage increment
    → order + frozen items → clear cart

Any failure along the way rolls the whole unit back: no order without a
cleared cart, no cleared cart without an order, no usage bump without both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier._types import Clock
from atelier.db import (
    CartItemTable,
    CartTable,
    Database,
    DiscountCodeTable,
    OrderItemTable,
    OrderTable,
)
from atelier.discounts import evaluate, find_code
from atelier.domain import Order, OrderStatus, Page
from atelier.errors import DiscountRejection, Errors, Failure
from atelier.money import ZERO, parse_price, quantize, render

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


class _Abort(Exception):
    """Raised inside the checkout transaction to roll it back with a failure."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PlaceOrder(O.Returning[Order, Failure]):
    user_id: int
    shipping_address: str
    discount_code: str | None = None


@dataclass(frozen=True, slots=True)
class ListMyOrders(O.Returning[Page[Order], Failure]):
    user_id: int
    page: int = 1
    limit: int = 10


@dataclass(frozen=True, slots=True)
class CheckPurchase(O.Returning[bool, Failure]):
    user_id: int
    product_id: int


@dataclass(frozen=True, slots=True)
class ListAllOrders(O.Returning[Page[Order], Failure]):
    status: OrderStatus | None = None
    skip: int = 0
    take: int = 20


@dataclass(frozen=True, slots=True)
class UpdateOrderStatus(O.Returning[Order, Failure]):
    order_id: int
    status: OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════════


async def delivered_purchase_exists(
    session: AsyncSession,
    user_id: int,
    product_id: int,
) -> bool:
    """True iff a DELIVERED order of ``user_id`` contains ``product_id``."""
    query = select(
        exists().where(
            OrderItemTable.order_id == OrderTable.id,
            OrderTable.user_id == user_id,
            OrderTable.status == OrderStatus.DELIVERED,
            OrderItemTable.product_id == product_id,
        )
    )
    return bool((await session.execute(query)).scalar())


async def _reload(session: AsyncSession, order_id: int) -> OrderTable:
    return (
        await session.execute(
            select(OrderTable)
            .where(OrderTable.id == order_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


async def place_order(req: PlaceOrder, db: Database, clock: Clock) -> Result[Order, Failure]:
    address = req.shipping_address.strip()
    if not address:
        return Error(Errors.invalid_argument("Shipping address is required"))
    code_input = (req.discount_code or "").strip()

    try:
        async with db.session() as session:
            async with session.begin():
                cart = (
                    await session.execute(
                        select(CartTable).where(CartTable.user_id == req.user_id)
                    )
                ).scalar_one_or_none()
                lines = list(cart.items) if cart is not None else []
                if cart is None or not lines:
                    raise _Abort(Errors.invalid_state("Cart is empty"))

                subtotal = quantize(
                    sum(
                        (parse_price(line.product.price) * line.quantity for line in lines),
                        start=ZERO,
                    )
                )

                applied_code: str | None = None
                discount = ZERO
                if code_input:
                    code_row = await find_code(session, code_input)
                    if code_row is None:
                        raise _Abort(Errors.not_found("Discount code not found"))
                    match evaluate(code_row.to_domain(), subtotal, clock.now()):
                        case Ok(amount):
                            discount = amount
                        case Error(failure):
                            raise _Abort(failure)

                    # the limit is enforced here, not by the read above
                    bumped = await session.execute(
                        update(DiscountCodeTable)
                        .where(
                            DiscountCodeTable.id == code_row.id,
                            or_(
                                DiscountCodeTable.usage_limit.is_(None),
                                DiscountCodeTable.used_count < DiscountCodeTable.usage_limit,
                            ),
                        )
                        .values(used_count=DiscountCodeTable.used_count + 1)
                        .execution_options(synchronize_session=False)
                    )
                    if bumped.rowcount == 0:
                        raise _Abort(
                            Errors.discount_rejected(
                                DiscountRejection.LIMIT_EXCEEDED,
                                "Discount code usage limit reached",
                            )
                        )
                    applied_code = code_row.code

                now = clock.now()
                order = OrderTable(
                    user_id=req.user_id,
                    total=render(max(subtotal - discount, ZERO)),
                    status=OrderStatus.PENDING,
                    shipping_address=address,
                    discount_code=applied_code,
                    discount_amount=render(discount) if applied_code else None,
                    created_at=now,
                    updated_at=now,
                    items=[
                        OrderItemTable(
                            product_id=line.product_id,
                            quantity=line.quantity,
                            price=line.product.price,
                        )
                        for line in lines
                    ],
                )
                session.add(order)
                await session.flush()
                await session.execute(
                    delete(CartItemTable).where(CartItemTable.cart_id == cart.id)
                )
                order_id = order.id

            placed = (await _reload(session, order_id)).to_domain()
    except _Abort as abort:
        log.info("Checkout for user %s refused: %s", req.user_id, abort.failure)
        return Error(abort.failure)

    log.info(
        "Order %s placed by user %s: %d item(s), total %s%s",
        placed.id,
        req.user_id,
        len(placed.items),
        placed.total,
        f", code {placed.discount_code}" if placed.discount_code else "",
    )
    return Ok(placed)


# ═══════════════════════════════════════════════════════════════════════════════
# Customer reads
# ═══════════════════════════════════════════════════════════════════════════════


async def list_my_orders(req: ListMyOrders, db: Database) -> Result[Page[Order], Failure]:
    # out-of-range paging is clamped, not rejected
    page = max(1, req.page)
    limit = min(MAX_PAGE_SIZE, max(1, req.limit))
    skip = (page - 1) * limit

    async with db.session() as session:
        total = (
            await session.execute(
                select(func.count()).select_from(OrderTable).where(OrderTable.user_id == req.user_id)
            )
        ).scalar_one()
        rows = (
            await session.execute(
                select(OrderTable)
                .where(OrderTable.user_id == req.user_id)
                .order_by(OrderTable.created_at.desc(), OrderTable.id.desc())
                .offset(skip)
                .limit(limit)
            )
        ).scalars().all()

    return Ok(Page(items=tuple(r.to_domain() for r in rows), total=total, skip=skip, take=limit))


async def check_purchase(req: CheckPurchase, db: Database) -> Result[bool, Failure]:
    async with db.session() as session:
        return Ok(await delivered_purchase_exists(session, req.user_id, req.product_id))


# ═══════════════════════════════════════════════════════════════════════════════
# Back-office
# ═══════════════════════════════════════════════════════════════════════════════


async def list_all_orders(req: ListAllOrders, db: Database) -> Result[Page[Order], Failure]:
    if req.skip < 0 or not 1 <= req.take <= 100:
        return Error(Errors.invalid_argument("skip must be >= 0 and take within 1..100"))

    query = select(OrderTable)
    if req.status is not None:
        query = query.where(OrderTable.status == req.status)

    async with db.session() as session:
        total = (
            await session.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        rows = (
            await session.execute(
                query.order_by(OrderTable.created_at.desc(), OrderTable.id.desc())
                .offset(req.skip)
                .limit(req.take)
            )
        ).scalars().all()

    return Ok(
        Page(
            items=tuple(r.to_domain(with_buyer=True) for r in rows),
            total=total,
            skip=req.skip,
            take=req.take,
        )
    )


async def update_order_status(
    req: UpdateOrderStatus,
    db: Database,
    clock: Clock,
) -> Result[Order, Failure]:
    # any state may follow any other
    async with db.session() as session:
        row = await session.get(OrderTable, req.order_id)
        if row is None:
            return Error(Errors.not_found("Order not found"))

        previous = row.status
        row.status = req.status
        row.updated_at = clock.now()
        await session.commit()

        log.info("Order %s status %s -> %s", row.id, previous.value, req.status.value)
        return Ok(row.to_domain(with_buyer=True))


def handlers() -> O.OpsBuilder:
    return (
        O.ops()
        .on(PlaceOrder, place_order)
        .on(ListMyOrders, list_my_orders)
        .on(CheckPurchase, check_purchase)
        .on(ListAllOrders, list_all_orders)
        .on(UpdateOrderStatus, update_order_status)
    )


__all__ = (
    "PlaceOrder",
    "ListMyOrders",
    "CheckPurchase",
    "ListAllOrders",
    "UpdateOrderStatus",
    "delivered_purchase_exists",
    "handlers",
)
