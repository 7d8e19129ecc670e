"""
Cart — per-user basket of product lines.

One cart per user, created lazily on first add. One line per product;
adding an existing product increments its quantity. Subtotal is always
computed from live product prices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier.db import CartItemTable, CartTable, Database, ProductTable
from atelier.domain import CartLine, CartView
from atelier.errors import Errors, Failure
from atelier.money import ZERO, parse_price, quantize

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class GetCart(O.Returning[CartView, Failure]):
    user_id: int


@dataclass(frozen=True, slots=True)
class AddToCart(O.Returning[CartLine, Failure]):
    user_id: int
    product_id: int
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class SetCartQuantity(O.Returning[CartLine, Failure]):
    user_id: int
    product_id: int
    quantity: int


@dataclass(frozen=True, slots=True)
class RemoveFromCart(O.Returning[None, Failure]):
    user_id: int
    product_id: int


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


async def _cart_id(session: AsyncSession, user_id: int) -> int | None:
    return (
        await session.execute(select(CartTable.id).where(CartTable.user_id == user_id))
    ).scalar_one_or_none()


async def _line(session: AsyncSession, cart_id: int, product_id: int) -> CartLine:
    row = (
        await session.execute(
            select(CartItemTable)
            .where(CartItemTable.cart_id == cart_id, CartItemTable.product_id == product_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    return row.to_domain()


def build_view(lines: tuple[CartLine, ...]) -> CartView:
    subtotal = sum(
        (parse_price(line.product.price) * line.quantity for line in lines),
        start=ZERO,
    )
    return CartView(items=lines, subtotal=quantize(subtotal))


# ═══════════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════════


async def get_cart(req: GetCart, db: Database) -> Result[CartView, Failure]:
    async with db.session() as session:
        cart = (
            await session.execute(select(CartTable).where(CartTable.user_id == req.user_id))
        ).scalar_one_or_none()
        if cart is None:
            return Ok(CartView.empty())
        return Ok(build_view(tuple(item.to_domain() for item in cart.items)))


async def _add_line(req: AddToCart, db: Database) -> Result[CartLine, Failure]:
    async with db.session() as session, session.begin():
        if await session.get(ProductTable, req.product_id) is None:
            return Error(Errors.not_found("Product not found"))

        cart_id = await _cart_id(session, req.user_id)
        if cart_id is None:
            cart = CartTable(user_id=req.user_id)
            session.add(cart)
            await session.flush()
            cart_id = cart.id

        # increment in one statement; insert only when no line exists
        bumped = await session.execute(
            update(CartItemTable)
            .where(
                CartItemTable.cart_id == cart_id,
                CartItemTable.product_id == req.product_id,
            )
            .values(quantity=CartItemTable.quantity + req.quantity)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            session.add(
                CartItemTable(cart_id=cart_id, product_id=req.product_id, quantity=req.quantity)
            )
            await session.flush()

        return Ok(await _line(session, cart_id, req.product_id))


async def add_to_cart(req: AddToCart, db: Database) -> Result[CartLine, Failure]:
    if req.quantity < 1:
        return Error(Errors.invalid_argument("Quantity must be at least 1"))

    try:
        return await _add_line(req, db)
    except IntegrityError:
        # a concurrent first add created the cart or the line; the second pass increments it
        log.info("Cart conflict for user %s, retrying add", req.user_id)
        return await _add_line(req, db)


async def set_cart_quantity(req: SetCartQuantity, db: Database) -> Result[CartLine, Failure]:
    if req.quantity < 1:
        return Error(Errors.invalid_argument("Quantity must be at least 1"))

    async with db.session() as session, session.begin():
        cart_id = await _cart_id(session, req.user_id)
        if cart_id is None:
            return Error(Errors.not_found("Cart not found"))

        changed = await session.execute(
            update(CartItemTable)
            .where(
                CartItemTable.cart_id == cart_id,
                CartItemTable.product_id == req.product_id,
            )
            .values(quantity=req.quantity)
            .execution_options(synchronize_session=False)
        )
        if changed.rowcount == 0:
            return Error(Errors.not_found("Item not in cart"))

        return Ok(await _line(session, cart_id, req.product_id))


async def remove_from_cart(req: RemoveFromCart, db: Database) -> Result[None, Failure]:
    async with db.session() as session, session.begin():
        cart_id = await _cart_id(session, req.user_id)
        if cart_id is None:
            return Error(Errors.not_found("Cart not found"))

        removed = await session.execute(
            delete(CartItemTable).where(
                CartItemTable.cart_id == cart_id,
                CartItemTable.product_id == req.product_id,
            )
        )
        if removed.rowcount == 0:
            return Error(Errors.not_found("Item not in cart"))
        return Ok(None)


def handlers() -> O.OpsBuilder:
    return (
        O.ops()
        .on(GetCart, get_cart)
        .on(AddToCart, add_to_cart)
        .on(SetCartQuantity, set_cart_quantity)
        .on(RemoveFromCart, remove_from_cart)
    )


__all__ = (
    "GetCart",
    "AddToCart",
    "SetCartQuantity",
    "RemoveFromCart",
    "build_view",
    "handlers",
)
