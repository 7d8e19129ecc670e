"""
Catalog — product listing and back-office product management.

Listings carry each product's review aggregate. Price and rating bounds are
applied to the fetched page because prices are stored as free-form strings.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier._types import Clock
from atelier.db import Database, ProductImageTable, ProductTable, ReviewTable
from atelier.domain import Category, Page, Product, ProductImage, Tone
from atelier.errors import Errors, Failure
from atelier.money import PriceFormatError, is_price, parse_price
from atelier.reviews import average_rating

log = logging.getLogger(__name__)

DEFAULT_TAKE = 24
MAX_TAKE = 100

SORT_COLUMNS = {
    "createdAt": ProductTable.created_at,
    "updatedAt": ProductTable.updated_at,
    "name": ProductTable.name,
    # string ordering, same as the stored column
    "price": ProductTable.price,
    "tone": ProductTable.tone,
    "tag": ProductTable.tag,
}


def derive_tone(name: str) -> Tone:
    """Pick a tone from words in the product name; aqua when nothing matches."""
    lowered = name.lower()
    for word, tone in (
        ("amethyst", Tone.AMETHYST),
        ("rose", Tone.ROSE),
        ("amber", Tone.AMBER),
        ("aqua", Tone.AQUA),
        ("blue", Tone.AQUA),
    ):
        if word in lowered:
            return tone
    return Tone.AQUA


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ListProducts(O.Returning[Page[Product], Failure]):
    q: str | None = None
    tag: str | None = None
    tone: Tone | None = None
    category: Category | None = None
    sort_by: str = "createdAt"
    order: str = "desc"
    skip: int = 0
    take: int = DEFAULT_TAKE
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_rating: float | None = None


@dataclass(frozen=True, slots=True)
class GetProduct(O.Returning[Product, Failure]):
    product_id: int


@dataclass(frozen=True, slots=True)
class CreateProduct(O.Returning[Product, Failure]):
    name: str
    price: str
    subtitle: str = ""
    tone: Tone | None = None
    tag: str | None = None
    category: Category | None = None
    images: tuple[ProductImage, ...] = ()


UPDATABLE = frozenset({"name", "subtitle", "price", "tone", "tag", "category", "images"})


@dataclass(frozen=True, slots=True)
class UpdateProduct(O.Returning[Product, Failure]):
    """Partial update; ``images`` replaces the whole ordered list."""
    product_id: int
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DeleteProduct(O.Returning[Product, Failure]):
    product_id: int


# ═══════════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════════


async def rating_stats(
    session: AsyncSession,
    product_ids: Sequence[int],
) -> dict[int, tuple[float, int]]:
    """product id → (average rating, review count) for products with reviews."""
    if not product_ids:
        return {}
    rows = await session.execute(
        select(
            ReviewTable.product_id,
            func.sum(ReviewTable.rating),
            func.count(ReviewTable.id),
        )
        .where(ReviewTable.product_id.in_(product_ids))
        .group_by(ReviewTable.product_id)
    )
    return {
        product_id: (average_rating(int(total), count), count)
        for product_id, total, count in rows.all()
    }


def _with_stats(row: ProductTable, stats: dict[int, tuple[float, int]]) -> Product:
    avg, count = stats.get(row.id, (0.0, 0))
    return row.to_domain(average_rating=avg, total_reviews=count)


async def _load(session: AsyncSession, product_id: int) -> Product | None:
    row = (
        await session.execute(
            select(ProductTable)
            .where(ProductTable.id == product_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if row is None:
        return None
    return _with_stats(row, await rating_stats(session, [row.id]))


async def product_names(db: Database) -> set[str]:
    async with db.session() as session:
        return set((await session.execute(select(ProductTable.name))).scalars().all())


def _price_within(product: Product, low: Decimal | None, high: Decimal | None) -> bool:
    try:
        price = parse_price(product.price)
    except PriceFormatError:
        return False
    if low is not None and price < low:
        return False
    if high is not None and price > high:
        return False
    return True


def _image_rows(images: Sequence[ProductImage]) -> list[ProductImageTable]:
    return [
        ProductImageTable(src=image.src, alt=image.alt, position=position)
        for position, image in enumerate(images)
    ]


def _check_fields(name: str, price: str) -> Failure | None:
    if not name.strip():
        return Errors.invalid_argument("Product name is required")
    if not is_price(price):
        return Errors.invalid_argument(f"Invalid price: {price!r}")
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════════


async def list_products(req: ListProducts, db: Database) -> Result[Page[Product], Failure]:
    query = select(ProductTable)
    if req.q and req.q.strip():
        needle = f"%{req.q.strip()}%"
        query = query.where(
            or_(ProductTable.name.ilike(needle), ProductTable.subtitle.ilike(needle))
        )
    if req.tag and req.tag.strip():
        query = query.where(ProductTable.tag == req.tag.strip())
    if req.tone is not None:
        query = query.where(ProductTable.tone == req.tone)
    if req.category is not None:
        query = query.where(ProductTable.category == req.category)

    column = SORT_COLUMNS.get(req.sort_by, ProductTable.created_at)
    ordering = column.asc() if req.order == "asc" else column.desc()
    # out-of-range paging is clamped, not rejected
    skip = max(0, req.skip)
    take = min(MAX_TAKE, max(1, req.take))

    async with db.session() as session:
        total = (
            await session.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        rows = (
            await session.execute(
                query.order_by(ordering, ProductTable.id.desc()).offset(skip).limit(take)
            )
        ).scalars().all()
        stats = await rating_stats(session, [r.id for r in rows])

    products = [_with_stats(r, stats) for r in rows]
    if req.min_rating is not None:
        products = [p for p in products if p.average_rating >= req.min_rating]
    if req.min_price is not None or req.max_price is not None:
        products = [p for p in products if _price_within(p, req.min_price, req.max_price)]

    return Ok(Page(items=tuple(products), total=total, skip=skip, take=take))


async def get_product(req: GetProduct, db: Database) -> Result[Product, Failure]:
    async with db.session() as session:
        product = await _load(session, req.product_id)
    if product is None:
        return Error(Errors.not_found("Product not found"))
    return Ok(product)


async def create_product(req: CreateProduct, db: Database, clock: Clock) -> Result[Product, Failure]:
    if problem := _check_fields(req.name, req.price):
        return Error(problem)

    now = clock.now()
    row = ProductTable(
        name=req.name.strip(),
        subtitle=req.subtitle,
        price=req.price.strip(),
        tone=req.tone or derive_tone(req.name),
        tag=req.tag,
        category=req.category,
        created_at=now,
        updated_at=now,
        images=_image_rows(req.images),
    )
    async with db.session() as session:
        session.add(row)
        await session.commit()
        product = await _load(session, row.id)

    if product is None:
        return Error(Errors.internal())
    log.info("Product %s created: %s", product.id, product.name)
    return Ok(product)


async def update_product(req: UpdateProduct, db: Database, clock: Clock) -> Result[Product, Failure]:
    unknown = set(req.changes) - UPDATABLE
    if unknown:
        return Error(Errors.invalid_argument(f"Unknown fields: {', '.join(sorted(unknown))}"))

    async with db.session() as session:
        row = await session.get(ProductTable, req.product_id)
        if row is None:
            return Error(Errors.not_found("Product not found"))

        changes = dict(req.changes)
        if problem := _check_fields(
            changes.get("name", row.name), changes.get("price", row.price)
        ):
            return Error(problem)

        for name, value in changes.items():
            if name == "images":
                row.images = _image_rows(value)
            elif name in ("name", "price"):
                setattr(row, name, value.strip())
            else:
                setattr(row, name, value)
        row.updated_at = clock.now()
        await session.commit()
        product = await _load(session, row.id)

    if product is None:
        return Error(Errors.internal())
    log.info("Product %s updated: %s", req.product_id, ", ".join(sorted(changes)))
    return Ok(product)


async def delete_product(req: DeleteProduct, db: Database) -> Result[Product, Failure]:
    async with db.session() as session:
        product = await _load(session, req.product_id)
        if product is None:
            return Error(Errors.not_found("Product not found"))

        row = await session.get(ProductTable, req.product_id)
        await session.delete(row)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return Error(Errors.conflict("Product appears in existing orders and cannot be deleted"))

    log.info("Product %s deleted", product.id)
    return Ok(product)


def handlers() -> O.OpsBuilder:
    return (
        O.ops()
        .on(ListProducts, list_products)
        .on(GetProduct, get_product)
        .on(CreateProduct, create_product)
        .on(UpdateProduct, update_product)
        .on(DeleteProduct, delete_product)
    )


__all__ = (
    "SORT_COLUMNS",
    "derive_tone",
    "rating_stats",
    "product_names",
    "ListProducts",
    "GetProduct",
    "CreateProduct",
    "UpdateProduct",
    "DeleteProduct",
    "handlers",
)
