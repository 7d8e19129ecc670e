"""
Reviews — purchase-gated, one per (user, product).

The gate is checked before insert; the uniqueness constraint closes the race
between two concurrent submissions from the same user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier._types import Clock
from atelier.db import Database, ProductTable, ReviewTable
from atelier.domain import Review, ReviewSummary
from atelier.errors import Errors, Failure
from atelier.orders import delivered_purchase_exists

log = logging.getLogger(__name__)


async def can_review(session: AsyncSession, user_id: int, product_id: int) -> bool:
    return await delivered_purchase_exists(session, user_id, product_id)


def average_rating(rating_sum: int, count: int) -> float:
    """Mean rounded half-up to one decimal; 0.0 when there are none."""
    if not count:
        return 0.0
    mean = Decimal(rating_sum) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


# ═══════════════════════════════════════════════════════════════════════════════
# Ops
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SubmitReview(O.Returning[Review, Failure]):
    user_id: int
    product_id: int
    rating: int
    comment: str | None = None


@dataclass(frozen=True, slots=True)
class ListReviews(O.Returning[ReviewSummary, Failure]):
    product_id: int


# ═══════════════════════════════════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════════════════════════════════


async def submit_review(req: SubmitReview, db: Database, clock: Clock) -> Result[Review, Failure]:
    if not 1 <= req.rating <= 5:
        return Error(Errors.invalid_argument("Rating must be between 1 and 5"))
    comment = (req.comment or "").strip() or None

    async with db.session() as session:
        if await session.get(ProductTable, req.product_id) is None:
            return Error(Errors.not_found("Product not found"))
        if not await can_review(session, req.user_id, req.product_id):
            return Error(
                Errors.forbidden("Only customers with a delivered order can review this product")
            )

        row = ReviewTable(
            user_id=req.user_id,
            product_id=req.product_id,
            rating=req.rating,
            comment=comment,
            created_at=clock.now(),
        )
        session.add(row)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return Error(Errors.conflict("You have already reviewed this product"))

        saved = (
            await session.execute(
                select(ReviewTable)
                .where(ReviewTable.id == row.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        log.info("User %s reviewed product %s (%d/5)", req.user_id, req.product_id, req.rating)
        return Ok(saved.to_domain())


async def list_reviews(req: ListReviews, db: Database) -> Result[ReviewSummary, Failure]:
    async with db.session() as session:
        rows = (
            await session.execute(
                select(ReviewTable)
                .where(ReviewTable.product_id == req.product_id)
                .order_by(ReviewTable.created_at.desc(), ReviewTable.id.desc())
            )
        ).scalars().all()

    reviews = tuple(r.to_domain() for r in rows)
    return Ok(
        ReviewSummary(
            reviews=reviews,
            total_reviews=len(reviews),
            average_rating=average_rating(sum(r.rating for r in reviews), len(reviews)),
        )
    )


def handlers() -> O.OpsBuilder:
    return O.ops().on(SubmitReview, submit_review).on(ListReviews, list_reviews)


__all__ = (
    "can_review",
    "average_rating",
    "SubmitReview",
    "ListReviews",
    "handlers",
)
