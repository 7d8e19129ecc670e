"""
Database layer — SQLAlchemy models and session factory.

Every datetime column holds naive UTC. Prices and computed totals are decimal
strings; discount values are numerics.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from atelier._types import utcnow
from atelier import domain as D

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


def _enum(cls: type[Any], name: str) -> SAEnum:
    return SAEnum(cls, name=name, values_callable=lambda e: [m.value for m in e])


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════


class UserTable(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_domain(self) -> D.User:
        return D.User(
            id=self.id,
            email=self.email,
            name=self.name,
            phone_number=self.phone_number,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class ProductTable(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    subtitle: Mapped[str] = mapped_column(String(400), nullable=False, default="")
    price: Mapped[str] = mapped_column(String(40), nullable=False)
    tone: Mapped[D.Tone] = mapped_column(_enum(D.Tone, "tone"), nullable=False)
    tag: Mapped[str | None] = mapped_column(String(80), nullable=True)
    category: Mapped[D.Category | None] = mapped_column(
        _enum(D.Category, "category"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    images: Mapped[list[ProductImageTable]] = relationship(
        back_populates="product",
        order_by="ProductImageTable.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_domain(self, average_rating: float = 0.0, total_reviews: int = 0) -> D.Product:
        return D.Product(
            id=self.id,
            name=self.name,
            subtitle=self.subtitle,
            price=self.price,
            tone=self.tone,
            tag=self.tag,
            category=self.category,
            images=tuple(D.ProductImage(src=i.src, alt=i.alt) for i in self.images),
            created_at=self.created_at,
            updated_at=self.updated_at,
            average_rating=average_rating,
            total_reviews=total_reviews,
        )


class ProductImageTable(Base):
    __tablename__ = "product_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    src: Mapped[str] = mapped_column(Text, nullable=False)
    alt: Mapped[str] = mapped_column(String(400), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped[ProductTable] = relationship(back_populates="images")


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartTable(Base):
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    items: Mapped[list[CartItemTable]] = relationship(
        order_by="CartItemTable.id",
        lazy="selectin",
        passive_deletes=True,
    )


class CartItemTable(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cart_id: Mapped[int] = mapped_column(
        ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product: Mapped[ProductTable] = relationship(lazy="selectin")

    def to_domain(self) -> D.CartLine:
        return D.CartLine(id=self.id, product=self.product.to_domain(), quantity=self.quantity)


# ═══════════════════════════════════════════════════════════════════════════════
# Discounts
# ═══════════════════════════════════════════════════════════════════════════════


class DiscountCodeTable(Base):
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_discount_codes_usage",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[D.DiscountType] = mapped_column(
        _enum(D.DiscountType, "discount_type"), nullable=False
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_domain(self) -> D.DiscountCode:
        return D.DiscountCode(
            id=self.id,
            code=self.code,
            description=self.description,
            discount_type=self.discount_type,
            discount_value=Decimal(self.discount_value),
            is_active=self.is_active,
            expires_at=self.expires_at,
            usage_limit=self.usage_limit,
            used_count=self.used_count,
            created_at=self.created_at,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderTable(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    total: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[D.OrderStatus] = mapped_column(
        _enum(D.OrderStatus, "order_status"),
        nullable=False,
        default=D.OrderStatus.PENDING,
    )
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    discount_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_amount: Mapped[str | None] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    items: Mapped[list[OrderItemTable]] = relationship(
        order_by="OrderItemTable.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    user: Mapped[UserTable] = relationship(lazy="selectin")

    def to_domain(self, with_buyer: bool = False) -> D.Order:
        return D.Order(
            id=self.id,
            user_id=self.user_id,
            total=self.total,
            status=self.status,
            shipping_address=self.shipping_address,
            discount_code=self.discount_code,
            discount_amount=self.discount_amount,
            items=tuple(i.to_domain() for i in self.items),
            created_at=self.created_at,
            updated_at=self.updated_at,
            buyer=self.user.to_domain() if with_buyer else None,
        )


class OrderItemTable(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # RESTRICT: a product that was sold cannot disappear from order history
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[str] = mapped_column(String(40), nullable=False)

    product: Mapped[ProductTable] = relationship(lazy="selectin")

    def to_domain(self) -> D.OrderItem:
        return D.OrderItem(
            id=self.id,
            product=self.product.to_domain(),
            quantity=self.quantity,
            price=self.price,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════════════════════════


class ReviewTable(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_reviews_user_product"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped[UserTable] = relationship(lazy="selectin")

    def to_domain(self) -> D.Review:
        return D.Review(
            id=self.id,
            user_id=self.user_id,
            product_id=self.product_id,
            rating=self.rating,
            comment=self.comment,
            created_at=self.created_at,
            author=self.user.to_domain(),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Database:
    """Engine + session factory, injected into every handler that touches storage."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def connect(url: str, echo: bool = False) -> Database:
    """Build engine and session factory for ``url`` without touching the schema."""
    kwargs: dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite") and ":memory:" in url:
        # one shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    log.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return Database(engine=engine, session_factory=async_sessionmaker(engine, expire_on_commit=False))


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
    echo: bool = False,
) -> Database:
    """Create database and tables; return the handle."""
    db = connect(url, echo=echo)
    await db.create_all()
    return db


__all__ = (
    "Base",
    "UserTable",
    "ProductTable",
    "ProductImageTable",
    "CartTable",
    "CartItemTable",
    "DiscountCodeTable",
    "OrderTable",
    "OrderItemTable",
    "ReviewTable",
    "Database",
    "connect",
    "create_database",
)
