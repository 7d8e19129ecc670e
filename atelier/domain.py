"""Domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from atelier.money import ZERO


class Tone(StrEnum):
    AMETHYST = "amethyst"
    ROSE = "rose"
    AQUA = "aqua"
    AMBER = "amber"


class Category(StrEnum):
    RINGS = "RINGS"
    NECKLACES = "NECKLACES"
    EARRINGS = "EARRINGS"
    BRACELETS = "BRACELETS"


class DiscountType(StrEnum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class OrderStatus(StrEnum):
    """
    Fulfilment states.

    PENDING → CONFIRMED → SHIPPED → DELIVERED, or → CANCELLED. The back-office
    may set any state from any other; only DELIVERED unlocks reviews.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProductImage:
    src: str
    alt: str


@dataclass(frozen=True, slots=True)
class Product:
    id: int
    name: str
    subtitle: str
    price: str
    tone: Tone
    tag: str | None
    category: Category | None
    images: tuple[ProductImage, ...]
    created_at: datetime
    updated_at: datetime
    average_rating: float = 0.0
    total_reviews: int = 0


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class User:
    id: int
    email: str
    name: str | None
    phone_number: str | None


@dataclass(frozen=True, slots=True)
class TokenPair:
    access: str
    refresh: str


@dataclass(frozen=True, slots=True)
class SessionGrant:
    user: User
    tokens: TokenPair


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartLine:
    id: int
    product: Product
    quantity: int


@dataclass(frozen=True, slots=True)
class CartView:
    items: tuple[CartLine, ...]
    subtotal: Decimal

    @classmethod
    def empty(cls) -> CartView:
        return cls(items=(), subtotal=ZERO)


# ═══════════════════════════════════════════════════════════════════════════════
# Discounts
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DiscountCode:
    id: int
    code: str
    description: str | None
    discount_type: DiscountType
    discount_value: Decimal
    is_active: bool
    expires_at: datetime | None
    usage_limit: int | None
    used_count: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class DiscountQuote:
    code: DiscountCode
    amount: Decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderItem:
    id: int
    product: Product
    quantity: int
    price: str  # frozen at checkout


@dataclass(frozen=True, slots=True)
class Order:
    id: int
    user_id: int
    total: str
    status: OrderStatus
    shipping_address: str
    discount_code: str | None
    discount_amount: str | None
    items: tuple[OrderItem, ...]
    created_at: datetime
    updated_at: datetime
    buyer: User | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Review:
    id: int
    user_id: int
    product_id: int
    rating: int
    comment: str | None
    created_at: datetime
    author: User


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    reviews: tuple[Review, ...]
    total_reviews: int
    average_rating: float


# ═══════════════════════════════════════════════════════════════════════════════
# Paging
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Page[T]:
    items: tuple[T, ...]
    total: int
    skip: int
    take: int


__all__ = (
    "Tone",
    "Category",
    "DiscountType",
    "OrderStatus",
    "ProductImage",
    "Product",
    "User",
    "TokenPair",
    "SessionGrant",
    "CartLine",
    "CartView",
    "DiscountCode",
    "DiscountQuote",
    "OrderItem",
    "Order",
    "Review",
    "ReviewSummary",
    "Page",
)
