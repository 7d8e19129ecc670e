"""
HTTP schemas — camelCase JSON in, camelCase JSON out.

Request models validate once and build an op with ``to_domain(caller)``;
``caller`` is whatever the route guard produced (user id, admin principal,
header value, or None on public routes). Response models render a success
value with ``from_domain``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, RootModel, field_validator
from pydantic.alias_generators import to_camel

from atelier.cart import AddToCart, GetCart, RemoveFromCart, SetCartQuantity
from atelier.catalog import CreateProduct, DeleteProduct, GetProduct, ListProducts, UpdateProduct
from atelier.discounts import (
    CreateDiscountCode,
    DeleteDiscountCode,
    ListDiscountCodes,
    UpdateDiscountCode,
    ValidateDiscount,
)
from atelier.domain import (
    CartLine,
    CartView,
    Category,
    DiscountCode,
    DiscountQuote,
    DiscountType,
    Order,
    OrderItem,
    OrderStatus,
    Page,
    Product,
    ProductImage,
    Review,
    ReviewSummary,
    SessionGrant,
    TokenPair,
    Tone,
    User,
)
from atelier.money import render
from atelier.orders import CheckPurchase, ListAllOrders, ListMyOrders, PlaceOrder, UpdateOrderStatus
from atelier.reviews import ListReviews, SubmitReview
from atelier.users import AdminLogin, MockLogin, RefreshSession, SignIn


def _as_text(value: Any) -> Any:
    # admins send prices as numbers or strings
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


PriceText = Annotated[str, BeforeValidator(_as_text)]

# integer columns and SQLite bind parameters overflow past this range
Int32 = Annotated[int, Field(ge=-(2**31), le=2**31 - 1)]


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _changes(model: BaseModel, skip: frozenset[str], required: frozenset[str]) -> dict[str, Any]:
    """Fields the client actually sent; nulls are dropped for non-nullable ones."""
    changes: dict[str, Any] = {}
    for name in model.model_fields_set - skip:
        value = getattr(model, name)
        if value is None and name in required:
            continue
        changes[name] = value
    return changes


# ═══════════════════════════════════════════════════════════════════════════════
# Shared output pieces
# ═══════════════════════════════════════════════════════════════════════════════


class ImageSchema(Schema):
    src: str
    alt: str = ""


class ProductOut(Schema):
    id: int
    name: str
    subtitle: str
    price: str
    tone: Tone
    tag: str | None
    category: Category | None
    images: list[ImageSchema]
    created_at: datetime
    updated_at: datetime
    average_rating: float
    total_reviews: int

    @classmethod
    def from_domain(cls, dom: Product) -> ProductOut:
        return cls(
            id=dom.id,
            name=dom.name,
            subtitle=dom.subtitle,
            price=dom.price,
            tone=dom.tone,
            tag=dom.tag,
            category=dom.category,
            images=[ImageSchema(src=i.src, alt=i.alt) for i in dom.images],
            created_at=dom.created_at,
            updated_at=dom.updated_at,
            average_rating=dom.average_rating,
            total_reviews=dom.total_reviews,
        )


class UserOut(Schema):
    id: int
    email: str
    name: str | None
    phone_number: str | None

    @classmethod
    def from_domain(cls, dom: User) -> UserOut:
        return cls(id=dom.id, email=dom.email, name=dom.name, phone_number=dom.phone_number)


class SuccessOut(Schema):
    success: bool = True

    @classmethod
    def from_domain(cls, dom: object) -> SuccessOut:
        return cls()


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartQuery(Schema):
    def to_domain(self, caller: int) -> GetCart:
        return GetCart(user_id=caller)


class AddToCartIn(Schema):
    product_id: Int32
    quantity: Int32 = 1

    def to_domain(self, caller: int) -> AddToCart:
        return AddToCart(user_id=caller, product_id=self.product_id, quantity=self.quantity)


class SetCartQuantityIn(Schema):
    product_id: Int32
    quantity: Int32

    def to_domain(self, caller: int) -> SetCartQuantity:
        return SetCartQuantity(user_id=caller, product_id=self.product_id, quantity=self.quantity)


class RemoveFromCartIn(Schema):
    product_id: Int32

    def to_domain(self, caller: int) -> RemoveFromCart:
        return RemoveFromCart(user_id=caller, product_id=self.product_id)


class CartLineOut(Schema):
    id: int
    product_id: int
    quantity: int
    product: ProductOut

    @classmethod
    def from_domain(cls, dom: CartLine) -> CartLineOut:
        return cls(
            id=dom.id,
            product_id=dom.product.id,
            quantity=dom.quantity,
            product=ProductOut.from_domain(dom.product),
        )


class CartOut(Schema):
    items: list[CartLineOut]
    total: str

    @classmethod
    def from_domain(cls, dom: CartView) -> CartOut:
        return cls(
            items=[CartLineOut.from_domain(line) for line in dom.items],
            total=render(dom.subtotal),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrdersQuery(Schema):
    page: Int32 = 1
    limit: Int32 = 10
    product_id: Int32 | None = None

    def to_domain(self, caller: int) -> ListMyOrders | CheckPurchase:
        if self.product_id is not None:
            return CheckPurchase(user_id=caller, product_id=self.product_id)
        return ListMyOrders(user_id=caller, page=self.page, limit=self.limit)


class PlaceOrderIn(Schema):
    shipping_address: str
    discount_code: str | None = None

    def to_domain(self, caller: int) -> PlaceOrder:
        return PlaceOrder(
            user_id=caller,
            shipping_address=self.shipping_address,
            discount_code=self.discount_code,
        )


class OrderItemOut(Schema):
    id: int
    product_id: int
    quantity: int
    price: str
    product: ProductOut

    @classmethod
    def from_domain(cls, dom: OrderItem) -> OrderItemOut:
        return cls(
            id=dom.id,
            product_id=dom.product.id,
            quantity=dom.quantity,
            price=dom.price,
            product=ProductOut.from_domain(dom.product),
        )


class OrderOut(Schema):
    id: int
    user_id: int
    total: str
    status: OrderStatus
    shipping_address: str
    discount_code: str | None
    discount_amount: str | None
    items: list[OrderItemOut]
    created_at: datetime
    updated_at: datetime
    user: UserOut | None = None

    @classmethod
    def from_domain(cls, dom: Order) -> OrderOut:
        return cls(
            id=dom.id,
            user_id=dom.user_id,
            total=dom.total,
            status=dom.status,
            shipping_address=dom.shipping_address,
            discount_code=dom.discount_code,
            discount_amount=dom.discount_amount,
            items=[OrderItemOut.from_domain(i) for i in dom.items],
            created_at=dom.created_at,
            updated_at=dom.updated_at,
            user=UserOut.from_domain(dom.buyer) if dom.buyer else None,
        )


class OrderListOut(RootModel[list[OrderOut]]):
    @classmethod
    def from_domain(cls, dom: Page[Order]) -> OrderListOut:
        return cls([OrderOut.from_domain(o) for o in dom.items])


class PurchaseOut(Schema):
    has_purchased: bool


class MyOrdersReply:
    """``GET /api/orders`` answers a list, or a purchase check when ``productId`` is given."""

    @classmethod
    def from_domain(cls, dom: Page[Order] | bool) -> BaseModel:
        if isinstance(dom, bool):
            return PurchaseOut(has_purchased=dom)
        return OrderListOut.from_domain(dom)


class AdminOrdersQuery(Schema):
    status: OrderStatus | None = None
    skip: Int32 = 0
    take: Int32 = 50

    @field_validator("status", mode="before")
    @classmethod
    def _all_means_any(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            if value in ("", "ALL"):
                return None
        return value

    def to_domain(self, caller: object) -> ListAllOrders:
        return ListAllOrders(status=self.status, skip=self.skip, take=self.take)


class PaginationOut(Schema):
    skip: int
    take: int


class AdminOrdersOut(Schema):
    orders: list[OrderOut]
    total: int
    pagination: PaginationOut

    @classmethod
    def from_domain(cls, dom: Page[Order]) -> AdminOrdersOut:
        return cls(
            orders=[OrderOut.from_domain(o) for o in dom.items],
            total=dom.total,
            pagination=PaginationOut(skip=dom.skip, take=dom.take),
        )


class OrderStatusIn(Schema):
    order_id: Int32
    status: OrderStatus

    def to_domain(self, caller: object) -> UpdateOrderStatus:
        return UpdateOrderStatus(order_id=self.order_id, status=self.status)


# ═══════════════════════════════════════════════════════════════════════════════
# Discounts
# ═══════════════════════════════════════════════════════════════════════════════


class ValidateDiscountIn(Schema):
    code: str = Field(min_length=1)
    cart_total: Decimal

    def to_domain(self, caller: int) -> ValidateDiscount:
        return ValidateDiscount(code=self.code, cart_total=self.cart_total)


class DiscountQuoteOut(Schema):
    code: str
    discount_type: DiscountType
    discount_value: float
    discount_amount: str
    description: str | None

    @classmethod
    def from_domain(cls, dom: DiscountQuote) -> DiscountQuoteOut:
        return cls(
            code=dom.code.code,
            discount_type=dom.code.discount_type,
            discount_value=float(dom.code.discount_value),
            discount_amount=render(dom.amount),
            description=dom.code.description,
        )


class DiscountCodeOut(Schema):
    id: int
    code: str
    description: str | None
    discount_type: DiscountType
    discount_value: float
    is_active: bool
    expires_at: datetime | None
    usage_limit: int | None
    used_count: int
    created_at: datetime

    @classmethod
    def from_domain(cls, dom: DiscountCode) -> DiscountCodeOut:
        return cls(
            id=dom.id,
            code=dom.code,
            description=dom.description,
            discount_type=dom.discount_type,
            discount_value=float(dom.discount_value),
            is_active=dom.is_active,
            expires_at=dom.expires_at,
            usage_limit=dom.usage_limit,
            used_count=dom.used_count,
            created_at=dom.created_at,
        )


class DiscountListOut(Schema):
    discount_codes: list[DiscountCodeOut]
    total: int

    @classmethod
    def from_domain(cls, dom: Page[DiscountCode]) -> DiscountListOut:
        return cls(
            discount_codes=[DiscountCodeOut.from_domain(c) for c in dom.items],
            total=dom.total,
        )


class DiscountsQuery(Schema):
    skip: Int32 = 0
    take: Int32 = 50
    active: bool = False

    def to_domain(self, caller: object) -> ListDiscountCodes:
        return ListDiscountCodes(skip=self.skip, take=self.take, active_only=self.active)


class DiscountCodeIn(Schema):
    code: str = Field(min_length=1)
    discount_type: DiscountType
    discount_value: Decimal
    description: str | None = None
    is_active: bool = True
    expires_at: datetime | None = None
    usage_limit: Int32 | None = None

    def to_domain(self, caller: object) -> CreateDiscountCode:
        return CreateDiscountCode(
            code=self.code,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            description=self.description,
            is_active=self.is_active,
            expires_at=self.expires_at,
            usage_limit=self.usage_limit,
        )


class DiscountPatchIn(Schema):
    id: Int32
    code: str | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    description: str | None = None
    is_active: bool | None = None
    expires_at: datetime | None = None
    usage_limit: Int32 | None = None

    def to_domain(self, caller: object) -> UpdateDiscountCode:
        return UpdateDiscountCode(
            discount_id=self.id,
            changes=_changes(
                self,
                skip=frozenset({"id"}),
                required=frozenset({"code", "discount_type", "discount_value", "is_active"}),
            ),
        )


class DiscountIdQuery(Schema):
    id: Int32

    def to_domain(self, caller: object) -> DeleteDiscountCode:
        return DeleteDiscountCode(discount_id=self.id)


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class ProductsQuery(Schema):
    q: str | None = None
    tag: str | None = None
    tone: Tone | None = None
    category: str | None = None
    sort_by: str | None = None
    order: str | None = None
    skip: Int32 | None = None
    take: Int32 | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_rating: float | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_domain(self, caller: None) -> ListProducts:
        try:
            category = Category(self.category.strip().upper()) if self.category else None
        except ValueError:
            # unknown categories do not filter
            category = None
        return ListProducts(
            q=self.q,
            tag=self.tag,
            tone=self.tone,
            category=category,
            sort_by=self.sort_by or "createdAt",
            order=self.order or "desc",
            skip=self.skip if self.skip is not None else 0,
            take=self.take if self.take is not None else 24,
            min_price=self.min_price,
            max_price=self.max_price,
            min_rating=self.min_rating,
        )


class ProductListOut(Schema):
    products: list[ProductOut]
    total: int

    @classmethod
    def from_domain(cls, dom: Page[Product]) -> ProductListOut:
        return cls(products=[ProductOut.from_domain(p) for p in dom.items], total=dom.total)


class ProductEnvelope(Schema):
    product: ProductOut

    @classmethod
    def from_domain(cls, dom: Product) -> ProductEnvelope:
        return cls(product=ProductOut.from_domain(dom))


class ProductPath(Schema):
    id: Int32

    def to_domain(self, caller: None) -> GetProduct:
        return GetProduct(product_id=self.id)


class DeleteProductPath(Schema):
    id: Int32

    def to_domain(self, caller: object) -> DeleteProduct:
        return DeleteProduct(product_id=self.id)


def _images(images: list[ImageSchema] | None) -> tuple[ProductImage, ...]:
    return tuple(ProductImage(src=i.src, alt=i.alt) for i in images or ())


class ProductIn(Schema):
    name: str = Field(min_length=1)
    price: PriceText
    subtitle: str = ""
    tone: Tone | None = None
    tag: str | None = None
    category: Category | None = None
    images: list[ImageSchema] = Field(default_factory=list)

    def to_domain(self, caller: object) -> CreateProduct:
        return CreateProduct(
            name=self.name,
            price=self.price,
            subtitle=self.subtitle,
            tone=self.tone,
            tag=self.tag,
            category=self.category,
            images=_images(self.images),
        )


class ProductPatchIn(Schema):
    id: Int32
    name: str | None = None
    price: PriceText | None = None
    subtitle: str | None = None
    tone: Tone | None = None
    tag: str | None = None
    category: Category | None = None
    images: list[ImageSchema] | None = None

    def to_domain(self, caller: object) -> UpdateProduct:
        changes = _changes(
            self,
            skip=frozenset({"id"}),
            required=frozenset({"name", "price", "subtitle", "tone", "images"}),
        )
        if "images" in changes:
            changes["images"] = _images(self.images)
        return UpdateProduct(product_id=self.id, changes=changes)


# ═══════════════════════════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════════════════════════


class ReviewsQuery(Schema):
    product_id: Int32

    def to_domain(self, caller: None) -> ListReviews:
        return ListReviews(product_id=self.product_id)


class ReviewIn(Schema):
    product_id: Int32
    rating: Int32
    comment: str | None = None

    def to_domain(self, caller: int) -> SubmitReview:
        return SubmitReview(
            user_id=caller,
            product_id=self.product_id,
            rating=self.rating,
            comment=self.comment,
        )


class ReviewerOut(Schema):
    name: str | None
    email: str


class ReviewOut(Schema):
    id: int
    user_id: int
    product_id: int
    rating: int
    comment: str | None
    created_at: datetime
    user: ReviewerOut

    @classmethod
    def from_domain(cls, dom: Review) -> ReviewOut:
        return cls(
            id=dom.id,
            user_id=dom.user_id,
            product_id=dom.product_id,
            rating=dom.rating,
            comment=dom.comment,
            created_at=dom.created_at,
            user=ReviewerOut(name=dom.author.name, email=dom.author.email),
        )


class ReviewListOut(Schema):
    reviews: list[ReviewOut]
    total_reviews: int
    average_rating: float

    @classmethod
    def from_domain(cls, dom: ReviewSummary) -> ReviewListOut:
        return cls(
            reviews=[ReviewOut.from_domain(r) for r in dom.reviews],
            total_reviews=dom.total_reviews,
            average_rating=dom.average_rating,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Sessions
# ═══════════════════════════════════════════════════════════════════════════════


class SignInIn(Schema):
    token: str

    def to_domain(self, caller: None) -> SignIn:
        return SignIn(identity_token=self.token)


class RefreshIn(Schema):
    refresh_token: str

    def to_domain(self, caller: None) -> RefreshSession:
        return RefreshSession(refresh_token=self.refresh_token)


class AdminLoginIn(Schema):
    username: str
    password: str

    def to_domain(self, caller: None) -> AdminLogin:
        return AdminLogin(username=self.username, password=self.password)


class MockLoginQuery(Schema):
    def to_domain(self, caller: str) -> MockLogin:
        return MockLogin(secret=caller)


class SessionOut(Schema):
    token: str
    refresh_token: str
    user: UserOut

    @classmethod
    def from_domain(cls, dom: SessionGrant) -> SessionOut:
        return cls(
            token=dom.tokens.access,
            refresh_token=dom.tokens.refresh,
            user=UserOut.from_domain(dom.user),
        )


class TokenPairOut(Schema):
    token: str
    refresh_token: str

    @classmethod
    def from_domain(cls, dom: TokenPair) -> TokenPairOut:
        return cls(token=dom.access, refresh_token=dom.refresh)


class TokenOut(Schema):
    token: str

    @classmethod
    def from_domain(cls, dom: str) -> TokenOut:
        return cls(token=dom)

