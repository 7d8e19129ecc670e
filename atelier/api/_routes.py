"""Route table: which op answers which HTTP route, behind which guard."""

from __future__ import annotations

from atelier.auth import AdminGuard, AdminPolicy, HeaderGuard, SessionTokens, UserGuard
from atelier.config import Settings
from atelier.ops import Runner
from atelier.wire import Application, Endpoint, HTTPRouteTrigger, RequestResponseCodec, endpoint
from atelier.api import _schemas as S

MOCK_SECRET_HEADER = "x-mock-user-secret"


def _storefront(runner: Runner, user: UserGuard) -> Endpoint:
    return (
        endpoint(runner)
        # cart
        .expose(
            HTTPRouteTrigger("GET", "/api/cart", guard=user),
            RequestResponseCodec(S.CartQuery, S.CartOut),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/cart", guard=user, status_code=201),
            RequestResponseCodec(S.AddToCartIn, S.CartLineOut),
        )
        .expose(
            HTTPRouteTrigger("PUT", "/api/cart", guard=user),
            RequestResponseCodec(S.SetCartQuantityIn, S.SuccessOut),
        )
        .expose(
            HTTPRouteTrigger("DELETE", "/api/cart", guard=user),
            RequestResponseCodec(S.RemoveFromCartIn, S.SuccessOut),
        )
        # orders
        .expose(
            HTTPRouteTrigger("GET", "/api/orders", guard=user),
            RequestResponseCodec(S.OrdersQuery, S.MyOrdersReply),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/orders", guard=user, status_code=201),
            RequestResponseCodec(S.PlaceOrderIn, S.OrderOut),
        )
        # discounts
        .expose(
            HTTPRouteTrigger("POST", "/api/discounts", guard=user),
            RequestResponseCodec(S.ValidateDiscountIn, S.DiscountQuoteOut),
        )
        # reviews
        .expose(
            HTTPRouteTrigger("GET", "/api/reviews"),
            RequestResponseCodec(S.ReviewsQuery, S.ReviewListOut),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/reviews", guard=user, status_code=201),
            RequestResponseCodec(S.ReviewIn, S.ReviewOut),
        )
    )


def _catalog(runner: Runner, admin: AdminGuard) -> Endpoint:
    return (
        endpoint(runner)
        .expose(
            HTTPRouteTrigger("GET", "/api/products"),
            RequestResponseCodec(S.ProductsQuery, S.ProductListOut),
        )
        .expose(
            HTTPRouteTrigger("GET", "/api/product/{id}"),
            RequestResponseCodec(S.ProductPath, S.ProductEnvelope),
        )
        .expose(
            HTTPRouteTrigger("PATCH", "/api/product/{id}", guard=admin),
            RequestResponseCodec(S.ProductPatchIn, S.ProductEnvelope),
        )
        .expose(
            HTTPRouteTrigger("DELETE", "/api/product/{id}", guard=admin),
            RequestResponseCodec(S.DeleteProductPath, S.ProductEnvelope),
        )
        .expose(
            HTTPRouteTrigger("PUT", "/api/product", guard=admin, status_code=201),
            RequestResponseCodec(S.ProductIn, S.ProductEnvelope),
        )
    )


def _sessions(runner: Runner) -> Endpoint:
    return (
        endpoint(runner)
        .expose(
            HTTPRouteTrigger("PUT", "/api/user"),
            RequestResponseCodec(S.SignInIn, S.SessionOut),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/user"),
            RequestResponseCodec(S.RefreshIn, S.TokenPairOut),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/admin/login"),
            RequestResponseCodec(S.AdminLoginIn, S.TokenOut),
        )
    )


def _back_office(runner: Runner, admin: AdminGuard) -> Endpoint:
    return (
        endpoint(runner)
        .expose(
            HTTPRouteTrigger("GET", "/api/admin/orders", guard=admin),
            RequestResponseCodec(S.AdminOrdersQuery, S.AdminOrdersOut),
        )
        .expose(
            HTTPRouteTrigger("PUT", "/api/admin/orders", guard=admin),
            RequestResponseCodec(S.OrderStatusIn, S.OrderOut),
        )
        .expose(
            HTTPRouteTrigger("GET", "/api/admin/discounts", guard=admin),
            RequestResponseCodec(S.DiscountsQuery, S.DiscountListOut),
        )
        .expose(
            HTTPRouteTrigger("POST", "/api/admin/discounts", guard=admin, status_code=201),
            RequestResponseCodec(S.DiscountCodeIn, S.DiscountCodeOut),
        )
        .expose(
            HTTPRouteTrigger("PUT", "/api/admin/discounts", guard=admin),
            RequestResponseCodec(S.DiscountPatchIn, S.DiscountCodeOut),
        )
        .expose(
            HTTPRouteTrigger("DELETE", "/api/admin/discounts", guard=admin, status_code=204, source="query"),
            RequestResponseCodec(S.DiscountIdQuery),
        )
    )


def _mock_login(runner: Runner) -> Endpoint:
    return endpoint(runner).expose(
        HTTPRouteTrigger("GET", "/api/mock-login", guard=HeaderGuard(MOCK_SECRET_HEADER)),
        RequestResponseCodec(S.MockLoginQuery, S.TokenOut),
    )


def build_application(runner: Runner, settings: Settings) -> Application:
    """Every storefront route. The mock login exists only outside production."""
    user = UserGuard(runner.resolve(SessionTokens))
    admin = AdminGuard(runner.resolve(AdminPolicy))

    app = Application().mount(
        _storefront(runner, user),
        _catalog(runner, admin),
        _sessions(runner),
        _back_office(runner, admin),
    )
    if settings.mock_login_enabled:
        app.mount(_mock_login(runner))
    return app


__all__ = ("build_application", "MOCK_SECRET_HEADER")
