from __future__ import annotations

from decimal import Decimal

import pytest

from atelier import catalog, ops as O
from atelier.cart import AddToCart
from atelier.catalog import (
    CreateProduct,
    DeleteProduct,
    GetProduct,
    ListProducts,
    UpdateProduct,
    derive_tone,
)
from atelier.db import Database
from atelier.domain import Category, ProductImage, Tone
from atelier.errors import ErrorKind
from atelier.orders import PlaceOrder

from conftest import add_product, add_user, err, ok


@pytest.mark.parametrize(
    ("name", "tone"),
    [
        ("Amethyst Cluster Ring", Tone.AMETHYST),
        ("Rose Quartz Drop", Tone.ROSE),
        ("Baltic Amber Cuff", Tone.AMBER),
        ("Blue Lace Agate", Tone.AQUA),
        ("Moonstone Band", Tone.AQUA),
    ],
)
def test_derive_tone(name, tone):
    assert derive_tone(name) is tone


async def test_create_derives_tone_and_keeps_image_order(runner: O.Runner):
    product = ok(
        await runner.run(
            CreateProduct(
                name="Amethyst Halo",
                price="₹2,400",
                category=Category.RINGS,
                images=(ProductImage("/a.jpg", "front"), ProductImage("/b.jpg", "side")),
            )
        )
    )

    assert product.tone is Tone.AMETHYST
    assert product.price == "₹2,400"
    assert [i.src for i in product.images] == ["/a.jpg", "/b.jpg"]
    assert product.total_reviews == 0


async def test_create_rejects_bad_price(runner: O.Runner):
    failure = err(await runner.run(CreateProduct(name="Ring", price="a lot")))
    assert failure.kind is ErrorKind.INVALID_ARGUMENT


async def test_vanished_product_after_write_is_internal(runner: O.Runner, monkeypatch):
    async def gone(session, product_id):
        return None

    monkeypatch.setattr(catalog, "_load", gone)

    failure = err(await runner.run(CreateProduct(name="Ring", price="100")))
    assert failure.kind is ErrorKind.INTERNAL


async def test_update_replaces_images(runner: O.Runner, db: Database):
    created = ok(
        await runner.run(CreateProduct(name="Ring", price="100", images=(ProductImage("/a.jpg", "a"),)))
    )

    updated = ok(
        await runner.run(
            UpdateProduct(
                product_id=created.id,
                changes={"price": "120", "images": (ProductImage("/c.jpg", "c"),)},
            )
        )
    )

    assert updated.price == "120"
    assert [i.src for i in updated.images] == ["/c.jpg"]
    assert updated.name == "Ring"


async def test_get_missing_product(runner: O.Runner):
    assert err(await runner.run(GetProduct(product_id=1))).kind is ErrorKind.NOT_FOUND


async def test_listing_filters(runner: O.Runner, db: Database):
    await add_product(db, name="Rose Quartz Ring", price="500", tag="bestseller", category=Category.RINGS)
    await add_product(db, name="Amethyst Pendant", price="1500", tone=Tone.AMETHYST, category=Category.NECKLACES)
    await add_product(db, name="Aqua Studs", price="250", tone=Tone.AQUA, subtitle="rose gold setting")

    by_text = ok(await runner.run(ListProducts(q="rose")))
    assert {p.name for p in by_text.items} == {"Rose Quartz Ring", "Aqua Studs"}

    by_tone = ok(await runner.run(ListProducts(tone=Tone.AMETHYST)))
    assert [p.name for p in by_tone.items] == ["Amethyst Pendant"]

    by_category = ok(await runner.run(ListProducts(category=Category.RINGS)))
    assert [p.name for p in by_category.items] == ["Rose Quartz Ring"]

    by_tag = ok(await runner.run(ListProducts(tag="bestseller")))
    assert by_tag.total == 1

    by_price = ok(await runner.run(ListProducts(min_price=Decimal("300"), max_price=Decimal("1000"))))
    assert [p.name for p in by_price.items] == ["Rose Quartz Ring"]


async def test_listing_sorts_and_clamps_paging(runner: O.Runner, db: Database):
    for name in ("Charlie", "Alpha", "Bravo"):
        await add_product(db, name=name)

    ascending = ok(await runner.run(ListProducts(sort_by="name", order="asc")))
    assert [p.name for p in ascending.items] == ["Alpha", "Bravo", "Charlie"]

    clamped = ok(await runner.run(ListProducts(skip=-5, take=0)))
    assert clamped.skip == 0
    assert clamped.take == 1
    assert clamped.total == 3
    assert len(clamped.items) == 1


async def test_delete_product(runner: O.Runner, db: Database):
    product = await add_product(db)

    deleted = ok(await runner.run(DeleteProduct(product_id=product)))

    assert deleted.id == product
    assert err(await runner.run(GetProduct(product_id=product))).kind is ErrorKind.NOT_FOUND


async def test_sold_product_cannot_be_deleted(runner: O.Runner, db: Database):
    user = await add_user(db)
    product = await add_product(db)
    ok(await runner.run(AddToCart(user_id=user, product_id=product)))
    ok(await runner.run(PlaceOrder(user_id=user, shipping_address="1 Crystal Lane")))

    failure = err(await runner.run(DeleteProduct(product_id=product)))

    assert failure.kind is ErrorKind.CONFLICT
    ok(await runner.run(GetProduct(product_id=product)))
