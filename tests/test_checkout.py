"""
Checkout engine: pricing, coupons, stock validation and atomicity.
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import bearer, make_address, make_coupon, make_product, register
from storefront.db import checkout_ops
from storefront.db.checkout_ops import coupon_applies, price_order
from storefront.db.database import utcnow
from storefront.models import (
    Cart,
    Coupon,
    DiscountType,
    InventoryLog,
    InventoryLogType,
    Order,
    Payment,
    PaymentStatus,
    Product,
)


async def fill_cart(client, headers, *lines):
    for product, qty in lines:
        r = await client.post("/cart", json={"productId": product.id, "quantity": qty}, headers=headers)
        assert r.status_code == 200, r.text


async def checkout(client, headers, address_id, **extra):
    body = {"shippingAddressId": address_id, "paymentMethod": "CARD", **extra}
    return await client.post("/orders", json=body, headers=headers)


async def fresh(db, model, pk):
    return (
        await db.execute(select(model).where(model.id == pk).execution_options(populate_existing=True))
    ).scalar_one()


# ─── Pricing ───────────────────────────────────────────────────────────────────
def test_price_order_without_coupon():
    assert price_order(200, None) == {
        "subtotal": 200,
        "discount": 0,
        "tax": 20,
        "shipping_fee": 0,
        "total": 220,
    }


def test_percentage_and_fixed_coupon_math():
    pct = Coupon(code="P", discount_type=DiscountType.PERCENTAGE, discount_value=15)
    assert price_order(80, pct)["discount"] == 12

    fixed = Coupon(code="F", discount_type=DiscountType.FIXED, discount_value=50)
    assert price_order(30, fixed)["discount"] == 30
    amounts = price_order(200, fixed)
    assert amounts["discount"] == 50
    assert amounts["tax"] == 15
    assert amounts["total"] == 165


def test_coupon_applicability_rules():
    now = utcnow()
    base = dict(code="X", discount_type=DiscountType.FIXED, discount_value=5, is_active=True, times_redeemed=0)
    assert coupon_applies(Coupon(**base), 10, now)
    assert not coupon_applies(Coupon(**{**base, "is_active": False}), 10, now)
    assert not coupon_applies(Coupon(**base, expires_at=now - timedelta(days=1)), 10, now)
    assert coupon_applies(Coupon(**base, expires_at=now + timedelta(days=1)), 10, now)
    # naive timestamps are treated as UTC
    assert not coupon_applies(Coupon(**base, expires_at=(now - timedelta(hours=1)).replace(tzinfo=None)), 10, now)
    assert not coupon_applies(Coupon(**base, min_purchase=50), 10, now)
    assert not coupon_applies(Coupon(**{**base, "times_redeemed": 3}, max_redemptions=3), 10, now)


# ─── End-to-end ────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_checkout_example_scenario(client, customer, category, db):
    product = await make_product(db, category, "Product P", 100, 5)
    address = await make_address(db, customer["id"])
    await fill_cart(client, customer["headers"], (product, 2))

    r = await checkout(client, customer["headers"], address.id)
    assert r.status_code == 201, r.text
    order = r.json()["data"]
    assert order["status"] == "PENDING"
    assert order["subtotal"] == 200
    assert order["discount"] == 0
    assert order["tax"] == 20
    assert order["shippingFee"] == 0
    assert order["total"] == 220
    assert order["billingAddressId"] == address.id
    assert order["items"][0]["quantity"] == 2
    assert order["items"][0]["price"] == 100

    assert (await fresh(db, Product, product.id)).stock == 3
    cart = (await client.get("/cart", headers=customer["headers"])).json()["data"]
    assert cart["items"] == []
    assert cart["total"] == 0

    payment = (await db.execute(select(Payment).where(Payment.order_id == order["id"]))).scalar_one()
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == 220

    logs = (await db.execute(select(InventoryLog).where(InventoryLog.product_id == product.id))).scalars().all()
    assert [(log.type, log.quantity) for log in logs] == [(InventoryLogType.STOCK_OUT, 2)]


@pytest.mark.asyncio
async def test_total_identity_holds(client, customer, category, db):
    a = await make_product(db, category, "Odd Price", 19.99, 10)
    b = await make_product(db, category, "Other Price", 7.35, 10)
    address = await make_address(db, customer["id"])
    await make_coupon(db, "TEN", DiscountType.PERCENTAGE, 10)
    await fill_cart(client, customer["headers"], (a, 3), (b, 2))

    order = (await checkout(client, customer["headers"], address.id, couponCode="TEN")).json()["data"]
    assert order["total"] == pytest.approx(
        order["subtotal"] - order["discount"] + order["shippingFee"] + order["tax"], abs=0.01
    )


@pytest.mark.asyncio
async def test_empty_cart_is_rejected(client, customer, db):
    address = await make_address(db, customer["id"])
    r = await checkout(client, customer["headers"], address.id)
    assert r.status_code == 400
    assert r.json()["error"] == "Your cart is empty"


@pytest.mark.asyncio
async def test_out_of_stock_lists_every_short_line_and_changes_nothing(client, customer, category, db):
    a = await make_product(db, category, "Scarce A", 10, 5)
    b = await make_product(db, category, "Scarce B", 20, 5)
    c = await make_product(db, category, "Plenty C", 30, 50)
    address = await make_address(db, customer["id"])
    await fill_cart(client, customer["headers"], (a, 4), (b, 5), (c, 1))

    # stock drops after the items were carted
    for product, stock in ((a, 1), (b, 2)):
        product.stock = stock
    await db.commit()

    r = await checkout(client, customer["headers"], address.id)
    assert r.status_code == 400
    short = r.json()["errors"]["outOfStockItems"]
    assert {s["productId"]: (s["requested"], s["available"]) for s in short} == {
        a.id: (4, 1),
        b.id: (5, 2),
    }

    assert (await db.execute(select(func.count()).select_from(Order))).scalar_one() == 0
    assert (await fresh(db, Product, c.id)).stock == 50
    cart = (await client.get("/cart", headers=customer["headers"])).json()["data"]
    assert len(cart["items"]) == 3


@pytest.mark.asyncio
async def test_valid_coupon_is_applied_and_redeemed(client, customer, category, db):
    product = await make_product(db, category, "Guitar", 100, 5)
    address = await make_address(db, customer["id"])
    coupon = await make_coupon(db, "SAVE20", DiscountType.PERCENTAGE, 20)
    await fill_cart(client, customer["headers"], (product, 2))

    order = (await checkout(client, customer["headers"], address.id, couponCode="SAVE20")).json()["data"]
    assert order["discount"] == 40
    assert order["tax"] == 16
    assert order["total"] == 176
    assert order["couponId"] == coupon.id
    assert (await fresh(db, Coupon, coupon.id)).times_redeemed == 1


@pytest.mark.asyncio
async def test_fixed_coupon_capped_at_subtotal(client, customer, category, db):
    product = await make_product(db, category, "Tuner", 30, 5)
    address = await make_address(db, customer["id"])
    await make_coupon(db, "BIG", DiscountType.FIXED, 50)
    await fill_cart(client, customer["headers"], (product, 1))

    order = (await checkout(client, customer["headers"], address.id, couponCode="BIG")).json()["data"]
    assert order["discount"] == 30
    assert order["total"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, coupon_kwargs",
    [
        ("NOPE", None),
        ("EXPIRED", {"expires_at": "past"}),
        ("OFF", {"is_active": False}),
        ("MIN", {"min_purchase": 1000}),
        ("USEDUP", {"max_redemptions": 1, "times_redeemed": 1}),
    ],
)
async def test_invalid_coupon_is_silently_ignored(client, customer, category, db, code, coupon_kwargs):
    product = await make_product(db, category, "Drum", 100, 5)
    address = await make_address(db, customer["id"])
    if coupon_kwargs is not None:
        if coupon_kwargs.get("expires_at") == "past":
            coupon_kwargs = {"expires_at": utcnow() - timedelta(days=1)}
        await make_coupon(db, code, DiscountType.PERCENTAGE, 50, **coupon_kwargs)
    await fill_cart(client, customer["headers"], (product, 1))

    r = await checkout(client, customer["headers"], address.id, couponCode=code)
    assert r.status_code == 201, r.text
    order = r.json()["data"]
    assert order["discount"] == 0
    assert order["couponId"] is None
    assert order["total"] == 110


@pytest.mark.asyncio
async def test_free_shipping_coupon_zeroes_fee(client, customer, category, db, monkeypatch):
    monkeypatch.setattr(checkout_ops.settings, "SHIPPING_FEE", 9.5)

    product = await make_product(db, category, "Case", 40, 5)
    address = await make_address(db, customer["id"])
    await make_coupon(db, "SHIPFREE", DiscountType.FREE_SHIPPING, 0)
    await fill_cart(client, customer["headers"], (product, 1))

    order = (await checkout(client, customer["headers"], address.id, couponCode="SHIPFREE")).json()["data"]
    assert order["shippingFee"] == 0
    assert order["discount"] == 0
    assert order["total"] == 44


@pytest.mark.asyncio
async def test_foreign_address_is_rejected(client, customer, category, db):
    product = await make_product(db, category, "Bow", 15, 5)
    stranger = await register(client, "stranger@example.com")
    their_address = await make_address(db, stranger["user"]["id"])
    await fill_cart(client, customer["headers"], (product, 1))

    r = await checkout(client, customer["headers"], their_address.id)
    assert r.status_code == 404
    assert (await fresh(db, Product, product.id)).stock == 5

    cart = (await db.execute(select(Cart).where(Cart.user_id == customer["id"]))).scalar_one()
    assert cart.total == 15


@pytest.mark.asyncio
async def test_inactive_product_in_cart_blocks_checkout(client, customer, category, db):
    product = await make_product(db, category, "Discontinued", 15, 5)
    address = await make_address(db, customer["id"])
    await fill_cart(client, customer["headers"], (product, 1))
    product.is_active = False
    await db.commit()

    r = await checkout(client, customer["headers"], address.id)
    assert r.status_code == 400
    assert r.json()["errors"]["outOfStockItems"][0]["available"] == 0


@pytest.mark.asyncio
async def test_checkout_requires_payment_method(client, customer, db):
    address = await make_address(db, customer["id"])
    r = await client.post("/orders", json={"shippingAddressId": address.id}, headers=customer["headers"])
    assert r.status_code == 400
    assert "paymentMethod" in r.json()["errors"]


@pytest.mark.asyncio
async def test_checkout_is_per_user(client, customer, category, db):
    """Another user's checkout never touches this user's cart."""
    product = await make_product(db, category, "Shared", 10, 10)
    await fill_cart(client, customer["headers"], (product, 2))

    other = await register(client, "buyer2@example.com")
    other_headers = bearer(other["accessToken"])
    address = await make_address(db, other["user"]["id"])
    r = await checkout(client, other_headers, address.id)
    assert r.status_code == 400

    cart = (await client.get("/cart", headers=customer["headers"])).json()["data"]
    assert cart["total"] == 20
