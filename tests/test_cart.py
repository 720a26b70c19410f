"""
Cart ledger: total invariant across add / set / remove / clear.
"""
import pytest
from sqlalchemy import select

from conftest import make_product
from storefront.models import Cart


def assert_invariant(cart: dict):
    expected = round(sum(i["priceAtTime"] * i["quantity"] for i in cart["items"]), 2)
    assert cart["total"] == pytest.approx(expected)


@pytest.mark.asyncio
async def test_cart_created_lazily_empty(client, customer):
    r = await client.get("/cart", headers=customer["headers"])
    assert r.status_code == 200
    cart = r.json()["data"]
    assert cart["items"] == []
    assert cart["total"] == 0


@pytest.mark.asyncio
async def test_add_increments_existing_line(client, customer, category, db):
    product = await make_product(db, category, "Mic", 49.99, 10)

    r = await client.post("/cart", json={"productId": product.id, "quantity": 2}, headers=customer["headers"])
    assert r.status_code == 200, r.text
    r = await client.post("/cart", json={"productId": product.id, "quantity": 3}, headers=customer["headers"])
    cart = r.json()["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["total"] == pytest.approx(249.95)
    assert_invariant(cart)


@pytest.mark.asyncio
async def test_price_is_locked_at_add_time(client, customer, category, db):
    product = await make_product(db, category, "Amp", 100, 10)
    await client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=customer["headers"])

    product.price = 150
    await db.commit()

    r = await client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=customer["headers"])
    cart = r.json()["data"]
    assert cart["items"][0]["priceAtTime"] == 100
    assert cart["total"] == 200
    assert_invariant(cart)


@pytest.mark.asyncio
async def test_add_beyond_stock_is_rejected(client, customer, category, db):
    product = await make_product(db, category, "Rare Vinyl", 30, 2)
    await client.post("/cart", json={"productId": product.id, "quantity": 2}, headers=customer["headers"])
    r = await client.post("/cart", json={"productId": product.id, "quantity": 1}, headers=customer["headers"])
    assert r.status_code == 400
    assert "quantity" in r.json()["errors"]


@pytest.mark.asyncio
async def test_add_inactive_product_is_404(client, customer, category, db):
    product = await make_product(db, category, "Retired", 30, 2, is_active=False)
    r = await client.post("/cart", json={"productId": product.id}, headers=customer["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_set_quantity_adjusts_total_by_delta(client, customer, category, db):
    a = await make_product(db, category, "Cable", 5, 50)
    b = await make_product(db, category, "Stand", 25, 50)
    await client.post("/cart", json={"productId": a.id, "quantity": 4}, headers=customer["headers"])
    await client.post("/cart", json={"productId": b.id, "quantity": 1}, headers=customer["headers"])

    r = await client.put("/cart", json={"productId": a.id, "quantity": 2}, headers=customer["headers"])
    cart = r.json()["data"]
    assert cart["total"] == 35
    assert_invariant(cart)

    r = await client.put("/cart", json={"productId": b.id, "quantity": 0}, headers=customer["headers"])
    cart = r.json()["data"]
    assert [i["productId"] for i in cart["items"]] == [a.id]
    assert cart["total"] == 10
    assert_invariant(cart)


@pytest.mark.asyncio
async def test_set_quantity_over_stock_is_rejected(client, customer, category, db):
    product = await make_product(db, category, "Pedal", 60, 3)
    await client.post("/cart", json={"productId": product.id}, headers=customer["headers"])
    r = await client.put("/cart", json={"productId": product.id, "quantity": 4}, headers=customer["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_remove_and_clear(client, customer, category, db):
    a = await make_product(db, category, "Strings", 12.5, 50)
    b = await make_product(db, category, "Picks", 2.25, 50)
    await client.post("/cart", json={"productId": a.id, "quantity": 2}, headers=customer["headers"])
    await client.post("/cart", json={"productId": b.id, "quantity": 4}, headers=customer["headers"])

    r = await client.request("DELETE", "/cart", json={"productId": a.id}, headers=customer["headers"])
    cart = r.json()["data"]
    assert cart["total"] == 9
    assert_invariant(cart)

    r = await client.request("DELETE", "/cart", json={"productId": a.id}, headers=customer["headers"])
    assert r.status_code == 404

    r = await client.delete("/cart/clear", headers=customer["headers"])
    cart = r.json()["data"]
    assert cart["items"] == []
    assert cart["total"] == 0


@pytest.mark.asyncio
async def test_read_reconciles_drifted_total(client, customer, category, db):
    product = await make_product(db, category, "Capo", 15, 10)
    await client.post("/cart", json={"productId": product.id, "quantity": 2}, headers=customer["headers"])

    cart_row = (await db.execute(select(Cart).where(Cart.user_id == customer["id"]))).scalar_one()
    cart_row.total = 999
    await db.commit()

    r = await client.get("/cart", headers=customer["headers"])
    assert r.json()["data"]["total"] == 30

    refreshed = (
        await db.execute(
            select(Cart).where(Cart.user_id == customer["id"]).execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert refreshed.total == 30


@pytest.mark.asyncio
async def test_cart_requires_authentication(client):
    r = await client.get("/cart")
    assert r.status_code == 401
