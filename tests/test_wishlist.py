"""
Wishlist ledger: batch add, ownership-scoped annotation, sorting and pagination.
"""
import pytest

from conftest import bearer, make_product, register
from storefront.db.wishlist_ops import discount_percent


def test_discount_percent():
    assert discount_percent(75, 100) == 25
    assert discount_percent(100, 100) == 0
    assert discount_percent(120, 100) == 0
    assert discount_percent(0, 100) == 0
    assert discount_percent(50, None) == 0
    assert discount_percent(66.67, 100) == 33


@pytest.mark.asyncio
async def test_default_wishlist_created_on_first_read(client, customer):
    r = await client.get("/wishlist", headers=customer["headers"])
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["name"] == "My Wishlist"
    assert data["isDefault"] is True
    assert data["items"] == []
    assert data["pagination"]["totalItems"] == 0


@pytest.mark.asyncio
async def test_batch_add_reports_counts(client, customer, category, db):
    a = await make_product(db, category, "Synth", 800, 2)
    b = await make_product(db, category, "Drum Machine", 500, 2)
    off = await make_product(db, category, "Old Sampler", 200, 0, is_active=False)

    r = await client.post("/wishlist", json={"productId": a.id}, headers=customer["headers"])
    assert r.status_code == 201, r.text

    r = await client.post(
        "/wishlist",
        json={"productIds": [a.id, b.id, off.id, "missing"]},
        headers=customer["headers"],
    )
    result = r.json()["data"]
    assert result["added"] == 1
    assert result["alreadyPresent"] == 1
    assert result["invalid"] == 2
    assert set(result["invalidProductIds"]) == {off.id, "missing"}


@pytest.mark.asyncio
async def test_add_nothing_valid_is_404(client, customer):
    r = await client.post("/wishlist", json={"productIds": ["nope"]}, headers=customer["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_add_requires_a_product(client, customer):
    r = await client.post("/wishlist", json={}, headers=customer["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_rate_and_annotate_own_item(client, customer, category, db):
    product = await make_product(db, category, "Keytar", 350, 1, original_price=500)
    await client.post("/wishlist", json={"productId": product.id}, headers=customer["headers"])
    item = (await client.get("/wishlist", headers=customer["headers"])).json()["data"]["items"][0]
    assert item["product"]["discount"] == 30

    r = await client.patch(
        "/wishlist", json={"itemId": item["id"], "rating": 4, "notes": "birthday"}, headers=customer["headers"]
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["rating"] == 4
    assert r.json()["data"]["notes"] == "birthday"

    # explicit null clears the rating, notes untouched
    r = await client.patch("/wishlist", json={"itemId": item["id"], "rating": None}, headers=customer["headers"])
    assert r.json()["data"]["rating"] is None
    assert r.json()["data"]["notes"] == "birthday"


@pytest.mark.asyncio
async def test_rating_out_of_range_is_rejected(client, customer):
    r = await client.patch("/wishlist", json={"itemId": "x", "rating": 6}, headers=customer["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_cannot_annotate_someone_elses_item(client, customer, category, db):
    product = await make_product(db, category, "Theremin", 300, 1)
    await client.post("/wishlist", json={"productId": product.id}, headers=customer["headers"])
    item = (await client.get("/wishlist", headers=customer["headers"])).json()["data"]["items"][0]

    other = await register(client, "other@example.com")
    r = await client.patch(
        "/wishlist", json={"itemId": item["id"], "rating": 1}, headers=bearer(other["accessToken"])
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_sorting_and_pagination(client, customer, category, db):
    names = [("Banjo", 150), ("Accordion", 900), ("Cello", 400)]
    ids = []
    for name, price in names:
        ids.append((await make_product(db, category, name, price, 1)).id)
    await client.post("/wishlist", json={"productIds": ids}, headers=customer["headers"])

    async def page(**params):
        r = await client.get("/wishlist", params=params, headers=customer["headers"])
        return r.json()["data"]

    data = await page(sortBy="price-asc")
    assert [i["product"]["name"] for i in data["items"]] == ["Banjo", "Cello", "Accordion"]

    data = await page(sortBy="name-desc")
    assert [i["product"]["name"] for i in data["items"]] == ["Cello", "Banjo", "Accordion"]

    data = await page(sortBy="name-asc", pageSize=2, page=2)
    assert [i["product"]["name"] for i in data["items"]] == ["Cello"]
    assert data["pagination"] == {
        "totalItems": 3,
        "totalPages": 2,
        "currentPage": 2,
        "pageSize": 2,
        "hasNextPage": False,
    }


@pytest.mark.asyncio
async def test_page_size_is_capped(client, customer):
    r = await client.get("/wishlist", params={"pageSize": 51}, headers=customer["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_remove_product(client, customer, category, db):
    product = await make_product(db, category, "Ocarina", 20, 1)
    await client.post("/wishlist", json={"productId": product.id}, headers=customer["headers"])

    r = await client.request("DELETE", "/wishlist", json={"productId": product.id}, headers=customer["headers"])
    assert r.status_code == 200
    assert (await client.get("/wishlist", headers=customer["headers"])).json()["data"]["items"] == []

    r = await client.request("DELETE", "/wishlist", json={"productId": product.id}, headers=customer["headers"])
    assert r.status_code == 404
