"""
Category tree: creation, cycle rejection, counts and guarded deletion.
"""
import pytest

from conftest import make_product
from storefront.models import Category


async def create(client, headers, name, parent_id=None):
    body = {"name": name}
    if parent_id:
        body["parentId"] = parent_id
    r = await client.post("/categories", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_tree_with_product_counts(client, manager, db):
    electronics = await create(client, manager["headers"], "Electronics")
    phones = await create(client, manager["headers"], "Phones", electronics["id"])
    await create(client, manager["headers"], "Laptops", electronics["id"])

    phones_row = await db.get(Category, phones["id"])
    await make_product(db, phones_row, "Phone X", 999, 3)
    await make_product(db, phones_row, "Phone Y", 499, 3, is_active=False)

    r = await client.get("/categories")
    assert r.status_code == 200
    tree = r.json()["data"]
    assert [n["name"] for n in tree] == ["Electronics"]
    children = {c["name"]: c for c in tree[0]["children"]}
    assert set(children) == {"Laptops", "Phones"}
    assert children["Phones"]["productCount"] == 1
    assert children["Laptops"]["productCount"] == 0


@pytest.mark.asyncio
async def test_detail_includes_parent_and_children(client, manager):
    root = await create(client, manager["headers"], "Home")
    kitchen = await create(client, manager["headers"], "Kitchen", root["id"])

    r = await client.get(f"/categories/{kitchen['id']}")
    detail = r.json()["data"]
    assert detail["parent"]["id"] == root["id"]
    assert detail["children"] == []

    r = await client.get(f"/categories/{root['id']}")
    assert [c["id"] for c in r.json()["data"]["children"]] == [kitchen["id"]]


@pytest.mark.asyncio
async def test_unknown_parent_is_404(client, manager):
    r = await client.post("/categories", json={"name": "Lost", "parentId": "missing"}, headers=manager["headers"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_reparent_to_descendant_is_circular(client, manager):
    a = await create(client, manager["headers"], "A")
    b = await create(client, manager["headers"], "B", a["id"])
    c = await create(client, manager["headers"], "C", b["id"])

    r = await client.patch(f"/categories/{a['id']}", json={"parentId": c["id"]}, headers=manager["headers"])
    assert r.status_code == 400
    assert r.json()["error"] == "Circular reference detected in category hierarchy"

    # tree unchanged
    detail = (await client.get(f"/categories/{a['id']}")).json()["data"]
    assert detail["parentId"] is None


@pytest.mark.asyncio
async def test_self_parent_is_circular(client, manager):
    a = await create(client, manager["headers"], "Solo")
    r = await client.patch(f"/categories/{a['id']}", json={"parentId": a["id"]}, headers=manager["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_valid_reparent_and_detach(client, manager):
    a = await create(client, manager["headers"], "Garden")
    b = await create(client, manager["headers"], "Tools")

    r = await client.patch(f"/categories/{b['id']}", json={"parentId": a["id"]}, headers=manager["headers"])
    assert r.status_code == 200
    assert r.json()["data"]["parentId"] == a["id"]

    r = await client.patch(f"/categories/{b['id']}", json={"parentId": None}, headers=manager["headers"])
    assert r.json()["data"]["parentId"] is None


@pytest.mark.asyncio
async def test_delete_refused_with_children_or_products(client, manager, db):
    parent = await create(client, manager["headers"], "Parent")
    await create(client, manager["headers"], "Child", parent["id"])
    r = await client.delete(f"/categories/{parent['id']}", headers=manager["headers"])
    assert r.status_code == 400

    stocked = await create(client, manager["headers"], "Stocked")
    await make_product(db, await db.get(Category, stocked["id"]), "Widget", 1, 1)
    r = await client.delete(f"/categories/{stocked['id']}", headers=manager["headers"])
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_delete_is_soft(client, manager):
    empty = await create(client, manager["headers"], "Empty")
    r = await client.delete(f"/categories/{empty['id']}", headers=manager["headers"])
    assert r.status_code == 200

    assert all(n["id"] != empty["id"] for n in (await client.get("/categories")).json()["data"])
    detail = await client.get(f"/categories/{empty['id']}")
    assert detail.status_code == 200
    assert detail.json()["data"]["isActive"] is False
