from decimal import Decimal

import pytest

from app.models import Product
from app.schemas.common import to_money


@pytest.fixture
def stocked(client, db, store, product):
    """Widget: 25 units, Gadget: 4 units, Gizmo: sold out, Doohickey: never stocked"""
    gadget = Product(name="Gadget", sku="GAD-001", category="Electronics", unit_price=Decimal("100.00"))
    gizmo = Product(name="Gizmo", sku="GIZ-001", category="Electronics", unit_price=Decimal("5.00"))
    doohickey = Product(name="Doohickey", sku="DOO-001", category="Hardware", unit_price=Decimal("1.00"))
    db.add_all([gadget, gizmo, doohickey])
    db.commit()

    for product_id, quantity in [(product.id, 25), (gadget.id, 4), (gizmo.id, 2)]:
        response = client.post(
            f"/api/stores/{store.id}/stock/add",
            json={"productId": product_id, "quantity": quantity},
        )
        assert response.status_code == 201
    client.post(f"/api/stores/{store.id}/stock/sale", json={"productId": gizmo.id, "quantity": 2})
    return {"widget": product, "gadget": gadget, "gizmo": gizmo, "doohickey": doohickey}


def test_current_inventory_defaults_to_stock_on_hand(client, store, stocked):
    response = client.get(f"/api/stores/{store.id}/inventory")
    assert response.status_code == 200
    body = response.json()

    assert body["store"] == {"id": store.id, "name": "Downtown"}
    assert [item["name"] for item in body["data"]] == ["Gadget", "Widget"]
    gadget = body["data"][0]
    assert gadget["current_quantity"] == 4
    assert gadget["inventory_value"] == "400.00"
    assert gadget["status"] == "LOW_STOCK"

    summary = body["summary"]
    assert summary["total_products"] == 2
    assert summary["total_units"] == 29
    assert summary["total_value"] == "899.75"
    assert [c["category"] for c in summary["by_category"]] == ["Hardware", "Electronics"]


def test_inventory_selection_flags(client, store, stocked):
    out = client.get(f"/api/stores/{store.id}/inventory", params={"out_of_stock": True}).json()
    assert {item["name"] for item in out["data"]} == {"Gizmo", "Doohickey"}

    low = client.get(f"/api/stores/{store.id}/inventory", params={"low_stock": True}).json()
    assert [item["name"] for item in low["data"]] == ["Gadget"]

    higher = client.get(
        f"/api/stores/{store.id}/inventory", params={"low_stock": True, "threshold": 30}
    ).json()
    assert {item["name"] for item in higher["data"]} == {"Gadget", "Widget"}

    hardware = client.get(f"/api/stores/{store.id}/inventory", params={"category": "Hardware"}).json()
    assert [item["name"] for item in hardware["data"]] == ["Widget"]

    bounded = client.get(f"/api/stores/{store.id}/inventory", params={"min_stock": 5}).json()
    assert [item["name"] for item in bounded["data"]] == ["Widget"]


def test_inventory_rejects_bad_bounds(client, store, stocked):
    response = client.get(f"/api/stores/{store.id}/inventory", params={"min_stock": 10, "max_stock": 2})
    assert response.status_code == 400
    assert client.get(f"/api/stores/{store.id}/inventory", params={"threshold": -1}).status_code == 400
    assert client.get("/api/stores/9999/inventory").status_code == 404


def test_alerts(client, store, stocked):
    response = client.get(f"/api/stores/{store.id}/inventory/alerts")
    assert response.status_code == 200
    body = response.json()

    assert body["low_stock_threshold"] == 10
    assert body["out_of_stock_count"] == 2
    assert body["low_stock_count"] == 1
    assert body["count"] == 3
    assert [item["name"] for item in body["out_of_stock"]] == ["Gizmo", "Doohickey"]
    assert body["low_stock"][0]["name"] == "Gadget"


def test_inventory_value(client, store, stocked):
    body = client.get(f"/api/stores/{store.id}/inventory/value").json()
    assert body["total"]["total_value"] == "899.75"
    electronics = next(c for c in body["total"]["by_category"] if c["category"] == "Electronics")
    assert electronics["product_count"] == 1
    assert electronics["value"] == "400.00"


def test_product_inventory_detail(client, store, stocked):
    gizmo = stocked["gizmo"]
    response = client.get(f"/api/stores/{store.id}/inventory/products/{gizmo.id}")
    assert response.status_code == 200
    body = response.json()

    assert body["product"]["current_quantity"] == 0
    assert body["product"]["status"] == "OUT_OF_STOCK"
    assert [m["movement_type"] for m in body["movements"]] == ["SALE", "STOCK_IN"]

    assert client.get(f"/api/stores/{store.id}/inventory/products/9999").status_code == 404


@pytest.mark.parametrize("value,expected", [
    (Decimal("7.505"), "7.51"),
    (Decimal("0.125"), "0.13"),
    (Decimal("10"), "10.00"),
    (Decimal("-2.345"), "-2.35"),
])
def test_money_rounds_half_up_to_cents(value, expected):
    assert to_money(value) == expected
