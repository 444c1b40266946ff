from datetime import date

import pytest

from models import db, Item, ShoppingListEntry


def purchase_body(entry_id, **overrides):
    body = {
        "shopping_list_id": entry_id,
        "actual_price": 12.5,
        "actual_location": "Savers on 5th",
        "quantity": 3,
        "purchase_date": "2024-04-02",
    }
    body.update(overrides)
    return body


def test_add_and_list_entries(client, headers, item):
    low = client.post("/shopping-list", json={"item_name": "Packing tape", "priority": "low"}, headers=headers)
    assert low.status_code == 201
    assert low.get_json()["shopping_item"]["reason"] == "manual"

    high = client.post(
        "/shopping-list",
        json={"item_id": item.id, "item_name": item.name, "priority": "high", "target_quantity": 4},
        headers=headers,
    )
    assert high.status_code == 201
    client.post("/shopping-list", json={"item_name": "Poly mailers"}, headers=headers)

    listing = client.get("/shopping-list", headers=headers).get_json()
    names = [e["item_name"] for e in listing["shopping_list"]]
    assert names == ["Nike Air Max 90", "Poly mailers", "Packing tape"]
    assert listing["shopping_list"][0]["item"]["quantity_on_hand"] == 5
    assert listing["shopping_list"][1]["priority"] == "medium"
    assert listing["restock_alerts"] == []


def test_add_entry_requires_name(client, headers):
    resp = client.post("/shopping-list", json={"priority": "high"}, headers=headers)
    assert resp.status_code == 400


def test_add_entry_rejects_unknown_priority(client, headers):
    resp = client.post("/shopping-list", json={"item_name": "Tape", "priority": "urgent"}, headers=headers)
    assert resp.status_code == 400


def test_add_same_item_twice(client, headers, item):
    body = {"item_id": item.id, "item_name": item.name}
    assert client.post("/shopping-list", json=body, headers=headers).status_code == 201
    resp = client.post("/shopping-list", json=body, headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Item already in shopping list"


def test_add_entry_for_other_sellers_item(client, other_headers, item):
    resp = client.post("/shopping-list", json={"item_id": item.id, "item_name": "x"}, headers=other_headers)
    assert resp.status_code == 404


def test_remove_entry(client, headers, other_headers):
    entry = client.post("/shopping-list", json={"item_name": "Tape"}, headers=headers).get_json()["shopping_item"]

    assert client.delete(f"/shopping-list?id={entry['id']}", headers=other_headers).status_code == 404
    assert client.delete("/shopping-list", headers=headers).status_code == 400

    resp = client.delete(f"/shopping-list?id={entry['id']}", headers=headers)
    assert resp.status_code == 200
    assert client.get("/shopping-list", headers=headers).get_json()["shopping_list"] == []


def test_mark_purchased_creates_inventory(client, headers, seller, item):
    entry = client.post(
        "/shopping-list",
        json={"item_id": item.id, "item_name": "Nike Air Max 90 (restock)"},
        headers=headers,
    ).get_json()["shopping_item"]

    resp = client.post("/shopping-list/purchase", json=purchase_body(entry["id"]), headers=headers)
    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["message"] == "Item marked as purchased and added to inventory"

    db.session.expire_all()
    new_item = db.session.get(Item, payload["new_item_id"])
    assert new_item.user_id == seller.id
    assert new_item.name == "Nike Air Max 90 (restock)"
    assert new_item.category == "Shoes"
    assert new_item.purchase_price == 12.5
    assert new_item.purchase_location == "Savers on 5th"
    assert new_item.purchase_date == date(2024, 4, 2)
    assert (new_item.quantity_purchased, new_item.quantity_on_hand, new_item.quantity_sold) == (3, 3, 0)

    assert db.session.get(ShoppingListEntry, entry["id"]) is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"actual_price": 0},
        {"actual_price": "12.50"},
        {"quantity": 0},
        {"quantity": 2.5},
        {"actual_location": "   "},
        {"purchase_date": None},
    ],
)
def test_mark_purchased_validation(client, headers, overrides):
    entry = client.post("/shopping-list", json={"item_name": "Tape"}, headers=headers).get_json()["shopping_item"]

    resp = client.post("/shopping-list/purchase", json=purchase_body(entry["id"], **overrides), headers=headers)
    assert resp.status_code == 400
    assert len(client.get("/shopping-list", headers=headers).get_json()["shopping_list"]) == 1


def test_mark_purchased_missing_field(client, headers):
    body = purchase_body(1)
    del body["actual_location"]
    resp = client.post("/shopping-list/purchase", json=body, headers=headers)
    assert resp.status_code == 400


def test_mark_purchased_unknown_entry(client, headers, other_headers):
    entry = client.post("/shopping-list", json={"item_name": "Tape"}, headers=headers).get_json()["shopping_item"]

    assert client.post("/shopping-list/purchase", json=purchase_body(999), headers=headers).status_code == 404
    resp = client.post("/shopping-list/purchase", json=purchase_body(entry["id"]), headers=other_headers)
    assert resp.status_code == 404


def test_restock_alerts(client, headers, seller, make_item):
    make_item(seller, name="Sold out", quantity_on_hand=0, quantity_sold=5)
    make_item(seller, name="Running low", quantity_on_hand=2, quantity_sold=40)
    make_item(seller, name="Plenty", quantity_on_hand=3, quantity_sold=2)
    make_item(seller, name="Never sold", quantity_on_hand=1, quantity_sold=0, quantity_purchased=1)
    make_item(seller, name="Archived", quantity_on_hand=0, quantity_sold=5, is_archived=True)
    listed = make_item(seller, name="Already listed", quantity_on_hand=0, quantity_sold=1)
    client.post("/shopping-list", json={"item_id": listed.id, "item_name": listed.name}, headers=headers)

    alerts = client.get("/shopping-list?include_restock=true", headers=headers).get_json()["restock_alerts"]

    assert [a["name"] for a in alerts] == ["Sold out", "Running low"]
    sold_out, low = alerts
    assert (sold_out["priority"], sold_out["reason"], sold_out["suggested_quantity"]) == ("high", "out_of_stock", 1)
    assert (low["priority"], low["reason"], low["suggested_quantity"]) == ("medium", "low_stock", 2)
    assert low["times_sold"] == 40
