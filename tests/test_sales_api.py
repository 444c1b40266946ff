import pytest

from conftest import auth_headers
from models import db, Item


def sale_body(item_id, **overrides):
    body = {
        "item_id": item_id,
        "platform": "ebay",
        "sale_price": 25,
        "sale_date": "2024-03-01",
        "quantity_sold": 2,
        "platform_fees": 3,
        "shipping_cost": 2,
        "other_fees": 0,
        "notes": "sold to repeat buyer",
    }
    body.update(overrides)
    return body


def on_hand(item):
    db.session.expire_all()
    it = db.session.get(Item, item.id)
    return it.quantity_on_hand, it.quantity_sold


def test_requires_credentials(client, item):
    assert client.get("/sales").status_code == 401
    resp = client.post("/sales", json=sale_body(item.id))
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Unauthorized"}


def test_wrong_password(client, seller):
    resp = client.get("/sales", headers=auth_headers(seller.email, "nope"))
    assert resp.status_code == 401


def test_create_sale(client, headers, item):
    resp = client.post("/sales", json=sale_body(item.id), headers=headers)
    assert resp.status_code == 201

    sale = resp.get_json()["sale"]
    assert sale["gross_profit"] == 30
    assert sale["net_profit"] == 25
    assert sale["profit_margin"] == pytest.approx(50.0)
    assert sale["sale_date"] == "2024-03-01"
    assert sale["item"]["name"] == "Nike Air Max 90"
    assert on_hand(item) == (3, 2)


def test_create_sale_fees_default_to_zero(client, headers, item):
    body = sale_body(item.id)
    del body["platform_fees"]
    body["shipping_cost"] = None

    resp = client.post("/sales", json=body, headers=headers)
    assert resp.status_code == 201
    sale = resp.get_json()["sale"]
    assert sale["platform_fees"] == 0
    assert sale["shipping_cost"] == 0
    assert sale["net_profit"] == 30


@pytest.mark.parametrize(
    "overrides",
    [
        {"sale_price": "25"},
        {"sale_price": -1},
        {"quantity_sold": 0},
        {"quantity_sold": 1.5},
        {"quantity_sold": "2"},
        {"platform": "craigslist"},
        {"sale_date": "yesterday"},
        {"platform_fees": -0.5},
    ],
)
def test_create_sale_rejects_bad_fields(client, headers, item, overrides):
    resp = client.post("/sales", json=sale_body(item.id, **overrides), headers=headers)
    assert resp.status_code == 400
    assert "error" in resp.get_json()
    assert on_hand(item) == (5, 0)


@pytest.mark.parametrize("price", ["Infinity", "NaN", "1e999"])
def test_create_sale_rejects_non_finite_price(client, headers, item, price):
    raw = (
        f'{{"item_id": {item.id}, "platform": "ebay", "sale_price": {price}, '
        f'"sale_date": "2024-03-01", "quantity_sold": 2}}'
    )
    resp = client.post("/sales", data=raw, content_type="application/json", headers=headers)
    assert resp.status_code == 400
    assert on_hand(item) == (5, 0)


def test_create_sale_with_overflowing_total(client, headers, item):
    resp = client.post("/sales", json=sale_body(item.id, sale_price=1e308), headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Sale amounts are too large"
    assert on_hand(item) == (5, 0)


def test_create_sale_missing_field(client, headers, item):
    body = sale_body(item.id)
    del body["sale_date"]
    resp = client.post("/sales", json=body, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Missing required field: sale_date"


def test_create_sale_without_body(client, headers):
    resp = client.post("/sales", data="", headers=headers)
    assert resp.status_code == 400


def test_create_sale_unknown_item(client, headers):
    resp = client.post("/sales", json=sale_body(404), headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Item not found"


def test_create_sale_other_sellers_item(client, other_headers, item):
    resp = client.post("/sales", json=sale_body(item.id), headers=other_headers)
    assert resp.status_code == 404


def test_create_sale_insufficient_stock(client, headers, item):
    resp = client.post("/sales", json=sale_body(item.id, quantity_sold=6), headers=headers)
    assert resp.status_code == 400
    payload = resp.get_json()
    assert payload["error"] == "Only 5 units available"
    assert payload["details"] == {"available": 5, "requested": 6}
    assert on_hand(item) == (5, 0)


def test_list_sales_is_per_seller(client, headers, other_headers, item):
    client.post("/sales", json=sale_body(item.id, sale_date="2024-01-05"), headers=headers)
    client.post("/sales", json=sale_body(item.id, sale_date="2024-02-05", quantity_sold=1), headers=headers)

    mine = client.get("/sales", headers=headers).get_json()["sales"]
    assert [s["sale_date"] for s in mine] == ["2024-02-05", "2024-01-05"]

    theirs = client.get("/sales", headers=other_headers).get_json()["sales"]
    assert theirs == []


def test_patch_sale(client, headers, item):
    sale = client.post("/sales", json=sale_body(item.id), headers=headers).get_json()["sale"]

    body = sale_body(item.id, quantity_sold=1)
    body["id"] = sale["id"]
    resp = client.patch("/sales", json=body, headers=headers)

    assert resp.status_code == 200
    updated = resp.get_json()["sale"]
    assert updated["quantity_sold"] == 1
    assert updated["net_profit"] == 10
    assert on_hand(item) == (4, 1)


def test_patch_sale_past_stock(client, headers, item):
    sale = client.post("/sales", json=sale_body(item.id), headers=headers).get_json()["sale"]

    body = sale_body(item.id, quantity_sold=6)
    body["id"] = sale["id"]
    resp = client.patch("/sales", json=body, headers=headers)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Not enough stock. You need 4 more, but only have 3."
    assert on_hand(item) == (3, 2)


def test_patch_requires_full_field_set(client, headers, item):
    sale = client.post("/sales", json=sale_body(item.id), headers=headers).get_json()["sale"]

    resp = client.patch("/sales", json={"id": sale["id"], "quantity_sold": 1}, headers=headers)
    assert resp.status_code == 400
    assert on_hand(item) == (3, 2)


def test_patch_unknown_sale(client, headers, item):
    body = sale_body(item.id)
    body["id"] = 777
    resp = client.patch("/sales", json=body, headers=headers)
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Sale not found"


def test_delete_sale(client, headers, item):
    sale = client.post("/sales", json=sale_body(item.id), headers=headers).get_json()["sale"]

    resp = client.delete(f"/sales?id={sale['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"message": "Sale deleted successfully"}
    assert on_hand(item) == (5, 0)

    again = client.delete(f"/sales?id={sale['id']}", headers=headers)
    assert again.status_code == 404
    assert on_hand(item) == (5, 0)


def test_delete_sale_needs_id(client, headers):
    resp = client.delete("/sales", headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Sale ID is required"


def test_sales_summary_endpoint(client, headers, item):
    client.post("/sales", json=sale_body(item.id, sale_date="2023-06-01"), headers=headers)

    everything = client.get("/sales/summary", headers=headers).get_json()
    assert everything["range"] == "all"
    assert everything["total_revenue"] == 50
    assert everything["by_platform"][0]["platform"] == "ebay"

    custom = client.get("/sales/summary?range=custom&start=2024-01-01&end=2024-12-31", headers=headers).get_json()
    assert custom["start"] == "2024-01-01"
    assert custom["total_revenue"] == 0


def test_list_items(client, headers, item, make_item, seller):
    make_item(seller, name="Old stock", is_archived=True)
    make_item(seller, name="Levi's 501", category="Denim")

    names = [i["name"] for i in client.get("/items", headers=headers).get_json()["items"]]
    assert names == ["Levi's 501", "Nike Air Max 90"]

    denim = client.get("/items?category=Denim", headers=headers).get_json()["items"]
    assert [i["name"] for i in denim] == ["Levi's 501"]

    with_archived = client.get("/items?archived=Y", headers=headers).get_json()["items"]
    assert len(with_archived) == 3


def test_unknown_route_is_json(client, headers):
    resp = client.get("/nope", headers=headers)
    assert resp.status_code == 404
    assert "error" in resp.get_json()
