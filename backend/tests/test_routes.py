"""
HTTP-level tests: status codes, error payloads, and the actor header.
"""

from datetime import timedelta

from conftest import DAY0


def _rental_body(asset_ids, **overrides):
    body = {
        "customer_name": "Route Renter",
        "start_date": DAY0.isoformat() + "Z",
        "end_date": (DAY0 + timedelta(days=3)).isoformat() + "Z",
        "daily_rate": 40,
        "asset_ids": asset_ids,
    }
    body.update(overrides)
    return body


def test_health(client, db_session):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "healthy"


def test_mutations_require_actor(client, make_countable):
    product_id = make_countable(quantity=1)
    res = client.post(f"/api/stock/{product_id}/adjust", json={"delta": 1})
    assert res.status_code == 401


def test_stock_endpoints(client, make_countable, actor_headers):
    product_id = make_countable("ROUTE-1", quantity=None)

    res = client.put(
        "/api/stock",
        json={"product_id": product_id, "quantity": 3, "min_quantity": 5},
        headers=actor_headers,
    )
    assert res.status_code == 200
    assert res.get_json()["stock"]["is_low_stock"] is True

    res = client.post(f"/api/stock/{product_id}/adjust", json={"delta": -4}, headers=actor_headers)
    assert res.status_code == 409
    body = res.get_json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["details"]["available"] == 3

    res = client.post(f"/api/stock/{product_id}/adjust", json={"delta": 0}, headers=actor_headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_ERROR"

    res = client.post(f"/api/stock/{product_id}/adjust", json={"delta": 2}, headers=actor_headers)
    assert res.get_json()["stock"]["quantity"] == 5

    res = client.get("/api/stock/low")
    assert [e["product_sku"] for e in res.get_json()["items"]] == ["ROUTE-1"]

    res = client.get("/api/stock?search=route&limit=10")
    body = res.get_json()
    assert body["total"] == 1
    assert body["limit"] == 10

    assert client.get("/api/stock/9999").status_code == 404


def test_wrong_product_kind_is_400(client, make_unit_tracked, actor_headers):
    product_id, _ = make_unit_tracked(count=0)
    res = client.put("/api/stock", json={"product_id": product_id, "quantity": 1}, headers=actor_headers)
    assert res.status_code == 400
    assert res.get_json()["code"] == "INVALID_PRODUCT_KIND"


def test_asset_and_rental_flow(client, make_unit_tracked, actor_headers):
    product_id, _ = make_unit_tracked(count=0)

    res = client.post(
        "/api/assets",
        json={"product_id": product_id, "asset_code": "tripod", "count": 2},
        headers=actor_headers,
    )
    assert res.status_code == 201
    asset_ids = [a["id"] for a in res.get_json()["assets"]]

    res = client.post("/api/rentals", json=_rental_body(asset_ids), headers=actor_headers)
    assert res.status_code == 201
    rental = res.get_json()["rental"]
    assert rental["total_amount"] == 120.0
    assert rental["status"] == "pending"

    res = client.post("/api/rentals", json=_rental_body(asset_ids[:1]), headers=actor_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ASSETS_UNAVAILABLE"
    assert res.get_json()["details"]["asset_ids"] == asset_ids[:1]

    res = client.delete(f"/api/assets/{asset_ids[0]}", headers=actor_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ASSET_IN_USE"

    grouped = client.get("/api/assets?status=rented").get_json()
    assert grouped["total"] == 1
    assert grouped["items"][0]["status_counts"]["rented"] == 2

    res = client.post(f"/api/rentals/{rental['id']}/status", json={"status": "completed"}, headers=actor_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "INVALID_TRANSITION"

    res = client.post(f"/api/rentals/{rental['id']}/cancel", json={"reason": "rain"}, headers=actor_headers)
    assert res.status_code == 200
    assert res.get_json()["rental"]["notes"] == "rain"

    available = client.get("/api/assets/available/grouped").get_json()["items"]
    assert available[0]["asset_ids"] == asset_ids

    res = client.delete(f"/api/assets/{asset_ids[0]}", headers=actor_headers)
    assert res.status_code == 204


def test_sale_flow(client, make_countable, actor_headers):
    product_id = make_countable(quantity=5, price="2.00")

    res = client.post(
        "/api/sales",
        json={"customer_name": "Counter", "items": [{"product_id": product_id, "quantity": 3}]},
        headers=actor_headers,
    )
    assert res.status_code == 201
    sale = res.get_json()["sale"]
    assert sale["total_amount"] == 6.0

    res = client.post(f"/api/sales/{sale['id']}/status", json={"status": "completed"}, headers=actor_headers)
    assert res.status_code == 200
    assert client.get(f"/api/stock/{product_id}").get_json()["stock"]["quantity"] == 2

    res = client.delete(f"/api/sales/{sale['id']}", headers=actor_headers)
    assert res.status_code == 409
    assert res.get_json()["code"] == "INVALID_STATE"

    res = client.post(f"/api/sales/{sale['id']}/payments", json={"amount": 6}, headers=actor_headers)
    assert res.get_json()["sale"]["payment_status"] == "paid"

    logs = client.get("/api/activity-logs?entity_type=sale").get_json()
    assert logs["total"] == 3
    assert {log["actor"] for log in logs["items"]} == {"tester"}


def test_validation_errors_are_400(client, make_countable, actor_headers):
    res = client.post("/api/sales", json={"customer_name": "No items"}, headers=actor_headers)
    assert res.status_code == 400

    res = client.get("/api/rentals?page=0")
    assert res.status_code == 400

    res = client.get("/api/activity-logs?entity_type=widget")
    assert res.status_code == 400

    assert client.get("/api/rentals/9999").status_code == 404
