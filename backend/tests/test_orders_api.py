"""
Order endpoints: status codes and error bodies.
"""


def _items(product, quantity):
    return [{"product_id": product.id, "quantity": quantity}]


def test_create_and_fetch(client, clerk_headers, customer, stocked_product):
    resp = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": _items(stocked_product, 4), "tax": "2.5", "notes": "rush"},
        headers=clerk_headers,
    )
    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["status"] == "Pending"
    assert order["subtotal"] == "40.00"
    assert order["net_amount"] == "42.50"
    assert order["items"][0]["sku"] == "RICE-5KG"
    assert order["customer"]["name"] == "Acme Traders"

    fetched = client.get(f"/api/orders/{order['id']}", headers=clerk_headers).get_json()["order"]
    assert fetched["order_no"] == order["order_no"]

    invoice = client.get(f"/api/orders/{order['id']}/invoice", headers=clerk_headers).get_json()["invoice"]
    assert invoice["totals"]["net_amount"] == "42.50"


def test_insufficient_stock_body(client, clerk_headers, customer, stocked_product):
    resp = client.post(
        "/api/orders", json={"customer_id": customer.id, "items": _items(stocked_product, 11)}, headers=clerk_headers
    )
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["code"] == "InsufficientStock"
    assert body["details"]["available"] == 10
    assert body["details"]["requested"] == 11


def test_malformed_body(client, clerk_headers, customer):
    resp = client.post("/api/orders", json={"customer_id": customer.id, "items": []}, headers=clerk_headers)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "ValidationFailed"

    resp = client.post("/api/orders", data="not json", headers=clerk_headers)
    assert resp.status_code == 400


def test_unknown_customer_and_order(client, clerk_headers, stocked_product):
    resp = client.post("/api/orders", json={"customer_id": 999, "items": _items(stocked_product, 1)}, headers=clerk_headers)
    assert resp.status_code == 404
    assert client.get("/api/orders/999", headers=clerk_headers).status_code == 404


def test_update_and_status_flow(client, admin_headers, customer, stocked_product):
    order = client.post(
        "/api/orders", json={"customer_id": customer.id, "items": _items(stocked_product, 4)}, headers=admin_headers
    ).get_json()["order"]
    url = f"/api/orders/{order['id']}"

    resp = client.put(url, json={"items": _items(stocked_product, 7)}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["order"]["subtotal"] == "70.00"

    resp = client.patch(f"{url}/status", json={"status": "Confirmed"}, headers=admin_headers)
    assert resp.get_json()["order"]["status"] == "Confirmed"

    resp = client.put(url, json={"discount": "1"}, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "InvalidState"

    resp = client.patch(f"{url}/status", json={"status": "Pending"}, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.get_json()["details"] == {"current_status": "Confirmed", "requested_status": "Pending"}

    resp = client.patch(f"{url}/status", json={"status": "Lost"}, headers=admin_headers)
    assert resp.status_code == 400

    resp = client.delete(url, headers=admin_headers)
    assert resp.get_json()["deleted"]["order_no"] == order["order_no"]
    product = client.get(f"/api/products/{stocked_product.id}", headers=admin_headers).get_json()["product"]
    assert product["current_stock"] == 10


def test_list_pagination(client, clerk_headers, customer, stocked_product):
    for _ in range(3):
        client.post(
            "/api/orders", json={"customer_id": customer.id, "items": _items(stocked_product, 1)}, headers=clerk_headers
        )

    data = client.get("/api/orders?limit=2&sort_by=order_no&sort_dir=asc", headers=clerk_headers).get_json()
    assert data["total"] == 3
    assert data["pages"] == 2
    assert [o["order_no"][-4:] for o in data["orders"]] == ["0001", "0002"]
    assert "items" not in data["orders"][0]

    assert client.get("/api/orders?sort_by=bogus", headers=clerk_headers).status_code == 400
