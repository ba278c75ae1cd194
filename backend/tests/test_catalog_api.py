"""
Products, batches, customers and suppliers over HTTP.
"""

from datetime import timedelta

from wims.models import StockAdjustment
from wims.services import stock_service
from wims.time_utils import utctoday

PRODUCT = {"sku": "oil-1l", "name": "Sunflower Oil 1L", "category": "Oils", "unit": "liter", "price": "4.5"}


def _batch_payload(product_id, batch_no="LOT-1", quantity=10, mfg_offset=-10, exp_offset=60):
    today = utctoday()
    return {
        "product_id": product_id,
        "batch_no": batch_no,
        "quantity": quantity,
        "manufactured_date": (today + timedelta(days=mfg_offset)).isoformat(),
        "expiry_date": (today + timedelta(days=exp_offset)).isoformat(),
    }


class TestProducts:

    def test_create_normalizes_and_starts_empty(self, client, manager_headers):
        resp = client.post("/api/products", json=PRODUCT, headers=manager_headers)
        assert resp.status_code == 201
        product = resp.get_json()["product"]
        assert product["sku"] == "OIL-1L"
        assert product["price"] == "4.50"
        assert product["current_stock"] == 0
        assert product["is_low_stock"] is True

    def test_duplicate_sku(self, client, manager_headers):
        client.post("/api/products", json=PRODUCT, headers=manager_headers)
        resp = client.post("/api/products", json=dict(PRODUCT, sku="OIL-1L"), headers=manager_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DuplicateKey"

    def test_rejects_bad_unit_and_stock_field(self, client, manager_headers):
        resp = client.post("/api/products", json=dict(PRODUCT, unit="gallon"), headers=manager_headers)
        assert resp.status_code == 400
        resp = client.post("/api/products", json=dict(PRODUCT, current_stock=5), headers=manager_headers)
        assert resp.status_code == 400

    def test_sku_is_immutable(self, client, manager_headers, stocked_product):
        resp = client.put(f"/api/products/{stocked_product.id}", json={"sku": "NEW"}, headers=manager_headers)
        assert resp.status_code == 400

    def test_list_search_and_sort(self, client, manager_headers, make_product):
        make_product(sku="RICE-1", name="Basmati Rice", price="3.00")
        make_product(sku="RICE-2", name="Brown Rice", price="2.00")
        make_product(sku="SALT-1", name="Sea Salt", price="1.00", category="Spices")

        resp = client.get("/api/products?search=rice&sort_by=price&sort_dir=asc", headers=manager_headers)
        data = resp.get_json()
        assert data["total"] == 2
        assert [p["sku"] for p in data["products"]] == ["RICE-2", "RICE-1"]

        resp = client.get("/api/products/categories", headers=manager_headers)
        assert resp.get_json()["categories"] == ["Grocery", "Spices"]

    def test_detail_includes_batch_count(self, client, manager_headers, stocked_product):
        product = client.get(f"/api/products/{stocked_product.id}", headers=manager_headers).get_json()["product"]
        assert product["batch_count"] == 1
        assert product["supplier"] is None

    def test_missing_product(self, client, manager_headers, db_session):
        resp = client.get("/api/products/404", headers=manager_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NotFound"

    def test_set_stock_records_adjustment(self, client, manager_headers, manager_user, stocked_product, db_session, recorder):
        resp = client.put(
            f"/api/products/{stocked_product.id}/stock",
            json={"current_stock": 25, "note": "cycle count"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["product"]["current_stock"] == 25

        adjustment = db_session.query(StockAdjustment).one()
        assert adjustment.quantity_delta == 15
        assert adjustment.created_by_user_id == manager_user.id

        # The ledger now reproduces the manual level
        assert stock_service.recalculate_stock(stocked_product.id) == 25
        [event] = recorder.of("inventoryUpdate")
        assert event["previousStock"] == 10 and event["currentStock"] == 25

    def test_set_stock_validation(self, client, manager_headers, stocked_product):
        url = f"/api/products/{stocked_product.id}/stock"
        assert client.put(url, json={}, headers=manager_headers).status_code == 400
        assert client.put(url, json={"current_stock": -1}, headers=manager_headers).status_code == 400
        assert client.put(url, json={"current_stock": "ten"}, headers=manager_headers).status_code == 400

    def test_delete_rules(self, client, admin_headers, stocked_product, make_product):
        resp = client.delete(f"/api/products/{stocked_product.id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "InvalidState"

        empty = make_product()
        assert client.delete(f"/api/products/{empty.id}", headers=admin_headers).status_code == 200

    def test_low_stock_listing(self, client, manager_headers, stocked_product, make_product, make_batch):
        plenty = make_product()
        make_batch(plenty, 50)
        data = client.get("/api/products/low-stock?threshold=20", headers=manager_headers).get_json()
        assert [p["id"] for p in data["products"]] == [stocked_product.id]


class TestBatches:

    def test_create_updates_product_stock(self, client, manager_headers, make_product):
        product = make_product()
        resp = client.post("/api/batches", json=_batch_payload(product.id, "lot-9", 12), headers=manager_headers)
        assert resp.status_code == 201
        assert resp.get_json()["batch"]["batch_no"] == "LOT-9"

        detail = client.get(f"/api/products/{product.id}", headers=manager_headers).get_json()["product"]
        assert detail["current_stock"] == 12

    def test_expiry_before_manufacture(self, client, manager_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/batches", json=_batch_payload(product.id, mfg_offset=5, exp_offset=1), headers=manager_headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "ValidationFailed"

    def test_negative_quantity(self, client, manager_headers, make_product):
        product = make_product()
        resp = client.post("/api/batches", json=_batch_payload(product.id, quantity=-3), headers=manager_headers)
        assert resp.status_code == 400

    def test_unknown_product(self, client, manager_headers, db_session):
        resp = client.post("/api/batches", json=_batch_payload(999), headers=manager_headers)
        assert resp.status_code == 404

    def test_shrinking_reserved_batch(self, client, admin_headers, customer, stocked_product):
        client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": stocked_product.id, "quantity": 9}]},
            headers=admin_headers,
        )
        batch = client.get(f"/api/batches/product/{stocked_product.id}", headers=admin_headers).get_json()["batches"][0]

        resp = client.put(f"/api/batches/{batch['id']}", json={"quantity": 5}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "InsufficientStock"

        assert client.delete(f"/api/batches/{batch['id']}", headers=admin_headers).status_code == 409

    def test_expiry_listings(self, client, manager_headers, make_product, make_batch):
        product = make_product()
        make_batch(product, 4, expires_in=3)
        make_batch(product, 6, expires_in=-2)

        near = client.get("/api/batches/near-expiry?days=7", headers=manager_headers).get_json()
        assert near["count"] == 1
        assert near["batches"][0]["product_name"] == product.name

        expired = client.get("/api/batches/expired", headers=manager_headers).get_json()
        assert expired["count"] == 1
        assert expired["total_quantity"] == 6


class TestParties:

    CUSTOMER = {"name": "Green Grocers", "email": "Buy@Green.test", "phone": "9988776655", "address": "5 High St"}

    def test_customer_email_is_lower_cased(self, client, manager_headers):
        resp = client.post("/api/customers", json=self.CUSTOMER, headers=manager_headers)
        assert resp.status_code == 201
        assert resp.get_json()["customer"]["email"] == "buy@green.test"

    def test_customer_validation(self, client, manager_headers):
        resp = client.post("/api/customers", json=dict(self.CUSTOMER, phone="12345"), headers=manager_headers)
        assert resp.status_code == 400
        resp = client.post("/api/customers", json=dict(self.CUSTOMER, email="nope"), headers=manager_headers)
        assert resp.status_code == 400
        resp = client.post("/api/customers", json={"name": "Only a name"}, headers=manager_headers)
        assert resp.status_code == 400

    def test_customer_duplicates(self, client, manager_headers):
        client.post("/api/customers", json=self.CUSTOMER, headers=manager_headers)
        resp = client.post(
            "/api/customers", json=dict(self.CUSTOMER, email="other@green.test"), headers=manager_headers
        )
        assert resp.status_code == 409
        assert resp.get_json()["details"]["field"] == "phone"

    def test_customer_with_orders_is_kept(self, client, admin_headers, customer, stocked_product):
        client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": stocked_product.id, "quantity": 1}]},
            headers=admin_headers,
        )
        resp = client.delete(f"/api/customers/{customer.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_customer_search(self, client, manager_headers, customer):
        data = client.get("/api/customers?search=acme", headers=manager_headers).get_json()
        assert [c["id"] for c in data["customers"]] == [customer.id]

    def test_supplier_lifecycle(self, client, admin_headers):
        resp = client.post(
            "/api/suppliers",
            json={"name": "Mills Co", "email": "sales@mills.test", "phone": "9000011111",
                  "address": "Mill Road", "tax_id": "gst123"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        supplier = resp.get_json()["supplier"]
        assert supplier["tax_id"] == "GST123"

        product = client.post(
            "/api/products", json=dict(PRODUCT, supplier_id=supplier["id"]), headers=admin_headers
        ).get_json()["product"]

        assert client.delete(f"/api/suppliers/{supplier['id']}", headers=admin_headers).status_code == 200
        detail = client.get(f"/api/products/{product['id']}", headers=admin_headers).get_json()["product"]
        assert detail["supplier_id"] is None
