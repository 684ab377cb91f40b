"""
Sales and customer API tests.

Verifies:
- POST /api/sales returns 201 with items parsed and customerName joined
- Missing fields and insufficient stock answer 400 with a readable message
- DELETE reverses stock; unknown ids answer 404
- date-range and summary endpoints are reachable ahead of /<id>
- Customer archive/restore
"""

from waterstation.models import Item


def _sale(invoice, customer, item, quantity=5, price=35, **extra):
    body = {
        "invoiceId": invoice,
        "customerId": customer.id,
        "items": [{"itemId": item.id, "quantity": quantity, "price": price}],
    }
    body.update(extra)
    return body


# =============================================================================
# SALES
# =============================================================================


class TestSalesApi:

    def test_create_returns_201(self, client, user_headers, db_session, bottle, customer, staff_user):
        resp = client.post("/api/sales", json=_sale("INV-1", customer, bottle, status="Completed"),
                           headers=user_headers)

        assert resp.status_code == 201
        body = resp.json
        assert body["invoiceId"] == "INV-1"
        assert body["total"] == 175.0
        assert body["customerName"] == "Juan Dela Cruz"
        assert body["items"][0]["itemName"] == "500ml Bottle"
        assert body["createdByUserId"] == staff_user.id

        db_session.expire_all()
        assert db_session.get(Item, bottle.id).current_stock == 65

    def test_missing_fields(self, client, user_headers, customer):
        resp = client.post("/api/sales", json={"customerId": customer.id}, headers=user_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Missing required fields: invoiceId, customerId, and items are required"

    def test_insufficient_stock(self, client, user_headers, bottle, customer):
        resp = client.post("/api/sales", json=_sale("INV-2", customer, bottle, quantity=71), headers=user_headers)

        assert resp.status_code == 400
        assert resp.json["itemName"] == "500ml Bottle"
        assert resp.json["available"] == 70
        assert resp.json["requested"] == 71

    def test_duplicate_invoice(self, client, user_headers, bottle, customer):
        client.post("/api/sales", json=_sale("INV-3", customer, bottle, quantity=1), headers=user_headers)
        resp = client.post("/api/sales", json=_sale("INV-3", customer, bottle, quantity=1), headers=user_headers)
        assert resp.status_code == 409

    def test_delete_reverses_stock(self, client, user_headers, db_session, bottle, customer):
        sale_id = client.post("/api/sales", json=_sale("INV-4", customer, bottle), headers=user_headers).json["id"]

        resp = client.delete(f"/api/sales/{sale_id}", headers=user_headers)

        assert resp.status_code == 200
        assert resp.json == {"message": "Sale deleted successfully"}
        db_session.expire_all()
        assert db_session.get(Item, bottle.id).current_stock == 70

    def test_delete_missing(self, client, user_headers):
        resp = client.delete("/api/sales/999", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json["message"] == "Sale not found"

    def test_get_and_list(self, client, user_headers, bottle, customer):
        sale_id = client.post("/api/sales", json=_sale("INV-5", customer, bottle, quantity=1),
                              headers=user_headers).json["id"]

        assert client.get(f"/api/sales/{sale_id}", headers=user_headers).json["invoiceId"] == "INV-5"
        listing = client.get("/api/sales", headers=user_headers).json
        assert listing["count"] == 1

    def test_update_changes_stock(self, client, user_headers, db_session, bottle, customer):
        sale_id = client.post("/api/sales", json=_sale("INV-6", customer, bottle), headers=user_headers).json["id"]

        resp = client.put(f"/api/sales/{sale_id}", json={
            "items": [{"itemId": bottle.id, "quantity": 2, "price": 35}],
        }, headers=user_headers)

        assert resp.status_code == 200
        assert resp.json["total"] == 70.0
        db_session.expire_all()
        assert db_session.get(Item, bottle.id).current_stock == 68

    def test_date_range(self, client, user_headers, bottle, customer):
        client.post("/api/sales", json=_sale("INV-7", customer, bottle, quantity=1, date="2026-02-10T10:00:00"),
                    headers=user_headers)

        resp = client.get("/api/sales/date-range?startDate=2026-02-10&endDate=2026-02-10", headers=user_headers)
        assert resp.status_code == 200
        assert [s["invoiceId"] for s in resp.json["items"]] == ["INV-7"]

        missing = client.get("/api/sales/date-range?startDate=2026-02-10", headers=user_headers)
        assert missing.status_code == 400

    def test_summary(self, client, user_headers, bottle, customer):
        client.post("/api/sales", json=_sale("INV-8", customer, bottle, quantity=2, price=15), headers=user_headers)

        resp = client.get("/api/sales/summary", headers=user_headers)

        assert resp.status_code == 200
        assert resp.json["overall"]["totalSales"] == 1
        assert resp.json["overall"]["totalRevenue"] == 30.0
        assert resp.json["today"]["todaySales"] == 1


# =============================================================================
# CUSTOMERS
# =============================================================================


class TestCustomersApi:

    def test_create_requires_contact(self, client, user_headers):
        resp = client.post("/api/customers", json={"name": "Ana"}, headers=user_headers)
        assert resp.status_code == 400

    def test_create_update(self, client, user_headers):
        resp = client.post("/api/customers", json={
            "name": "Ana Santos",
            "phone": "09181112222",
            "address": "Zone 5",
            "customerType": "Wholesale",
        }, headers=user_headers)
        assert resp.status_code == 201
        cid = resp.json["id"]
        assert resp.json["customerType"] == "Wholesale"
        assert resp.json["totalOrders"] == 0

        upd = client.put(f"/api/customers/{cid}", json={"address": "Zone 6"}, headers=user_headers)
        assert upd.status_code == 200
        assert upd.json["address"] == "Zone 6"

    def test_bad_customer_type(self, client, user_headers, customer):
        resp = client.put(f"/api/customers/{customer.id}", json={"customerType": "VIP"}, headers=user_headers)
        assert resp.status_code == 400

    def test_archive_and_restore(self, client, user_headers, customer):
        resp = client.delete(f"/api/customers/{customer.id}", headers=user_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/customers/{customer.id}", headers=user_headers).json["hidden"] is True

        visible = client.get("/api/customers?include_hidden=false", headers=user_headers).json
        assert visible["count"] == 0
        assert client.get("/api/customers", headers=user_headers).json["count"] == 1

        restored = client.put(f"/api/customers/{customer.id}/restore", headers=user_headers)
        assert restored.status_code == 200
        assert restored.json["customer"]["hidden"] is False

    def test_missing_customer(self, client, user_headers):
        resp = client.get("/api/customers/999", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json["message"] == "Customer not found"
