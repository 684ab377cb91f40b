"""
Item API tests.

Verifies:
- Catalog CRUD over /api/items and its /api/products alias
- PUT /<id>/stock returns {message, currentStock}; 404 and 400 on failure
- PUT /bulk/stock is admin-only and all-or-nothing
- GET /<id>/history returns ledger rows joined with the acting username
"""

import pytest

from waterstation.models import Item, StockHistoryEntry
from conftest import make_item


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/items"),
            ("POST", "/api/items"),
            ("GET", "/api/products"),
            ("PUT", "/api/items/1/stock"),
            ("PUT", "/api/items/bulk/stock"),
            ("GET", "/api/items/1/history"),
            ("GET", "/api/customers"),
            ("GET", "/api/sales"),
            ("GET", "/api/sales/summary"),
            ("GET", "/api/users/profile"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/items", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid or expired token"


# =============================================================================
# CATALOG CRUD
# =============================================================================


class TestItemCrud:

    def test_create_and_get(self, client, user_headers):
        resp = client.post("/api/items", json={
            "name": "Alkaline 5 Gallon",
            "price": 40,
            "currentStock": 25,
            "minStock": 5,
            "category": "Refill",
            "uom": "gal",
        }, headers=user_headers)

        assert resp.status_code == 201
        body = resp.json
        assert body["currentStock"] == 25
        assert body["price"] == 40.0
        assert body["lowStock"] is False

        got = client.get(f"/api/items/{body['id']}", headers=user_headers)
        assert got.status_code == 200
        assert got.json["name"] == "Alkaline 5 Gallon"

    def test_create_requires_name_and_price(self, client, user_headers):
        resp = client.post("/api/items", json={"currentStock": 3}, headers=user_headers)
        assert resp.status_code == 400
        assert "name" in resp.json["message"]

    def test_negative_price_rejected(self, client, user_headers):
        resp = client.post("/api/items", json={"name": "X", "price": -1}, headers=user_headers)
        assert resp.status_code == 400

    def test_products_alias_lists_same_items(self, client, user_headers, gallon, bottle):
        items = client.get("/api/items", headers=user_headers).json
        products = client.get("/api/products", headers=user_headers).json
        assert items == products
        assert [i["name"] for i in items["items"]] == ["5 Gallon Refill", "500ml Bottle"]

    def test_update(self, client, user_headers, gallon):
        resp = client.put(f"/api/items/{gallon.id}", json={"price": "27.50", "minStock": 10}, headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["price"] == 27.5
        assert resp.json["minStock"] == 10

    def test_update_rejects_max_below_min(self, client, user_headers, gallon):
        client.put(f"/api/items/{gallon.id}", json={"minStock": 10}, headers=user_headers)
        resp = client.put(f"/api/items/{gallon.id}", json={"maxStock": 5}, headers=user_headers)
        assert resp.status_code == 400

    def test_get_missing(self, client, user_headers):
        resp = client.get("/api/items/999", headers=user_headers)
        assert resp.status_code == 404
        assert resp.json["message"] == "Item with ID 999 not found"

    def test_delete_requires_admin(self, client, user_headers, gallon):
        resp = client.delete(f"/api/items/{gallon.id}", headers=user_headers)
        assert resp.status_code == 403

    def test_admin_delete_removes_ledger(self, client, admin_headers, db_session, gallon):
        client.put(f"/api/items/{gallon.id}/stock", json={"quantity": 1, "type": "decrease"}, headers=admin_headers)

        resp = client.delete(f"/api/items/{gallon.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["message"] == "Item deleted successfully"
        assert db_session.query(Item).count() == 0
        assert db_session.query(StockHistoryEntry).count() == 0


# =============================================================================
# STOCK ADJUSTMENT
# =============================================================================


class TestStockRoutes:

    def test_manual_decrease(self, client, user_headers, db_session, gallon, staff_user):
        resp = client.put(
            f"/api/items/{gallon.id}/stock",
            json={"quantity": 30, "type": "decrease", "reason": "Spoilage"},
            headers=user_headers,
        )

        assert resp.status_code == 200
        assert resp.json == {"message": "Stock updated successfully", "currentStock": 70}

        entry = db_session.query(StockHistoryEntry).one()
        assert entry.user_id == staff_user.id
        assert entry.reason == "Spoilage"

    def test_missing_item(self, client, user_headers):
        resp = client.put("/api/items/999/stock", json={"quantity": 1, "type": "increase"}, headers=user_headers)
        assert resp.status_code == 404

    def test_insufficient_stock_message(self, client, user_headers, db_session):
        item = make_item(db_session, "Dispenser Cap", 3)
        resp = client.put(f"/api/items/{item.id}/stock", json={"quantity": 5, "type": "decrease"}, headers=user_headers)

        assert resp.status_code == 400
        assert resp.json["message"] == "Insufficient stock for Dispenser Cap. Available: 3, Requested: 5"
        assert resp.json["available"] == 3
        assert resp.json["requested"] == 5

    def test_bad_type(self, client, user_headers, gallon):
        resp = client.put(f"/api/items/{gallon.id}/stock", json={"quantity": 5, "type": "up"}, headers=user_headers)
        assert resp.status_code == 400

    def test_history_joins_username(self, client, user_headers, gallon):
        client.put(f"/api/items/{gallon.id}/stock", json={"quantity": 4, "type": "increase"}, headers=user_headers)
        client.put(f"/api/items/{gallon.id}/stock", json={"quantity": 2, "type": "decrease"}, headers=user_headers)

        resp = client.get(f"/api/items/{gallon.id}/history", headers=user_headers)

        assert resp.status_code == 200
        rows = resp.json
        assert isinstance(rows, list)
        assert [(r["type"], r["quantity"]) for r in rows] == [("Stock Out", 2), ("Stock In", 4)]
        assert {r["userName"] for r in rows} == {"cashier"}

    def test_history_missing_item(self, client, user_headers):
        assert client.get("/api/items/999/history", headers=user_headers).status_code == 404


class TestBulkStockRoute:

    def test_requires_admin(self, client, user_headers, gallon):
        resp = client.put("/api/items/bulk/stock", json={"items": []}, headers=user_headers)
        assert resp.status_code == 403

    def test_success(self, client, admin_headers, gallon, bottle):
        resp = client.put("/api/items/bulk/stock", json={"items": [
            {"itemId": gallon.id, "quantity": 10, "type": "decrease"},
            {"itemId": bottle.id, "quantity": 5, "type": "increase"},
        ]}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["message"] == "Bulk stock update successful"
        assert resp.json["results"] == [
            {"id": gallon.id, "currentStock": 90},
            {"id": bottle.id, "currentStock": 75},
        ]

    def test_all_or_nothing(self, client, admin_headers, db_session):
        a = make_item(db_session, "A", 20)
        b = make_item(db_session, "B", 10)

        resp = client.put("/api/items/bulk/stock", json={"items": [
            {"itemId": a.id, "quantity": 3, "type": "increase"},
            {"itemId": b.id, "quantity": 100, "type": "decrease"},
        ]}, headers=admin_headers)

        assert resp.status_code == 400
        assert "B" in resp.json["message"]
        db_session.expire_all()
        assert db_session.get(Item, a.id).current_stock == 20
        assert db_session.get(Item, b.id).current_stock == 10

    def test_empty_batch(self, client, admin_headers):
        resp = client.put("/api/items/bulk/stock", json={"items": []}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Items array is required"


class TestCheckStockRoute:

    def test_reports_shortfall(self, client, user_headers, gallon):
        resp = client.post("/api/items/check-stock", json={"items": [{"itemId": gallon.id, "quantity": 101}]},
                           headers=user_headers)
        assert resp.status_code == 200
        assert resp.json["available"] is False
        assert resp.json["insufficientItems"][0]["available"] == 100
