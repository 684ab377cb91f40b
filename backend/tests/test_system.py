"""System endpoints and app wiring."""

from waterstation.extensions import db


def test_health_is_public(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "OK"
    assert resp.json["timestamp"].endswith("Z")


def test_db_status_counts(client, db_session, gallon, customer):
    resp = client.get("/api/db-status")

    assert resp.status_code == 200
    database = resp.json["database"]
    assert database["status"] == "healthy"
    assert database["details"] == {"items": 1, "customers": 1, "sales": 0, "users": 0}


def test_cors_headers(client, db_session):
    resp = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
    assert resp.headers.get("Access-Control-Allow-Origin") == "http://localhost:3000"


def test_unknown_route_is_404(client, db_session):
    assert client.get("/api/nope").status_code == 404


def test_tables_created(app):
    names = set(db.metadata.tables)
    assert {"items", "stock_history", "customers", "sales", "sale_lines", "users", "session_tokens",
            "login_history"} <= names
