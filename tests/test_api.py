import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_advisor, get_orchestrator
from app.main import app
from database import get_db
from database.models import MarketplaceListing
from services.category_advisor import CategoryAdvisor

from tests.conftest import HEPSIBURADA_CREDENTIALS, TRENDYOL_CREDENTIALS, FakeResponse, make_connection


@pytest.fixture
def client(db_session, orchestrator, settings):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_advisor] = lambda: CategoryAdvisor(db_session, settings=settings)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth(api_token):
    return {"Authorization": f"Bearer {api_token}"}


def test_sync_without_token_is_auth_required(client, fake_session):
    response = client.post("/api/marketplaces/trendyol/sync", json={
        "action": "test_connection",
        "credentials": TRENDYOL_CREDENTIALS,
    })

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["errorType"] == "AUTH_REQUIRED"
    assert fake_session.calls == []


def test_sync_with_invalid_token_is_auth_required(client):
    response = client.post(
        "/api/marketplaces/trendyol/sync",
        json={"action": "test_connection"},
        headers={"Authorization": "Bearer wrong"},
    )

    assert response.status_code == 401


def test_sync_failure_is_returned_in_envelope(client, auth, fake_session):
    response = client.post(
        "/api/marketplaces/ikas/sync",
        json={"action": "test_connection", "credentials": {"clientId": "abc"}},
        headers=auth,
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "error": "İkas Client ID veya Client Secret eksik",
        "errorType": "CONFIG_MISSING",
        "statusCode": 400,
    }
    assert fake_session.calls == []


def test_sync_passes_extra_fields_as_params(client, auth, fake_session):
    fake_session.queue(FakeResponse(200, {"content": [], "totalElements": 0, "totalPages": 0}))

    response = client.post(
        "/api/marketplaces/trendyol/sync",
        json={"action": "fetch_products", "credentials": TRENDYOL_CREDENTIALS, "page": 2, "pageSize": 10},
        headers=auth,
    )

    assert response.json()["data"]["page"] == 2
    assert fake_session.calls[0]["params"] == {"page": 2, "size": 10}


def test_connection_lifecycle_never_returns_secrets(client, auth, fake_session):
    fake_session.queue(FakeResponse(200, {"content": []}))

    created = client.post(
        "/api/connections",
        json={"marketplace": "trendyol", "credentials": TRENDYOL_CREDENTIALS},
        headers=auth,
    )
    assert created.status_code == 200
    body = created.json()
    assert body["test"]["success"] is True
    assert body["connection"]["isActive"] is True
    assert body["connection"]["identifiers"] == {"seller_id": "12345"}
    assert "super-secret" not in created.text

    listed = client.get("/api/connections", headers=auth)
    assert [c["marketplace"] for c in listed.json()] == ["trendyol"]
    assert "super-secret" not in listed.text

    connection_id = body["connection"]["id"]
    assert client.delete(f"/api/connections/{connection_id}", headers=auth).json() == {"deleted": True, "id": connection_id}
    assert client.delete(f"/api/connections/{connection_id}", headers=auth).status_code == 404


def test_connection_with_missing_fields_is_rejected(client, auth, fake_session):
    response = client.post(
        "/api/connections",
        json={"marketplace": "hepsiburada", "credentials": {"merchant_id": "m-1"}},
        headers=auth,
    )

    assert response.status_code == 400
    assert fake_session.calls == []


def test_connections_require_token(client):
    assert client.get("/api/connections").status_code == 401


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] in ("healthy", "degraded")


def test_categories_fallback_without_connection(client, auth):
    response = client.get("/api/categories/amazon", headers=auth)

    data = response.json()["data"]
    assert data["source"] == "fallback"
    assert data["categories"][0]["children"]


def test_category_suggestion_without_ai_key(client, auth):
    response = client.post(
        "/api/categories/suggest",
        json={"productTitle": "Kupa", "targetMarketplace": "trendyol"},
        headers=auth,
    )

    assert response.json()["errorType"] == "CONFIG_MISSING"


def test_bulk_stock_endpoint_reports_per_item(client, auth, db_session, fake_session):
    connection = make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    fake_session.queue(FakeResponse(200, {}))

    response = client.post(
        "/api/bulk/hepsiburada/stock",
        json={"connectionId": connection.id, "items": [{"sku": "A", "quantity": 3}]},
        headers=auth,
    )

    data = response.json()["data"]
    assert data["succeeded"] == 1
    assert data["results"][0]["itemId"] == "A"


def test_stock_sync_endpoint(client, auth, db_session):
    listing = MarketplaceListing(user_id="user-1", platform="ikas", external_id="1", master_product_id="M", stock=1)
    db_session.add(listing)
    db_session.commit()

    response = client.post("/api/stock/sync", json={"listingId": listing.id, "newStock": 4}, headers=auth)

    assert response.json()["data"] == {"listingId": listing.id, "masterProductId": "M", "newStock": 4, "results": []}


def test_scheduler_status_requires_token(client, auth):
    assert client.get("/api/sync/status").status_code == 401
    assert "isRunning" in client.get("/api/sync/status", headers=auth).json()


def test_import_products_endpoint(client, auth, db_session, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    fake_session.queue(FakeResponse(200, {
        "content": [{"id": 1, "barcode": "A", "title": "Kupa", "salePrice": 10, "quantity": 3}],
        "totalElements": 1,
        "totalPages": 1,
    }))

    response = client.post(
        "/api/marketplaces/trendyol/import-products",
        json={"connectionId": connection.id},
        headers=auth,
    )

    assert response.json()["data"] == {"imported": 1, "pages": 1}
    assert db_session.query(MarketplaceListing).count() == 1


def test_extract_attributes_without_ai_key(client, auth):
    response = client.post("/api/categories/extract-attributes", json={"productTitle": "Kupa"}, headers=auth)

    assert response.status_code == 200
    assert response.json()["errorType"] == "CONFIG_MISSING"


def test_low_stock_check_endpoint(client, auth, db_session):
    db_session.add(MarketplaceListing(user_id="user-1", platform="ikas", external_id="1", title="Kupa", stock=2))
    db_session.commit()

    response = client.post("/api/stock/low-stock-check", headers=auth)

    assert response.json()["data"]["alertsCreated"] == 1
