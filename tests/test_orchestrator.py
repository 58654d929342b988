import asyncio

from app.core.enums import ErrorType, Marketplace
from app.core.security import CallerIdentity
from app.models import CanonicalProduct, StockItem
from database.models import MarketplaceListing
from services.sync_orchestrator import SyncOrchestrator

from tests.conftest import (
    HEPSIBURADA_CREDENTIALS,
    IKAS_CREDENTIALS,
    TRENDYOL_CREDENTIALS,
    FakeResponse,
    make_connection,
)

CALLER = CallerIdentity(user_id="user-1")


class RoutingSession:
    """Hepsiburada listing güncellemelerine SKU'ya göre cevap verir"""

    def __init__(self, failing_sku):
        self.failing_sku = failing_sku
        self.calls = []
        self.headers = {}
        self.auth = None

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        sku = kwargs["json"][0]["sku"]
        if sku == self.failing_sku:
            return FakeResponse(500, text="internal")
        return FakeResponse(200, {})


def run(coro):
    return asyncio.run(coro)


def test_missing_caller_is_rejected_before_credentials(orchestrator, fake_session):
    result = run(orchestrator.execute(None, "trendyol", "test_connection", credentials=TRENDYOL_CREDENTIALS))

    assert result.error_type == ErrorType.AUTH_REQUIRED
    assert result.status_code == 401
    assert fake_session.calls == []


def test_unknown_marketplace_and_action(orchestrator):
    unknown_marketplace = run(orchestrator.execute(CALLER, "ebay", "test_connection"))
    unknown_action = run(orchestrator.execute(CALLER, "trendyol", "delete_everything"))

    assert unknown_marketplace.error_type == ErrorType.INVALID_REQUEST
    assert "ebay" in unknown_marketplace.error
    assert unknown_action.error_type == ErrorType.INVALID_REQUEST


def test_connection_of_another_user_is_not_found(orchestrator, db_session, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS, user_id="someone-else")

    result = run(orchestrator.execute(CALLER, "trendyol", "test_connection", connection_id=connection.id))

    assert result.error_type == ErrorType.NOT_FOUND
    assert fake_session.calls == []


def test_connection_for_different_marketplace_is_not_found(orchestrator, db_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)

    result = run(orchestrator.execute(CALLER, "hepsiburada", "test_connection", connection_id=connection.id))

    assert result.error_type == ErrorType.NOT_FOUND


def test_action_aliases_dispatch_to_same_operation(orchestrator, fake_session):
    fake_session.queue(FakeResponse(200, {"content": []}), FakeResponse(200, {"content": []}))

    first = run(orchestrator.execute(CALLER, "trendyol", "check_connection", credentials=TRENDYOL_CREDENTIALS))
    second = run(orchestrator.execute(CALLER, "Trendyol", "testConnection", credentials=TRENDYOL_CREDENTIALS))

    assert first.success and second.success
    assert fake_session.calls[0]["url"] == fake_session.calls[1]["url"]


def test_invalid_params_are_rejected(orchestrator, fake_session):
    result = run(orchestrator.execute(
        CALLER, "trendyol", "update_product",
        credentials=TRENDYOL_CREDENTIALS,
        params={"stock": -1},
    ))

    assert result.error_type == ErrorType.INVALID_REQUEST
    assert "productId" in result.error or "product_id" in result.error
    assert fake_session.calls == []


def test_category_attributes_require_category_unless_adapter_allows(orchestrator, fake_session):
    trendyol = run(orchestrator.execute(CALLER, "trendyol", "get_attributes", credentials=TRENDYOL_CREDENTIALS))
    assert trendyol.error_type == ErrorType.INVALID_REQUEST

    fake_session.queue(
        FakeResponse(200, {"access_token": "tok", "expires_in": 3600}),
        FakeResponse(200, {"data": {"listVariantType": {"data": [
            {"id": "v1", "name": "Renk", "values": [{"id": "r", "name": "Kırmızı"}]},
        ]}}}),
    )
    ikas = run(orchestrator.execute(CALLER, "ikas", "get_variant_types", credentials=IKAS_CREDENTIALS))
    assert ikas.success
    assert ikas.data[0].name == "Renk"


def test_test_connection_updates_connection_state(orchestrator, db_session, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS, is_active=False)
    fake_session.queue(FakeResponse(200, {"content": []}), FakeResponse(401, text="nope"))

    ok = run(orchestrator.execute(CALLER, "trendyol", "test_connection", connection_id=connection.id))
    db_session.refresh(connection)
    assert ok.success
    assert connection.is_active
    assert connection.last_sync_at is not None

    failed = run(orchestrator.execute(CALLER, "trendyol", "test_connection", connection_id=connection.id))
    db_session.refresh(connection)
    assert failed.error_type == ErrorType.API_ERROR
    assert not connection.is_active
    assert connection.last_error == failed.error


def test_bulk_stock_uses_native_endpoint_when_available(orchestrator, fake_session):
    fake_session.queue(FakeResponse(200, {"batchRequestId": "b-1"}))

    result = run(orchestrator.execute(
        CALLER, "trendyol", "bulk_update_stock",
        credentials=TRENDYOL_CREDENTIALS,
        params={"items": [{"sku": "A", "quantity": 1}, {"sku": "B", "quantity": 2}]},
    ))

    assert result.data == {"updated": 2, "batchRequestId": "b-1"}
    assert len(fake_session.calls) == 1


def test_bulk_stock_fallback_isolates_failing_item(db_session, settings):
    session = RoutingSession(failing_sku="SKU-3")
    orchestrator = SyncOrchestrator(db_session, settings=settings, session_factory=lambda: session)
    progress = []
    adapter = orchestrator.build_adapter(Marketplace.HEPSIBURADA, HEPSIBURADA_CREDENTIALS)
    items = [StockItem(sku=f"SKU-{i}", quantity=i) for i in range(1, 6)]

    result = run(orchestrator.bulk_update_stock(adapter, items, on_progress=lambda c, t: progress.append((c, t))))

    summary = result.data
    assert result.success
    assert len(summary.results) == 5
    assert [r.item_id for r in summary.results] == [f"SKU-{i}" for i in range(1, 6)]
    assert [r.success for r in summary.results] == [True, True, False, True, True]
    assert summary.succeeded == 4
    assert progress[-1] == (5, 5)
    assert summary.progress.current == 5 and summary.progress.total == 5


def test_bulk_stock_with_no_items(orchestrator):
    result = run(orchestrator.execute(
        CALLER, "hepsiburada", "bulk_update_stock",
        credentials=HEPSIBURADA_CREDENTIALS,
        params={"items": []},
    ))

    assert result.error_type == ErrorType.NO_PRODUCTS


def test_bulk_publish_upserts_pending_listings(orchestrator, db_session, fake_session):
    connection = make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    fake_session.queue(
        FakeResponse(200, {"trackingId": "t-1"}),
        FakeResponse(200, {"trackingId": "t-2"}),
    )
    products = [
        CanonicalProduct(sku="SKU-1", title="Kupa", price="10", stock=1, category_id="5"),
        CanonicalProduct(sku="SKU-2", title="Tabak", price="20", stock=2, category_id="5"),
    ]

    result = run(orchestrator.bulk_publish(CALLER, "hepsiburada", connection.id, products))

    assert result.data.succeeded == 2
    listings = db_session.query(MarketplaceListing).order_by(MarketplaceListing.sku).all()
    assert [(l.sku, l.status, l.connection_id) for l in listings] == [
        ("SKU-1", "pending", connection.id),
        ("SKU-2", "pending", connection.id),
    ]
