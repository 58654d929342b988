import asyncio
from datetime import datetime, timezone

from app.core.enums import ErrorType, OrderStatus
from app.core.security import CallerIdentity
from database.models import LowStockAlert, MarketplaceCategory, MarketplaceListing, MarketplaceOrder, StockSyncLog
from services.category_service import CategoryService
from services.order_status_sync import OrderStatusSyncService
from services.scheduled_sync import ScheduledSyncService
from services.shop_sync import ShopSyncService
from services.stock_sync import StockSyncService

from tests.conftest import (
    HEPSIBURADA_CREDENTIALS,
    IKAS_CREDENTIALS,
    N11_CREDENTIALS,
    TRENDYOL_CREDENTIALS,
    FakeResponse,
    make_connection,
)

CALLER = CallerIdentity(user_id="user-1")


def run(coro):
    return asyncio.run(coro)


def add_listing(db, platform, external_id, connection_id=None, stock=5, master="MASTER-1", user_id="user-1"):
    listing = MarketplaceListing(
        user_id=user_id,
        platform=platform,
        external_id=external_id,
        connection_id=connection_id,
        master_product_id=master,
        sku=f"{platform}-sku",
        title="Kupa",
        stock=stock,
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    return listing


def add_order(db, platform, connection_id=None, user_id="user-1"):
    order = MarketplaceOrder(
        user_id=user_id,
        platform=platform,
        external_id="PKG-1",
        connection_id=connection_id,
        order_number="ORD-1",
        status="processing",
        items=[],
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


# ============================================================================
# ORDER STATUS SYNC
# ============================================================================

def test_order_status_push_success_marks_synced(db_session, orchestrator, fake_session):
    connection = make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    order = add_order(db_session, "hepsiburada", connection.id)
    fake_session.queue(FakeResponse(200, {}))

    result = run(OrderStatusSyncService(db_session, orchestrator).push(
        CALLER, order.id, OrderStatus.SHIPPED, tracking_number="TRK-9", cargo_provider="Aras",
    ))

    db_session.refresh(order)
    assert result.success
    assert result.data["status"] == "shipped"
    assert order.status == "shipped"
    assert order.tracking_number == "TRK-9"
    assert order.tracking_company == "Aras"
    assert order.shipped_date is not None
    assert order.status_synced_at is not None
    assert fake_session.calls[0]["json"]["orderNumber"] == "PKG-1"


def test_order_status_push_failure_still_updates_local_order(db_session, orchestrator, fake_session):
    connection = make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    order = add_order(db_session, "hepsiburada", connection.id)
    fake_session.queue(FakeResponse(500, text="down"))

    result = run(OrderStatusSyncService(db_session, orchestrator).push(CALLER, order.id, OrderStatus.CANCELLED))

    db_session.refresh(order)
    assert not result.success
    assert order.status == "cancelled"
    assert order.cancelled_date is not None
    assert order.status_synced_at is None


def test_order_status_unmapped_status_is_local_only(db_session, orchestrator, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    order = add_order(db_session, "trendyol", connection.id)

    result = run(OrderStatusSyncService(db_session, orchestrator).push(CALLER, order.id, OrderStatus.PENDING))

    assert result.success
    assert result.data["remote"]["skipped"]
    assert fake_session.calls == []


def test_order_status_errors(db_session, orchestrator):
    service = OrderStatusSyncService(db_session, orchestrator)
    foreign = add_order(db_session, "trendyol", user_id="user-2")

    assert run(service.push(None, foreign.id, OrderStatus.SHIPPED)).error_type == ErrorType.AUTH_REQUIRED
    assert run(service.push(CALLER, foreign.id, OrderStatus.SHIPPED)).error_type == ErrorType.NOT_FOUND

    own = add_order(db_session, "n11")
    assert run(service.push(CALLER, own.id, OrderStatus.SHIPPED)).error_type == ErrorType.INVALID_REQUEST


# ============================================================================
# STOCK SYNC
# ============================================================================

def test_stock_propagates_to_sibling_listings(db_session, orchestrator, fake_session):
    hb = make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    n11 = make_connection(db_session, "n11", N11_CREDENTIALS, is_active=False)
    trendyol = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    source = add_listing(db_session, "ikas", "ikas-1", stock=5)
    hb_listing = add_listing(db_session, "hepsiburada", "hb-1", hb.id)
    add_listing(db_session, "n11", "n11-1", n11.id)
    ty_listing = add_listing(db_session, "trendyol", "ty-1", trendyol.id)
    add_listing(db_session, "amazon", "other-master", master="MASTER-2")
    fake_session.queue(FakeResponse(500, text="down"), FakeResponse(200, {"batchRequestId": "b"}))

    result = run(StockSyncService(db_session, orchestrator).propagate(CALLER, source.id, 2))

    results = {r["marketplace"]: r for r in result.data["results"]}
    assert set(results) == {"hepsiburada", "n11", "trendyol"}
    assert results["hepsiburada"]["success"] is False
    assert results["hepsiburada"]["errorType"] == ErrorType.CONNECTION_ERROR.value
    assert results["n11"]["skipped"]
    assert results["trendyol"] == {
        "marketplace": "trendyol",
        "listingId": ty_listing.id,
        "success": True,
        "previousStock": 5,
        "newStock": 2,
    }

    db_session.refresh(source)
    db_session.refresh(hb_listing)
    db_session.refresh(ty_listing)
    assert (source.stock, hb_listing.stock, ty_listing.stock) == (2, 5, 2)
    assert fake_session.calls[1]["json"]["items"] == [{"barcode": "ty-1", "quantity": 2}]

    logs = db_session.query(StockSyncLog).order_by(StockSyncLog.platform).all()
    assert [(log.platform, log.success) for log in logs] == [("hepsiburada", False), ("trendyol", True)]


def test_stock_sync_unknown_listing(db_session, orchestrator):
    other = add_listing(db_session, "ikas", "ikas-1", user_id="user-2")

    result = run(StockSyncService(db_session, orchestrator).propagate(CALLER, other.id, 1))

    assert result.error_type == ErrorType.NOT_FOUND


def test_low_stock_check_creates_then_updates_alerts(db_session, orchestrator):
    low = add_listing(db_session, "trendyol", "ty-1", stock=3)
    custom = add_listing(db_session, "ikas", "ikas-1", stock=15)
    custom.low_stock_threshold = 20
    add_listing(db_session, "n11", "n11-1", stock=50)
    add_listing(db_session, "amazon", "amz-1", stock=0, user_id="user-2")
    db_session.commit()
    service = StockSyncService(db_session, orchestrator)

    first = service.check_low_stock(CALLER)
    low.stock = 1
    db_session.commit()
    second = service.check_low_stock(CALLER)

    assert (first.data["alertsCreated"], first.data["alertsUpdated"]) == (2, 0)
    assert (second.data["alertsCreated"], second.data["alertsUpdated"]) == (0, 2)
    alerts = {a.listing_id: a for a in db_session.query(LowStockAlert).all()}
    assert set(alerts) == {low.id, custom.id}
    assert (alerts[low.id].current_stock, alerts[low.id].threshold) == (1, 10)
    assert alerts[custom.id].threshold == 20
    assert service.check_low_stock(None).error_type == ErrorType.AUTH_REQUIRED


# ============================================================================
# SHOP SYNC
# ============================================================================

def test_fetch_all_orders_isolates_failing_marketplace(db_session, orchestrator, fake_session):
    make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS)
    make_connection(db_session, "ikas", IKAS_CREDENTIALS, is_active=False)
    fake_session.queue(FakeResponse(200, {
        "content": [{
            "shipmentPackageId": 77,
            "orderNumber": "TY-77",
            "status": "Shipped",
            "totalPrice": 120.5,
            "lines": [{"id": 1, "productName": "Kupa", "barcode": "A", "quantity": 2, "price": 60.25}],
        }],
        "totalPages": 1,
    }))

    result = run(ShopSyncService(db_session, orchestrator).fetch_all_orders(
        CALLER, since=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ))

    assert result.success
    entries = {e["marketplace"]: e for e in result.data["results"]}
    assert entries["trendyol"]["success"] and entries["trendyol"]["ordersCount"] == 1
    assert entries["hepsiburada"]["errorType"] == ErrorType.UNSUPPORTED_ACTION.value
    assert "ikas" not in entries
    assert result.data["message"] == "1/2 pazaryeri senkronize edildi"

    order = db_session.query(MarketplaceOrder).one()
    assert (order.external_id, order.status, order.total) == ("77", "shipped", 120.5)


def test_import_products_pages_until_short_page(db_session, orchestrator, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    page = {"content": [{"id": 1, "barcode": "A", "title": "Kupa", "salePrice": 10, "quantity": 3}],
            "totalElements": 1, "totalPages": 1}
    fake_session.queue(FakeResponse(200, page), FakeResponse(200, page))
    service = ShopSyncService(db_session, orchestrator)

    first = run(service.import_products(CALLER, "trendyol", connection.id))
    second = run(service.import_products(CALLER, "trendyol", connection.id))

    assert first.data == {"imported": 1, "pages": 1}
    assert second.data == {"imported": 1, "pages": 1}
    assert db_session.query(MarketplaceListing).count() == 1


def test_import_products_first_page_failure_is_returned(db_session, orchestrator, fake_session):
    connection = make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    fake_session.queue(FakeResponse(401, text="denied"))

    result = run(ShopSyncService(db_session, orchestrator).import_products(CALLER, "trendyol", connection.id))

    assert result.error_type == ErrorType.API_ERROR


# ============================================================================
# CATEGORY SERVICE
# ============================================================================

def test_categories_without_connection_use_fallback(db_session, orchestrator, fake_session):
    result = run(CategoryService(db_session, orchestrator).categories_for(CALLER, "amazon"))

    assert result.data["source"] == "fallback"
    assert result.data["version"]
    assert result.data["categories"]
    assert fake_session.calls == []


def test_categories_live_failure_falls_back(db_session, orchestrator, fake_session):
    make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    fake_session.queue(FakeResponse(503))

    result = run(CategoryService(db_session, orchestrator).categories_for(CALLER, "trendyol"))

    assert result.data["source"] == "fallback"


def test_categories_live_tree_is_cached(db_session, orchestrator, fake_session):
    make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS)
    fake_session.queue(FakeResponse(200, {"categories": [
        {"id": 1, "name": "Ev", "subCategories": [{"id": 2, "name": "Mutfak", "subCategories": []}]},
    ]}))

    result = run(CategoryService(db_session, orchestrator).categories_for(CALLER, "trendyol"))

    assert result.data["source"] == "live"
    assert result.data["categories"][0].children[0].path == ["Ev", "Mutfak"]
    assert db_session.query(MarketplaceCategory).count() == 2


def test_categories_errors(db_session, orchestrator):
    service = CategoryService(db_session, orchestrator)

    assert run(service.categories_for(None, "trendyol")).error_type == ErrorType.AUTH_REQUIRED
    assert run(service.categories_for(CALLER, "ebay")).error_type == ErrorType.INVALID_REQUEST
    assert run(service.categories_for(CALLER, "trendyol", connection_id=999)).error_type == ErrorType.NOT_FOUND


# ============================================================================
# SCHEDULED SYNC
# ============================================================================

def test_scheduler_run_once_covers_every_user(db_session):
    make_connection(db_session, "hepsiburada", HEPSIBURADA_CREDENTIALS, user_id="user-1")
    make_connection(db_session, "ikas", {"client_id": "only-id"}, user_id="user-2")
    make_connection(db_session, "trendyol", TRENDYOL_CREDENTIALS, user_id="user-3", is_active=False)
    scheduler = ScheduledSyncService(session_factory=lambda: db_session, interval=60)

    summary = run(scheduler.trigger_now())

    assert summary["users"] == 2
    assert summary["marketplaces"] == 2
    assert summary["succeeded"] == 0
    assert scheduler.last_run_at is not None
    assert not scheduler.is_syncing

    status = scheduler.status()
    assert status["lastResult"] == summary
    assert status["nextRunAt"] is None


def test_scheduler_pause_and_resume():
    scheduler = ScheduledSyncService(session_factory=lambda: None, interval=60)

    scheduler.pause()
    assert scheduler.status()["isPaused"]
    scheduler.resume()
    assert not scheduler.status()["isPaused"]
