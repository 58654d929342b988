from decimal import Decimal

from app.core.enums import OrderStatus
from app.models import CanonicalOrder, CategoryNode, MarketplaceProduct, OrderLine
from database.models import MarketplaceCategory, MarketplaceListing, MarketplaceOrder
from services.category_tree import build_tree
from services.listing_store import cache_categories, upsert_listings, upsert_orders


def product(sku, stock, remote_id=None):
    return MarketplaceProduct(
        sku=sku,
        title=f"Ürün {sku}",
        price=Decimal("49.90"),
        stock=stock,
        remote_id=remote_id,
        marketplace_data={"raw": sku},
    )


def test_reimporting_listings_updates_instead_of_duplicating(db_session):
    upsert_listings(db_session, "user-1", "trendyol", [product("A", 5, "100"), product("B", 1, "200")], connection_id=1)
    upsert_listings(db_session, "user-1", "trendyol", [product("A", 9, "100")], connection_id=1)

    rows = db_session.query(MarketplaceListing).order_by(MarketplaceListing.external_id).all()

    assert [(r.external_id, r.sku, r.stock) for r in rows] == [("100", "A", 9), ("200", "B", 1)]
    assert rows[0].master_product_id == "A"
    assert rows[0].listing_data == {"raw": "A"}


def test_same_external_id_on_other_platform_is_separate(db_session):
    upsert_listings(db_session, "user-1", "trendyol", [product("A", 5, "100")])
    upsert_listings(db_session, "user-1", "n11", [product("A", 5, "100")])
    upsert_listings(db_session, "user-2", "trendyol", [product("A", 5, "100")])

    assert db_session.query(MarketplaceListing).count() == 3


def test_duplicate_keys_in_one_batch_keep_last(db_session):
    count = upsert_listings(db_session, "user-1", "ikas", [product("A", 1, "1"), product("A", 7, "1")])

    assert count == 1
    assert db_session.query(MarketplaceListing).one().stock == 7


def test_orders_upsert_keeps_local_shipping_fields(db_session):
    order = CanonicalOrder(
        id="PKG-1",
        order_number="ORD-1",
        status=OrderStatus.PROCESSING,
        items=[OrderLine(title="Kupa", sku="A", quantity=2, unit_price=Decimal("10"), total_price=Decimal("20"))],
        total=Decimal("20"),
    )
    upsert_orders(db_session, "user-1", "trendyol", [order])
    row = db_session.query(MarketplaceOrder).one()
    row.tracking_number = "TRK-1"
    db_session.commit()

    upsert_orders(db_session, "user-1", "trendyol", [order.model_copy(update={"status": OrderStatus.SHIPPED})])
    db_session.expire_all()

    row = db_session.query(MarketplaceOrder).one()
    assert row.status == "shipped"
    assert row.tracking_number == "TRK-1"
    assert row.items[0]["sku"] == "A"


def test_cache_categories_stores_every_node_with_path(db_session):
    tree = build_tree([
        {"id": "1", "name": "Ev"},
        {"id": "2", "name": "Mutfak", "parentId": "1"},
    ])

    cache_categories(db_session, "trendyol", tree)
    cache_categories(db_session, "trendyol", [CategoryNode(id="1", name="Ev & Yaşam")])

    rows = {r.external_id: r for r in db_session.query(MarketplaceCategory).all()}
    assert set(rows) == {"1", "2"}
    assert rows["2"].full_path == "Ev > Mutfak"
    assert rows["2"].is_leaf
    assert rows["1"].name == "Ev & Yaşam"
