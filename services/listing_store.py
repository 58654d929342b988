"""
Listing / Order Store
Pazaryerinden gelen ilan, sipariş ve kategori kayıtlarını upsert eder

SQLite ve PostgreSQL'de INSERT ... ON CONFLICT DO UPDATE kullanılır,
diğer dialect'lerde önce aranır sonra güncellenir veya eklenir.
Aynı batch tekrar çalıştırıldığında kayıt çoğalmaz.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.models import CanonicalOrder, CanonicalProduct, CategoryNode, MarketplaceProduct
from database.models import MarketplaceCategory, MarketplaceListing, MarketplaceOrder

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 200


def upsert_rows(
    db: Session,
    model,
    rows: Sequence[Dict[str, Any]],
    index_elements: List[str],
    update_columns: Optional[List[str]] = None,
) -> int:
    """
    Satırları unique anahtara göre ekler veya günceller

    Args:
        model: SQLAlchemy model sınıfı
        rows: Kolon -> değer dict'leri
        index_elements: Unique constraint kolonları
        update_columns: Çakışmada güncellenecek kolonlar (varsayılan: anahtar dışı tümü)

    Returns:
        İşlenen satır sayısı
    """
    if not rows:
        return 0

    # Aynı anahtar bir statement içinde iki kez olamaz, son gelen kazanır
    unique: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        unique[tuple(row[col] for col in index_elements)] = row
    rows = list(unique.values())

    update_columns = update_columns or [c for c in rows[0].keys() if c not in index_elements]
    dialect = db.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        for i in range(0, len(rows), UPSERT_BATCH_SIZE):
            batch = list(rows[i:i + UPSERT_BATCH_SIZE])
            insert_stmt = insert(model).values(batch)
            set_payload = {col: insert_stmt.excluded[col] for col in update_columns}
            if hasattr(model, "updated_at"):
                set_payload["updated_at"] = func.now()
            upsert_stmt = insert_stmt.on_conflict_do_update(index_elements=index_elements, set_=set_payload)
            db.execute(upsert_stmt)
    else:
        for row in rows:
            filters = [getattr(model, col) == row[col] for col in index_elements]
            existing = db.query(model).filter(*filters).first()
            if existing is None:
                db.add(model(**row))
            else:
                for col in update_columns:
                    setattr(existing, col, row[col])

    db.commit()
    return len(rows)


# ============================================================================
# İLANLAR
# ============================================================================

def listing_row(
    user_id: str,
    platform: str,
    product: CanonicalProduct,
    external_id: Optional[str] = None,
    connection_id: Optional[int] = None,
    status: Optional[str] = None,
    master_product_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Kanonik ürün -> marketplace_listings satırı"""
    remote_id = getattr(product, "remote_id", None)
    listing_data = product.marketplace_data if isinstance(product, MarketplaceProduct) else {}
    return {
        "user_id": user_id,
        "platform": platform,
        "external_id": str(external_id or remote_id or product.sku),
        "connection_id": connection_id,
        "master_product_id": master_product_id or product.sku,
        "sku": product.sku,
        "title": product.title,
        "description": product.description,
        "price": float(product.price),
        "stock": product.stock,
        "currency": product.currency,
        "status": status or getattr(product, "status", None) or "active",
        "category_id": product.category_id,
        "images": list(product.images),
        "listing_data": listing_data,
        "last_synced_at": datetime.now(timezone.utc),
    }


def upsert_listings(
    db: Session,
    user_id: str,
    platform: str,
    products: Iterable[CanonicalProduct],
    connection_id: Optional[int] = None,
    status: Optional[str] = None,
) -> int:
    rows = [listing_row(user_id, platform, p, connection_id=connection_id, status=status) for p in products]
    count = upsert_rows(
        db,
        MarketplaceListing,
        rows,
        index_elements=["user_id", "platform", "external_id"],
    )
    logger.info(f"💾 {platform}: {count} ilan kaydedildi")
    return count


# ============================================================================
# SİPARİŞLER
# ============================================================================

def order_row(user_id: str, platform: str, order: CanonicalOrder, connection_id: Optional[int] = None) -> Dict[str, Any]:
    data = order.model_dump(mode="json")
    return {
        "user_id": user_id,
        "platform": platform,
        "external_id": order.id,
        "connection_id": connection_id,
        "order_number": order.order_number,
        "status": order.status.value,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "shipping_address": data["shipping_address"],
        "items": data["items"],
        "subtotal": float(order.subtotal),
        "total": float(order.total),
        "currency": order.currency,
        "order_date": order.order_date,
        "marketplace_data": data["marketplace_data"],
    }


def upsert_orders(
    db: Session,
    user_id: str,
    platform: str,
    orders: Iterable[CanonicalOrder],
    connection_id: Optional[int] = None,
) -> int:
    """
    Siparişleri upsert eder

    Yerelde güncellenen kargo/durum senkronizasyon alanlarına dokunulmaz.
    """
    rows = [order_row(user_id, platform, o, connection_id) for o in orders]
    count = upsert_rows(
        db,
        MarketplaceOrder,
        rows,
        index_elements=["user_id", "platform", "external_id"],
    )
    logger.info(f"💾 {platform}: {count} sipariş kaydedildi")
    return count


# ============================================================================
# KATEGORİ CACHE
# ============================================================================

def cache_categories(db: Session, marketplace: str, tree: Iterable[CategoryNode]) -> int:
    """Canlı kategori ağacını AI önerisi bağlamı için saklar"""
    rows: List[Dict[str, Any]] = []

    def walk(node: CategoryNode):
        rows.append({
            "marketplace": marketplace,
            "external_id": node.id,
            "name": node.name,
            "parent_id": node.parent_id,
            "full_path": " > ".join(node.path or [node.name]),
            "is_leaf": not node.children,
            "fetched_at": datetime.now(timezone.utc),
        })
        for child in node.children:
            walk(child)

    for root in tree:
        walk(root)

    return upsert_rows(db, MarketplaceCategory, rows, index_elements=["marketplace", "external_id"])
