"""
Database Models - Bağlantılar, ilanlar, siparişler ve kategori eşlemeleri
"""
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, Boolean, Index, JSON, UniqueConstraint
)
from sqlalchemy.sql import func

from .connection import Base


class MarketplaceConnection(Base):
    """
    Pazaryeri bağlantısı - kullanıcı başına pazaryeri başına bir kayıt

    credentials dışarıya asla dönmez; API sadece anahtar isimlerini gösterir.
    """
    __tablename__ = "marketplace_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    marketplace = Column(String(50), nullable=False, index=True)
    credentials = Column(JSON, nullable=False, default=dict)

    # Durum
    is_active = Column(Boolean, default=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'marketplace', name='uq_connection_user_marketplace'),
    )


class MarketplaceListing(Base):
    """
    Pazaryerindeki ilan - (user_id, platform, external_id) tekil

    master_product_id aynı ürünün farklı pazaryerlerindeki ilanlarını bağlar
    (stok yayılımı bu alan üzerinden yapılır).
    """
    __tablename__ = "marketplace_listings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    connection_id = Column(Integer, index=True, nullable=True)
    master_product_id = Column(String(100), index=True, nullable=True)

    platform = Column(String(50), nullable=False, index=True)
    external_id = Column(String(200), nullable=False)
    sku = Column(String(200), index=True)

    # İlan bilgileri
    title = Column(String(500))
    description = Column(Text)
    price = Column(Float, default=0.0)
    stock = Column(Integer, default=0)
    low_stock_threshold = Column(Integer, nullable=True)
    currency = Column(String(10), default="TRY")
    status = Column(String(50), default="pending", index=True)
    category_id = Column(String(100))
    images = Column(JSON, default=list)
    listing_data = Column(JSON, default=dict)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'platform', 'external_id', name='uq_listing_user_platform_external'),
        Index('idx_listing_master', 'user_id', 'master_product_id'),
    )


class MarketplaceOrder(Base):
    """
    Pazaryeri siparişi - (user_id, platform, external_id) tekil
    """
    __tablename__ = "marketplace_orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    connection_id = Column(Integer, index=True, nullable=True)

    platform = Column(String(50), nullable=False, index=True)
    external_id = Column(String(200), nullable=False)
    order_number = Column(String(200), index=True)

    # Sipariş
    status = Column(String(20), default="pending", index=True)
    customer_name = Column(String(300))
    customer_email = Column(String(300))
    shipping_address = Column(JSON, nullable=True)
    items = Column(JSON, default=list)
    subtotal = Column(Float, default=0.0)
    total = Column(Float, default=0.0)
    currency = Column(String(10), default="TRY")
    order_date = Column(DateTime, nullable=True, index=True)
    marketplace_data = Column(JSON, default=dict)

    # Kargo / durum senkronizasyonu
    tracking_number = Column(String(100))
    tracking_company = Column(String(100))
    shipped_date = Column(DateTime(timezone=True), nullable=True)
    delivered_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_date = Column(DateTime(timezone=True), nullable=True)
    status_synced_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'platform', 'external_id', name='uq_order_user_platform_external'),
        Index('idx_order_user_date', 'user_id', 'order_date'),
    )


class CategoryMapping(Base):
    """
    Doğrulanmış kategori eşlemeleri - AI önerilerine örnek olarak verilir
    """
    __tablename__ = "category_mappings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), index=True, nullable=True)

    source_category = Column(String(500))
    product_title = Column(String(500))
    target_marketplace = Column(String(50), nullable=False, index=True)
    target_category_id = Column(String(100), nullable=False)
    target_category_name = Column(String(300))
    target_path = Column(String(1000))

    is_verified = Column(Boolean, default=False, index=True)
    confidence_score = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MarketplaceCategory(Base):
    """
    Pazaryeri kategori cache'i (AI önerisi için bağlam)
    """
    __tablename__ = "marketplace_categories"

    id = Column(Integer, primary_key=True, index=True)
    marketplace = Column(String(50), nullable=False, index=True)
    external_id = Column(String(100), nullable=False)
    name = Column(String(300), nullable=False)
    parent_id = Column(String(100), nullable=True)
    full_path = Column(String(1000))
    is_leaf = Column(Boolean, default=True)

    fetched_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('marketplace', 'external_id', name='uq_category_marketplace_external'),
    )


class StockSyncLog(Base):
    """
    Stok yayılımı kaydı - pazaryeri başına bir satır
    """
    __tablename__ = "stock_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    source_listing_id = Column(Integer, index=True)
    target_listing_id = Column(Integer, index=True, nullable=True)
    master_product_id = Column(String(100), index=True, nullable=True)
    platform = Column(String(50), nullable=False)

    old_stock = Column(Integer, nullable=True)
    new_stock = Column(Integer, nullable=False)
    success = Column(Boolean, default=False)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LowStockAlert(Base):
    """
    Düşük stok uyarısı - ilan başına en fazla bir okunmamış kayıt
    """
    __tablename__ = "low_stock_alerts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    listing_id = Column(Integer, nullable=False, index=True)
    platform = Column(String(50))
    product_title = Column(String(500))
    current_stock = Column(Integer, nullable=False)
    threshold = Column(Integer, nullable=False)
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index('idx_alert_user_unread', 'user_id', 'is_read'),
    )


class ApiToken(Base):
    """
    API erişim token'ı - sadece SHA-256 hash saklanır
    """
    __tablename__ = "api_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False, index=True)
    name = Column(String(100))
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_used_at = Column(DateTime(timezone=True), nullable=True)
