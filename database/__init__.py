"""Database module"""
from .connection import Base, engine, get_db, SessionLocal
from .models import (
    ApiToken,
    CategoryMapping,
    LowStockAlert,
    MarketplaceCategory,
    MarketplaceConnection,
    MarketplaceListing,
    MarketplaceOrder,
    StockSyncLog,
)

__all__ = [
    "Base",
    "engine",
    "get_db",
    "SessionLocal",
    "ApiToken",
    "CategoryMapping",
    "LowStockAlert",
    "MarketplaceCategory",
    "MarketplaceConnection",
    "MarketplaceListing",
    "MarketplaceOrder",
    "StockSyncLog",
]
