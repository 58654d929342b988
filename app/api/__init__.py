"""API module"""
# Import all routers
from . import bulk, categories, connections, health, marketplaces, orders, stock, sync

__all__ = ["bulk", "categories", "connections", "health", "marketplaces", "orders", "stock", "sync"]
