"""Core module"""
from .config import Settings, get_settings
from .enums import Marketplace, OrderStatus, ErrorType, SyncAction

__all__ = [
    "Settings",
    "get_settings",
    "Marketplace",
    "OrderStatus",
    "ErrorType",
    "SyncAction",
]
