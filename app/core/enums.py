"""
Core Enums - Marketplace, sipariş durumu ve hata tipleri için sabitler
"""
from enum import Enum
from typing import Optional


class Marketplace(str, Enum):
    """
    Desteklenen pazaryerleri
    Değerler URL ve veritabanında kullanılan küçük harfli kimliklerdir
    """
    TRENDYOL = "trendyol"
    HEPSIBURADA = "hepsiburada"
    AMAZON = "amazon"
    IKAS = "ikas"
    N11 = "n11"
    CICEKSEPETI = "ciceksepeti"
    ETSY = "etsy"
    SHOPIFY = "shopify"

    @classmethod
    def get_all_values(cls):
        """Tüm marketplace kimliklerini liste olarak döner"""
        return [m.value for m in cls]

    @classmethod
    def normalize(cls, marketplace: str) -> Optional["Marketplace"]:
        """
        Marketplace ismini standartlaştırır

        Returns:
            Marketplace üyesi - tanınmıyorsa None
        """
        if not marketplace:
            return None

        key = marketplace.strip().upper().replace(" ", "").replace("-", "").replace("_", "")

        mapping = {
            "TRENDYOL": cls.TRENDYOL,
            "HEPSIBURADA": cls.HEPSIBURADA,
            "HB": cls.HEPSIBURADA,
            "AMAZON": cls.AMAZON,
            "AMAZONTR": cls.AMAZON,
            "IKAS": cls.IKAS,
            "İKAS": cls.IKAS,
            "N11": cls.N11,
            "CICEKSEPETI": cls.CICEKSEPETI,
            "ÇIÇEKSEPETI": cls.CICEKSEPETI,
            "ÇİÇEKSEPETİ": cls.CICEKSEPETI,
            "ETSY": cls.ETSY,
            "SHOPIFY": cls.SHOPIFY,
        }

        return mapping.get(key)


class OrderStatus(str, Enum):
    """Kanonik sipariş durumları (tüm pazaryerleri için ortak)"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ErrorType(str, Enum):
    """SyncResult.errorType değerleri"""
    AUTH_REQUIRED = "AUTH_REQUIRED"
    CONFIG_MISSING = "CONFIG_MISSING"
    OAUTH_ERROR = "OAUTH_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    API_ERROR = "API_ERROR"
    FETCH_ERROR = "FETCH_ERROR"
    NO_PRODUCTS = "NO_PRODUCTS"
    RATE_LIMITED = "RATE_LIMITED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"


class SyncAction(str, Enum):
    """Orchestrator'ın tanıdığı aksiyonlar"""
    TEST_CONNECTION = "test_connection"
    FETCH_CATEGORIES = "fetch_categories"
    FETCH_SUB_CATEGORIES = "fetch_sub_categories"
    FETCH_CATEGORY_ATTRIBUTES = "fetch_category_attributes"
    FETCH_PRODUCTS = "fetch_products"
    CREATE_PRODUCT = "create_product"
    UPDATE_PRODUCT = "update_product"
    BULK_UPDATE_STOCK = "bulk_update_stock"
    FETCH_ORDERS = "fetch_orders"
    PUSH_PRODUCTS = "push_products"
    CHECK_PRODUCT_STATUS = "check_product_status"

    @classmethod
    def normalize(cls, action: str) -> Optional["SyncAction"]:
        """
        Frontend'in gönderdiği farklı aksiyon isimlerini tek bir değere indirger
        (test, check_connection, testConnection ...)
        """
        if not action:
            return None
        return _ACTION_ALIASES.get(action.strip())


_ACTION_ALIASES = {
    "test_connection": SyncAction.TEST_CONNECTION,
    "check_connection": SyncAction.TEST_CONNECTION,
    "testConnection": SyncAction.TEST_CONNECTION,
    "test": SyncAction.TEST_CONNECTION,
    "fetch_categories": SyncAction.FETCH_CATEGORIES,
    "get_categories": SyncAction.FETCH_CATEGORIES,
    "fetchCategories": SyncAction.FETCH_CATEGORIES,
    "categories": SyncAction.FETCH_CATEGORIES,
    "fetch_sub_categories": SyncAction.FETCH_SUB_CATEGORIES,
    "fetchSubCategories": SyncAction.FETCH_SUB_CATEGORIES,
    "fetch_category_attributes": SyncAction.FETCH_CATEGORY_ATTRIBUTES,
    "get_attributes": SyncAction.FETCH_CATEGORY_ATTRIBUTES,
    "fetchCategoryAttributes": SyncAction.FETCH_CATEGORY_ATTRIBUTES,
    "category-attributes": SyncAction.FETCH_CATEGORY_ATTRIBUTES,
    "get_variant_types": SyncAction.FETCH_CATEGORY_ATTRIBUTES,
    "fetch_products": SyncAction.FETCH_PRODUCTS,
    "fetchProducts": SyncAction.FETCH_PRODUCTS,
    "create_product": SyncAction.CREATE_PRODUCT,
    "createProduct": SyncAction.CREATE_PRODUCT,
    "create-product": SyncAction.CREATE_PRODUCT,
    "update_product": SyncAction.UPDATE_PRODUCT,
    "updateProduct": SyncAction.UPDATE_PRODUCT,
    "update-product": SyncAction.UPDATE_PRODUCT,
    "bulk_update_stock": SyncAction.BULK_UPDATE_STOCK,
    "bulkUpdateStock": SyncAction.BULK_UPDATE_STOCK,
    "fetch_orders": SyncAction.FETCH_ORDERS,
    "fetchOrders": SyncAction.FETCH_ORDERS,
    "sync_orders": SyncAction.FETCH_ORDERS,
    "push_products": SyncAction.PUSH_PRODUCTS,
    "check_product_status": SyncAction.CHECK_PRODUCT_STATUS,
    "check-status": SyncAction.CHECK_PRODUCT_STATUS,
}
