"""
Marketplace Adapter Base
Tüm pazaryeri client'larının ortak sözleşmesi

- Kimlik bilgisi kontrolü ağa çıkmadan önce yapılır (CONFIG_MISSING)
- Her public işlem SyncResult döner, exception dışarı sızmaz
- Idempotent okuma istekleri 429/5xx durumunda backoff ile tekrar denenir
- Yazma istekleri otomatik tekrar edilmez
"""
import functools
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from app.core.config import Settings, get_settings
from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import CanonicalOrder, CanonicalProduct, ProductUpdate, StockItem, SyncResult
from connectors.credentials import describe_missing, resolve_credentials
from connectors.exceptions import (
    ConfigMissingError,
    MarketplaceAPIError,
    MarketplaceError,
    ResponseParseError,
)

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)

DEFAULT_STATUS_MESSAGES = {
    400: "Geçersiz istek (400): Pazaryeri gönderilen veriyi kabul etmedi.",
    401: "Kimlik doğrulama hatası (401): API anahtarı veya secret yanlış.",
    403: "Yetkisiz (403): Bu hesap için API erişim izniniz yok.",
    404: "Kaynak bulunamadı (404).",
}

INTERNAL_ERROR_MESSAGE = "İşlem sırasında bir hata oluştu, lütfen daha sonra tekrar deneyin"

PLACEHOLDER_IMAGE = "https://via.placeholder.com/500"
DEFAULT_VAT_RATE = 18


class TokenCache:
    """
    Connection id bazlı access token cache

    Süresi dolmuş token asla dönmez; expires_in değerinden güvenlik payı düşülür.
    """

    def __init__(self, safety_margin: int = 60):
        self.safety_margin = safety_margin
        self._tokens: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._tokens.get(key)
            if entry is None:
                return None
            token, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._tokens[key]
                return None
            return token

    def set(self, key: str, token: str, expires_in: Optional[int]):
        if not expires_in:
            return
        lifetime = max(int(expires_in) - self.safety_margin, 0)
        if lifetime <= 0:
            return
        with self._lock:
            self._tokens[key] = (token, time.monotonic() + lifetime)

    def invalidate(self, key: str):
        with self._lock:
            self._tokens.pop(key, None)

    def clear(self):
        with self._lock:
            self._tokens.clear()


_token_cache: Optional[TokenCache] = None


def get_token_cache() -> TokenCache:
    """Process genelinde tek token cache"""
    global _token_cache
    if _token_cache is None:
        _token_cache = TokenCache()
    return _token_cache


def adapter_operation(func: Callable) -> Callable:
    """
    Adapter işlemlerini SyncResult sınırına bağlar

    Kimlik bilgisi kontrolünü ağdan önce yapar, kategorik hataları ve
    transport hatalarını SyncResult'a çevirir. Beklenmeyen hatalar
    loglanır ve INTERNAL_ERROR olarak döner.
    """

    @functools.wraps(func)
    def wrapper(self: "MarketplaceAdapter", *args, **kwargs) -> SyncResult:
        operation = func.__name__
        try:
            self.ensure_configured()
            result = func(self, *args, **kwargs)
            if isinstance(result, SyncResult):
                return result
            return SyncResult.ok(result)

        except MarketplaceError as e:
            logger.warning(f"⚠️ {self.display_name}.{operation} başarısız: {e.error_type.value} ({e.status_code})")
            return SyncResult.fail(e.error_type, e.message, e.status_code)

        except requests.exceptions.Timeout:
            logger.error(f"❌ {self.display_name}.{operation} timeout ({self.timeout}s)")
            return SyncResult.fail(
                ErrorType.TIMEOUT,
                f"{self.display_name} zamanında cevap vermedi, lütfen daha sonra tekrar deneyin",
                504,
            )

        except requests.exceptions.RequestException as e:
            logger.error(f"❌ {self.display_name}.{operation} bağlantı hatası: {type(e).__name__}")
            return SyncResult.fail(
                ErrorType.CONNECTION_ERROR,
                f"{self.display_name} servisine ulaşılamadı, lütfen daha sonra tekrar deneyin",
                503,
            )

        except Exception as e:
            logger.error(f"❌ {self.display_name}.{operation} beklenmeyen hata: {e}", exc_info=True)
            return SyncResult.fail(ErrorType.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE, 500)

    return wrapper


class MarketplaceAdapter:
    """
    Pazaryeri adapter'larının temel sınıfı

    Alt sınıflar desteklediği işlemleri @adapter_operation ile override eder;
    desteklenmeyen işlemler UNSUPPORTED_ACTION döner.
    """

    marketplace: Marketplace = None
    display_name: str = "Marketplace"

    # Kanonik durum -> pazaryeri durumu. Haritada olmayan durumlar no-op'tur.
    status_map: Dict[OrderStatus, Any] = {}

    # Pazaryerinin toplu stok endpoint'i var mı?
    supports_native_bulk_stock: bool = False

    # Adapter'a özel HTTP durum mesajları (DEFAULT_STATUS_MESSAGES'ı ezer)
    status_messages: Dict[int, str] = {}

    # fetch_category_attributes kategori id gerektiriyor mu?
    requires_category_for_attributes: bool = True

    def __init__(
        self,
        credentials: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
        token_cache: Optional[TokenCache] = None,
        cache_key: Optional[str] = None,
    ):
        """
        Args:
            credentials: Ham kimlik bilgisi map'i (alias'lar kabul edilir)
            session: HTTP session (testlerde sahte session verilir)
            settings: Uygulama ayarları
            token_cache: OAuth token cache (None = cache yok)
            cache_key: Token cache anahtarı (genelde connection id)
        """
        self.settings = settings or get_settings()
        self.credentials, self.missing_credentials = resolve_credentials(self.marketplace, credentials)
        self.session = session or requests.Session()
        self.timeout = self.settings.http_timeout
        self.max_retries = self.settings.http_max_retries
        self.retry_delay = self.settings.http_retry_delay
        self.token_cache = token_cache
        self.cache_key = f"{self.marketplace.value}:{cache_key}" if cache_key is not None else None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} configured={not self.missing_credentials}>"

    # ------------------------------------------------------------------
    # Kimlik bilgisi
    # ------------------------------------------------------------------

    def ensure_configured(self):
        if self.missing_credentials:
            raise ConfigMissingError(self.config_missing_message(), self.missing_credentials)

    def config_missing_message(self) -> str:
        return describe_missing(self.marketplace, self.missing_credentials)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict] = None,
        json: Any = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Any = None,
        retry: Optional[bool] = None,
        status_messages: Optional[Dict[int, str]] = None,
    ) -> requests.Response:
        """
        HTTP request with retry logic

        Args:
            retry: None ise sadece GET tekrar denenir
            status_messages: Bu istek için özel hata mesajları
        """
        if retry is None:
            retry = method.upper() == "GET"
        attempts = self.max_retries + 1 if retry else 1

        response = None
        for attempt in range(attempts):
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json,
                data=data,
                headers=headers,
                auth=auth,
                timeout=self.timeout,
            )
            if response.status_code in RETRY_STATUSES and attempt < attempts - 1:
                wait_time = self.retry_delay * (2 ** attempt)
                logger.warning(
                    f"{self.display_name} HTTP {response.status_code}, retrying in {wait_time}s... "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                time.sleep(wait_time)
                continue
            break

        if response.status_code >= 400:
            self._raise_for_status(response, status_messages)
        return response

    def _raise_for_status(self, response: requests.Response, status_messages: Optional[Dict[int, str]] = None):
        """HTTP hata kodunu kategorik hataya çevirir (ham gövde sadece loglanır)"""
        status = response.status_code
        logger.error(f"❌ {self.display_name} HTTP {status}: {response.text[:500]}")

        if status == 401 and self.token_cache is not None and self.cache_key is not None:
            self.token_cache.invalidate(self.cache_key)

        if status == 429:
            raise MarketplaceError(
                f"{self.display_name} istek limiti aşıldı, lütfen biraz sonra tekrar deneyin",
                status,
                error_type=ErrorType.RATE_LIMITED,
            )
        if status >= 500:
            raise MarketplaceError(
                f"{self.display_name} servisine şu anda ulaşılamıyor ({status}), lütfen daha sonra tekrar deneyin",
                status,
                error_type=ErrorType.CONNECTION_ERROR,
            )

        message = (
            (status_messages or {}).get(status)
            or self.status_messages.get(status)
            or DEFAULT_STATUS_MESSAGES.get(status)
            or f"{self.display_name} isteği reddetti ({status})"
        )
        raise MarketplaceAPIError(message, status)

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise ResponseParseError()

    def _cached_token(self, fetch: Callable[[], Tuple[str, Optional[int]]]) -> str:
        """
        Token cache'ten okur, yoksa fetch() ile alır ve saklar

        Args:
            fetch: (access_token, expires_in) dönen fonksiyon
        """
        if self.token_cache is not None and self.cache_key:
            token = self.token_cache.get(self.cache_key)
            if token:
                return token

        token, expires_in = fetch()

        if self.token_cache is not None and self.cache_key:
            self.token_cache.set(self.cache_key, token, expires_in)
        return token

    @staticmethod
    def _numeric_id(value: Any, field: str) -> int:
        """Çağıranın verdiği id'yi int'e çevirir; sayısal değilse INVALID_REQUEST"""
        try:
            return int(value)
        except (TypeError, ValueError):
            raise MarketplaceError(f"{field} sayısal olmalı: {value}", 400, ErrorType.INVALID_REQUEST)

    def _unsupported(self, action: str) -> SyncResult:
        return SyncResult.fail(
            ErrorType.UNSUPPORTED_ACTION,
            f"{self.display_name} bu işlemi desteklemiyor: {action}",
        )

    # ------------------------------------------------------------------
    # Ortak sözleşme (varsayılan: desteklenmiyor)
    # ------------------------------------------------------------------

    def test_connection(self) -> SyncResult:
        return self._unsupported("test_connection")

    def fetch_categories(self) -> SyncResult:
        return self._unsupported("fetch_categories")

    def fetch_sub_categories(self, category_id: Optional[str] = None) -> SyncResult:
        return self._unsupported("fetch_sub_categories")

    def fetch_category_attributes(self, category_id: str) -> SyncResult:
        return self._unsupported("fetch_category_attributes")

    def fetch_products(self, page: int = 0, page_size: int = 50) -> SyncResult:
        return self._unsupported("fetch_products")

    def create_product(self, product: CanonicalProduct) -> SyncResult:
        return self._unsupported("create_product")

    def push_products(self, products: List[CanonicalProduct]) -> SyncResult:
        return self._unsupported("push_products")

    def update_product(self, product_id: str, updates: ProductUpdate) -> SyncResult:
        return self._unsupported("update_product")

    def bulk_update_stock(self, items: List[StockItem]) -> SyncResult:
        return self._unsupported("bulk_update_stock")

    def fetch_orders(self, since=None, status: Optional[str] = None) -> SyncResult:
        return self._unsupported("fetch_orders")

    def check_product_status(self, tracking_id: str) -> SyncResult:
        return self._unsupported("check_product_status")

    def push_order_status(
        self,
        order: CanonicalOrder,
        target_status: OrderStatus,
        tracking_number: Optional[str] = None,
        cargo_provider: Optional[str] = None,
    ) -> SyncResult:
        """
        Sipariş durumunu pazaryerine gönderir

        Durum haritasında karşılığı olmayan durumlar ağa çıkmadan başarılı
        no-op olarak döner.
        """
        target_status = OrderStatus(target_status)
        remote_status = self.status_map.get(target_status)
        if remote_status is None:
            logger.info(f"ℹ️ {self.display_name}: '{target_status.value}' durumu için eşleme yok, atlandı")
            return SyncResult.ok({"skipped": True, "status": target_status.value})

        return self._push_status(order, remote_status, target_status, tracking_number, cargo_provider)

    def _push_status(
        self,
        order: CanonicalOrder,
        remote_status: Any,
        target_status: OrderStatus,
        tracking_number: Optional[str],
        cargo_provider: Optional[str],
    ) -> SyncResult:
        return self._unsupported("push_order_status")
