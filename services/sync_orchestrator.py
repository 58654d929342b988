"""
Sync Orchestrator
Tüm pazaryeri işlemlerinin tek giriş noktası

Sıra:
1. Çağıran kimliği yoksa AUTH_REQUIRED (kimlik bilgisine dokunulmaz)
2. Bilinmeyen pazaryeri / aksiyon -> INVALID_REQUEST
3. Kimlik bilgileri bağlantıdan (kullanıcıya ait olmalı) veya doğrudan istekten
4. Aksiyon parametreleri pydantic ile doğrulanır
5. Adapter bloklayan bir client olduğu için thread'de çalıştırılır
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.enums import ErrorType, Marketplace, SyncAction
from app.core.security import CallerIdentity
from app.models import (
    BulkStockParams,
    CanonicalProduct,
    CategoryIdParams,
    CheckStatusParams,
    CreateProductParams,
    FetchOrdersParams,
    FetchProductsParams,
    OptionalCategoryParams,
    ProductUpdate,
    PushProductsParams,
    StockItem,
    SyncResult,
    UpdateProductParams,
)
from connectors import ADAPTERS, MarketplaceAdapter, get_token_cache
from database.models import MarketplaceConnection
from services.batch_runner import BatchRunner, ProgressCallback
from services.credential_store import CredentialStore
from services.listing_store import upsert_listings

logger = logging.getLogger(__name__)

ACTION_PARAMS: Dict[SyncAction, Optional[type]] = {
    SyncAction.TEST_CONNECTION: None,
    SyncAction.FETCH_CATEGORIES: None,
    SyncAction.FETCH_SUB_CATEGORIES: OptionalCategoryParams,
    SyncAction.FETCH_CATEGORY_ATTRIBUTES: OptionalCategoryParams,
    SyncAction.FETCH_PRODUCTS: FetchProductsParams,
    SyncAction.CREATE_PRODUCT: CreateProductParams,
    SyncAction.PUSH_PRODUCTS: PushProductsParams,
    SyncAction.UPDATE_PRODUCT: UpdateProductParams,
    SyncAction.BULK_UPDATE_STOCK: BulkStockParams,
    SyncAction.FETCH_ORDERS: FetchOrdersParams,
    SyncAction.CHECK_PRODUCT_STATUS: CheckStatusParams,
}


def describe_validation_error(error: ValidationError) -> str:
    """Pydantic hatasını değer içermeyen kısa mesaja çevirir"""
    fields = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "body"
        fields.append(f"{location} ({err.get('type')})")
    return "Geçersiz parametreler: " + ", ".join(fields)


class SyncOrchestrator:
    """
    Pazaryeri işlemlerini yönlendirir

    Args:
        db: Veritabanı oturumu (bağlantı çözümü ve aktivite kaydı için)
        settings: Uygulama ayarları
        session_factory: Her adapter için HTTP session üretir (testlerde sahte session)
        batch_runner: Toplu işlemler için runner
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        batch_runner: Optional[BatchRunner] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.session_factory = session_factory or requests.Session
        self.batch_runner = batch_runner or BatchRunner(self.settings.batch_concurrency)
        self.token_cache = get_token_cache() if self.settings.token_cache_enabled else None
        self.store = CredentialStore(db) if db is not None else None

    # ------------------------------------------------------------------
    # Adapter
    # ------------------------------------------------------------------

    def build_adapter(
        self,
        marketplace: Marketplace,
        credentials: Optional[Dict[str, Any]],
        connection_id: Optional[int] = None,
    ) -> MarketplaceAdapter:
        adapter_class = ADAPTERS[marketplace]
        return adapter_class(
            credentials=credentials,
            session=self.session_factory(),
            settings=self.settings,
            token_cache=self.token_cache if connection_id is not None else None,
            cache_key=str(connection_id) if connection_id is not None else None,
        )

    @staticmethod
    async def run_adapter(adapter: MarketplaceAdapter, operation: str, *args, **kwargs) -> SyncResult:
        """Bloklayan adapter işlemini worker thread'de çalıştırır"""
        return await asyncio.to_thread(getattr(adapter, operation), *args, **kwargs)

    def resolve_connection(
        self,
        caller: CallerIdentity,
        marketplace: Marketplace,
        connection_id: int,
    ) -> Optional[MarketplaceConnection]:
        if self.store is None:
            return None
        return self.store.get_connection(caller.user_id, connection_id, marketplace)

    # ------------------------------------------------------------------
    # Ana giriş
    # ------------------------------------------------------------------

    async def execute(
        self,
        caller: Optional[CallerIdentity],
        marketplace: str,
        action: str,
        connection_id: Optional[int] = None,
        credentials: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        """
        Tek bir pazaryeri aksiyonu çalıştırır

        Returns:
            Adapter'ın SyncResult'ı (değiştirilmeden)
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        mp = Marketplace.normalize(marketplace)
        if mp is None:
            return SyncResult.fail(
                ErrorType.INVALID_REQUEST,
                f"Bilinmeyen pazaryeri: {marketplace}. Desteklenenler: {', '.join(Marketplace.get_all_values())}",
                400,
            )

        sync_action = SyncAction.normalize(action)
        if sync_action is None:
            return SyncResult.fail(ErrorType.INVALID_REQUEST, f"Bilinmeyen işlem: {action}", 400)

        connection = None
        if connection_id is not None:
            connection = self.resolve_connection(caller, mp, connection_id)
            if connection is None:
                return SyncResult.fail(ErrorType.NOT_FOUND, "Bağlantı bulunamadı", 404)
            credentials = connection.credentials

        params_model, error = self._validate_params(sync_action, params or {})
        if error is not None:
            return error

        logger.info(f"🔄 {mp.value}.{sync_action.value} (user={caller.user_id}, connection={connection_id})")

        adapter = self.build_adapter(mp, credentials, connection_id)
        result = await self._dispatch(adapter, sync_action, params_model)

        if connection is not None and self.store is not None:
            self.store.record_activity(connection, sync_action, result)

        if not result.success:
            logger.warning(f"⚠️ {mp.value}.{sync_action.value} başarısız: {result.error_type}")
        return result

    @staticmethod
    def _validate_params(action: SyncAction, params: Dict[str, Any]) -> Tuple[Optional[BaseModel], Optional[SyncResult]]:
        model = ACTION_PARAMS.get(action)
        if model is None:
            return None, None
        try:
            return model.model_validate(params), None
        except ValidationError as e:
            return None, SyncResult.fail(ErrorType.INVALID_REQUEST, describe_validation_error(e), 400)

    async def _dispatch(self, adapter: MarketplaceAdapter, action: SyncAction, params: Optional[BaseModel]) -> SyncResult:
        if action == SyncAction.TEST_CONNECTION:
            return await self.run_adapter(adapter, "test_connection")

        if action == SyncAction.FETCH_CATEGORIES:
            return await self.run_adapter(adapter, "fetch_categories")

        if action == SyncAction.FETCH_SUB_CATEGORIES:
            return await self.run_adapter(adapter, "fetch_sub_categories", params.category_id)

        if action == SyncAction.FETCH_CATEGORY_ATTRIBUTES:
            if params.category_id is None and adapter.requires_category_for_attributes:
                return SyncResult.fail(ErrorType.INVALID_REQUEST, "Geçersiz parametreler: categoryId (missing)", 400)
            return await self.run_adapter(adapter, "fetch_category_attributes", params.category_id)

        if action == SyncAction.FETCH_PRODUCTS:
            return await self.run_adapter(adapter, "fetch_products", params.page, params.page_size)

        if action == SyncAction.CREATE_PRODUCT:
            return await self.run_adapter(adapter, "create_product", params.product)

        if action == SyncAction.PUSH_PRODUCTS:
            return await self.run_adapter(adapter, "push_products", params.products)

        if action == SyncAction.UPDATE_PRODUCT:
            return await self.run_adapter(adapter, "update_product", params.product_id, params.to_update())

        if action == SyncAction.BULK_UPDATE_STOCK:
            return await self.bulk_update_stock(adapter, params.items)

        if action == SyncAction.FETCH_ORDERS:
            return await self.run_adapter(adapter, "fetch_orders", params.since, params.status)

        if action == SyncAction.CHECK_PRODUCT_STATUS:
            return await self.run_adapter(adapter, "check_product_status", params.tracking_id)

        return adapter._unsupported(action.value)

    # ------------------------------------------------------------------
    # Toplu işlemler
    # ------------------------------------------------------------------

    async def bulk_update_stock(
        self,
        adapter: MarketplaceAdapter,
        items: List[StockItem],
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Pazaryerinin toplu stok endpoint'i varsa onu kullanır, yoksa her
        item için update_product çağrılır ve item bazlı sonuç döner
        """
        if not items:
            return SyncResult.fail(ErrorType.NO_PRODUCTS, "Güncellenecek ürün bulunamadı", 400)

        if adapter.supports_native_bulk_stock:
            return await self.run_adapter(adapter, "bulk_update_stock", items)

        logger.info(f"📦 {adapter.display_name}: toplu stok endpoint'i yok, item bazlı güncelleme ({len(items)})")

        def update_one(item: StockItem) -> SyncResult:
            return adapter.update_product(
                item.remote_id or item.sku,
                ProductUpdate(stock=item.quantity, price=item.price, sku=item.sku),
            )

        return await self.batch_runner.run(
            items,
            update_one,
            item_id=lambda item: item.remote_id or item.sku,
            item_label=lambda item: item.sku,
            on_progress=on_progress,
        )

    async def bulk_publish(
        self,
        caller: Optional[CallerIdentity],
        marketplace: str,
        connection_id: int,
        products: List[CanonicalProduct],
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Ürünleri tek tek pazaryerinde oluşturur; başarılı olanlar için
        yerel ilan 'pending' olarak upsert edilir
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        mp = Marketplace.normalize(marketplace)
        if mp is None:
            return SyncResult.fail(ErrorType.INVALID_REQUEST, f"Bilinmeyen pazaryeri: {marketplace}", 400)

        connection = self.resolve_connection(caller, mp, connection_id)
        if connection is None:
            return SyncResult.fail(ErrorType.NOT_FOUND, "Bağlantı bulunamadı", 404)

        adapter = self.build_adapter(mp, connection.credentials, connection.id)
        published: List[CanonicalProduct] = []

        async def publish(product: CanonicalProduct) -> SyncResult:
            result = await self.run_adapter(adapter, "create_product", product)
            if result.success:
                published.append(product)
            return result

        result = await self.batch_runner.run(
            products,
            publish,
            item_id=lambda p: p.sku,
            item_label=lambda p: p.title,
            on_progress=on_progress,
        )

        if published and self.db is not None:
            upsert_listings(self.db, caller.user_id, mp.value, published, connection_id=connection.id, status="pending")

        if result.success and self.store is not None:
            self.store.record_activity(connection, SyncAction.CREATE_PRODUCT, result)
        return result
