"""
Shop Sync Service
Pazaryerinden ürün ve siparişleri çekip yerel tablolara upsert eder
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.enums import ErrorType, Marketplace, SyncAction
from app.core.security import CallerIdentity
from app.models import SyncResult
from services.credential_store import CredentialStore
from services.listing_store import upsert_listings, upsert_orders
from services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGES = 20


class ShopSyncService:
    """
    Mağaza içe aktarma

    Aynı çekim tekrar çalıştırıldığında kayıtlar (user_id, platform,
    external_id) anahtarıyla güncellenir, çoğalmaz.
    """

    def __init__(self, db: Session, orchestrator: Optional[SyncOrchestrator] = None):
        self.db = db
        self.orchestrator = orchestrator or SyncOrchestrator(db)
        self.store = CredentialStore(db)

    async def import_products(
        self,
        caller: Optional[CallerIdentity],
        marketplace: str,
        connection_id: int,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> SyncResult:
        """
        Bağlantının tüm ürünlerini sayfa sayfa çeker ve ilan olarak kaydeder

        Returns:
            SyncResult - data: {imported, pages}
        """
        imported = 0
        page = 0
        mp = Marketplace.normalize(marketplace)

        while page < max_pages:
            result = await self.orchestrator.execute(
                caller,
                marketplace,
                SyncAction.FETCH_PRODUCTS.value,
                connection_id=connection_id,
                params={"page": page, "pageSize": page_size},
            )
            if not result.success:
                if page == 0:
                    return result
                # Önceki sayfalar kaydedildi, kısmi sonuç döner
                logger.warning(f"⚠️ {marketplace}: sayfa {page} çekilemedi, {imported} ürünle duruluyor")
                break

            data = result.data or {}
            products = data.get("products") or []
            if not products:
                break

            imported += upsert_listings(self.db, caller.user_id, mp.value, products, connection_id=connection_id)
            page += 1

            total_pages = data.get("totalPages")
            if total_pages is not None and page >= total_pages:
                break
            if len(products) < page_size:
                break

        logger.info(f"✅ {marketplace}: {imported} ürün içe aktarıldı ({page} sayfa)")
        return SyncResult.ok({"imported": imported, "pages": page})

    async def fetch_orders(
        self,
        caller: Optional[CallerIdentity],
        marketplace: str,
        connection_id: int,
        since: Optional[datetime] = None,
    ) -> SyncResult:
        """Tek bağlantının siparişlerini çeker ve kaydeder"""
        params: Dict[str, Any] = {}
        if since is not None:
            params["since"] = since.isoformat()

        result = await self.orchestrator.execute(
            caller,
            marketplace,
            SyncAction.FETCH_ORDERS.value,
            connection_id=connection_id,
            params=params,
        )
        if not result.success:
            return result

        mp = Marketplace.normalize(marketplace)
        orders = result.data or []
        count = upsert_orders(self.db, caller.user_id, mp.value, orders, connection_id=connection_id)
        return SyncResult.ok({"ordersCount": count})

    async def fetch_all_orders(self, caller: Optional[CallerIdentity], since: Optional[datetime] = None) -> SyncResult:
        """
        Kullanıcının tüm aktif bağlantılarından sipariş çeker

        Bir pazaryerinin hatası diğerlerini durdurmaz; her bağlantı için
        ayrı sonuç döner.

        Returns:
            SyncResult - data: {message, results: [{marketplace, connectionId, success, ordersCount | error, errorType}]}
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        connections = self.store.active_connections(caller.user_id)
        logger.info(f"📥 {len(connections)} aktif bağlantıdan sipariş çekiliyor (user={caller.user_id})")

        results: List[Dict[str, Any]] = []
        for connection in connections:
            result = await self.fetch_orders(caller, connection.marketplace, connection.id, since)
            entry: Dict[str, Any] = {
                "marketplace": connection.marketplace,
                "connectionId": connection.id,
                "success": result.success,
            }
            if result.success:
                entry["ordersCount"] = result.data["ordersCount"]
            else:
                entry["error"] = result.error
                entry["errorType"] = (result.error_type or ErrorType.FETCH_ERROR).value
                logger.warning(f"⚠️ {connection.marketplace} siparişleri alınamadı: {entry['errorType']}")
            results.append(entry)

        success_count = sum(1 for r in results if r["success"])
        logger.info(f"✅ Sipariş çekimi tamamlandı: {success_count}/{len(results)}")
        return SyncResult.ok({
            "message": f"{success_count}/{len(results)} pazaryeri senkronize edildi",
            "results": results,
        })
