"""
Stock Sync Service
Bir ilanın stok değişikliğini aynı ana ürünün diğer pazaryeri ilanlarına yayar
ve eşiğin altına düşen ilanlar için düşük stok uyarısı üretir
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.enums import ErrorType, SyncAction
from app.core.security import CallerIdentity
from app.models import SyncResult
from database.models import LowStockAlert, MarketplaceConnection, MarketplaceListing, StockSyncLog
from services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class StockSyncService:
    """Stok yayılımı"""

    def __init__(self, db: Session, orchestrator: Optional[SyncOrchestrator] = None):
        self.db = db
        self.orchestrator = orchestrator or SyncOrchestrator(db)

    def _siblings(self, source: MarketplaceListing) -> List[MarketplaceListing]:
        if not source.master_product_id:
            return []
        return (
            self.db.query(MarketplaceListing)
            .filter(
                MarketplaceListing.user_id == source.user_id,
                MarketplaceListing.master_product_id == source.master_product_id,
                MarketplaceListing.id != source.id,
                MarketplaceListing.platform != source.platform,
            )
            .order_by(MarketplaceListing.platform)
            .all()
        )

    def _log(self, source: MarketplaceListing, target: MarketplaceListing, old_stock, new_stock: int, error: Optional[str]):
        self.db.add(StockSyncLog(
            user_id=source.user_id,
            source_listing_id=source.id,
            target_listing_id=target.id,
            master_product_id=source.master_product_id,
            platform=target.platform,
            old_stock=old_stock,
            new_stock=new_stock,
            success=error is None,
            error=error,
        ))

    async def propagate(self, caller: Optional[CallerIdentity], listing_id: int, new_stock: int) -> SyncResult:
        """
        Stoğu diğer pazaryerlerine iletir

        Her hedef pazaryeri için bir sonuç ve bir stock_sync_logs satırı
        üretilir; bir hedefin hatası diğerlerini durdurmaz. Pasif bağlantıya
        sahip ilanlar atlanır.

        Returns:
            SyncResult - data: {listingId, masterProductId, newStock, results}
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        source = (
            self.db.query(MarketplaceListing)
            .filter(MarketplaceListing.id == listing_id, MarketplaceListing.user_id == caller.user_id)
            .first()
        )
        if source is None:
            return SyncResult.fail(ErrorType.NOT_FOUND, "İlan bulunamadı", 404)

        source.stock = new_stock
        self.db.commit()

        targets = self._siblings(source)
        logger.info(f"📦 Stok yayılımı: {source.master_product_id} -> {new_stock} ({len(targets)} hedef)")

        results: List[Dict[str, Any]] = []
        for target in targets:
            connection = None
            if target.connection_id is not None:
                connection = self.db.get(MarketplaceConnection, target.connection_id)
            if connection is None or not connection.is_active or connection.user_id != caller.user_id:
                results.append({"marketplace": target.platform, "listingId": target.id, "success": False, "skipped": True})
                continue

            old_stock = target.stock
            result = await self.orchestrator.execute(
                caller,
                target.platform,
                SyncAction.UPDATE_PRODUCT.value,
                connection_id=connection.id,
                params={"productId": target.external_id, "stock": new_stock, "sku": target.sku},
            )

            if result.success:
                target.stock = new_stock
                target.last_synced_at = datetime.now(timezone.utc)
                self._log(source, target, old_stock, new_stock, None)
                results.append({
                    "marketplace": target.platform,
                    "listingId": target.id,
                    "success": True,
                    "previousStock": old_stock,
                    "newStock": new_stock,
                })
            else:
                logger.warning(f"⚠️ {target.platform} stok güncellenemedi: {result.error_type}")
                self._log(source, target, old_stock, new_stock, result.error)
                results.append({
                    "marketplace": target.platform,
                    "listingId": target.id,
                    "success": False,
                    "error": result.error,
                    "errorType": result.error_type.value if result.error_type else None,
                })
            self.db.commit()

        return SyncResult.ok({
            "listingId": source.id,
            "masterProductId": source.master_product_id,
            "newStock": new_stock,
            "results": results,
        })

    def check_low_stock(self, caller: Optional[CallerIdentity]) -> SyncResult:
        """
        Kullanıcının ilanlarını düşük stok için tarar

        Stoğu eşiğe eşit veya altında olan her ilan için okunmamış uyarı
        varsa güncellenir, yoksa yenisi eklenir. İlanda eşik yoksa
        LOW_STOCK_THRESHOLD kullanılır.

        Returns:
            SyncResult - data: {alertsCreated, alertsUpdated, message}
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        default_threshold = self.orchestrator.settings.low_stock_threshold
        listings = (
            self.db.query(MarketplaceListing)
            .filter(MarketplaceListing.user_id == caller.user_id)
            .all()
        )

        created = 0
        updated = 0
        for listing in listings:
            threshold = listing.low_stock_threshold or default_threshold
            stock = listing.stock or 0
            if stock > threshold:
                continue

            alert = (
                self.db.query(LowStockAlert)
                .filter(LowStockAlert.listing_id == listing.id, LowStockAlert.is_read.is_(False))
                .first()
            )
            if alert is not None:
                alert.current_stock = stock
                alert.threshold = threshold
                updated += 1
            else:
                self.db.add(LowStockAlert(
                    user_id=caller.user_id,
                    listing_id=listing.id,
                    platform=listing.platform,
                    product_title=listing.title,
                    current_stock=stock,
                    threshold=threshold,
                ))
                created += 1

        self.db.commit()
        logger.info(f"🔔 Düşük stok kontrolü: {created} yeni, {updated} güncellendi")
        return SyncResult.ok({
            "alertsCreated": created,
            "alertsUpdated": updated,
            "message": f"{created} yeni uyarı, {updated} güncellendi",
        })
