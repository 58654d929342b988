"""
Category Service
Kanonik kategori ağacını canlı pazaryerinden veya statik tablodan sağlar
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.core.enums import ErrorType, Marketplace, SyncAction
from app.core.security import CallerIdentity
from app.models import CategoryNode, SyncResult
from database.models import MarketplaceConnection
from services import fallback_categories
from services.listing_store import cache_categories
from services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class CategoryService:
    """
    Args:
        db: Veritabanı oturumu
        orchestrator: Canlı çekim için orchestrator
        fallback: Pazaryeri kimliği -> statik ağaç üreten fonksiyon
    """

    def __init__(
        self,
        db: Session,
        orchestrator: Optional[SyncOrchestrator] = None,
        fallback: Callable[[str], List[CategoryNode]] = fallback_categories.fallback_tree,
    ):
        self.db = db
        self.orchestrator = orchestrator or SyncOrchestrator(db)
        self.fallback = fallback

    def _active_connection(self, user_id: str, marketplace: Marketplace) -> Optional[MarketplaceConnection]:
        return (
            self.db.query(MarketplaceConnection)
            .filter(
                MarketplaceConnection.user_id == user_id,
                MarketplaceConnection.marketplace == marketplace.value,
                MarketplaceConnection.is_active.is_(True),
            )
            .first()
        )

    def _fallback_result(self, marketplace: Marketplace, reason: str) -> SyncResult:
        logger.info(f"📚 {marketplace.value}: statik kategori tablosu kullanılıyor ({reason})")
        return SyncResult.ok({
            "source": "fallback",
            "version": fallback_categories.VERSION,
            "categories": self.fallback(marketplace.value),
        })

    async def categories_for(
        self,
        caller: Optional[CallerIdentity],
        marketplace: str,
        connection_id: Optional[int] = None,
    ) -> SyncResult:
        """
        Kategori ağacını döner

        Bağlantı yoksa veya canlı çekim başarısız olursa statik tablo döner.
        Canlı ağaç AI önerisi bağlamı için marketplace_categories'e yazılır.

        Returns:
            SyncResult - data: {source: live|fallback, categories: [CategoryNode]}
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        mp = Marketplace.normalize(marketplace)
        if mp is None:
            return SyncResult.fail(ErrorType.INVALID_REQUEST, f"Bilinmeyen pazaryeri: {marketplace}", 400)

        if connection_id is None:
            connection = self._active_connection(caller.user_id, mp)
            if connection is None:
                return self._fallback_result(mp, "aktif bağlantı yok")
            connection_id = connection.id

        result = await self.orchestrator.execute(caller, mp.value, SyncAction.FETCH_CATEGORIES.value, connection_id=connection_id)
        if result.error_type == ErrorType.NOT_FOUND:
            return result
        if not result.success or not result.data:
            return self._fallback_result(mp, result.error_type.value if result.error_type else "boş cevap")

        count = cache_categories(self.db, mp.value, result.data)
        logger.info(f"📚 {mp.value}: {count} kategori önbelleğe alındı")
        return SyncResult.ok({"source": "live", "categories": result.data})
