"""
Scheduled Order Sync Service
Aktif bağlantısı olan tüm kullanıcılar için periyodik sipariş çekimi
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import CallerIdentity
from database import SessionLocal
from database.models import MarketplaceConnection
from services.shop_sync import ShopSyncService

logger = logging.getLogger(__name__)


class ScheduledSyncService:
    """
    Zamanlanmış sipariş senkronizasyonu

    - Her ORDER_SYNC_INTERVAL saniyede bir tüm aktif bağlantılardan sipariş çeker
    - pause/resume ile geçici olarak durdurulabilir
    - İlk çalışmada son 1 günün siparişleri, sonrasında son çalışmadan bu yana
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, interval: Optional[int] = None):
        self.settings = get_settings()
        self.session_factory = session_factory
        self.interval = interval or self.settings.order_sync_interval
        self.is_running = False
        self.is_paused = False
        self.is_syncing = False
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def start(self):
        """Scheduler'ı başlat"""
        if self.is_running:
            logger.warning("Scheduler zaten çalışıyor")
            return

        self.is_running = True
        logger.info(f"📅 Sipariş scheduler başlatıldı (her {self.interval // 60} dakikada bir)")
        self._task = asyncio.create_task(self._run_scheduler())

    async def stop(self):
        """Scheduler'ı durdur"""
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Scheduler task iptal edildi")
            self._task = None
        logger.info("Sipariş scheduler durduruldu")

    def pause(self):
        self.is_paused = True
        logger.warning("⏸️  SCHEDULER PAUSED")

    def resume(self):
        self.is_paused = False
        logger.info("▶️  SCHEDULER RESUMED")

    def status(self) -> Dict[str, Any]:
        next_run = None
        if self.is_running and self.last_run_at is not None:
            next_run = (self.last_run_at + timedelta(seconds=self.interval)).isoformat()
        return {
            "isRunning": self.is_running,
            "isPaused": self.is_paused,
            "isSyncing": self.is_syncing,
            "intervalSeconds": self.interval,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "nextRunAt": next_run,
            "lastResult": self.last_result,
        }

    async def _run_scheduler(self):
        """Ana scheduler loop"""
        while self.is_running:
            try:
                if self.is_paused:
                    logger.debug("⏸️  Scheduler paused, waiting...")
                    await asyncio.sleep(10)
                    continue

                await self.run_once()
                await asyncio.sleep(self.interval)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Scheduler hatası: {e}", exc_info=True)
                await asyncio.sleep(60)

    async def run_once(self) -> Dict[str, Any]:
        """
        Tüm kullanıcılar için bir sipariş çekim turu

        Returns:
            {users, marketplaces, succeeded, durationSeconds}
        """
        async with self._lock:
            self.is_syncing = True
            started = datetime.now(timezone.utc)
            since = self.last_run_at or (started - timedelta(days=1))
            logger.info("🔄 Zamanlanmış sipariş çekimi başlatılıyor...")

            db = self.session_factory()
            try:
                user_ids = [
                    row[0]
                    for row in db.query(MarketplaceConnection.user_id)
                    .filter(MarketplaceConnection.is_active.is_(True))
                    .distinct()
                    .all()
                ]

                service = ShopSyncService(db)
                marketplaces = 0
                succeeded = 0
                for user_id in user_ids:
                    result = await service.fetch_all_orders(CallerIdentity(user_id=user_id), since=since)
                    entries = result.data["results"] if result.success else []
                    marketplaces += len(entries)
                    succeeded += sum(1 for entry in entries if entry["success"])
            finally:
                db.close()
                self.is_syncing = False

            duration = (datetime.now(timezone.utc) - started).total_seconds()
            self.last_run_at = started
            self.last_result = {
                "users": len(user_ids),
                "marketplaces": marketplaces,
                "succeeded": succeeded,
                "durationSeconds": round(duration, 1),
            }
            logger.info(f"✅ Sipariş çekimi tamamlandı: {succeeded}/{marketplaces} pazaryeri ({duration:.1f}s)")
            return self.last_result

    async def trigger_now(self) -> Dict[str, Any]:
        """Manuel tetikleme"""
        logger.info("🔄 Manuel sipariş çekimi tetiklendi")
        return await self.run_once()


# Global instance
_scheduler: Optional[ScheduledSyncService] = None


def get_scheduler() -> ScheduledSyncService:
    """Global scheduler instance'ını al"""
    global _scheduler
    if _scheduler is None:
        _scheduler = ScheduledSyncService()
    return _scheduler
