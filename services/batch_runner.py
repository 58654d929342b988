"""
Batch Runner
Toplu işlemleri sınırlı eşzamanlılıkla çalıştırır

- Aynı anda en fazla `concurrency` item işlenir (asyncio.Semaphore)
- Bir item'ın hatası diğerlerini durdurmaz
- Her tamamlanan item sonrası progress callback çağrılır
- Sonuçlar giriş sırasıyla döner
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from app.core.config import get_settings
from app.core.enums import ErrorType
from app.models import BatchItemResult, BatchProgress, BatchSummary, SyncResult
from connectors.base import INTERNAL_ERROR_MESSAGE

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Any]


class BatchRunner:
    """Sınırlı pencere ile toplu item çalıştırıcı"""

    def __init__(self, concurrency: Optional[int] = None):
        self.concurrency = max(concurrency or get_settings().batch_concurrency, 1)

    async def run(
        self,
        items: Sequence[Any],
        worker: Callable[[Any], Any],
        item_id: Callable[[Any], str] = lambda item: str(item),
        item_label: Optional[Callable[[Any], str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Item'ları işler

        Args:
            items: İşlenecek item'lar
            worker: item -> SyncResult. Bloklayan fonksiyonlar thread'de,
                coroutine fonksiyonlar doğrudan çalıştırılır.
            item_id: Sonuçtaki itemId
            item_label: Sonuçtaki itemLabel (varsayılan: item_id)
            on_progress: (current, total) callback

        Returns:
            SyncResult(data=BatchSummary) veya boş girişte NO_PRODUCTS
        """
        items = list(items)
        total = len(items)
        if total == 0:
            return SyncResult.fail(ErrorType.NO_PRODUCTS, "İşlenecek ürün bulunamadı", 400)

        item_label = item_label or item_id
        semaphore = asyncio.Semaphore(self.concurrency)
        results: List[Optional[BatchItemResult]] = [None] * total
        completed = 0

        logger.info(f"📦 Batch başlatıldı: {total} item, eşzamanlılık {self.concurrency}")

        async def process(index: int, item: Any):
            nonlocal completed
            async with semaphore:
                outcome = await self._run_one(worker, item)

            identifier, label = self._describe(item, item_id, item_label, index)
            results[index] = BatchItemResult(
                item_id=identifier,
                item_label=label,
                success=outcome.success,
                error=outcome.error,
            )
            completed += 1
            if on_progress is not None:
                await self._notify(on_progress, completed, total)

        await asyncio.gather(*(process(index, item) for index, item in enumerate(items)))

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"✅ Batch tamamlandı: {succeeded}/{total} başarılı")

        return SyncResult.ok(BatchSummary(
            total=total,
            succeeded=succeeded,
            failed=total - succeeded,
            progress=BatchProgress(current=completed, total=total),
            results=results,
        ))

    @staticmethod
    async def _run_one(worker: Callable[[Any], Any], item: Any) -> SyncResult:
        try:
            if inspect.iscoroutinefunction(worker):
                outcome = await worker(item)
            else:
                outcome = await asyncio.to_thread(worker, item)
        except Exception as e:
            logger.error(f"❌ Batch item hatası: {e}", exc_info=True)
            return SyncResult.fail(ErrorType.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE, 500)

        if isinstance(outcome, SyncResult):
            return outcome
        return SyncResult.ok(outcome)

    @staticmethod
    def _describe(
        item: Any,
        item_id: Callable[[Any], str],
        item_label: Callable[[Any], str],
        index: int,
    ) -> Tuple[str, str]:
        """Sonuç etiketleri; etiket fonksiyonu hata verirse sıra numarası kullanılır"""
        try:
            identifier = item_id(item)
        except Exception as e:
            logger.warning(f"⚠️ Batch item id alınamadı (#{index}): {e}")
            identifier = f"#{index}"
        try:
            label = item_label(item)
        except Exception as e:
            logger.warning(f"⚠️ Batch item etiketi alınamadı (#{index}): {e}")
            label = identifier
        return identifier, label

    @staticmethod
    async def _notify(on_progress: ProgressCallback, current: int, total: int):
        try:
            result = on_progress(current, total)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"⚠️ Progress callback hatası: {e}")
