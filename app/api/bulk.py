"""
Bulk API
Toplu ürün yayınlama ve toplu stok güncelleme
"""
import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import envelope, get_orchestrator
from app.core.enums import SyncAction
from app.core.security import CallerIdentity, get_current_caller
from app.models import BulkPublishRequest, BulkStockRequest
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/bulk", tags=["Bulk"])
logger = logging.getLogger(__name__)


@router.post("/{marketplace}/publish")
async def bulk_publish(
    marketplace: str,
    request: BulkPublishRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Ürünleri pazaryerinde tek tek oluşturur

    Returns:
        BatchSummary (total, succeeded, failed, progress, results)
    """
    logger.info(f"📤 Toplu yayın: {marketplace}, {len(request.products)} ürün")
    result = await orchestrator.bulk_publish(caller, marketplace, request.connection_id, request.products)
    return envelope(result)


@router.post("/{marketplace}/stock")
async def bulk_stock(
    marketplace: str,
    request: BulkStockRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Toplu stok güncelleme (native endpoint veya item bazlı)"""
    logger.info(f"📦 Toplu stok: {marketplace}, {len(request.items)} ürün")
    result = await orchestrator.execute(
        caller,
        marketplace,
        SyncAction.BULK_UPDATE_STOCK.value,
        connection_id=request.connection_id,
        params={"items": [item.model_dump(mode="json", by_alias=True) for item in request.items]},
    )
    return envelope(result)
