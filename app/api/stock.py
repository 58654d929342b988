"""
Stock API
Stok yayılımı ve düşük stok kontrolü
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import envelope, get_orchestrator
from app.core.security import CallerIdentity, get_current_caller
from app.models import StockSyncRequest
from database import get_db
from services.stock_sync import StockSyncService
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/stock", tags=["Stock"])
logger = logging.getLogger(__name__)


@router.post("/sync")
async def sync_stock(
    request: StockSyncRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Body: {listingId, newStock}

    Returns:
        Hedef pazaryeri başına sonuç listesi
    """
    result = await StockSyncService(db, orchestrator).propagate(caller, request.listing_id, request.new_stock)
    return envelope(result)


@router.post("/low-stock-check")
async def low_stock_check(
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Eşiğin altındaki ilanlar için düşük stok uyarılarını oluşturur/günceller"""
    result = StockSyncService(db, orchestrator).check_low_stock(caller)
    return envelope(result)
