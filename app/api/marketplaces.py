"""
Marketplace Sync Endpoint
Tüm pazaryeri aksiyonları için tek giriş noktası
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.dependencies import envelope, get_orchestrator
from app.core.security import CallerIdentity, get_current_caller, get_optional_caller
from app.models import ImportProductsRequest, SyncRequest
from database import get_db
from services.shop_sync import ShopSyncService
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/marketplaces", tags=["Marketplaces"])
logger = logging.getLogger(__name__)


@router.post("/{marketplace}/sync")
async def marketplace_sync(
    marketplace: str,
    request: SyncRequest,
    caller: Optional[CallerIdentity] = Depends(get_optional_caller),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Pazaryeri aksiyonu çalıştırır

    Body: {action, connectionId?, credentials?, ...parametreler}

    Returns:
        SyncResult zarfı. Pazaryeri hataları da 200 ile döner, kimlik yoksa 401.
    """
    result = await orchestrator.execute(
        caller,
        marketplace,
        request.action,
        connection_id=request.connection_id,
        credentials=request.credentials,
        params=request.params(),
    )
    return envelope(result)


@router.post("/{marketplace}/import-products")
async def import_products(
    marketplace: str,
    request: ImportProductsRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Bağlantıdaki tüm ürünleri sayfa sayfa çekip yerel ilanlara yazar"""
    service = ShopSyncService(db, orchestrator)
    result = await service.import_products(
        caller,
        marketplace,
        request.connection_id,
        page_size=request.page_size,
    )
    return envelope(result)
