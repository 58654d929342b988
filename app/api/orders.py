"""
Orders API
Sipariş durumu senkronizasyonu ve tüm pazaryerlerinden sipariş çekimi
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import envelope, get_orchestrator
from app.core.security import CallerIdentity, get_current_caller
from app.models import OrderStatusRequest
from database import get_db
from services.order_status_sync import OrderStatusSyncService
from services.shop_sync import ShopSyncService
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/orders", tags=["Orders"])
logger = logging.getLogger(__name__)


@router.post("/fetch-all")
async def fetch_all_orders(
    since: Optional[datetime] = Query(default=None, description="Bu tarihten sonraki siparişler"),
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Tüm aktif bağlantılardan sipariş çeker

    Returns:
        {success, data: {message, results}} - her pazaryeri için ayrı sonuç
    """
    result = await ShopSyncService(db, orchestrator).fetch_all_orders(caller, since=since)
    return envelope(result)


@router.post("/{order_id}/status")
async def update_order_status(
    order_id: int,
    request: OrderStatusRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Sipariş durumunu pazaryerine iletir ve yerel kaydı günceller"""
    service = OrderStatusSyncService(db, orchestrator)
    result = await service.push(
        caller,
        order_id,
        request.status,
        tracking_number=request.tracking_number,
        cargo_provider=request.cargo_provider,
    )
    return envelope(result)
