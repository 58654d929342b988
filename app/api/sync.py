"""
Sync Control Endpoint
Zamanlanmış sipariş çekiminin durumu ve manuel tetikleme
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from typing import Dict, Any

from app.core.security import CallerIdentity, get_current_caller
from services.scheduled_sync import get_scheduler

router = APIRouter(prefix="/api/sync", tags=["Sync Control"])


@router.post("/trigger")
async def trigger_sync(caller: CallerIdentity = Depends(get_current_caller)) -> Dict[str, Any]:
    """
    Tüm aktif bağlantılar için sipariş çekimini hemen çalıştırır
    """
    scheduler = get_scheduler()
    result = await scheduler.trigger_now()

    return {
        "status": "completed",
        "message": "Sipariş senkronizasyonu tamamlandı",
        "result": result,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/pause")
async def pause_sync(caller: CallerIdentity = Depends(get_current_caller)) -> Dict[str, Any]:
    scheduler = get_scheduler()
    scheduler.pause()
    return scheduler.status()


@router.post("/resume")
async def resume_sync(caller: CallerIdentity = Depends(get_current_caller)) -> Dict[str, Any]:
    scheduler = get_scheduler()
    scheduler.resume()
    return scheduler.status()


@router.get("/status")
async def get_sync_status(caller: CallerIdentity = Depends(get_current_caller)) -> Dict[str, Any]:
    """
    Scheduler durumunu getir
    """
    status = get_scheduler().status()
    status["timestamp"] = datetime.now(timezone.utc).isoformat()
    return status
