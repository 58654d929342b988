"""
Ortak API bağımlılıkları
"""
from fastapi import Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.enums import ErrorType
from app.models import SyncResult
from database import get_db
from services.category_advisor import CategoryAdvisor
from services.sync_orchestrator import SyncOrchestrator


def get_orchestrator(db: Session = Depends(get_db)) -> SyncOrchestrator:
    return SyncOrchestrator(db)


def get_advisor(db: Session = Depends(get_db)) -> CategoryAdvisor:
    return CategoryAdvisor(db)


def envelope(result: SyncResult) -> JSONResponse:
    """
    SyncResult'ı HTTP cevabına çevirir

    Pazaryeri sonuçları (başarısız olanlar dahil) 200 ile döner;
    sadece kimlik eksikliği 401'dir.
    """
    status_code = 401 if result.error_type == ErrorType.AUTH_REQUIRED else 200
    return JSONResponse(content=result.to_response(), status_code=status_code)
