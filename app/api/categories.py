"""
Categories API
Kanonik kategori ağacı, AI kategori önerisi ve özellik çıkarımı
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.dependencies import envelope, get_advisor, get_orchestrator
from app.core.security import CallerIdentity, get_current_caller
from app.models import AttributeExtractionRequest, SuggestionRequest
from database import get_db
from services.category_advisor import CategoryAdvisor
from services.category_service import CategoryService
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/categories", tags=["Categories"])
logger = logging.getLogger(__name__)


@router.post("/suggest")
async def suggest_category(
    request: SuggestionRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    advisor: CategoryAdvisor = Depends(get_advisor),
):
    """
    Ürün için en fazla 3 kategori önerisi

    Body: {productTitle, targetMarketplace, productDescription?}
    """
    logger.info(f"🧠 Kategori önerisi isteği (user={caller.user_id})")
    result = await asyncio.to_thread(
        advisor.suggest,
        request.product_title,
        request.target_marketplace,
        request.product_description,
    )
    return envelope(result)


@router.post("/extract-attributes")
async def extract_attributes(
    request: AttributeExtractionRequest,
    caller: CallerIdentity = Depends(get_current_caller),
    advisor: CategoryAdvisor = Depends(get_advisor),
):
    """
    Ürün başlığından renk, beden ve malzeme çıkarır

    Body: {productTitle}
    """
    logger.info(f"🧠 Özellik çıkarımı isteği (user={caller.user_id})")
    result = await asyncio.to_thread(advisor.extract_attributes, request.product_title)
    return envelope(result)


@router.get("/{marketplace}")
async def get_categories(
    marketplace: str,
    connection_id: Optional[int] = Query(default=None, alias="connectionId"),
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Kategori ağacı - bağlantı varsa canlı, yoksa statik tablo

    Returns:
        {success, data: {source, categories}}
    """
    service = CategoryService(db, orchestrator)
    result = await service.categories_for(caller, marketplace, connection_id)
    return envelope(result)
