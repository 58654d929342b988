"""
FastAPI Main Application
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import sys
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import get_settings
from app.api import bulk, categories, connections, health, marketplaces, orders, stock, sync

settings = get_settings()

# Logging - logs dizini oluşturulamazsa (read-only filesystem) sadece stdout
log_handlers = [logging.StreamHandler(sys.stdout)]
try:
    os.makedirs('logs', exist_ok=True)
    log_handlers.append(logging.FileHandler('logs/app.log', encoding='utf-8'))
except OSError:
    pass

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=log_handlers
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    from database import Base, engine
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Database initialized")

    scheduler = None
    if settings.scheduler_enabled:
        from services.scheduled_sync import get_scheduler
        scheduler = get_scheduler()
        await scheduler.start()
        logger.info(f"✅ Scheduled order sync started (interval: {scheduler.interval // 60} minutes)")
    else:
        logger.info("ℹ️  Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    logger.info("Shutting down...")
    if scheduler is not None:
        await scheduler.stop()
        logger.info("Scheduler stopped")


# FastAPI App
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Marketplace Sync API

    **Pazaryerleri:** Trendyol, Hepsiburada, Amazon, ikas, N11, Çiçeksepeti, Etsy, Shopify

    - Tek endpoint üzerinden pazaryeri aksiyonları (`/api/marketplaces/{marketplace}/sync`)
    - Kanonik kategori ağacı ve AI kategori önerisi
    - Toplu yayın ve toplu stok güncelleme
    - Sipariş çekimi ve sipariş durumu senkronizasyonu
    - Pazaryerleri arası stok yayılımı
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials="*" not in allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Root
@app.get("/", tags=["Root"])
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "timestamp": datetime.now(timezone.utc)
    }


# Include routers
app.include_router(health.router)  # No auth required
app.include_router(marketplaces.router)
app.include_router(connections.router)
app.include_router(categories.router)
app.include_router(bulk.router)
app.include_router(orders.router)
app.include_router(stock.router)
app.include_router(sync.router)
logger.info("✅ API routers registered")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
