"""
Application Configuration
Çevre değişkenlerinden yapılandırma yüklenir
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from pydantic import Field


class Settings(BaseSettings):
    """Uygulama ayarları"""

    # Application
    app_name: str = Field("Marketplace Sync API", alias="APP_NAME")
    app_version: str = Field("1.0.0", alias="APP_VERSION")
    debug: bool = Field(False, alias="DEBUG")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Server
    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(8000, alias="PORT")

    # Database
    database_url: str = Field("sqlite:///./marketplace_sync.db", alias="DATABASE_URL")

    # HTTP (tüm marketplace adapter'ları)
    http_timeout: int = Field(30, alias="HTTP_TIMEOUT")
    http_max_retries: int = Field(3, alias="HTTP_MAX_RETRIES")
    http_retry_delay: float = Field(2.0, alias="HTTP_RETRY_DELAY")

    # Bulk işlemler
    batch_concurrency: int = Field(3, alias="BATCH_CONCURRENCY")

    # Düşük stok uyarısı (ilanda eşik yoksa)
    low_stock_threshold: int = Field(10, alias="LOW_STOCK_THRESHOLD")

    # OAuth token cache (connection id bazlı)
    token_cache_enabled: bool = Field(True, alias="TOKEN_CACHE_ENABLED")

    # Marketplace base URL'leri
    trendyol_api_url: str = Field("https://api.trendyol.com/sapigw", alias="TRENDYOL_API_URL")
    hepsiburada_api_url: str = Field("https://mpop-sit.hepsiburada.com", alias="HEPSIBURADA_API_URL")
    amazon_api_url: str = Field("https://sellingpartnerapi-eu.amazon.com", alias="AMAZON_API_URL")
    amazon_token_url: str = Field("https://api.amazon.com/auth/o2/token", alias="AMAZON_TOKEN_URL")
    ikas_graphql_url: str = Field("https://api.myikas.com/api/v1/admin/graphql", alias="IKAS_GRAPHQL_URL")
    n11_api_url: str = Field("https://api.n11.com/ws", alias="N11_API_URL")
    ciceksepeti_api_url: str = Field("https://apis.ciceksepeti.com", alias="CICEKSEPETI_API_URL")
    etsy_api_url: str = Field("https://openapi.etsy.com/v3/application", alias="ETSY_API_URL")
    shopify_api_version: str = Field("2024-10", alias="SHOPIFY_API_VERSION")

    # AI kategori önerisi (OpenAI uyumlu endpoint)
    ai_api_key: str = Field("", alias="AI_API_KEY")
    ai_base_url: str = Field("https://api.openai.com/v1", alias="AI_BASE_URL")
    ai_model: str = Field("gpt-4o-mini", alias="AI_MODEL")
    ai_mapping_sample_size: int = Field(50, alias="AI_MAPPING_SAMPLE_SIZE")
    ai_category_sample_size: int = Field(100, alias="AI_CATEGORY_SAMPLE_SIZE")

    # Scheduler
    scheduler_enabled: bool = Field(True, alias="SCHEDULER_ENABLED")
    order_sync_interval: int = Field(900, alias="ORDER_SYNC_INTERVAL")

    # CORS
    allowed_origins: str = Field("*", alias="ALLOWED_ORIGINS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = ""
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Settings singleton"""
    return Settings()
