"""
Pydantic Models - Kanonik veri şekilleri ve Request/Response schemas

Tüm pazaryeri adapter'ları bu modellere normalize eder; pazaryerine özgü
alanlar sadece marketplace_data içinde taşınır.
"""
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, List, Any
from datetime import datetime
from decimal import Decimal

from app.core.enums import ErrorType, OrderStatus


class CamelModel(BaseModel):
    """JSON tarafında camelCase, Python tarafında snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# SYNC RESULT ENVELOPE
# ============================================================================

class SyncResult(BaseModel):
    """
    Her adapter/orchestrator işleminin döndürdüğü zarf

    success=True ise data anlamlıdır, error boştur.
    success=False ise error doludur, data boştur.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = Field(None, alias="errorType")
    status_code: Optional[int] = Field(None, alias="statusCode")

    @model_validator(mode="after")
    def _check_envelope(self):
        if self.success and (self.error is not None or self.error_type is not None):
            raise ValueError("Başarılı sonuç hata bilgisi taşıyamaz")
        if not self.success:
            if not self.error:
                raise ValueError("Başarısız sonuç hata mesajı içermelidir")
            if self.data is not None:
                raise ValueError("Başarısız sonuç data taşıyamaz")
        return self

    @classmethod
    def ok(cls, data: Any = None) -> "SyncResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error_type: ErrorType,
        message: str,
        status_code: Optional[int] = None
    ) -> "SyncResult":
        return cls(success=False, error=message, error_type=error_type, status_code=status_code)

    def to_response(self) -> Dict[str, Any]:
        """HTTP response gövdesi (camelCase, boş alanlar atlanır)"""
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.success:
            payload.setdefault("data", None)
        return payload


# ============================================================================
# KATEGORİ
# ============================================================================

class AttributeValue(CamelModel):
    id: str
    name: str


class CategoryAttribute(CamelModel):
    """Kategori özelliği (renk, beden, materyal ...)"""
    id: str
    name: str
    required: bool = False
    allow_custom: bool = False
    values: List[AttributeValue] = Field(default_factory=list)


class CategoryNode(CamelModel):
    """
    Kanonik kategori düğümü

    path: kökten bu düğüme kadar isimler
    children: yapraklarda boş liste
    """
    id: str
    name: str
    parent_id: Optional[str] = None
    path: List[str] = Field(default_factory=list)
    children: List["CategoryNode"] = Field(default_factory=list)
    required_attributes: Optional[List[CategoryAttribute]] = None


class FlatCategory(CamelModel):
    """Pazaryerinden gelen düz kategori satırı (tree kurulmadan önce)"""
    id: str
    name: str
    parent_id: Optional[str] = None


# ============================================================================
# ÜRÜN
# ============================================================================

class CanonicalProduct(CamelModel):
    """Pazaryerinden bağımsız ürün"""
    sku: str
    title: str
    description: Optional[str] = None
    price: Decimal = Field(Decimal("0"), ge=0)
    stock: int = Field(0, ge=0)
    category_id: Optional[str] = None
    brand: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    barcode: Optional[str] = None
    currency: str = "TRY"
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_serializer("price", when_used="json")
    def _price_to_float(self, value: Decimal) -> float:
        return float(value)


class MarketplaceProduct(CanonicalProduct):
    """Pazaryerindeki ürün: kanonik alanlar + uzak kimlik + ham kayıt"""
    remote_id: Optional[str] = None
    status: Optional[str] = None
    marketplace_data: Dict[str, Any] = Field(default_factory=dict)


class ProductUpdate(CamelModel):
    """Kısmi ürün güncellemesi - sadece verilen alanlar gönderilir"""
    price: Optional[Decimal] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None

    def supplied(self) -> Dict[str, Any]:
        """Sadece doldurulmuş alanlar"""
        return self.model_dump(exclude_none=True)


class StockItem(CamelModel):
    sku: str
    quantity: int = Field(..., ge=0)
    remote_id: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)


# ============================================================================
# SİPARİŞ
# ============================================================================

class OrderLine(CamelModel):
    remote_line_id: Optional[str] = None
    title: str = ""
    sku: Optional[str] = None
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    total_price: Decimal = Decimal("0")

    @field_serializer("unit_price", "total_price", when_used="json")
    def _money_to_float(self, value: Decimal) -> float:
        return float(value)


class CanonicalOrder(CamelModel):
    """Pazaryerinden bağımsız sipariş"""
    id: str
    order_number: str
    status: OrderStatus = OrderStatus.PENDING
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    items: List[OrderLine] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    currency: str = "TRY"
    order_date: Optional[datetime] = None
    marketplace_data: Dict[str, Any] = Field(default_factory=dict)

    @field_serializer("subtotal", "total", when_used="json")
    def _money_to_float(self, value: Decimal) -> float:
        return float(value)


# ============================================================================
# BATCH
# ============================================================================

class BatchItemResult(CamelModel):
    item_id: str
    item_label: str
    success: bool
    error: Optional[str] = None


class BatchProgress(CamelModel):
    current: int
    total: int


class BatchSummary(CamelModel):
    """Batch runner çıktısı: giriş sırasıyla item sonuçları"""
    total: int
    succeeded: int
    failed: int
    progress: BatchProgress
    results: List[BatchItemResult]


# ============================================================================
# AI KATEGORİ ÖNERİSİ
# ============================================================================

class CategorySuggestion(CamelModel):
    category_id: str
    category_name: str
    full_path: str
    confidence_score: float = Field(0.5, ge=0, le=1)


class SuggestionRequest(CamelModel):
    product_title: Optional[str] = None
    product_description: Optional[str] = None
    target_marketplace: Optional[str] = None


class AttributeExtractionRequest(CamelModel):
    product_title: Optional[str] = None


# ============================================================================
# ORCHESTRATOR AKSİYON PARAMETRELERİ
# ============================================================================

class SyncRequest(CamelModel):
    """
    POST /api/marketplaces/{marketplace}/sync gövdesi

    action dışındaki bilinmeyen alanlar aksiyon parametresi olarak kabul edilir.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    action: str
    connection_id: Optional[int] = None
    credentials: Optional[Dict[str, Any]] = None

    def params(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class FetchProductsParams(CamelModel):
    page: int = Field(0, ge=0)
    page_size: int = Field(50, ge=1, le=200)


class CategoryIdParams(CamelModel):
    category_id: str


class OptionalCategoryParams(CamelModel):
    category_id: Optional[str] = None


class CreateProductParams(CamelModel):
    product: CanonicalProduct


class PushProductsParams(CamelModel):
    products: List[CanonicalProduct] = Field(default_factory=list)


class UpdateProductParams(CamelModel):
    product_id: str
    price: Optional[Decimal] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    updates: Optional[ProductUpdate] = None

    def to_update(self) -> ProductUpdate:
        """Düz alanlar ve iç içe 'updates' nesnesi birleştirilir; düz alanlar önceliklidir"""
        merged = self.updates.supplied() if self.updates else {}
        merged.update(ProductUpdate(price=self.price, stock=self.stock, sku=self.sku).supplied())
        return ProductUpdate(**merged)


class BulkStockParams(CamelModel):
    items: List[StockItem] = Field(default_factory=list)


class FetchOrdersParams(CamelModel):
    since: Optional[datetime] = None
    status: Optional[str] = None


class CheckStatusParams(CamelModel):
    tracking_id: str


# ============================================================================
# API REQUEST / RESPONSE
# ============================================================================

class ConnectionCreate(CamelModel):
    """Yeni bağlantı (veya mevcut bağlantının kimlik bilgilerini güncelleme)"""
    marketplace: str
    credentials: Dict[str, str]


class ConnectionOut(CamelModel):
    """Dışarıya dönen bağlantı - gizli kimlik bilgisi değerleri asla yer almaz"""
    id: int
    marketplace: str
    is_active: bool
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    credential_keys: List[str] = Field(default_factory=list)
    identifiers: Dict[str, str] = Field(default_factory=dict)


class BulkPublishRequest(CamelModel):
    connection_id: int
    products: List[CanonicalProduct]


class BulkStockRequest(CamelModel):
    connection_id: int
    items: List[StockItem]


class ImportProductsRequest(CamelModel):
    connection_id: int
    page_size: int = Field(50, ge=1, le=200)


class OrderStatusRequest(CamelModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    cargo_provider: Optional[str] = None


class StockSyncRequest(CamelModel):
    listing_id: int
    new_stock: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    """Sağlık kontrolü"""
    status: str
    timestamp: datetime
    database_connection: str
    version: str
