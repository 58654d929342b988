"""
Trendyol Marketplace API Client
Trendyol API ile entegrasyon için client sınıfı
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Any, List, Optional

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    CanonicalOrder,
    CanonicalProduct,
    CategoryAttribute,
    CategoryNode,
    AttributeValue,
    MarketplaceProduct,
    OrderLine,
    ProductUpdate,
    StockItem,
)
from connectors.base import (
    DEFAULT_VAT_RATE,
    PLACEHOLDER_IMAGE,
    MarketplaceAdapter,
    adapter_operation,
)
from connectors.exceptions import MarketplaceError
from services.category_tree import tree_from_nested

logger = logging.getLogger(__name__)

DEFAULT_BRAND_ID = 102
DEFAULT_CATEGORY_ID = 411
DEFAULT_CARGO_COMPANY_ID = 17

COLOR_ATTRIBUTE_ID = 348
SIZE_ATTRIBUTE_ID = 338
DEFAULT_COLOR_VALUE_ID = 52

COLOR_VALUE_IDS = {
    'siyah': 52, 'black': 52,
    'beyaz': 53, 'white': 53,
    'kırmızı': 54, 'red': 54,
    'mavi': 55, 'blue': 55,
    'yeşil': 56, 'green': 56,
    'sarı': 57, 'yellow': 57,
    'turuncu': 58, 'orange': 58,
    'mor': 59, 'purple': 59,
    'pembe': 60, 'pink': 60,
    'gri': 61, 'gray': 61, 'grey': 61,
    'kahverengi': 62, 'brown': 62,
}

# Trendyol paket durumu -> kanonik durum
ORDER_STATUS_FROM_TRENDYOL = {
    'Awaiting': OrderStatus.PENDING,
    'Created': OrderStatus.PENDING,
    'Picking': OrderStatus.PROCESSING,
    'Invoiced': OrderStatus.PROCESSING,
    'Shipped': OrderStatus.SHIPPED,
    'AtCollectionPoint': OrderStatus.SHIPPED,
    'Delivered': OrderStatus.DELIVERED,
    'UnDelivered': OrderStatus.CANCELLED,
    'Cancelled': OrderStatus.CANCELLED,
    'UnSupplied': OrderStatus.CANCELLED,
    'Returned': OrderStatus.CANCELLED,
}


def get_color_value_id(color: Optional[str]) -> int:
    """Renk adını Trendyol renk attribute value id'sine çevirir (bilinmeyen: siyah)"""
    if not color:
        return DEFAULT_COLOR_VALUE_ID
    return COLOR_VALUE_IDS.get(color.strip().lower(), DEFAULT_COLOR_VALUE_ID)


class TrendyolAPIClient(MarketplaceAdapter):
    """
    Trendyol Marketplace API entegrasyonu

    Auth: Basic Authentication
    - Username: API Key
    - Password: API Secret
    - User-Agent: "{sellerId} - SelfIntegration" (Trendyol zorunlu tutar)
    """

    marketplace = Marketplace.TRENDYOL
    display_name = "Trendyol"
    supports_native_bulk_stock = True

    status_map = {
        OrderStatus.SHIPPED: "Shipped",
        OrderStatus.DELIVERED: "Delivered",
        OrderStatus.CANCELLED: "Cancelled",
    }

    status_messages = {
        401: "Kimlik doğrulama hatası (401): API anahtarı veya secret yanlış.",
        403: "Yetkisiz (403): Satıcı ID ile API anahtarları eşleşmiyor olabilir veya hesap API erişimine açık değil.",
        404: "Satıcı bulunamadı (404): Satıcı ID yanlış olabilir.",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = self.settings.trendyol_api_url.rstrip('/')
        self.supplier_id = self.credentials.get('seller_id')

        if not self.missing_credentials:
            self.session.auth = (self.credentials['api_key'], self.credentials['api_secret'])
            self.session.headers.update({
                'User-Agent': f"{self.supplier_id} - SelfIntegration",
                'Content-Type': 'application/json'
            })

    @property
    def supplier_url(self) -> str:
        return f"{self.api_url}/suppliers/{self.supplier_id}"

    # ------------------------------------------------------------------
    # Bağlantı / kategori
    # ------------------------------------------------------------------

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        """Tek ürünlük sayfa çekerek anahtarları doğrular"""
        self._request("GET", f"{self.supplier_url}/products", params={'page': 0, 'size': 1})
        logger.info("✅ Trendyol bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'supplierId': self.supplier_id}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        """Kategori ağacı - Trendyol iç içe subCategories döner"""
        response = self._request("GET", f"{self.api_url}/product-categories")
        data = self._json(response)
        categories = data.get('categories', []) if isinstance(data, dict) else data
        logger.info(f"📂 Trendyol: {len(categories)} kök kategori")
        return tree_from_nested(categories, children_key='subCategories')

    @adapter_operation
    def fetch_category_attributes(self, category_id: str) -> List[CategoryAttribute]:
        response = self._request("GET", f"{self.api_url}/product-categories/{category_id}/attributes")
        data = self._json(response)
        raw_attributes = data.get('categoryAttributes', []) if isinstance(data, dict) else data

        attributes = []
        for item in raw_attributes:
            attribute = item.get('attribute') or {}
            attributes.append(CategoryAttribute(
                id=str(attribute.get('id', item.get('id', ''))),
                name=attribute.get('name', item.get('name', '')),
                required=bool(item.get('required', False)),
                allow_custom=bool(item.get('allowCustom', False)),
                values=[
                    AttributeValue(id=str(v.get('id')), name=v.get('name', ''))
                    for v in item.get('attributeValues', []) or []
                ],
            ))
        return attributes

    # ------------------------------------------------------------------
    # Ürünler
    # ------------------------------------------------------------------

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        """
        Satıcının ürünlerini çeker

        Returns:
            {'products': [MarketplaceProduct], 'totalElements': int, 'totalPages': int, 'page': int}
        """
        response = self._request(
            "GET",
            f"{self.supplier_url}/products",
            params={'page': page, 'size': min(page_size, 200)},
        )
        data = self._json(response)
        content = data.get('content', []) or []
        logger.info(f"✅ Trendyol: {len(content)} ürün çekildi (sayfa {page})")

        return {
            'products': [self._to_marketplace_product(item) for item in content],
            'totalElements': data.get('totalElements', 0),
            'totalPages': data.get('totalPages', 0),
            'page': page,
        }

    def _to_marketplace_product(self, item: Dict[str, Any]) -> MarketplaceProduct:
        images = [img.get('url') for img in item.get('images', []) or [] if img.get('url')]
        return MarketplaceProduct(
            sku=item.get('barcode') or item.get('stockCode') or str(item.get('id', '')),
            title=item.get('title', ''),
            description=item.get('description'),
            price=Decimal(str(item.get('salePrice') or 0)),
            stock=max(int(item.get('quantity') or 0), 0),
            category_id=str(item['pimCategoryId']) if item.get('pimCategoryId') else None,
            brand=item.get('brand'),
            images=images,
            barcode=item.get('barcode'),
            remote_id=str(item.get('id') or item.get('productContentId') or ''),
            status='approved' if item.get('approved') else 'pending',
            marketplace_data=item,
        )

    def _to_trendyol_item(self, product: CanonicalProduct) -> Dict[str, Any]:
        """Kanonik ürünü Trendyol v2 ürün kaydına çevirir, eksik zorunlu alanlar varsayılanla dolar"""
        attrs = product.attributes or {}
        trendyol_attributes = []
        if attrs.get('color'):
            trendyol_attributes.append({
                'attributeId': COLOR_ATTRIBUTE_ID,
                'attributeValueId': get_color_value_id(attrs['color']),
            })
        if attrs.get('size'):
            trendyol_attributes.append({
                'attributeId': SIZE_ATTRIBUTE_ID,
                'customAttributeValue': str(attrs['size']),
            })
        trendyol_attributes.extend(attrs.get('marketplace_attributes', []) or [])

        price = float(product.price)
        return {
            'barcode': product.barcode or product.sku,
            'title': product.title,
            'productMainId': attrs.get('product_main_id') or product.sku,
            'brandId': self._numeric_id(attrs.get('brand_id') or DEFAULT_BRAND_ID, 'brandId'),
            'categoryId': self._numeric_id(product.category_id or DEFAULT_CATEGORY_ID, 'categoryId'),
            'quantity': product.stock,
            'stockCode': product.sku,
            'dimensionalWeight': 1,
            'description': product.description or product.title,
            'currencyType': product.currency or 'TRY',
            'listPrice': float(attrs.get('list_price') or price),
            'salePrice': price,
            'vatRate': int(attrs.get('vat_rate') or DEFAULT_VAT_RATE),
            'cargoCompanyId': self._numeric_id(attrs.get('cargo_company_id') or DEFAULT_CARGO_COMPANY_ID, 'cargoCompanyId'),
            'images': [{'url': url} for url in product.images] or [{'url': PLACEHOLDER_IMAGE}],
            'attributes': trendyol_attributes,
        }

    @adapter_operation
    def push_products(self, products: List[CanonicalProduct]) -> Dict[str, Any]:
        """
        Toplu ürün oluşturma (POST /suppliers/{id}/v2/products)

        Returns:
            {'message': str, 'batchRequestId': str}
        """
        if not products:
            raise MarketplaceError("Gönderilecek ürün bulunamadı", error_type=ErrorType.NO_PRODUCTS)

        items = [self._to_trendyol_item(p) for p in products]
        logger.info(f"📤 Trendyol'a {len(items)} ürün gönderiliyor...")

        response = self._request(
            "POST",
            f"{self.supplier_url}/v2/products",
            json={'items': items},
            status_messages={
                403: "Yetkisiz (403): Satıcı hesabı pasif olabilir veya API anahtarınız bu Satıcı ID ile eşleşmiyor."
            },
        )
        data = self._json(response)
        return {
            'message': f"{len(items)} ürün başarıyla Trendyol'a gönderildi",
            'batchRequestId': data.get('batchRequestId') if isinstance(data, dict) else None,
        }

    def create_product(self, product: CanonicalProduct):
        return self.push_products([product])

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """Fiyat/stok güncellemesi - product_id Trendyol barkodudur"""
        fields = updates.supplied()
        item: Dict[str, Any] = {'barcode': product_id}
        if 'stock' in fields:
            item['quantity'] = fields['stock']
        if 'price' in fields:
            item['salePrice'] = float(fields['price'])
            item['listPrice'] = float(fields['price'])
        if len(item) == 1:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        return self._price_and_inventory([item])

    @adapter_operation
    def bulk_update_stock(self, items: List[StockItem]) -> Dict[str, Any]:
        if not items:
            raise MarketplaceError("Güncellenecek ürün bulunamadı", error_type=ErrorType.NO_PRODUCTS)

        payload = []
        for stock_item in items:
            entry: Dict[str, Any] = {'barcode': stock_item.remote_id or stock_item.sku, 'quantity': stock_item.quantity}
            if stock_item.price is not None:
                entry['salePrice'] = float(stock_item.price)
                entry['listPrice'] = float(stock_item.price)
            payload.append(entry)
        return self._price_and_inventory(payload)

    def _price_and_inventory(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        response = self._request(
            "POST",
            f"{self.supplier_url}/products/price-and-inventory",
            json={'items': items},
        )
        data = self._json(response)
        logger.info(f"✅ Trendyol fiyat/stok güncellemesi gönderildi: {len(items)} kalem")
        return {
            'updated': len(items),
            'batchRequestId': data.get('batchRequestId') if isinstance(data, dict) else None,
        }

    # ------------------------------------------------------------------
    # Siparişler
    # ------------------------------------------------------------------

    def get_shipment_packages(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 0,
        size: int = 200,
    ) -> Dict[str, Any]:
        """
        Sipariş paketlerini çek (getShipmentPackages)

        Args:
            status: Sipariş statüsü (Created, Picking, Invoiced, Shipped, Cancelled, Delivered ...)
            start_date: Başlangıç tarihi
            end_date: Bitiş tarihi
            page: Sayfa numarası (0-based)
            size: Sayfa boyutu (max 200)
        """
        params = {
            'page': page,
            'size': min(size, 200),
            'orderByField': 'PackageLastModifiedDate',
            'orderByDirection': 'DESC',
        }
        if status:
            params['status'] = status
        if start_date:
            params['startDate'] = int(start_date.timestamp() * 1000)
        if end_date:
            params['endDate'] = int(end_date.timestamp() * 1000)

        logger.info(f"📦 Fetching Trendyol orders: status={status}, page={page}")
        response = self._request("GET", f"{self.supplier_url}/orders", params=params)
        return self._json(response)

    def get_all_shipment_packages(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Tüm sipariş paketlerini çek (pagination ile, paket id'ye göre tekilleştirilmiş)"""
        packages: Dict[Any, Dict[str, Any]] = {}
        page = 0

        while True:
            if max_pages is not None and page >= max_pages:
                logger.info(f"⚠️ Reached max_pages limit ({max_pages})")
                break

            result = self.get_shipment_packages(
                status=status, start_date=start_date, end_date=end_date, page=page
            )
            content = result.get('content', []) or []
            if not content:
                break

            for package in content:
                key = package.get('shipmentPackageId') or package.get('id')
                packages[key] = package

            total_pages = result.get('totalPages', 0)
            if page >= total_pages - 1:
                break
            page += 1

        logger.info(f"🎉 Total packages fetched: {len(packages)}")
        return list(packages.values())

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        start_date = since or (datetime.now() - timedelta(days=14))
        packages = self.get_all_shipment_packages(status=status, start_date=start_date, end_date=datetime.now())
        return [self._to_canonical_order(p) for p in packages]

    def _to_canonical_order(self, package: Dict[str, Any]) -> CanonicalOrder:
        lines = []
        for line in package.get('lines', []) or []:
            quantity = int(line.get('quantity') or 1)
            unit_price = Decimal(str(line.get('price') or 0))
            lines.append(OrderLine(
                remote_line_id=str(line.get('id', '')),
                title=line.get('productName', ''),
                sku=line.get('merchantSku') or line.get('barcode'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=Decimal(str(line.get('amount') or unit_price * quantity)),
            ))

        customer_name = " ".join(
            part for part in [package.get('customerFirstName'), package.get('customerLastName')] if part
        ) or None
        order_date = package.get('orderDate')

        return CanonicalOrder(
            id=str(package.get('shipmentPackageId') or package.get('id')),
            order_number=str(package.get('orderNumber', '')),
            status=ORDER_STATUS_FROM_TRENDYOL.get(package.get('status'), OrderStatus.PENDING),
            customer_name=customer_name,
            customer_email=package.get('customerEmail'),
            shipping_address=package.get('shipmentAddress'),
            items=lines,
            subtotal=Decimal(str(package.get('grossAmount') or 0)),
            total=Decimal(str(package.get('totalPrice') or package.get('grossAmount') or 0)),
            currency=package.get('currencyCode') or 'TRY',
            order_date=datetime.fromtimestamp(order_date / 1000) if order_date else None,
            marketplace_data=package,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'status': remote_status}
        if tracking_number:
            payload['trackingNumber'] = tracking_number
        if cargo_provider:
            payload['cargoProviderName'] = cargo_provider

        self._request("PUT", f"{self.supplier_url}/shipment-packages/{order.id}", json=payload)
        logger.info(f"✅ Trendyol sipariş durumu güncellendi: {order.id} -> {remote_status}")
        return {'orderId': order.id, 'status': remote_status}
