"""
Hepsiburada Marketplace API Client
"""
import logging
from typing import Any, Dict, List

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    AttributeValue,
    CanonicalProduct,
    CategoryAttribute,
    CategoryNode,
    FlatCategory,
    ProductUpdate,
)
from connectors.base import PLACEHOLDER_IMAGE, MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceError
from services.category_tree import build_tree

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_TIME = 2
DEFAULT_CARGO_COMPANY = "YURTICI_KARGO"
DEFAULT_BRAND_NAME = "Belirtilmemiş"
CATEGORY_PAGE_SIZE = 2000


class HepsiburadaAPIClient(MarketplaceAdapter):
    """
    Hepsiburada Merchant API

    Auth: Basic Authentication (kullanıcı adı / şifre), merchant id path içinde.
    Ürün oluşturma asenkron çalışır: import isteği trackingId döner,
    sonuç check_product_status ile sorgulanır.
    """

    marketplace = Marketplace.HEPSIBURADA
    display_name = "Hepsiburada"

    status_map = {
        OrderStatus.SHIPPED: "Shipped",
        OrderStatus.DELIVERED: "Delivered",
        OrderStatus.CANCELLED: "Cancelled",
    }

    status_messages = {
        401: "Geçersiz kullanıcı adı veya şifre",
        403: "Bu merchant ID için yetkiniz yok",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = self.settings.hepsiburada_api_url.rstrip('/')
        self.merchant_id = self.credentials.get('merchant_id')

        if not self.missing_credentials:
            self.session.auth = (self.credentials['username'], self.credentials['password'])
            self.session.headers.update({
                'Content-Type': 'application/json',
                'Accept': 'application/json',
            })

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        self._request("GET", f"{self.api_url}/merchants/{self.merchant_id}/account")
        logger.info("✅ Hepsiburada bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'merchantId': self.merchant_id}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        """Düz ve sayfalı kategori listesini çekip ağaca çevirir"""
        rows: List[FlatCategory] = []
        page = 0

        while True:
            response = self._request(
                "GET",
                f"{self.api_url}/product/api/categories/get-all-categories",
                params={'page': page, 'size': CATEGORY_PAGE_SIZE},
            )
            data = self._json(response)
            content = data.get('data', []) if isinstance(data, dict) else data
            for item in content or []:
                parent = item.get('parentCategoryId')
                rows.append(FlatCategory(
                    id=str(item.get('categoryId') or item.get('id')),
                    name=item.get('name') or item.get('displayName') or '',
                    parent_id=str(parent) if parent else None,
                ))

            total_pages = data.get('totalPages', 1) if isinstance(data, dict) else 1
            if not content or page >= total_pages - 1:
                break
            page += 1

        logger.info(f"📂 Hepsiburada: {len(rows)} kategori")
        return build_tree(rows)

    @adapter_operation
    def fetch_category_attributes(self, category_id: str) -> List[CategoryAttribute]:
        response = self._request("GET", f"{self.api_url}/product/api/categories/{category_id}/attributes")
        data = self._json(response)
        payload = data.get('data', data) if isinstance(data, dict) else data

        # Hepsiburada özellikleri baseAttributes / attributes / variantAttributes olarak gruplar
        if isinstance(payload, dict):
            groups = [payload.get(key) or [] for key in ('baseAttributes', 'attributes', 'variantAttributes')]
            raw = [item for group in groups for item in group]
        else:
            raw = payload or []

        return [
            CategoryAttribute(
                id=str(item.get('id', '')),
                name=item.get('name', ''),
                required=bool(item.get('mandatory', False)),
                allow_custom=item.get('type') != 'enum',
                values=[
                    AttributeValue(id=str(v.get('id', v.get('value', ''))), name=str(v.get('value', v.get('name', ''))))
                    for v in item.get('values', []) or []
                ],
            )
            for item in raw
        ]

    def _to_hb_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        attrs = product.attributes or {}
        return {
            'categoryId': product.category_id,
            'merchant': self.merchant_id,
            'attributes': attrs.get('marketplace_attributes') or {},
            'productListings': [{
                'sku': product.sku,
                'listingPrice': float(product.price),
                'availableStock': product.stock,
                'dispatchTime': int(attrs.get('dispatch_time') or DEFAULT_DISPATCH_TIME),
                'cargoCompany': attrs.get('cargo_company') or DEFAULT_CARGO_COMPANY,
            }],
            'images': [
                {'url': url, 'order': index + 1}
                for index, url in enumerate(product.images or [PLACEHOLDER_IMAGE])
            ],
            'productName': product.title,
            'description': product.description or product.title,
            'brandName': product.brand or DEFAULT_BRAND_NAME,
        }

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        """
        Ürün import isteği gönderir

        Returns:
            {'trackingId': str} - durum check_product_status ile izlenir
        """
        response = self._request(
            "POST",
            f"{self.api_url}/product/api/products/import",
            json=[self._to_hb_product(product)],
        )
        data = self._json(response)
        tracking_id = data.get('trackingId') or (data.get('data') or {}).get('trackingId')
        logger.info(f"📤 Hepsiburada ürün import edildi: sku={product.sku}, trackingId={tracking_id}")
        return {'trackingId': tracking_id, 'status': 'pending'}

    @adapter_operation
    def check_product_status(self, tracking_id: str) -> Dict[str, Any]:
        response = self._request("GET", f"{self.api_url}/product/api/products/status/{tracking_id}")
        return self._json(response)

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """Listing fiyat/stok güncellemesi - product_id Hepsiburada SKU'sudur"""
        fields = updates.supplied()
        listing: Dict[str, Any] = {'sku': product_id, 'merchantId': self.merchant_id}
        if 'price' in fields:
            listing['price'] = float(fields['price'])
        if 'stock' in fields:
            listing['availableStock'] = fields['stock']
        if 'price' not in fields and 'stock' not in fields:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        self._request("POST", f"{self.api_url}/listing/api/listings/update-all", json=[listing])
        return {'sku': listing['sku'], 'updated': sorted(k for k in fields if k != 'sku')}

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'merchantId': self.merchant_id,
            'orderNumber': order.id,
            'status': remote_status,
        }
        if tracking_number:
            payload['trackingNumber'] = tracking_number
        if cargo_provider:
            payload['cargoCompany'] = cargo_provider

        self._request("PUT", f"{self.api_url}/api/orders/status", json=payload)
        logger.info(f"✅ Hepsiburada sipariş durumu güncellendi: {order.id} -> {remote_status}")
        return {'orderId': order.id, 'status': remote_status}

