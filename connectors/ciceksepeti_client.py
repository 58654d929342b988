"""
Çiçeksepeti Marketplace API Client
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    AttributeValue,
    CanonicalOrder,
    CanonicalProduct,
    CategoryAttribute,
    CategoryNode,
    FlatCategory,
    MarketplaceProduct,
    OrderLine,
    ProductUpdate,
    StockItem,
)
from connectors.base import PLACEHOLDER_IMAGE, MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceError, OAuthError
from services.category_tree import build_tree, tree_from_nested

logger = logging.getLogger(__name__)

DEFAULT_DELIVERY_TYPE = 1

ORDER_STATUS_FROM_CICEKSEPETI = {
    1: OrderStatus.PENDING,
    2: OrderStatus.PROCESSING,
    3: OrderStatus.SHIPPED,
    4: OrderStatus.DELIVERED,
    5: OrderStatus.CANCELLED,
}


class CiceksepetiAPIClient(MarketplaceAdapter):
    """
    Çiçeksepeti Seller API

    Auth: apiKey/apiSecret ile alınan bearer token.
    Sipariş durumu endpoint'i token yerine x-api-key header'ı kullanır.
    """

    marketplace = Marketplace.CICEKSEPETI
    display_name = "Çiçeksepeti"
    supports_native_bulk_stock = True

    status_map = {
        OrderStatus.SHIPPED: 3,
        OrderStatus.DELIVERED: 4,
        OrderStatus.CANCELLED: 5,
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = f"{self.settings.ciceksepeti_api_url.rstrip('/')}/api/v1"

    def _fetch_access_token(self) -> Tuple[str, Optional[int]]:
        response = self.session.post(
            f"{self.api_url}/auth/token",
            json={
                'apiKey': self.credentials['api_key'],
                'apiSecret': self.credentials['api_secret'],
            },
            headers={'Content-Type': 'application/json'},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"❌ Çiçeksepeti auth hatası: HTTP {response.status_code}")
            raise OAuthError("Çiçeksepeti kimlik doğrulama başarısız")

        data = self._json(response)
        token = data.get('accessToken') or data.get('token')
        if not token:
            raise OAuthError("Çiçeksepeti token cevabı boş")
        return token, data.get('expiresIn') or data.get('expires_in')

    def _headers(self) -> Dict[str, str]:
        token = self._cached_token(self._fetch_access_token)
        return {'Authorization': f"Bearer {token}", 'Content-Type': 'application/json'}

    def _call(self, method: str, path: str, **kwargs):
        return self._request(method, f"{self.api_url}/{path}", headers=self._headers(), **kwargs)

    @staticmethod
    def _payload(data: Any, *keys: str) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            return data
        for key in keys + ('data',):
            if isinstance(data.get(key), list):
                return data[key]
        return []

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        response = self._call("GET", "seller/info")
        logger.info("✅ Çiçeksepeti bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'seller': self._json(response)}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        """Kategoriler iç içe (subCategories) veya düz (parentCategoryId) gelebilir"""
        categories = self._payload(self._json(self._call("GET", "categories")), 'categories')

        if any(cat.get('subCategories') for cat in categories):
            return tree_from_nested(categories, children_key='subCategories')

        rows = []
        for cat in categories:
            parent = cat.get('parentCategoryId') or cat.get('parentId')
            rows.append(FlatCategory(
                id=str(cat.get('id')),
                name=cat.get('name') or '',
                parent_id=str(parent) if parent else None,
            ))
        logger.info(f"📂 Çiçeksepeti: {len(rows)} kategori")
        return build_tree(rows)

    @adapter_operation
    def fetch_category_attributes(self, category_id: str) -> List[CategoryAttribute]:
        attributes = self._payload(self._json(self._call("GET", f"categories/{category_id}/attributes")), 'attributes')
        return [
            CategoryAttribute(
                id=str(attr.get('attributeId') or attr.get('id')),
                name=attr.get('attributeName') or attr.get('name') or '',
                required=bool(attr.get('required', False)),
                allow_custom=attr.get('type') == 'text',
                values=[
                    AttributeValue(id=str(v.get('id')), name=v.get('name') or '')
                    for v in attr.get('attributeValues') or attr.get('values') or []
                ],
            )
            for attr in attributes
        ]

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        response = self._call("GET", "products", params={'page': page + 1, 'pageSize': page_size})
        data = self._json(response)
        products = [self._to_marketplace_product(p) for p in self._payload(data, 'products')]
        total = data.get('totalCount', len(products)) if isinstance(data, dict) else len(products)
        logger.info(f"✅ Çiçeksepeti: {len(products)} ürün çekildi (sayfa {page})")
        return {'products': products, 'totalElements': total, 'page': page}

    @staticmethod
    def _to_marketplace_product(product: Dict[str, Any]) -> MarketplaceProduct:
        images = [img.get('url') if isinstance(img, dict) else img for img in product.get('images') or []]
        return MarketplaceProduct(
            sku=product.get('stockCode') or product.get('mainProductCode') or str(product.get('productCode', '')),
            title=product.get('productName') or '',
            description=product.get('description'),
            price=Decimal(str(product.get('salesPrice') or 0)),
            stock=max(int(product.get('stockQuantity') or 0), 0),
            category_id=str(product['categoryId']) if product.get('categoryId') else None,
            images=[url for url in images if url],
            barcode=product.get('barcode'),
            remote_id=str(product.get('productCode') or product.get('id') or '') or None,
            status=product.get('productStatusType'),
            marketplace_data=product,
        )

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        if not product.category_id:
            raise MarketplaceError("Çiçeksepeti ürünü için kategori seçilmelidir", 400, ErrorType.INVALID_REQUEST)

        payload = {
            'productName': product.title,
            'mainProductCode': product.sku,
            'stockCode': product.sku,
            'categoryId': self._numeric_id(product.category_id, 'categoryId'),
            'description': product.description or product.title,
            'deliveryType': self._numeric_id(product.attributes.get('delivery_type') or DEFAULT_DELIVERY_TYPE, 'deliveryType'),
            'stockQuantity': product.stock,
            'salesPrice': float(product.price),
            'listPrice': float(product.price),
            'barcode': product.barcode or product.sku,
            'images': [
                {'url': url, 'isMainImage': index == 0, 'sequence': index + 1}
                for index, url in enumerate(product.images or [PLACEHOLDER_IMAGE])
            ],
        }
        response = self._call("POST", "products", json=payload)
        data = self._json(response)
        logger.info(f"📤 Çiçeksepeti ürün oluşturuldu: sku={product.sku}")
        return {'sku': product.sku, 'response': data}

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        fields = updates.supplied()
        payload: Dict[str, Any] = {}
        if 'price' in fields:
            payload['salesPrice'] = float(fields['price'])
            payload['listPrice'] = float(fields['price'])
        if 'stock' in fields:
            payload['stockQuantity'] = fields['stock']
        if not payload:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        self._call("PUT", f"products/{product_id}", json=payload)
        return {'productId': product_id, 'updated': sorted(k for k in fields if k != 'sku')}

    @adapter_operation
    def bulk_update_stock(self, items: List[StockItem]) -> Dict[str, Any]:
        if not items:
            raise MarketplaceError("Güncellenecek stok kalemi yok", 400, ErrorType.NO_PRODUCTS)
        self._call("PUT", "products/stock/batch", json={
            'items': [{'stockCode': item.sku, 'stockQuantity': item.quantity} for item in items],
        })
        logger.info(f"✅ Çiçeksepeti toplu stok güncellendi: {len(items)} kalem")
        return {'updated': len(items)}

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        start = since or datetime.now() - timedelta(days=14)
        params = {
            'startDate': start.strftime('%Y-%m-%dT%H:%M:%S'),
            'endDate': datetime.now().strftime('%Y-%m-%dT%H:%M:%S'),
        }
        data = self._json(self._call("GET", "orders", params=params))
        orders = [self._to_canonical_order(o) for o in self._payload(data, 'orders', 'supplierOrderListWithBranch')]
        logger.info(f"✅ Çiçeksepeti: {len(orders)} sipariş çekildi")
        return orders

    @staticmethod
    def _to_canonical_order(order: Dict[str, Any]) -> CanonicalOrder:
        quantity = int(order.get('quantity') or 1)
        total = Decimal(str(order.get('totalPrice') or order.get('itemPrice') or 0))
        line = OrderLine(
            remote_line_id=str(order.get('orderProductId') or order.get('orderItemId') or '') or None,
            title=order.get('name') or order.get('productName') or '',
            sku=order.get('code') or order.get('stockCode'),
            quantity=quantity,
            unit_price=total / quantity if quantity else total,
            total_price=total,
        )
        order_date = None
        if order.get('orderCreateDate'):
            try:
                order_date = datetime.fromisoformat(str(order['orderCreateDate']).replace('Z', '+00:00'))
            except ValueError:
                logger.debug(f"Çiçeksepeti sipariş tarihi okunamadı: {order['orderCreateDate']}")

        remote_id = str(order.get('orderId') or order.get('orderProductId') or order.get('id'))
        return CanonicalOrder(
            id=remote_id,
            order_number=remote_id,
            status=ORDER_STATUS_FROM_CICEKSEPETI.get(order.get('orderProductStatus'), OrderStatus.PENDING),
            customer_name=order.get('receiverName') or order.get('senderName'),
            shipping_address={'address': order.get('receiverAddress'), 'city': order.get('receiverCity')},
            items=[line],
            subtotal=total,
            total=total,
            order_date=order_date,
            marketplace_data=order,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        product_ids = [line.remote_line_id for line in order.items if line.remote_line_id] or [order.id]
        body: Dict[str, Any] = {
            'orderProductIds': product_ids,
            'orderProductStatus': remote_status,
        }
        if tracking_number:
            body['cargoTrackingNumber'] = tracking_number

        self._request(
            "POST",
            f"{self.api_url}/Order/UpdateOrderStatus",
            json=body,
            headers={'x-api-key': self.credentials['api_key'], 'Content-Type': 'application/json'},
        )
        logger.info(f"✅ Çiçeksepeti sipariş durumu güncellendi: {order.id} -> {remote_status}")
        return {'orderId': order.id, 'status': remote_status}
