"""
Amazon Selling Partner API Client
LWA refresh_token ile access token alınır, SP-API isteklerine eklenir.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import requests

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    CanonicalOrder,
    CanonicalProduct,
    CategoryNode,
    MarketplaceProduct,
    OrderLine,
    ProductUpdate,
)
from connectors.base import MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceError, OAuthError
from services.fallback_categories import fallback_tree

logger = logging.getLogger(__name__)

TURKEY_MARKETPLACE_ID = "A33AVAJ2PDY3EV"  # Amazon.com.tr
LISTINGS_API = "/listings/2021-08-01/items"
ORDERS_API = "/orders/v0/orders"

ORDER_STATUS_FROM_AMAZON = {
    "Pending": OrderStatus.PENDING,
    "Unshipped": OrderStatus.PROCESSING,
    "PartiallyShipped": OrderStatus.PROCESSING,
    "Shipped": OrderStatus.SHIPPED,
    "Delivered": OrderStatus.DELIVERED,
    "Canceled": OrderStatus.CANCELLED,
    "Unfulfillable": OrderStatus.CANCELLED,
}


class AmazonSPAPIClient(MarketplaceAdapter):
    """
    Amazon SP-API (EU endpoint, varsayılan pazaryeri: Türkiye)

    Amazon'un kategori API'si olmadığı için kategoriler statik tablodan gelir.
    """

    marketplace = Marketplace.AMAZON
    display_name = "Amazon"

    status_map = {
        OrderStatus.SHIPPED: "Shipped",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = self.settings.amazon_api_url.rstrip('/')
        self.token_url = self.settings.amazon_token_url
        self.seller_id = self.credentials.get('seller_id')
        self.marketplace_id = self.credentials.get('marketplace_id') or TURKEY_MARKETPLACE_ID

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _fetch_access_token(self) -> Tuple[str, Optional[int]]:
        response = self.session.post(
            self.token_url,
            data={
                'grant_type': 'refresh_token',
                'refresh_token': self.credentials['refresh_token'],
                'client_id': self.credentials['client_id'],
                'client_secret': self.credentials['client_secret'],
            },
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"❌ Amazon token hatası: HTTP {response.status_code}")
            raise OAuthError("Token alınamadı, kimlik bilgilerinizi kontrol edin")

        data = self._json(response)
        token = data.get('access_token')
        if not token:
            raise OAuthError("Token alınamadı, kimlik bilgilerinizi kontrol edin")
        return token, data.get('expires_in')

    def _headers(self) -> Dict[str, str]:
        token = self._cached_token(self._fetch_access_token)
        return {
            'Authorization': f"Bearer {token}",
            'x-amz-access-token': token,
            'Content-Type': 'application/json',
        }

    def _get(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        response = self._request("GET", f"{self.api_url}{path}", params=params, headers=self._headers())
        return self._json(response)

    # ------------------------------------------------------------------
    # İşlemler
    # ------------------------------------------------------------------

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        self._get("/sellers/v1/marketplaceParticipations")
        logger.info("✅ Amazon bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'marketplaceId': self.marketplace_id}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        return fallback_tree("amazon")

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        """
        Tüm listing'leri nextToken ile sayfalayarak çeker

        page/page_size parametreleri Amazon'da kullanılmaz; SP-API cursor ile çalışır.
        """
        products: List[MarketplaceProduct] = []
        next_token = None

        while True:
            params = {'marketplaceIds': self.marketplace_id, 'maxResultsPerPage': 50}
            if next_token:
                params['nextToken'] = next_token
            data = self._get(f"{LISTINGS_API}/{self.seller_id}", params=params)

            for item in data.get('items', []) or []:
                products.append(self._to_marketplace_product(item))

            next_token = data.get('nextToken') or (data.get('pagination') or {}).get('nextToken')
            if not next_token:
                break

        logger.info(f"✅ Amazon: {len(products)} listing çekildi")
        return {'products': products, 'totalElements': len(products)}

    def _to_marketplace_product(self, item: Dict[str, Any]) -> MarketplaceProduct:
        summaries = item.get('summaries') or [{}]
        summary = summaries[0] if summaries else {}
        offers = item.get('offers') or []
        price = Decimal(str((offers[0].get('price') or {}).get('amount', 0))) if offers else Decimal("0")
        availability = item.get('fulfillmentAvailability') or []
        stock = int(availability[0].get('quantity') or 0) if availability else 0
        image = (summary.get('mainImage') or {}).get('link')
        status = summary.get('status')
        if isinstance(status, list):
            status = status[0] if status else None

        return MarketplaceProduct(
            sku=item.get('sku', ''),
            title=summary.get('itemName') or item.get('sku', ''),
            price=price,
            stock=max(stock, 0),
            images=[image] if image else [],
            remote_id=summary.get('asin') or item.get('sku'),
            status=status,
            marketplace_data=item,
        )

    def _listing_url(self, sku: str) -> str:
        return f"{self.api_url}{LISTINGS_API}/{self.seller_id}/{sku}"

    def _purchasable_offer(self, price: Decimal, currency: str = "TRY") -> List[Dict[str, Any]]:
        return [{
            'marketplace_id': self.marketplace_id,
            'currency': currency,
            'our_price': [{'schedule': [{'value_with_tax': float(price)}]}],
        }]

    @staticmethod
    def _fulfillment_availability(quantity: int) -> List[Dict[str, Any]]:
        return [{'fulfillment_channel_code': 'DEFAULT', 'quantity': quantity}]

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        attrs = product.attributes or {}
        attributes: Dict[str, Any] = {
            'condition_type': [{'value': attrs.get('condition') or 'new_new'}],
            'item_name': [{'value': product.title, 'language_tag': 'tr_TR'}],
            'fulfillment_availability': self._fulfillment_availability(product.stock),
            'purchasable_offer': self._purchasable_offer(product.price, product.currency),
        }
        if attrs.get('asin'):
            attributes['merchant_suggested_asin'] = [{'value': attrs['asin']}]

        response = self._request(
            "PUT",
            self._listing_url(product.sku),
            params={'marketplaceIds': self.marketplace_id},
            json={
                'productType': attrs.get('product_type') or 'PRODUCT',
                'requirements': 'LISTING',
                'attributes': attributes,
            },
            headers=self._headers(),
        )
        data = self._json(response)
        logger.info(f"📤 Amazon listing gönderildi: sku={product.sku}, status={data.get('status')}")
        return {'sku': product.sku, 'status': data.get('status'), 'submissionId': data.get('submissionId')}

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """Sadece verilen alanlar için replace patch gönderir (product_id = SKU)"""
        fields = updates.supplied()
        patches = []
        if 'price' in fields:
            patches.append({
                'op': 'replace',
                'path': '/attributes/purchasable_offer',
                'value': self._purchasable_offer(fields['price']),
            })
        if 'stock' in fields:
            patches.append({
                'op': 'replace',
                'path': '/attributes/fulfillment_availability',
                'value': self._fulfillment_availability(fields['stock']),
            })
        if not patches:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        response = self._request(
            "PATCH",
            self._listing_url(product_id),
            params={'marketplaceIds': self.marketplace_id},
            json={'productType': 'PRODUCT', 'patches': patches},
            headers=self._headers(),
        )
        data = self._json(response)
        return {'sku': product_id, 'status': data.get('status'), 'patches': len(patches)}

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        """
        Siparişleri çeker, her sipariş için orderItems ayrıca istenir

        Kalem çekimi başarısız olursa sipariş boş kalem listesiyle döner.
        """
        created_after = since or (datetime.now(timezone.utc) - timedelta(days=30))
        orders: List[CanonicalOrder] = []
        next_token = None

        while True:
            params = {
                'MarketplaceIds': self.marketplace_id,
                'CreatedAfter': created_after.strftime('%Y-%m-%dT%H:%M:%SZ'),
                'MaxResultsPerPage': 100,
            }
            if status:
                params['OrderStatuses'] = status
            if next_token:
                params['NextToken'] = next_token

            data = self._get(ORDERS_API, params=params)
            payload = data.get('payload') or {}
            for order in payload.get('Orders', []) or []:
                orders.append(self._to_canonical_order(order, self._order_items(order.get('AmazonOrderId'))))

            next_token = payload.get('NextToken')
            if not next_token:
                break

        logger.info(f"✅ Amazon: {len(orders)} sipariş çekildi")
        return orders

    def _order_items(self, amazon_order_id: str) -> List[Dict[str, Any]]:
        try:
            data = self._get(f"{ORDERS_API}/{amazon_order_id}/orderItems")
        except MarketplaceError as e:
            logger.warning(f"⚠️ Amazon sipariş kalemleri alınamadı ({amazon_order_id}): {e.status_code}")
            return []
        except requests.exceptions.RequestException as e:
            logger.warning(f"⚠️ Amazon sipariş kalemleri alınamadı ({amazon_order_id}): {type(e).__name__}")
            return []
        return (data.get('payload') or {}).get('OrderItems', []) or []

    def _to_canonical_order(self, order: Dict[str, Any], items: List[Dict[str, Any]]) -> CanonicalOrder:
        lines = []
        for item in items:
            quantity = int(item.get('QuantityOrdered') or 0)
            unit_price = Decimal(str((item.get('ItemPrice') or {}).get('Amount') or 0))
            lines.append(OrderLine(
                remote_line_id=item.get('OrderItemId'),
                title=item.get('Title', ''),
                sku=item.get('SellerSKU'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        total = (order.get('OrderTotal') or {})
        buyer = order.get('BuyerInfo') or {}
        purchase_date = order.get('PurchaseDate')

        return CanonicalOrder(
            id=order.get('AmazonOrderId'),
            order_number=order.get('AmazonOrderId'),
            status=ORDER_STATUS_FROM_AMAZON.get(order.get('OrderStatus'), OrderStatus.PENDING),
            customer_name=buyer.get('BuyerName'),
            customer_email=buyer.get('BuyerEmail'),
            shipping_address=order.get('ShippingAddress') or {},
            items=lines,
            subtotal=Decimal(str(total.get('Amount') or 0)),
            total=Decimal(str(total.get('Amount') or 0)),
            currency=total.get('CurrencyCode') or 'TRY',
            order_date=datetime.fromisoformat(purchase_date.replace('Z', '+00:00')) if purchase_date else None,
            marketplace_data=order,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        """Kargo onayı (confirmShipment) - sipariş kalemleri paket içeriği olarak gönderilir"""
        package: Dict[str, Any] = {
            'packageReferenceId': '1',
            'carrierCode': cargo_provider or 'Other',
            'trackingNumber': tracking_number,
            'shipDate': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'orderItems': [
                {'orderItemId': line.remote_line_id, 'quantity': line.quantity}
                for line in order.items if line.remote_line_id
            ],
        }
        if cargo_provider:
            package['carrierName'] = cargo_provider

        self._request(
            "POST",
            f"{self.api_url}{ORDERS_API}/{order.id}/shipmentConfirmation",
            json={'marketplaceId': self.marketplace_id, 'packageDetail': package},
            headers=self._headers(),
        )
        logger.info(f"✅ Amazon kargo onayı gönderildi: {order.id}")
        return {'orderId': order.id, 'status': remote_status}
