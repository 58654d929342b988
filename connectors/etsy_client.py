"""
Etsy Open API v3 Client
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    AttributeValue,
    CanonicalOrder,
    CanonicalProduct,
    CategoryAttribute,
    CategoryNode,
    MarketplaceProduct,
    OrderLine,
    ProductUpdate,
)
from connectors.base import MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceError
from services.category_tree import tree_from_nested

logger = logging.getLogger(__name__)

DEFAULT_WHO_MADE = "someone_else"
DEFAULT_WHEN_MADE = "2020_2024"
LISTING_PAGE_LIMIT = 100


def money(value: Optional[Dict[str, Any]]) -> Decimal:
    """Etsy para nesnesi {amount, divisor} -> Decimal"""
    if not value:
        return Decimal("0")
    divisor = value.get('divisor') or 1
    return Decimal(str(value.get('amount') or 0)) / Decimal(str(divisor))


class EtsyAPIClient(MarketplaceAdapter):
    """
    Etsy Open API v3

    Auth: x-api-key (uygulama anahtarı) + OAuth bearer access token.
    Kategoriler seller taxonomy ağacıdır; siparişler receipt olarak gelir.
    """

    marketplace = Marketplace.ETSY
    display_name = "Etsy"

    status_map = {
        OrderStatus.SHIPPED: "tracking",
    }

    status_messages = {
        401: "Etsy erişim token'ı geçersiz veya süresi dolmuş",
        403: "Bu mağaza için Etsy yetkiniz yok",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = self.settings.etsy_api_url.rstrip('/')
        self.shop_id = self.credentials.get('shop_id')

        if not self.missing_credentials:
            self.session.headers.update({
                'x-api-key': self.credentials['api_key'],
                'Authorization': f"Bearer {self.credentials['access_token']}",
                'Content-Type': 'application/json',
            })

    @property
    def shop_url(self) -> str:
        return f"{self.api_url}/shops/{self.shop_id}"

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        shop = self._json(self._request("GET", self.shop_url))
        logger.info("✅ Etsy bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'shopName': shop.get('shop_name')}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        data = self._json(self._request("GET", f"{self.api_url}/seller-taxonomy/nodes"))
        tree = tree_from_nested(data.get('results') or [], children_key='children')
        logger.info(f"📂 Etsy: {len(tree)} kök kategori")
        return tree

    @adapter_operation
    def fetch_category_attributes(self, category_id: str) -> List[CategoryAttribute]:
        data = self._json(self._request("GET", f"{self.api_url}/seller-taxonomy/nodes/{category_id}/properties"))
        attributes = []
        for prop in data.get('results') or []:
            values = [
                AttributeValue(id=str(v.get('value_id')), name=v.get('name') or '')
                for v in prop.get('possible_values') or []
            ]
            attributes.append(CategoryAttribute(
                id=str(prop.get('property_id')),
                name=prop.get('display_name') or prop.get('name') or '',
                required=bool(prop.get('is_required')),
                allow_custom=not values,
                values=values,
            ))
        return attributes

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        limit = min(page_size, LISTING_PAGE_LIMIT)
        response = self._request(
            "GET",
            f"{self.shop_url}/listings",
            params={'state': 'active', 'limit': limit, 'offset': page * limit, 'includes': 'Images'},
        )
        data = self._json(response)
        products = [self._to_marketplace_product(item) for item in data.get('results') or []]
        logger.info(f"✅ Etsy: {len(products)} ürün çekildi (sayfa {page})")
        return {'products': products, 'totalElements': data.get('count', len(products)), 'page': page}

    @staticmethod
    def _to_marketplace_product(listing: Dict[str, Any]) -> MarketplaceProduct:
        skus = listing.get('skus') or []
        price = listing.get('price') or {}
        return MarketplaceProduct(
            sku=skus[0] if skus else str(listing.get('listing_id')),
            title=listing.get('title') or '',
            description=listing.get('description'),
            price=money(price),
            stock=max(int(listing.get('quantity') or 0), 0),
            category_id=str(listing['taxonomy_id']) if listing.get('taxonomy_id') else None,
            images=[img.get('url_fullxfull') for img in listing.get('images') or [] if img.get('url_fullxfull')],
            currency=price.get('currency_code') or 'USD',
            remote_id=str(listing.get('listing_id')),
            status=listing.get('state'),
            marketplace_data=listing,
        )

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        """
        Taslak listing oluşturur

        Etsy görselleri URL ile kabul etmez; görseller ayrıca yüklenmelidir.
        """
        if not product.category_id:
            raise MarketplaceError("Etsy ürünü için taxonomy kategorisi seçilmelidir", 400, ErrorType.INVALID_REQUEST)

        attrs = product.attributes or {}
        payload: Dict[str, Any] = {
            'quantity': product.stock,
            'title': product.title,
            'description': product.description or product.title,
            'price': float(product.price),
            'who_made': attrs.get('who_made') or DEFAULT_WHO_MADE,
            'when_made': attrs.get('when_made') or DEFAULT_WHEN_MADE,
            'taxonomy_id': self._numeric_id(product.category_id, 'taxonomy_id'),
            'is_supply': False,
            'skus': [product.sku],
        }
        if attrs.get('shipping_profile_id'):
            payload['shipping_profile_id'] = self._numeric_id(attrs['shipping_profile_id'], 'shipping_profile_id')

        data = self._json(self._request("POST", f"{self.shop_url}/listings", json=payload))
        if product.images:
            logger.info(f"ℹ️ Etsy: {len(product.images)} görsel ayrıca yüklenmeli (listing {data.get('listing_id')})")
        logger.info(f"📤 Etsy listing oluşturuldu: {data.get('listing_id')}")
        return {'listingId': data.get('listing_id'), 'sku': product.sku, 'state': data.get('state')}

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """
        Listing envanterini okuyup sadece verilen fiyat/stok alanlarını değiştirir
        """
        fields = updates.supplied()
        if 'price' not in fields and 'stock' not in fields:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        inventory_url = f"{self.api_url}/listings/{product_id}/inventory"
        inventory = self._json(self._request("GET", inventory_url))

        products = []
        for item in inventory.get('products') or []:
            # sku verildiyse sadece o varyant değişir
            touched = not fields.get('sku') or item.get('sku') in (None, '', fields['sku'])

            new_offerings = []
            for offering in item.get('offerings') or []:
                new_offering = {
                    'price': float(money(offering.get('price'))),
                    'quantity': offering.get('quantity', 0),
                    'is_enabled': offering.get('is_enabled', True),
                }
                if touched and 'price' in fields:
                    new_offering['price'] = float(fields['price'])
                if touched and 'stock' in fields:
                    new_offering['quantity'] = fields['stock']
                new_offerings.append(new_offering)

            products.append({
                'sku': item.get('sku') or '',
                'property_values': item.get('property_values') or [],
                'offerings': new_offerings,
            })

        self._request("PUT", inventory_url, json={'products': products})
        return {'listingId': product_id, 'updated': sorted(k for k in fields if k != 'sku')}

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        start = since or datetime.now() - timedelta(days=30)
        params: Dict[str, Any] = {'min_created': int(start.timestamp()), 'limit': 100}
        if status == 'shipped':
            params['was_shipped'] = 'true'

        data = self._json(self._request("GET", f"{self.shop_url}/receipts", params=params))
        orders = [self._to_canonical_order(r) for r in data.get('results') or []]
        logger.info(f"✅ Etsy: {len(orders)} sipariş çekildi")
        return orders

    @staticmethod
    def _to_canonical_order(receipt: Dict[str, Any]) -> CanonicalOrder:
        lines = []
        for tx in receipt.get('transactions') or []:
            quantity = int(tx.get('quantity') or 1)
            unit_price = money(tx.get('price'))
            lines.append(OrderLine(
                remote_line_id=str(tx.get('transaction_id')),
                title=tx.get('title') or '',
                sku=tx.get('sku'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        if receipt.get('status') in ('Canceled', 'Fully Refunded'):
            status = OrderStatus.CANCELLED
        elif receipt.get('is_shipped'):
            status = OrderStatus.SHIPPED
        elif receipt.get('is_paid'):
            status = OrderStatus.PROCESSING
        else:
            status = OrderStatus.PENDING

        created = receipt.get('create_timestamp') or receipt.get('created_timestamp')
        grandtotal = receipt.get('grandtotal') or {}
        return CanonicalOrder(
            id=str(receipt.get('receipt_id')),
            order_number=str(receipt.get('receipt_id')),
            status=status,
            customer_name=receipt.get('name'),
            customer_email=receipt.get('buyer_email'),
            shipping_address={
                'address': receipt.get('first_line'),
                'city': receipt.get('city'),
                'zip': receipt.get('zip'),
                'country': receipt.get('country_iso'),
            },
            items=lines,
            subtotal=money(receipt.get('subtotal')),
            total=money(grandtotal),
            currency=grandtotal.get('currency_code') or 'USD',
            order_date=datetime.fromtimestamp(created) if created else None,
            marketplace_data=receipt,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        if not tracking_number:
            raise MarketplaceError("Etsy kargo bildirimi için takip numarası gereklidir", 400, ErrorType.INVALID_REQUEST)

        payload = {'tracking_code': tracking_number, 'carrier_name': cargo_provider or 'other'}
        self._request("POST", f"{self.shop_url}/receipts/{order.id}/tracking", json=payload)
        logger.info(f"✅ Etsy kargo bilgisi gönderildi: receipt {order.id}")
        return {'orderId': order.id, 'status': remote_status}
