"""
Shopify Admin REST API Client
"""
import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import (
    CanonicalOrder,
    CanonicalProduct,
    CategoryNode,
    FlatCategory,
    MarketplaceProduct,
    OrderLine,
    ProductUpdate,
)
from connectors.base import MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceError
from services.category_tree import build_tree

logger = logging.getLogger(__name__)

PRODUCT_PAGE_LIMIT = 250

ORDER_STATUS_FROM_FULFILLMENT = {
    None: OrderStatus.PROCESSING,
    "partial": OrderStatus.PROCESSING,
    "fulfilled": OrderStatus.SHIPPED,
}


def normalize_shop_domain(shop_domain: str) -> str:
    """'https://magaza.myshopify.com/' veya 'magaza' -> 'magaza.myshopify.com'"""
    domain = re.sub(r'^https?://', '', shop_domain.strip())
    domain = domain.rstrip('/')
    if '.' not in domain:
        domain = f"{domain}.myshopify.com"
    return domain


class ShopifyAPIClient(MarketplaceAdapter):
    """
    Shopify Admin API

    Auth: X-Shopify-Access-Token. Koleksiyonlar düz kategori listesi olarak,
    stok inventory level'ları üzerinden yönetilir.
    """

    marketplace = Marketplace.SHOPIFY
    display_name = "Shopify"

    status_map = {
        OrderStatus.SHIPPED: "fulfillment",
        OrderStatus.CANCELLED: "cancel",
    }

    status_messages = {
        401: "Shopify erişim token'ı geçersiz",
        403: "Bu işlem için Shopify uygulama izni (scope) eksik",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.location_id = self.credentials.get('location_id')
        self.api_url = None

        if not self.missing_credentials:
            domain = normalize_shop_domain(self.credentials['shop_domain'])
            self.api_url = f"https://{domain}/admin/api/{self.settings.shopify_api_version}"
            self.session.headers.update({
                'X-Shopify-Access-Token': self.credentials['access_token'],
                'Content-Type': 'application/json',
            })

    def _url(self, path: str) -> str:
        return f"{self.api_url}/{path}"

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        shop = self._json(self._request("GET", self._url("shop.json"))).get('shop') or {}
        logger.info(f"✅ Shopify bağlantısı başarılı: {shop.get('name')}")
        return {'message': 'Bağlantı başarılı', 'shopName': shop.get('name')}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        """Custom ve smart koleksiyonlar tek seviyeli kategori olarak döner"""
        rows: List[FlatCategory] = []
        for kind in ('custom_collections', 'smart_collections'):
            data = self._json(self._request("GET", self._url(f"{kind}.json"), params={'limit': 250}))
            for collection in data.get(kind) or []:
                rows.append(FlatCategory(id=str(collection['id']), name=collection.get('title') or ''))
        logger.info(f"📂 Shopify: {len(rows)} koleksiyon")
        return build_tree(rows)

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        """
        Shopify cursor sayfalaması kullanır; istenen sayfaya Link header'ı
        takip edilerek gelinir.
        """
        url = self._url("products.json")
        params: Optional[Dict[str, Any]] = {'limit': min(page_size, PRODUCT_PAGE_LIMIT)}
        data: Dict[str, Any] = {}

        for current in range(page + 1):
            response = self._request("GET", url, params=params)
            data = self._json(response)
            next_url = (response.links.get('next') or {}).get('url')
            if current < page:
                if not next_url:
                    data = {}
                    break
                url, params = next_url, None

        products = []
        for item in data.get('products') or []:
            products.extend(self._to_marketplace_products(item))
        logger.info(f"✅ Shopify: {len(products)} varyant çekildi (sayfa {page})")
        return {'products': products, 'page': page}

    @staticmethod
    def _to_marketplace_products(product: Dict[str, Any]) -> List[MarketplaceProduct]:
        """Her varyant ayrı ürün olarak döner (remote_id = variant id)"""
        images = [img.get('src') for img in product.get('images') or [] if img.get('src')]
        result = []
        for variant in product.get('variants') or []:
            title = product.get('title') or ''
            if variant.get('title') and variant['title'] != 'Default Title':
                title = f"{title} - {variant['title']}"
            result.append(MarketplaceProduct(
                sku=variant.get('sku') or str(variant.get('id')),
                title=title,
                description=product.get('body_html'),
                price=Decimal(str(variant.get('price') or 0)),
                stock=max(int(variant.get('inventory_quantity') or 0), 0),
                brand=product.get('vendor'),
                images=images,
                barcode=variant.get('barcode'),
                remote_id=str(variant.get('id')),
                status=product.get('status'),
                marketplace_data={'product_id': product.get('id'), 'variant': variant},
            ))
        return result

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        variant: Dict[str, Any] = {
            'sku': product.sku,
            'price': str(product.price),
            'inventory_management': 'shopify',
        }
        if product.barcode:
            variant['barcode'] = product.barcode

        payload = {'product': {
            'title': product.title,
            'body_html': product.description or '',
            'vendor': product.brand or '',
            'product_type': (product.attributes or {}).get('product_type', ''),
            'status': 'active',
            'variants': [variant],
            'images': [{'src': url} for url in product.images],
        }}
        created = self._json(self._request("POST", self._url("products.json"), json=payload)).get('product') or {}
        variants = created.get('variants') or [{}]

        if product.stock and variants[0].get('inventory_item_id'):
            self._set_inventory(variants[0]['inventory_item_id'], product.stock)

        logger.info(f"📤 Shopify ürün oluşturuldu: {created.get('id')}")
        return {'productId': created.get('id'), 'variantId': variants[0].get('id'), 'handle': created.get('handle')}

    def _resolve_location_id(self) -> str:
        if self.location_id:
            return self.location_id
        locations = self._json(self._request("GET", self._url("locations.json"))).get('locations') or []
        active = [loc for loc in locations if loc.get('active', True)]
        if not active:
            raise MarketplaceError("Shopify mağazasında aktif stok lokasyonu bulunamadı", 400, ErrorType.API_ERROR)
        self.location_id = str(active[0]['id'])
        return self.location_id

    def _set_inventory(self, inventory_item_id: Any, quantity: int):
        self._request("POST", self._url("inventory_levels/set.json"), json={
            'location_id': self._resolve_location_id(),
            'inventory_item_id': inventory_item_id,
            'available': quantity,
        })

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """product_id Shopify variant id'sidir"""
        fields = updates.supplied()
        if 'price' not in fields and 'stock' not in fields:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)

        updated = []
        if 'price' in fields:
            self._request("PUT", self._url(f"variants/{product_id}.json"), json={
                'variant': {'id': product_id, 'price': str(fields['price'])},
            })
            updated.append('price')
        if 'stock' in fields:
            variant = self._json(self._request("GET", self._url(f"variants/{product_id}.json"))).get('variant') or {}
            if not variant.get('inventory_item_id'):
                raise MarketplaceError("Varyantın stok kaydı bulunamadı", 404, ErrorType.NOT_FOUND)
            self._set_inventory(variant['inventory_item_id'], fields['stock'])
            updated.append('stock')
        return {'variantId': product_id, 'updated': updated}

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        start = since or datetime.now() - timedelta(days=30)
        params = {'status': status or 'any', 'created_at_min': start.isoformat(), 'limit': 250}
        data = self._json(self._request("GET", self._url("orders.json"), params=params))
        orders = [self._to_canonical_order(o) for o in data.get('orders') or []]
        logger.info(f"✅ Shopify: {len(orders)} sipariş çekildi")
        return orders

    @staticmethod
    def _to_canonical_order(order: Dict[str, Any]) -> CanonicalOrder:
        lines = []
        for item in order.get('line_items') or []:
            quantity = int(item.get('quantity') or 1)
            unit_price = Decimal(str(item.get('price') or 0))
            lines.append(OrderLine(
                remote_line_id=str(item.get('id')),
                title=item.get('title') or '',
                sku=item.get('sku'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        if order.get('cancelled_at'):
            status = OrderStatus.CANCELLED
        elif order.get('financial_status') == 'pending':
            status = OrderStatus.PENDING
        else:
            status = ORDER_STATUS_FROM_FULFILLMENT.get(order.get('fulfillment_status'), OrderStatus.PROCESSING)

        customer = order.get('customer') or {}
        name = " ".join(p for p in [customer.get('first_name'), customer.get('last_name')] if p) or None
        created = order.get('created_at')
        return CanonicalOrder(
            id=str(order.get('id')),
            order_number=str(order.get('name') or order.get('order_number') or order.get('id')),
            status=status,
            customer_name=name,
            customer_email=order.get('email') or customer.get('email'),
            shipping_address=order.get('shipping_address'),
            items=lines,
            subtotal=Decimal(str(order.get('subtotal_price') or 0)),
            total=Decimal(str(order.get('total_price') or 0)),
            currency=order.get('currency') or 'TRY',
            order_date=datetime.fromisoformat(created) if created else None,
            marketplace_data=order,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        if remote_status == "cancel":
            self._request("POST", self._url(f"orders/{order.id}/cancel.json"), json={})
            logger.info(f"✅ Shopify sipariş iptal edildi: {order.id}")
            return {'orderId': order.id, 'status': remote_status}

        data = self._json(self._request("GET", self._url(f"orders/{order.id}/fulfillment_orders.json")))
        open_orders = [
            fo for fo in data.get('fulfillment_orders') or []
            if fo.get('status') in ('open', 'in_progress')
        ]
        if not open_orders:
            logger.info(f"ℹ️ Shopify: {order.id} için açık fulfillment order yok")
            return {'orderId': order.id, 'status': remote_status, 'skipped': True}

        fulfillment: Dict[str, Any] = {
            'line_items_by_fulfillment_order': [{'fulfillment_order_id': fo['id']} for fo in open_orders],
            'notify_customer': True,
        }
        if tracking_number:
            fulfillment['tracking_info'] = {'number': tracking_number, 'company': cargo_provider}

        self._request("POST", self._url("fulfillments.json"), json={'fulfillment': fulfillment})
        logger.info(f"✅ Shopify fulfillment oluşturuldu: {order.id}")
        return {'orderId': order.id, 'status': remote_status}
