"""
ikas Admin API Client (GraphQL)
OAuth2 client_credentials ile mağazaya özel token alınır.
"""
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.core.enums import Marketplace, OrderStatus
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
)
from connectors.base import MarketplaceAdapter, adapter_operation
from connectors.exceptions import MarketplaceAPIError, OAuthError
from services.category_tree import build_tree

logger = logging.getLogger(__name__)

CENTRAL_TOKEN_URL = "https://api.myikas.com/api/admin/oauth/token"
IMAGE_CDN_URL = "https://cdn.myikas.com/images/{image_id}/image_{width}.webp"

CHECK_CONNECTION_QUERY = """
  query {
    me {
      id
      email
    }
  }
"""

CATEGORIES_QUERY = """
  query ListCategories($pagination: PaginationInput) {
    listCategory(pagination: $pagination) {
      data {
        id
        name
        parentId
        categoryPathItems {
          id
          name
        }
      }
      count
    }
  }
"""

VARIANT_TYPES_QUERY = """
  query ListVariantTypes($pagination: PaginationInput) {
    listVariantType(pagination: $pagination) {
      data {
        id
        name
        values {
          id
          name
          colorCode
        }
      }
      count
    }
  }
"""

PRODUCTS_QUERY = """
  query ListProducts($pagination: PaginationInput) {
    listProduct(pagination: $pagination) {
      data {
        id
        name
        description
        totalStock
        brandId
        categoryIds
        variants {
          id
          sku
          barcodeList
          prices {
            sellPrice
            discountPrice
            currency
          }
          stocks {
            stockCount
            stockLocationId
          }
          images {
            imageId
            isMain
            order
          }
        }
        brand {
          id
          name
        }
        categories {
          id
          name
        }
      }
      count
    }
  }
"""

ORDERS_QUERY = """
  query ListOrders($pagination: PaginationInput, $orderedAt: DateFilterInput) {
    listOrder(pagination: $pagination, orderedAt: $orderedAt) {
      data {
        id
        orderNumber
        status
        orderPackageStatus
        orderedAt
        currencyCode
        totalPrice
        totalFinalPrice
        customer {
          firstName
          lastName
          email
        }
        shippingAddress {
          addressLine1
          city { name }
          district { name }
        }
        orderLineItems {
          id
          quantity
          price
          finalPrice
          variant {
            name
            sku
          }
        }
        orderPackages {
          id
          orderPackageFulfillStatus
        }
      }
      count
    }
  }
"""

SAVE_PRODUCT_MUTATION = """
  mutation SaveProduct($input: ProductInput!) {
    saveProduct(input: $input) {
      id
      name
    }
  }
"""

SAVE_STOCK_MUTATION = """
  mutation SaveVariantStocks($input: SaveStockLocationsInput!) {
    saveVariantStocks(input: $input)
  }
"""

SAVE_PRICE_MUTATION = """
  mutation SaveVariantPrices($input: SaveVariantPricesInput!) {
    saveVariantPrices(input: $input)
  }
"""

UPDATE_PACKAGE_STATUS_MUTATION = """
  mutation UpdateOrderPackageStatus($input: UpdateOrderPackageStatusInput!) {
    updateOrderPackageStatus(input: $input) {
      id
      orderPackageStatus
    }
  }
"""

ORDER_STATUS_FROM_IKAS = {
    "UNFULFILLED": OrderStatus.PENDING,
    "READY_FOR_SHIPMENT": OrderStatus.PROCESSING,
    "PARTIALLY_FULFILLED": OrderStatus.PROCESSING,
    "FULFILLED": OrderStatus.SHIPPED,
    "DELIVERED": OrderStatus.DELIVERED,
    "CANCELLED": OrderStatus.CANCELLED,
    "REFUNDED": OrderStatus.CANCELLED,
}


def normalize_store_host(store_name: str) -> str:
    """
    Mağaza adını token host'una çevirir

    "https://dev-listele/" -> "dev-listele.myikas.com"
    "dev-listele.myikas.com" olduğu gibi kalır
    """
    host = re.sub(r'^https?://', '', store_name.strip())
    host = re.sub(r'/+$', '', host)
    if '.myikas.com' in host:
        return host
    return f"{host}.myikas.com"


def image_url(image_id: Optional[str], width: int = 800) -> str:
    if not image_id:
        return ''
    return IMAGE_CDN_URL.format(image_id=image_id, width=width)


class IkasAPIClient(MarketplaceAdapter):
    """ikas Admin GraphQL API"""

    marketplace = Marketplace.IKAS
    display_name = "ikas"
    requires_category_for_attributes = False

    status_map = {
        OrderStatus.SHIPPED: "FULFILLED",
        OrderStatus.DELIVERED: "DELIVERED",
        OrderStatus.CANCELLED: "CANCELLED",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.graphql_url = self.settings.ikas_graphql_url
        self.store_name = self.credentials.get('store_name')

    def config_missing_message(self) -> str:
        return "İkas Client ID veya Client Secret eksik"

    @property
    def token_url(self) -> str:
        if self.store_name:
            return f"https://{normalize_store_host(self.store_name)}/api/admin/oauth/token"
        return CENTRAL_TOKEN_URL

    # ------------------------------------------------------------------
    # Auth / GraphQL
    # ------------------------------------------------------------------

    def _fetch_access_token(self) -> Tuple[str, Optional[int]]:
        if not self.store_name:
            logger.warning("ikas: mağaza adı verilmedi, merkezi token endpoint'i kullanılıyor")

        response = self.session.post(
            self.token_url,
            data={
                'grant_type': 'client_credentials',
                'client_id': self.credentials['client_id'],
                'client_secret': self.credentials['client_secret'],
            },
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.error(f"❌ ikas OAuth hatası: HTTP {response.status_code}")
            if not self.store_name:
                raise OAuthError(
                    f"OAuth token alınamadı (HTTP {response.status_code}). "
                    "Mağaza adı girilmedi, lütfen mağaza adınızı girin (örn: dev-listele)"
                )
            raise OAuthError(f"OAuth token alınamadı (HTTP {response.status_code})")

        data = self._json(response)
        token = data.get('access_token')
        if not token:
            raise OAuthError("Token yanıtında access_token bulunamadı")
        return token, data.get('expires_in')

    def _graphql(self, query: str, variables: Optional[Dict[str, Any]] = None, mutation: bool = False) -> Dict[str, Any]:
        """
        GraphQL isteği - cevapta errors varsa API_ERROR

        Sorgular idempotent olduğu için tekrar denenir, mutation'lar denenmez.
        """
        token = self._cached_token(self._fetch_access_token)
        response = self._request(
            "POST",
            self.graphql_url,
            json={'query': query, 'variables': variables or {}},
            headers={'Authorization': f"Bearer {token}", 'Content-Type': 'application/json'},
            retry=not mutation,
        )
        data = self._json(response)
        if data.get('errors'):
            logger.error(f"❌ ikas GraphQL errors: {data['errors']}")
            raise MarketplaceAPIError("ikas GraphQL işlemi başarısız oldu", response.status_code)
        return data.get('data') or {}

    # ------------------------------------------------------------------
    # İşlemler
    # ------------------------------------------------------------------

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        result = self._graphql(CHECK_CONNECTION_QUERY)
        logger.info("✅ ikas bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı', 'user': result.get('me')}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        rows: List[FlatCategory] = []
        page = 1
        while True:
            result = self._graphql(CATEGORIES_QUERY, {'pagination': {'page': page, 'limit': 100}})
            listing = result.get('listCategory') or {}
            data = listing.get('data') or []
            for cat in data:
                rows.append(FlatCategory(id=str(cat['id']), name=cat.get('name', ''), parent_id=cat.get('parentId')))
            if not data or len(rows) >= (listing.get('count') or 0):
                break
            page += 1

        logger.info(f"📂 ikas: {len(rows)} kategori")
        return build_tree(rows)

    @adapter_operation
    def fetch_category_attributes(self, category_id: Optional[str] = None) -> List[CategoryAttribute]:
        """
        ikas'ta kategori bazlı özellik yok; varyant tipleri (renk, beden) döner.
        Varyant tipleri alınamazsa boş liste döner.
        """
        try:
            result = self._graphql(VARIANT_TYPES_QUERY, {'pagination': {'page': 1, 'limit': 100}})
        except MarketplaceAPIError:
            logger.warning("ikas varyant tipleri alınamadı, boş liste dönülüyor")
            return []

        return [
            CategoryAttribute(
                id=str(vt['id']),
                name=vt.get('name', ''),
                values=[AttributeValue(id=str(v['id']), name=v.get('name', '')) for v in vt.get('values') or []],
            )
            for vt in (result.get('listVariantType') or {}).get('data') or []
        ]

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        result = self._graphql(PRODUCTS_QUERY, {'pagination': {'page': page + 1, 'limit': page_size}})
        listing = result.get('listProduct') or {}
        products = [self._to_marketplace_product(p) for p in listing.get('data') or []]
        logger.info(f"✅ ikas: {len(products)} ürün çekildi (sayfa {page})")
        return {'products': products, 'totalElements': listing.get('count', 0), 'page': page}

    def _to_marketplace_product(self, product: Dict[str, Any]) -> MarketplaceProduct:
        variants = product.get('variants') or []
        main_variant = variants[0] if variants else {}
        prices = main_variant.get('prices') or {}
        if isinstance(prices, list):
            prices = prices[0] if prices else {}
        stocks = main_variant.get('stocks') or []

        images: List[str] = []
        for variant in variants:
            for img in variant.get('images') or []:
                url = image_url(img.get('imageId'))
                if url and url not in images:
                    images.append(url)

        barcodes = main_variant.get('barcodeList') or []
        category_ids = product.get('categoryIds') or []

        return MarketplaceProduct(
            sku=main_variant.get('sku') or product.get('id', ''),
            title=product.get('name', ''),
            description=product.get('description'),
            price=Decimal(str(prices.get('sellPrice') or 0)),
            stock=max(int(stocks[0].get('stockCount') or 0) if stocks else 0, 0),
            category_id=category_ids[0] if category_ids else None,
            brand=(product.get('brand') or {}).get('name'),
            images=images,
            barcode=barcodes[0] if barcodes else None,
            currency=prices.get('currency') or 'TRY',
            remote_id=product.get('id'),
            marketplace_data=product,
        )

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        variant: Dict[str, Any] = {
            'sku': product.sku,
            'prices': [{'sellPrice': float(product.price), 'currency': product.currency}],
            'isActive': True,
        }
        if product.barcode:
            variant['barcodeList'] = [product.barcode]

        product_input: Dict[str, Any] = {
            'name': product.title,
            'description': product.description or product.title,
            'type': 'PHYSICAL',
            'variants': [variant],
        }
        if product.category_id:
            product_input['categoryIds'] = [product.category_id]

        result = self._graphql(SAVE_PRODUCT_MUTATION, {'input': product_input}, mutation=True)
        saved = result.get('saveProduct') or {}
        logger.info(f"📤 ikas ürün oluşturuldu: {saved.get('id')}")
        return {'productId': saved.get('id'), 'sku': product.sku}

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """product_id ikas varyant id'sidir"""
        fields = updates.supplied()
        updated = []
        if 'price' in fields:
            self._graphql(SAVE_PRICE_MUTATION, {'input': {
                'variantPriceInputs': [{'variantId': product_id, 'price': {'sellPrice': float(fields['price'])}}],
            }}, mutation=True)
            updated.append('price')
        if 'stock' in fields:
            self._graphql(SAVE_STOCK_MUTATION, {'input': {
                'productStockLocationInputs': [{'variantId': product_id, 'stockCount': fields['stock']}],
            }}, mutation=True)
            updated.append('stock')
        return {'variantId': product_id, 'updated': updated}

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        variables: Dict[str, Any] = {'pagination': {'page': 1, 'limit': 100}}
        if since:
            variables['orderedAt'] = {'gte': int(since.timestamp() * 1000)}
        result = self._graphql(ORDERS_QUERY, variables)
        orders = [self._to_canonical_order(o) for o in (result.get('listOrder') or {}).get('data') or []]
        logger.info(f"✅ ikas: {len(orders)} sipariş çekildi")
        return orders

    def _to_canonical_order(self, order: Dict[str, Any]) -> CanonicalOrder:
        customer = order.get('customer') or {}
        lines = []
        for item in order.get('orderLineItems') or []:
            variant = item.get('variant') or {}
            quantity = int(item.get('quantity') or 1)
            unit_price = Decimal(str(item.get('finalPrice') or item.get('price') or 0))
            lines.append(OrderLine(
                remote_line_id=item.get('id'),
                title=variant.get('name', ''),
                sku=variant.get('sku'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        ordered_at = order.get('orderedAt')
        name = " ".join(p for p in [customer.get('firstName'), customer.get('lastName')] if p) or None
        return CanonicalOrder(
            id=order['id'],
            order_number=str(order.get('orderNumber') or order['id']),
            status=ORDER_STATUS_FROM_IKAS.get(order.get('orderPackageStatus'), OrderStatus.PENDING),
            customer_name=name,
            customer_email=customer.get('email'),
            shipping_address=order.get('shippingAddress'),
            items=lines,
            subtotal=Decimal(str(order.get('totalPrice') or 0)),
            total=Decimal(str(order.get('totalFinalPrice') or order.get('totalPrice') or 0)),
            currency=order.get('currencyCode') or 'TRY',
            order_date=datetime.fromtimestamp(ordered_at / 1000) if ordered_at else None,
            marketplace_data=order,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        packages = order.marketplace_data.get('orderPackages') or []
        package_input = []
        for package in packages or [{'id': None}]:
            entry: Dict[str, Any] = {'packageId': package.get('id'), 'status': remote_status}
            if tracking_number:
                entry['trackingInfo'] = {'trackingNumber': tracking_number, 'cargoCompany': cargo_provider}
            package_input.append(entry)

        self._graphql(
            UPDATE_PACKAGE_STATUS_MUTATION,
            {'input': {'orderId': order.id, 'packages': package_input}},
            mutation=True,
        )
        logger.info(f"✅ ikas sipariş durumu güncellendi: {order.id} -> {remote_status}")
        return {'orderId': order.id, 'status': remote_status}
