"""
N11 SOAP API Client

İstekler SOAP 1.1 zarfı olarak gönderilir, cevaplar xmltodict ile çözülür.
Namespace önekleri atılır; olmayan etiketler None olarak okunur.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from xml.parsers.expat import ExpatError

import xmltodict

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
from connectors.exceptions import MarketplaceAPIError, MarketplaceError, ResponseParseError
from services.category_tree import build_tree

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
N11_SCHEMA_NS = "http://www.n11.com/ws/schemas"

CATEGORY_SERVICE = "CategoryService.wsdl"
PRODUCT_SERVICE = "ProductService.wsdl"
STOCK_SERVICE = "ProductStockService.wsdl"
ORDER_SERVICE = "OrderService.wsdl"

DEFAULT_PREPARING_DAY = 3
DEFAULT_SHIPMENT_TEMPLATE = "default"
CURRENCY_TRY = 1
DEFAULT_SHIPMENT_COMPANY_ID = 344  # Yurtiçi Kargo

ORDER_STATUS_FROM_N11 = {
    "New": OrderStatus.PENDING,
    "Approved": OrderStatus.PROCESSING,
    "Shipped": OrderStatus.SHIPPED,
    "Delivered": OrderStatus.DELIVERED,
    "Completed": OrderStatus.DELIVERED,
    "Rejected": OrderStatus.CANCELLED,
    "Cancelled": OrderStatus.CANCELLED,
}


def _strip_namespace(path, key, value):
    """xmltodict postprocessor: 'ns3:result' -> 'result'"""
    return key.split(':', 1)[-1], value


def parse_xml(text: str) -> Dict[str, Any]:
    """
    XML metnini namespace öneksiz dict'e çevirir

    Raises:
        ResponseParseError: XML bozuksa
    """
    try:
        return xmltodict.parse(text, postprocessor=_strip_namespace)
    except (ExpatError, ValueError):
        logger.error(f"❌ N11 XML çözülemedi: {text[:300]}")
        raise ResponseParseError("N11 cevabı çözümlenemedi")


def dig(node: Any, *keys: str) -> Any:
    """İç içe etiketleri okur; herhangi bir seviye yoksa None"""
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node


def as_list(value: Any) -> List[Any]:
    """xmltodict tekil elemanı dict, çoğulu list döner; ikisini de listeye çevirir"""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, '') else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class N11APIClient(MarketplaceAdapter):
    """
    N11 SOAP Web Servisleri

    Auth: her zarfın içinde <auth><appKey/><appSecret/></auth>
    """

    marketplace = Marketplace.N11
    display_name = "N11"
    supports_native_bulk_stock = True

    status_map = {
        OrderStatus.PROCESSING: "accept",
        OrderStatus.SHIPPED: "make shipment",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.api_url = self.settings.n11_api_url.rstrip('/')

    # ------------------------------------------------------------------
    # SOAP
    # ------------------------------------------------------------------

    def build_envelope(self, method: str, body: Optional[Dict[str, Any]] = None) -> str:
        """İstek zarfı - metin değerleri xmltodict tarafından escape edilir"""
        request: Dict[str, Any] = {
            'auth': {
                'appKey': self.credentials.get('app_key'),
                'appSecret': self.credentials.get('app_secret'),
            },
        }
        request.update(body or {})

        envelope = {
            'soapenv:Envelope': {
                '@xmlns:soapenv': SOAP_ENV_NS,
                '@xmlns:sch': N11_SCHEMA_NS,
                'soapenv:Header': None,
                'soapenv:Body': {f'sch:{method}Request': request},
            }
        }
        return xmltodict.unparse(envelope)

    def _soap(self, service: str, method: str, body: Optional[Dict[str, Any]] = None, read: bool = True) -> Dict[str, Any]:
        """
        SOAP çağrısı yapar ve {Method}Response gövdesini döner

        Args:
            read: Liste/okuma çağrısı ise tekrar denenir

        Raises:
            ResponseParseError: XML bozuk veya cevap gövdesi yok
            MarketplaceAPIError: SOAP fault veya result status=failure
        """
        logger.info(f"N11 SOAP Request to {service}/{method}")
        response = self._request(
            "POST",
            f"{self.api_url}/{service}",
            data=self.build_envelope(method, body).encode('utf-8'),
            headers={
                'Content-Type': 'text/xml; charset=utf-8',
                'SOAPAction': f'"{method}"',
            },
            retry=read,
        )

        parsed = parse_xml(response.text)
        soap_body = dig(parsed, 'Envelope', 'Body')
        if soap_body is None:
            raise ResponseParseError("N11 cevabında SOAP gövdesi yok")

        fault = soap_body.get('Fault') if isinstance(soap_body, dict) else None
        if fault is not None:
            logger.error(f"❌ N11 SOAP fault: {fault}")
            raise MarketplaceAPIError("N11 isteği reddetti")

        result = soap_body.get(f'{method}Response')
        if result is None:
            raise ResponseParseError("N11 cevabı beklenen formatta değil")

        if dig(result, 'result', 'status') == 'failure':
            error_message = dig(result, 'result', 'errorMessage') or 'Bilinmeyen hata'
            logger.warning(f"⚠️ N11 {method} failure: {error_message}")
            raise MarketplaceAPIError(f"N11 hatası: {error_message}")

        return result

    # ------------------------------------------------------------------
    # Kategoriler
    # ------------------------------------------------------------------

    @staticmethod
    def _category_rows(categories: Any, parent_id: Optional[str] = None) -> List[FlatCategory]:
        rows = []
        for cat in as_list(categories):
            if not isinstance(cat, dict) or cat.get('id') is None:
                continue
            rows.append(FlatCategory(id=str(cat['id']), name=cat.get('name') or '', parent_id=parent_id))
        return rows

    @adapter_operation
    def test_connection(self) -> Dict[str, Any]:
        self._soap(CATEGORY_SERVICE, 'GetTopLevelCategories')
        logger.info("✅ N11 bağlantısı başarılı")
        return {'message': 'Bağlantı başarılı'}

    @adapter_operation
    def fetch_categories(self) -> List[CategoryNode]:
        """Sadece üst seviye kategoriler; alt seviyeler fetch_sub_categories ile"""
        result = self._soap(CATEGORY_SERVICE, 'GetTopLevelCategories')
        rows = self._category_rows(dig(result, 'categoryList', 'category'))
        logger.info(f"📂 N11: {len(rows)} üst kategori")
        return build_tree(rows)

    @adapter_operation
    def fetch_sub_categories(self, category_id: Optional[str] = None) -> List[CategoryNode]:
        if not category_id:
            result = self._soap(CATEGORY_SERVICE, 'GetTopLevelCategories')
            return build_tree(self._category_rows(dig(result, 'categoryList', 'category')))

        result = self._soap(CATEGORY_SERVICE, 'GetSubCategories', {'categoryId': category_id})
        rows: List[FlatCategory] = []
        for cat in as_list(result.get('category')):
            subs = dig(cat, 'subCategoryList', 'subCategory')
            if subs is not None:
                rows.extend(self._category_rows(subs, parent_id=str(category_id)))
            else:
                rows.extend(self._category_rows(cat, parent_id=str(category_id)))
        return build_tree(rows)

    @adapter_operation
    def fetch_category_attributes(self, category_id: str) -> List[CategoryAttribute]:
        result = self._soap(CATEGORY_SERVICE, 'GetCategoryAttributes', {'categoryId': category_id})
        attributes = []
        for attr in as_list(dig(result, 'category', 'attributeList', 'attribute')):
            if not isinstance(attr, dict) or attr.get('id') is None:
                continue
            values = [
                AttributeValue(id=str(v.get('id')), name=v.get('name') or '')
                for v in as_list(dig(attr, 'valueList', 'value'))
                if isinstance(v, dict)
            ]
            attributes.append(CategoryAttribute(
                id=str(attr['id']),
                name=attr.get('name') or '',
                required=attr.get('mandatory') == 'true',
                allow_custom=not values,
                values=values,
            ))
        return attributes

    # ------------------------------------------------------------------
    # Ürünler
    # ------------------------------------------------------------------

    @adapter_operation
    def fetch_products(self, page: int = 0, page_size: int = 50) -> Dict[str, Any]:
        result = self._soap(PRODUCT_SERVICE, 'GetProductList', {
            'pagingData': {'currentPage': page, 'pageSize': page_size},
        })
        products = [
            self._to_marketplace_product(p)
            for p in as_list(dig(result, 'products', 'product'))
            if isinstance(p, dict)
        ]
        total = to_int(dig(result, 'pagingData', 'totalCount'))
        logger.info(f"✅ N11: {len(products)} ürün çekildi (sayfa {page})")
        return {'products': products, 'totalElements': total, 'page': page}

    @staticmethod
    def _to_marketplace_product(product: Dict[str, Any]) -> MarketplaceProduct:
        stock_items = as_list(dig(product, 'stockItems', 'stockItem'))
        first_stock = stock_items[0] if stock_items else {}
        quantity = sum(to_int(item.get('quantity')) for item in stock_items if isinstance(item, dict))
        return MarketplaceProduct(
            sku=product.get('productSellerCode') or first_stock.get('sellerStockCode') or str(product.get('id') or ''),
            title=product.get('title') or 'Bilinmeyen Ürün',
            description=product.get('description'),
            price=to_decimal(product.get('displayPrice') or product.get('price')),
            stock=max(quantity, 0),
            remote_id=str(product['id']) if product.get('id') is not None else None,
            status=product.get('saleStatus') or product.get('approvalStatus'),
            marketplace_data=product,
        )

    def _to_n11_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        attrs = product.attributes or {}
        custom = attrs.get('marketplace_attributes') or {}
        return {
            'productSellerCode': product.sku,
            'title': product.title,
            'subtitle': '',
            'description': product.description or product.title,
            'category': {'id': product.category_id},
            'price': str(product.price),
            'currencyType': CURRENCY_TRY,
            'images': {'image': [
                {'url': url, 'order': index + 1}
                for index, url in enumerate(product.images or [PLACEHOLDER_IMAGE])
            ]},
            'approvalStatus': 1,
            'attributes': {'attribute': [{'name': k, 'value': v} for k, v in custom.items()]} if custom else None,
            'productCondition': 1,
            'preparingDay': int(attrs.get('preparing_day') or DEFAULT_PREPARING_DAY),
            'discount': {'type': 1, 'value': 0},
            'shipmentTemplate': attrs.get('shipment_template') or DEFAULT_SHIPMENT_TEMPLATE,
            'stockItems': {'stockItem': {
                'quantity': product.stock,
                'sellerStockCode': product.sku,
                'gtin': product.barcode,
            }},
        }

    @adapter_operation
    def create_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        if not product.category_id:
            raise MarketplaceError("N11 ürünü için kategori seçilmelidir", 400, ErrorType.INVALID_REQUEST)

        result = self._soap(PRODUCT_SERVICE, 'SaveProduct', {'product': self._to_n11_product(product)}, read=False)
        product_id = dig(result, 'product', 'id')
        logger.info(f"📤 N11 ürün kaydedildi: sku={product.sku}, id={product_id}")
        return {'productId': product_id, 'sku': product.sku}

    @adapter_operation
    def update_product(self, product_id: str, updates: ProductUpdate) -> Dict[str, Any]:
        """
        Stok satıcı stok kodu ile, fiyat N11 ürün id'si ile güncellenir

        Args:
            product_id: N11 ürün id'si
            updates: stok güncellemesi için sku zorunludur
        """
        fields = updates.supplied()
        if 'price' not in fields and 'stock' not in fields:
            raise MarketplaceError("Güncellenecek fiyat veya stok bilgisi yok", 400, ErrorType.INVALID_REQUEST)
        if 'stock' in fields and not fields.get('sku'):
            raise MarketplaceError("N11 stok güncellemesi için SKU gereklidir", 400, ErrorType.INVALID_REQUEST)

        updated = []
        if 'stock' in fields:
            self._update_stock([StockItem(sku=fields['sku'], quantity=fields['stock'])])
            updated.append('stock')
        if 'price' in fields:
            self._soap(PRODUCT_SERVICE, 'UpdateProductPriceById', {
                'productId': product_id,
                'price': str(fields['price']),
                'currencyType': CURRENCY_TRY,
            }, read=False)
            updated.append('price')
        return {'productId': product_id, 'updated': updated}

    def _update_stock(self, items: List[StockItem]) -> Dict[str, Any]:
        return self._soap(STOCK_SERVICE, 'UpdateStockByStockSellerCode', {
            'stockItems': {'stockItem': [
                {'sellerStockCode': item.sku, 'quantity': item.quantity}
                for item in items
            ]},
        }, read=False)

    @adapter_operation
    def bulk_update_stock(self, items: List[StockItem]) -> Dict[str, Any]:
        if not items:
            raise MarketplaceError("Güncellenecek stok kalemi yok", 400, ErrorType.NO_PRODUCTS)
        self._update_stock(items)
        logger.info(f"✅ N11 toplu stok güncellendi: {len(items)} kalem")
        return {'updated': len(items)}

    # ------------------------------------------------------------------
    # Siparişler
    # ------------------------------------------------------------------

    @adapter_operation
    def fetch_orders(self, since: Optional[datetime] = None, status: Optional[str] = None) -> List[CanonicalOrder]:
        search: Dict[str, Any] = {}
        if status:
            search['status'] = status
        if since:
            search['period'] = {
                'startDate': since.strftime('%d/%m/%Y'),
                'endDate': datetime.now().strftime('%d/%m/%Y'),
            }

        body: Dict[str, Any] = {'pagingData': {'currentPage': 0, 'pageSize': 50}}
        if search:
            body['searchData'] = search

        result = self._soap(ORDER_SERVICE, 'OrderList', body)
        orders = [
            self._to_canonical_order(o)
            for o in as_list(dig(result, 'orderList', 'order'))
            if isinstance(o, dict) and o.get('id') is not None
        ]
        logger.info(f"✅ N11: {len(orders)} sipariş çekildi")
        return orders

    @staticmethod
    def _to_canonical_order(order: Dict[str, Any]) -> CanonicalOrder:
        lines = []
        for item in as_list(dig(order, 'itemList', 'item')):
            if not isinstance(item, dict):
                continue
            quantity = to_int(item.get('quantity')) or 1
            unit_price = to_decimal(item.get('price'))
            lines.append(OrderLine(
                remote_line_id=str(item['id']) if item.get('id') is not None else None,
                title=item.get('productName') or '',
                sku=item.get('productSellerCode'),
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            ))

        buyer = order.get('buyer') or {}
        order_date = None
        if order.get('createDate'):
            try:
                order_date = datetime.strptime(order['createDate'], '%d/%m/%Y %H:%M')
            except ValueError:
                logger.debug(f"N11 sipariş tarihi okunamadı: {order['createDate']}")

        total = to_decimal(order.get('totalAmount'))
        return CanonicalOrder(
            id=str(order['id']),
            order_number=str(order.get('orderNumber') or order['id']),
            status=ORDER_STATUS_FROM_N11.get(order.get('status'), OrderStatus.PENDING),
            customer_name=buyer.get('fullName'),
            customer_email=buyer.get('email'),
            shipping_address=order.get('shippingAddress'),
            items=lines,
            subtotal=total,
            total=total,
            order_date=order_date,
            marketplace_data=order,
        )

    @adapter_operation
    def _push_status(self, order, remote_status, target_status, tracking_number, cargo_provider) -> Dict[str, Any]:
        item_ids = [line.remote_line_id for line in order.items if line.remote_line_id] or [order.id]

        if remote_status == "accept":
            self._soap(ORDER_SERVICE, 'OrderItemAccept', {
                'orderItemList': {'orderItem': [{'id': item_id} for item_id in item_ids]},
            }, read=False)
        else:
            shipment_info: Dict[str, Any] = {
                'shipmentCompany': {'id': cargo_provider or DEFAULT_SHIPMENT_COMPANY_ID},
                'shipmentMethod': 1,
            }
            if tracking_number:
                shipment_info['trackingNumber'] = tracking_number
            self._soap(ORDER_SERVICE, 'MakeOrderItemShipment', {
                'orderItemList': {'orderItem': [
                    {'id': item_id, 'shipmentInfo': shipment_info} for item_id in item_ids
                ]},
            }, read=False)

        logger.info(f"✅ N11 sipariş durumu güncellendi: {order.id} -> {remote_status}")
        return {'orderId': order.id, 'status': remote_status, 'items': len(item_ids)}
