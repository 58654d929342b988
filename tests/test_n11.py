from app.core.enums import ErrorType
from app.models import CanonicalProduct, ProductUpdate, StockItem
from connectors.n11_client import N11APIClient, as_list, dig, parse_xml

from tests.conftest import N11_CREDENTIALS, FakeResponse, FakeSession


def soap(body: str) -> FakeResponse:
    return FakeResponse(200, text=(
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">'
        '<SOAP-ENV:Header/>'
        f'<SOAP-ENV:Body>{body}</SOAP-ENV:Body>'
        '</SOAP-ENV:Envelope>'
    ))


TOP_LEVEL = soap(
    '<ns3:GetTopLevelCategoriesResponse xmlns:ns3="http://www.n11.com/ws/schemas">'
    '<result><status>success</status></result>'
    '<categoryList>'
    '<category><id>1000</id><name>Elektronik</name></category>'
    '<category><id>2000</id><name>Moda &amp; Giyim</name></category>'
    '</categoryList>'
    '</ns3:GetTopLevelCategoriesResponse>'
)


def client(settings, session):
    return N11APIClient(N11_CREDENTIALS, session=session, settings=settings)


def test_dig_returns_none_for_missing_levels():
    parsed = parse_xml("<a><b><c>1</c></b></a>")

    assert dig(parsed, "a", "b", "c") == "1"
    assert dig(parsed, "a", "x", "c") is None
    assert as_list(None) == []
    assert as_list({"id": "1"}) == [{"id": "1"}]


def test_envelope_contains_auth_and_escapes_values(settings):
    n11 = client(settings, FakeSession())

    envelope = n11.build_envelope("GetSubCategories", {"categoryId": "1 & 2"})

    parsed = parse_xml(envelope)
    request = dig(parsed, "Envelope", "Body", "GetSubCategoriesRequest")
    assert dig(request, "auth", "appKey") == "n11-key"
    assert request["categoryId"] == "1 & 2"
    assert "1 &amp; 2" in envelope


def test_fetch_categories_parses_namespaced_response(settings):
    session = FakeSession([TOP_LEVEL])

    result = client(settings, session).fetch_categories()

    assert result.success
    assert [(c.id, c.name) for c in result.data] == [("1000", "Elektronik"), ("2000", "Moda & Giyim")]
    assert session.calls[0]["url"].endswith("/CategoryService.wsdl")
    assert session.calls[0]["headers"]["SOAPAction"] == '"GetTopLevelCategories"'


def test_single_child_element_is_treated_as_list(settings):
    session = FakeSession([soap(
        '<GetTopLevelCategoriesResponse><result><status>success</status></result>'
        '<categoryList><category><id>1</id><name>Tek</name></category></categoryList>'
        '</GetTopLevelCategoriesResponse>'
    )])

    result = client(settings, session).fetch_categories()

    assert [c.id for c in result.data] == ["1"]


def test_malformed_xml_is_api_error_not_exception(settings):
    session = FakeSession([FakeResponse(200, text="<Envelope><Body>")])

    result = client(settings, session).test_connection()

    assert not result.success
    assert result.error_type == ErrorType.API_ERROR
    assert "<Envelope>" not in result.error


def test_failure_status_carries_error_message(settings):
    session = FakeSession([soap(
        '<GetTopLevelCategoriesResponse><result><status>failure</status>'
        '<errorCode>SELLER_API.authenticationFailed</errorCode>'
        '<errorMessage>Yetkisiz erişim</errorMessage></result>'
        '</GetTopLevelCategoriesResponse>'
    )])

    result = client(settings, session).test_connection()

    assert result.error_type == ErrorType.API_ERROR
    assert result.error == "N11 hatası: Yetkisiz erişim"


def test_soap_fault_is_api_error(settings):
    session = FakeSession([soap('<SOAP-ENV:Fault><faultcode>Server</faultcode><faultstring>x</faultstring></SOAP-ENV:Fault>')])

    result = client(settings, session).test_connection()

    assert result.error_type == ErrorType.API_ERROR


def test_category_attributes_with_missing_value_list(settings):
    session = FakeSession([soap(
        '<GetCategoryAttributesResponse><result><status>success</status></result>'
        '<category><id>1000</id><attributeList>'
        '<attribute><id>1</id><name>Marka</name><mandatory>true</mandatory>'
        '<valueList><value><id>10</id><name>Acme</name></value></valueList></attribute>'
        '<attribute><id>2</id><name>Not</name><mandatory>false</mandatory></attribute>'
        '</attributeList></category>'
        '</GetCategoryAttributesResponse>'
    )])

    result = client(settings, session).fetch_category_attributes("1000")

    brand, note = result.data
    assert brand.required and [v.name for v in brand.values] == ["Acme"]
    assert not note.required and note.values == [] and note.allow_custom


def test_create_product_requires_category(settings):
    session = FakeSession()
    product = CanonicalProduct(sku="SKU-1", title="Kupa", price="99.90", stock=5)

    result = client(settings, session).create_product(product)

    assert result.error_type == ErrorType.INVALID_REQUEST
    assert session.calls == []


def test_stock_update_requires_sku(settings):
    result = client(settings, FakeSession()).update_product("555", ProductUpdate(stock=3))

    assert result.error_type == ErrorType.INVALID_REQUEST


def test_bulk_stock_sends_one_request(settings):
    session = FakeSession([soap(
        '<UpdateStockByStockSellerCodeResponse><result><status>success</status></result>'
        '</UpdateStockByStockSellerCodeResponse>'
    )])

    result = client(settings, session).bulk_update_stock([StockItem(sku="A", quantity=1), StockItem(sku="B", quantity=2)])

    assert result.data == {"updated": 2}
    body = parse_xml(session.calls[0]["data"].decode("utf-8"))
    items = dig(body, "Envelope", "Body", "UpdateStockByStockSellerCodeRequest", "stockItems", "stockItem")
    assert [i["sellerStockCode"] for i in items] == ["A", "B"]
