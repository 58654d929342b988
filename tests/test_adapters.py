import logging

import pytest
import requests

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.models import CanonicalOrder, CanonicalProduct, ProductUpdate, SyncResult
from connectors import ADAPTERS, TokenCache
from connectors.amazon_client import AmazonSPAPIClient
from connectors.ciceksepeti_client import CiceksepetiAPIClient
from connectors.hepsiburada_client import HepsiburadaAPIClient
from connectors.ikas_client import IkasAPIClient, normalize_store_host
from connectors.trendyol_client import TrendyolAPIClient

from tests.conftest import (
    AMAZON_CREDENTIALS,
    HEPSIBURADA_CREDENTIALS,
    IKAS_CREDENTIALS,
    TRENDYOL_CREDENTIALS,
    FakeResponse,
    FakeSession,
)


def test_every_marketplace_has_an_adapter():
    assert set(ADAPTERS) == set(Marketplace)


def test_ikas_missing_client_secret_is_config_missing_without_network(settings, fake_session):
    client = IkasAPIClient({"client_id": "abc"}, session=fake_session, settings=settings)

    result = client.test_connection()

    assert not result.success
    assert result.error_type == ErrorType.CONFIG_MISSING
    assert result.error == "İkas Client ID veya Client Secret eksik"
    assert fake_session.calls == []


@pytest.mark.parametrize("marketplace", list(Marketplace))
def test_empty_credentials_never_touch_network(marketplace, settings):
    session = FakeSession()
    adapter = ADAPTERS[marketplace](None, session=session, settings=settings)

    result = adapter.test_connection()

    assert result.error_type == ErrorType.CONFIG_MISSING
    assert session.calls == []


def test_credential_aliases_are_accepted(settings, fake_session):
    client = TrendyolAPIClient(
        {"supplierId": "1", "apiKey": "k", "apiSecret": "s"},
        session=fake_session,
        settings=settings,
    )

    assert client.missing_credentials == []
    assert client.supplier_id == "1"


def test_unauthorized_is_api_error_with_status(settings, fake_session):
    fake_session.queue(FakeResponse(401, text='{"errors":[{"message":"unauthorized"}]}'))
    client = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=fake_session, settings=settings)

    result = client.test_connection()

    assert not result.success
    assert result.error_type == ErrorType.API_ERROR
    assert result.status_code == 401
    assert "unauthorized" not in result.error


def test_ikas_token_rejection_is_oauth_error(settings, fake_session):
    fake_session.queue(FakeResponse(401, text="invalid_client"))
    client = IkasAPIClient(IKAS_CREDENTIALS, session=fake_session, settings=settings)

    result = client.test_connection()

    assert result.error_type == ErrorType.OAUTH_ERROR
    assert result.status_code == 401
    assert fake_session.calls[0]["url"] == "https://dev-listele.myikas.com/api/admin/oauth/token"


def test_ikas_graphql_errors_become_api_error(settings, fake_session):
    fake_session.queue(
        FakeResponse(200, {"access_token": "tok", "expires_in": 3600}),
        FakeResponse(200, {"errors": [{"message": "boom"}]}),
    )
    client = IkasAPIClient(IKAS_CREDENTIALS, session=fake_session, settings=settings)

    result = client.test_connection()

    assert result.error_type == ErrorType.API_ERROR
    assert fake_session.calls[1]["headers"]["Authorization"] == "Bearer tok"


def test_token_cache_reuses_token_between_calls(settings, fake_session):
    cache = TokenCache()
    fake_session.queue(
        FakeResponse(200, {"access_token": "tok", "expires_in": 3600}),
        FakeResponse(200, {"data": {"me": {"id": "1"}}}),
        FakeResponse(200, {"data": {"me": {"id": "1"}}}),
    )
    client = IkasAPIClient(IKAS_CREDENTIALS, session=fake_session, settings=settings, token_cache=cache, cache_key="7")

    assert client.test_connection().success
    assert client.test_connection().success
    assert len(fake_session.calls) == 3


def test_normalize_store_host():
    assert normalize_store_host("https://dev-listele/") == "dev-listele.myikas.com"
    assert normalize_store_host("dev-listele.myikas.com") == "dev-listele.myikas.com"


def test_timeout_and_connection_errors_are_categorical(settings):
    session = FakeSession([requests.exceptions.Timeout(), requests.exceptions.ConnectionError()])
    client = HepsiburadaAPIClient(HEPSIBURADA_CREDENTIALS, session=session, settings=settings)

    assert client.test_connection().error_type == ErrorType.TIMEOUT
    assert client.test_connection().error_type == ErrorType.CONNECTION_ERROR


def test_rate_limit_and_server_errors(settings):
    session = FakeSession([FakeResponse(429), FakeResponse(503)])
    client = HepsiburadaAPIClient(HEPSIBURADA_CREDENTIALS, session=session, settings=settings)

    assert client.test_connection().error_type == ErrorType.RATE_LIMITED
    assert client.test_connection().error_type == ErrorType.CONNECTION_ERROR


def test_read_requests_are_retried_but_writes_are_not(settings):
    retrying = settings.model_copy(update={"http_max_retries": 2})
    session = FakeSession([FakeResponse(503), FakeResponse(200, {"categories": []})])
    client = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=session, settings=retrying)

    assert client.fetch_categories().success
    assert len(session.calls) == 2

    session.queue(FakeResponse(503))
    result = client.update_product("BARKOD-1", ProductUpdate(stock=3))
    assert result.error_type == ErrorType.CONNECTION_ERROR
    assert len(session.calls) == 3


def test_invalid_json_is_api_error(settings):
    session = FakeSession([FakeResponse(200, text="<html>bakım</html>")])
    client = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=session, settings=settings)

    result = client.fetch_categories()

    assert result.error_type == ErrorType.API_ERROR
    assert "<html>" not in result.error


def test_unmapped_order_status_is_noop_without_network(settings, fake_session):
    client = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=fake_session, settings=settings)
    order = CanonicalOrder(id="1", order_number="1")

    result = client.push_order_status(order, OrderStatus.PROCESSING)

    assert result.success
    assert result.data == {"skipped": True, "status": "processing"}
    assert fake_session.calls == []


def test_mapped_order_status_is_sent(settings, fake_session):
    fake_session.queue(FakeResponse(200, {}))
    client = HepsiburadaAPIClient(HEPSIBURADA_CREDENTIALS, session=fake_session, settings=settings)
    order = CanonicalOrder(id="HB-1", order_number="HB-1")

    result = client.push_order_status(order, OrderStatus.SHIPPED, tracking_number="TRK1")

    assert result.success
    assert fake_session.calls[0]["json"]["status"] == "Shipped"
    assert fake_session.calls[0]["json"]["trackingNumber"] == "TRK1"


def test_unsupported_operation(settings, fake_session):
    client = HepsiburadaAPIClient(HEPSIBURADA_CREDENTIALS, session=fake_session, settings=settings)

    result = client.fetch_orders()

    assert result.error_type == ErrorType.UNSUPPORTED_ACTION
    assert fake_session.calls == []


def test_credentials_are_not_leaked(settings, caplog):
    session = FakeSession([FakeResponse(401, text="denied"), FakeResponse(500, text="oops")])
    client = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=session, settings=settings)

    with caplog.at_level(logging.DEBUG):
        results = [client.test_connection(), client.fetch_categories()]

    secret = TRENDYOL_CREDENTIALS["api_secret"]
    assert secret not in repr(client)
    for result in results:
        assert isinstance(result, SyncResult)
        assert secret not in str(result.to_response())
    assert secret not in caplog.text


def test_rejected_cached_token_is_dropped(settings, fake_session):
    cache = TokenCache()
    fake_session.queue(
        FakeResponse(200, {"access_token": "old", "expires_in": 3600}),
        FakeResponse(401, text="expired"),
        FakeResponse(200, {"access_token": "new", "expires_in": 3600}),
        FakeResponse(200, {"data": {"me": {"id": "1"}}}),
    )
    client = IkasAPIClient(IKAS_CREDENTIALS, session=fake_session, settings=settings, token_cache=cache, cache_key="7")

    assert client.test_connection().error_type == ErrorType.API_ERROR
    assert client.test_connection().success
    assert fake_session.calls[3]["headers"]["Authorization"] == "Bearer new"


def test_amazon_order_item_transport_error_keeps_order(settings, fake_session):
    fake_session.queue(
        FakeResponse(200, {"access_token": "tok", "expires_in": 3600}),
        FakeResponse(200, {"payload": {"Orders": [{"AmazonOrderId": "A1", "OrderStatus": "Unshipped"}]}}),
        FakeResponse(200, {"access_token": "tok", "expires_in": 3600}),
        requests.exceptions.Timeout(),
    )
    client = AmazonSPAPIClient(AMAZON_CREDENTIALS, session=fake_session, settings=settings)

    result = client.fetch_orders()

    assert result.success
    assert [order.id for order in result.data] == ["A1"]
    assert result.data[0].items == []


def test_non_numeric_category_is_invalid_request(settings, fake_session):
    product = CanonicalProduct(sku="S-1", title="Kupa", price=10, stock=1, category_id="kupa-bardak")
    trendyol = TrendyolAPIClient(TRENDYOL_CREDENTIALS, session=fake_session, settings=settings)
    ciceksepeti = CiceksepetiAPIClient({"api_key": "k", "api_secret": "s"}, session=fake_session, settings=settings)

    for result in (trendyol.create_product(product), ciceksepeti.create_product(product)):
        assert result.error_type == ErrorType.INVALID_REQUEST
        assert result.status_code == 400
        assert "categoryId" in result.error
    assert fake_session.calls == []
