from types import SimpleNamespace

import httpx
import openai

from app.core.enums import ErrorType
from database.models import CategoryMapping, MarketplaceCategory
from services.category_advisor import CategoryAdvisor, parse_attributes, parse_suggestions


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(content=None, error=None):
    completions = FakeCompletions(content, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def api_error(cls, status_code):
    request = httpx.Request("POST", "https://ai.example.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls("hata", response=response, body=None)


def test_non_json_reply_falls_back_to_generic_suggestion(db_session, settings):
    client, _ = fake_client("Bu ürün muhtemelen bir kupa.")
    advisor = CategoryAdvisor(db_session, settings=settings, client=client)

    result = advisor.suggest("Seramik Kupa", "trendyol")

    assert result.success
    assert result.data["suggestions"] == [{
        "categoryId": "unknown",
        "categoryName": "Genel Ürün",
        "fullPath": "Genel Ürün",
        "confidenceScore": 0.3,
    }]
    assert result.data["targetMarketplace"] == "trendyol"


def test_suggestions_are_sorted_clamped_and_capped():
    content = """İşte öneriler:
    [
      {"category_id": "1", "category_name": "Kupa", "full_path": "Ev > Mutfak > Kupa", "confidence_score": 0.4},
      {"category_id": "2", "category_name": "Bardak", "confidence_score": 1.7},
      {"category_id": "3", "category_name": "Termos", "confidence_score": "yüksek"},
      {"category_id": "4", "category_name": "Tabak", "confidence_score": -2}
    ]"""

    suggestions = parse_suggestions(content)

    assert [s.category_id for s in suggestions] == ["2", "3", "1"]
    assert suggestions[0].confidence_score == 1.0
    assert suggestions[0].full_path == "Bardak"
    assert suggestions[1].confidence_score == 0.5


def test_broken_json_array_falls_back():
    suggestions = parse_suggestions('[{"category_id": "1", ]')

    assert [s.category_id for s in suggestions] == ["unknown"]


def test_missing_title_is_rejected_before_calling_ai(db_session, settings):
    client, completions = fake_client("[]")
    advisor = CategoryAdvisor(db_session, settings=settings, client=client)

    result = advisor.suggest("  ", "trendyol")

    assert result.error_type == ErrorType.INVALID_REQUEST
    assert result.status_code == 400
    assert completions.calls == []


def test_missing_api_key_is_config_missing(db_session, settings):
    advisor = CategoryAdvisor(db_session, settings=settings)

    result = advisor.suggest("Kupa", "trendyol")

    assert result.error_type == ErrorType.CONFIG_MISSING


def test_rate_limit_and_payment_errors(db_session, settings):
    client, _ = fake_client(error=api_error(openai.RateLimitError, 429))
    rate_limited = CategoryAdvisor(db_session, settings=settings, client=client).suggest("Kupa", "trendyol")

    client, _ = fake_client(error=api_error(openai.APIStatusError, 402))
    payment = CategoryAdvisor(db_session, settings=settings, client=client).suggest("Kupa", "trendyol")

    client, _ = fake_client(error=api_error(openai.InternalServerError, 500))
    internal = CategoryAdvisor(db_session, settings=settings, client=client).suggest("Kupa", "trendyol")

    assert (rate_limited.error_type, rate_limited.status_code) == (ErrorType.RATE_LIMITED, 429)
    assert (payment.error_type, payment.status_code) == (ErrorType.PAYMENT_REQUIRED, 402)
    assert (internal.error_type, internal.status_code) == (ErrorType.INTERNAL_ERROR, 500)


def test_prompt_contains_verified_mappings_and_cached_categories(db_session, settings):
    db_session.add_all([
        CategoryMapping(
            source_category="Kupalar",
            target_marketplace="trendyol",
            target_category_id="411",
            target_category_name="Kupa & Bardak",
            is_verified=True,
        ),
        CategoryMapping(
            source_category="Denenmemiş",
            target_marketplace="trendyol",
            target_category_id="999",
            target_category_name="Doğrulanmamış",
            is_verified=False,
        ),
        MarketplaceCategory(marketplace="trendyol", external_id="411", name="Kupa & Bardak", full_path="Ev > Kupa & Bardak"),
        MarketplaceCategory(marketplace="amazon", external_id="77", name="Mugs"),
    ])
    db_session.commit()
    client, completions = fake_client('[{"category_id": "411", "category_name": "Kupa & Bardak", "confidence_score": 0.9}]')

    result = CategoryAdvisor(db_session, settings=settings, client=client).suggest("Kupa", "Trendyol", "Seramik")

    prompt = completions.calls[0]["messages"][1]["content"]
    assert '"Kupalar" -> "Kupa & Bardak" (ID: 411)' in prompt
    assert "Doğrulanmamış" not in prompt
    assert "Yol: Ev > Kupa & Bardak" in prompt
    assert "Mugs" not in prompt
    assert 'Ürün Açıklaması: "Seramik"' in prompt
    assert completions.calls[0]["temperature"] == 0.3
    assert result.data["suggestions"][0]["categoryId"] == "411"


def test_attributes_are_extracted_from_title(db_session, settings):
    client, completions = fake_client('Sonuç: {"color": "Kırmızı", "size": "M", "material": " Pamuk "}')
    advisor = CategoryAdvisor(db_session, settings=settings, client=client)

    result = advisor.extract_attributes("Kırmızı Pamuk Tişört M Beden")

    assert result.data == {
        "color": "Kırmızı",
        "size": "M",
        "material": "Pamuk",
        "productTitle": "Kırmızı Pamuk Tişört M Beden",
    }
    assert "Kırmızı Pamuk Tişört M Beden" in completions.calls[0]["messages"][1]["content"]


def test_unparseable_attributes_fall_back_to_empty_strings():
    empty = {"color": "", "size": "", "material": ""}

    assert parse_attributes("renk bulunamadı") == empty
    assert parse_attributes('{"color": "Mavi",') == empty
    assert parse_attributes('{"color": null, "size": "XL"}') == {"color": "", "size": "XL", "material": ""}


def test_attribute_extraction_errors(db_session, settings):
    client, completions = fake_client("{}")
    blank = CategoryAdvisor(db_session, settings=settings, client=client).extract_attributes(" ")
    assert blank.error_type == ErrorType.INVALID_REQUEST
    assert completions.calls == []

    client, _ = fake_client(error=api_error(openai.RateLimitError, 429))
    rate_limited = CategoryAdvisor(db_session, settings=settings, client=client).extract_attributes("Kupa")

    client, _ = fake_client(error=api_error(openai.APIStatusError, 402))
    payment = CategoryAdvisor(db_session, settings=settings, client=client).extract_attributes("Kupa")

    assert (rate_limited.error_type, rate_limited.status_code) == (ErrorType.RATE_LIMITED, 429)
    assert (payment.error_type, payment.status_code) == (ErrorType.PAYMENT_REQUIRED, 402)
