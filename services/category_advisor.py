"""
AI Category Advisor
Ürün başlığından hedef pazaryeri için kategori önerisi üretir ve
renk/beden/malzeme özelliklerini çıkarır

OpenAI uyumlu chat-completions endpoint'i kullanılır (AI_BASE_URL, AI_MODEL).
Bağlam olarak doğrulanmış eşleştirmeler ve önbellekteki pazaryeri kategorileri verilir.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import openai
from openai import OpenAI
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.enums import ErrorType, Marketplace
from app.models import CategorySuggestion, SyncResult
from connectors import ADAPTERS
from database.models import CategoryMapping, MarketplaceCategory

logger = logging.getLogger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
ATTRIBUTE_KEYS = ("color", "size", "material")
MAX_SUGGESTIONS = 3

SYSTEM_PROMPT = """Sen Türk pazaryerleri konusunda uzman bir e-ticaret kategori eşleştirme asistanısın.
Görevin, bir ürün için {marketplace} üzerindeki en uygun kategoriyi önermek.

Kurallar:
- Ürün tipini anlamak için başlığı ve açıklamayı analiz et
- Türk pazaryeri kategori yapısını dikkate al
- Ne kadar emin olduğuna göre 0.0 ile 1.0 arasında güven skoru ver
- Mevcut kategoriler verildiyse onlardan birini seçmeyi tercih et
- 1-3 öneri döndür, güvene göre sıralı

SADECE geçerli JSON döndür, başka metin ekleme."""

ATTRIBUTE_SYSTEM_PROMPT = """Sen bir ürün özelliği çıkarıcısısın. Ürün başlığından renk, beden ve malzeme bilgisini çıkar.
SADECE geçerli JSON döndür, başka metin ekleme."""


def fallback_suggestion() -> CategorySuggestion:
    return CategorySuggestion(
        category_id="unknown",
        category_name="Genel Ürün",
        full_path="Genel Ürün",
        confidence_score=0.3,
    )


def _confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.5
    if score != score:
        return 0.5
    return min(1.0, max(0.0, score))


def parse_suggestions(content: str) -> List[CategorySuggestion]:
    """
    Model cevabından öneri listesini çıkarır

    Metin içindeki ilk '[' ile son ']' arası JSON olarak okunur. Okunamazsa
    tek bir düşük güvenli 'Genel Ürün' önerisi döner.

    Returns:
        En fazla 3 öneri, güven skoruna göre azalan sırada
    """
    match = JSON_ARRAY_PATTERN.search(content or "")
    if not match:
        logger.warning("⚠️ AI cevabında JSON dizisi bulunamadı")
        return [fallback_suggestion()]

    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"⚠️ AI cevabı parse edilemedi: {e}")
        return [fallback_suggestion()]

    entries = [item for item in raw if isinstance(item, dict)] if isinstance(raw, list) else []
    if not entries:
        return [fallback_suggestion()]

    suggestions = []
    for item in entries:
        name = str(item.get("category_name") or "Unknown")
        suggestions.append(CategorySuggestion(
            category_id=str(item.get("category_id") or "unknown"),
            category_name=name,
            full_path=str(item.get("full_path") or name),
            confidence_score=_confidence(item.get("confidence_score")),
        ))

    suggestions.sort(key=lambda s: s.confidence_score, reverse=True)
    return suggestions[:MAX_SUGGESTIONS]


def parse_attributes(content: str) -> Dict[str, str]:
    """Model cevabındaki JSON nesnesinden color/size/material okur; okunamayan alan boş string olur"""
    empty = {key: "" for key in ATTRIBUTE_KEYS}
    match = JSON_OBJECT_PATTERN.search(content or "")
    if not match:
        logger.warning("⚠️ AI cevabında JSON nesnesi bulunamadı")
        return empty

    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"⚠️ AI özellik cevabı parse edilemedi: {e}")
        return empty

    if not isinstance(raw, dict):
        return empty
    return {key: str(raw.get(key) or "").strip() for key in ATTRIBUTE_KEYS}


class CategoryAdvisor:
    """
    AI destekli kategori önerici

    Args:
        db: Bağlam sorguları için veritabanı oturumu
        settings: Uygulama ayarları
        client: OpenAI client (verilmezse ayarlardan oluşturulur)
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None, client: Optional[OpenAI] = None):
        self.db = db
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> Optional[OpenAI]:
        if self._client is None and self.settings.ai_api_key:
            self._client = OpenAI(api_key=self.settings.ai_api_key, base_url=self.settings.ai_base_url)
        return self._client

    def _build_context(self, marketplace: str) -> str:
        mappings = (
            self.db.query(CategoryMapping)
            .filter(CategoryMapping.target_marketplace == marketplace, CategoryMapping.is_verified.is_(True))
            .limit(self.settings.ai_mapping_sample_size)
            .all()
        )
        categories = (
            self.db.query(MarketplaceCategory)
            .filter(MarketplaceCategory.marketplace == marketplace)
            .limit(self.settings.ai_category_sample_size)
            .all()
        )
        logger.info(f"🧠 Bağlam: {len(mappings)} doğrulanmış eşleştirme, {len(categories)} kategori")

        parts = []
        if mappings:
            lines = [
                f'- "{m.source_category or m.product_title}" -> "{m.target_category_name}" (ID: {m.target_category_id})'
                for m in mappings
            ]
            parts.append("Referans için doğrulanmış kategori eşleştirmeleri:\n" + "\n".join(lines))
        if categories:
            lines = [f"- ID: {c.external_id}, Ad: {c.name}, Yol: {c.full_path or c.name}" for c in categories]
            parts.append(f"Mevcut {marketplace} kategorileri:\n" + "\n".join(lines))
        return "\n\n".join(parts)

    def suggest(
        self,
        title: Optional[str],
        marketplace: Optional[str],
        description: Optional[str] = None,
    ) -> SyncResult:
        """
        Kategori önerisi üretir

        Args:
            title: Ürün başlığı (zorunlu)
            marketplace: Hedef pazaryeri (zorunlu)
            description: Ürün açıklaması

        Returns:
            SyncResult - data: {suggestions, productTitle, targetMarketplace}
        """
        if not title or not title.strip() or not marketplace:
            return SyncResult.fail(ErrorType.INVALID_REQUEST, "productTitle ve targetMarketplace zorunludur", 400)

        mp = Marketplace.normalize(marketplace)
        marketplace_key = mp.value if mp else marketplace
        display_name = ADAPTERS[mp].display_name if mp else marketplace

        client = self.client
        if client is None:
            return SyncResult.fail(ErrorType.CONFIG_MISSING, "AI servisi yapılandırılmamış", 400)

        logger.info(f"🧠 Kategori önerisi: '{title[:50]}' -> {marketplace_key}")

        user_prompt = f'{display_name} için bu ürüne kategori öner:\nÜrün Başlığı: "{title}"\n'
        if description:
            user_prompt += f'Ürün Açıklaması: "{description}"\n'
        context = self._build_context(marketplace_key)
        if context:
            user_prompt += f"\n{context}\n"
        user_prompt += (
            '\nJSON dizisi döndür: [{"category_id": "id veya id yoksa önerilen ad", '
            '"category_name": "kategori adı", "full_path": "Giyim > Erkek > Tişört gibi tam yol", '
            '"confidence_score": 0.0-1.0}]'
        )

        content, failure = self._complete(
            client,
            [
                {"role": "system", "content": SYSTEM_PROMPT.format(marketplace=display_name)},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.3,
            failure_message="Kategori önerisi alınırken bir hata oluştu, lütfen daha sonra tekrar deneyin",
        )
        if failure is not None:
            return failure

        suggestions = parse_suggestions(content)
        return SyncResult.ok({
            "suggestions": [s.model_dump(mode="json", by_alias=True) for s in suggestions],
            "productTitle": title,
            "targetMarketplace": marketplace_key,
        })

    def extract_attributes(self, title: Optional[str]) -> SyncResult:
        """
        Ürün başlığından renk, beden ve malzeme çıkarır

        İlan başka pazaryerine kopyalanırken Trendyol renk/beden
        özelliklerini doldurmak için kullanılır.

        Returns:
            SyncResult - data: {color, size, material, productTitle}
        """
        if not title or not title.strip():
            return SyncResult.fail(ErrorType.INVALID_REQUEST, "productTitle zorunludur", 400)

        client = self.client
        if client is None:
            return SyncResult.fail(ErrorType.CONFIG_MISSING, "AI servisi yapılandırılmamış", 400)

        logger.info(f"🧠 Özellik çıkarımı: '{title[:50]}'")
        user_prompt = (
            f'Bu üründen özellikleri çıkar: "{title}". '
            'JSON döndür: {"color": "renk veya boş string", "size": "beden veya boş string", '
            '"material": "malzeme veya boş string"}'
        )
        content, failure = self._complete(
            client,
            [
                {"role": "system", "content": ATTRIBUTE_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.1,
            failure_message="Özellikler çıkarılırken bir hata oluştu, lütfen daha sonra tekrar deneyin",
        )
        if failure is not None:
            return failure

        attributes = parse_attributes(content)
        attributes["productTitle"] = title
        return SyncResult.ok(attributes)

    def _complete(
        self,
        client: OpenAI,
        messages: List[Dict[str, str]],
        temperature: float,
        failure_message: str,
    ) -> Tuple[str, Optional[SyncResult]]:
        """Chat-completions çağrısı; sağlayıcı hataları SyncResult'a çevrilir"""
        try:
            response = client.chat.completions.create(
                model=self.settings.ai_model,
                messages=messages,
                temperature=temperature,
            )
        except openai.RateLimitError:
            logger.warning("⚠️ AI servisi rate limit")
            return "", SyncResult.fail(
                ErrorType.RATE_LIMITED,
                "Çok fazla istek gönderildi, lütfen daha sonra tekrar deneyin",
                429,
            )
        except openai.APIStatusError as e:
            if e.status_code == 402:
                logger.warning("⚠️ AI servisi kredi yetersiz")
                return "", SyncResult.fail(ErrorType.PAYMENT_REQUIRED, "AI servisi için kredi gerekli", 402)
            logger.error(f"❌ AI servisi hatası: HTTP {e.status_code}")
            return "", SyncResult.fail(ErrorType.INTERNAL_ERROR, failure_message, 500)
        except openai.OpenAIError as e:
            logger.error(f"❌ AI servisi hatası: {type(e).__name__}")
            return "", SyncResult.fail(ErrorType.INTERNAL_ERROR, failure_message, 500)

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        logger.debug(f"AI cevabı: {content[:200]}")
        return content, None
