"""
Marketplace credential schemas

Her pazaryeri için hangi kimlik bilgilerinin gerektiği burada tanımlanır.
CONFIG_MISSING kontrolü bu tanımlardan üretilir; adapter'lar kendi
kontrollerini elle yazmaz.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.core.enums import Marketplace


@dataclass(frozen=True)
class CredentialField:
    """Tek bir kimlik bilgisi alanı"""
    name: str
    required: bool = True
    secret: bool = False
    aliases: Tuple[str, ...] = field(default_factory=tuple)
    label: Optional[str] = None

    def lookup(self, raw: Dict[str, str]) -> Optional[str]:
        """Alanı (veya alias'larından birini) bulur, boş değerleri yok sayar"""
        for key in (self.name,) + self.aliases:
            value = raw.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
        return None


CREDENTIAL_SCHEMAS: Dict[Marketplace, List[CredentialField]] = {
    Marketplace.TRENDYOL: [
        CredentialField("seller_id", aliases=("supplier_id", "sellerId", "supplierId"), label="Satıcı ID"),
        CredentialField("api_key", secret=True, aliases=("apiKey",), label="API Key"),
        CredentialField("api_secret", secret=True, aliases=("apiSecret",), label="API Secret"),
    ],
    Marketplace.HEPSIBURADA: [
        CredentialField("merchant_id", aliases=("merchantId",), label="Merchant ID"),
        CredentialField("username", aliases=("api_username", "userName"), label="Kullanıcı adı"),
        CredentialField("password", secret=True, aliases=("api_password",), label="Şifre"),
    ],
    Marketplace.AMAZON: [
        CredentialField("seller_id", aliases=("sellerId", "merchant_id"), label="Seller ID"),
        CredentialField("client_id", aliases=("clientId", "lwa_client_id"), label="LWA Client ID"),
        CredentialField("client_secret", secret=True, aliases=("clientSecret", "lwa_client_secret"), label="LWA Client Secret"),
        CredentialField("refresh_token", secret=True, aliases=("refreshToken",), label="Refresh Token"),
        CredentialField("marketplace_id", required=False, aliases=("marketplaceId",), label="Marketplace ID"),
    ],
    Marketplace.IKAS: [
        CredentialField("client_id", aliases=("clientId",), label="Client ID"),
        CredentialField("client_secret", secret=True, aliases=("clientSecret",), label="Client Secret"),
        CredentialField("store_name", required=False, aliases=("storeName", "store_url", "storeUrl"), label="Mağaza adı"),
    ],
    Marketplace.N11: [
        CredentialField("app_key", secret=True, aliases=("appKey", "api_key", "apiKey"), label="App Key"),
        CredentialField("app_secret", secret=True, aliases=("appSecret", "api_secret", "apiSecret"), label="App Secret"),
    ],
    Marketplace.CICEKSEPETI: [
        CredentialField("api_key", secret=True, aliases=("apiKey",), label="API Key"),
        CredentialField("api_secret", secret=True, aliases=("apiSecret",), label="API Secret"),
        CredentialField("seller_id", required=False, aliases=("sellerId", "supplier_id"), label="Satıcı ID"),
    ],
    Marketplace.ETSY: [
        CredentialField("api_key", secret=True, aliases=("apiKey", "keystring"), label="API Key (keystring)"),
        CredentialField("access_token", secret=True, aliases=("accessToken",), label="OAuth Access Token"),
        CredentialField("shop_id", aliases=("shopId",), label="Shop ID"),
    ],
    Marketplace.SHOPIFY: [
        CredentialField("shop_domain", aliases=("shopDomain", "store_url", "storeUrl", "shop"), label="Mağaza domain"),
        CredentialField("access_token", secret=True, aliases=("accessToken", "admin_api_token"), label="Admin API Token"),
        CredentialField("location_id", required=False, aliases=("locationId",), label="Stok lokasyonu"),
    ],
}


def resolve_credentials(marketplace: Marketplace, raw: Optional[Dict[str, str]]) -> Tuple[Dict[str, str], List[str]]:
    """
    Ham credential map'ini şemaya göre kanonik isimlere çevirir

    Returns:
        (resolved, missing) - missing zorunlu ama bulunamayan alan isimleri
    """
    raw = raw or {}
    resolved: Dict[str, str] = {}
    missing: List[str] = []

    for cred in CREDENTIAL_SCHEMAS[marketplace]:
        value = cred.lookup(raw)
        if value is None:
            if cred.required:
                missing.append(cred.name)
            continue
        resolved[cred.name] = value

    return resolved, missing


def describe_missing(marketplace: Marketplace, missing: List[str]) -> str:
    """Kullanıcıya gösterilecek eksik alan mesajı (değer içermez)"""
    labels = {cred.name: cred.label or cred.name for cred in CREDENTIAL_SCHEMAS[marketplace]}
    names = ", ".join(labels.get(name, name) for name in missing)
    return f"{marketplace.value} bağlantı bilgileri eksik: {names}"


def public_values(marketplace: Marketplace, credentials: Dict[str, str]) -> Dict[str, str]:
    """Gizli olmayan alanlar (satıcı id, mağaza adı gibi) - dış gösterim için"""
    return {
        cred.name: credentials[cred.name]
        for cred in CREDENTIAL_SCHEMAS[marketplace]
        if not cred.secret and cred.name in credentials
    }
