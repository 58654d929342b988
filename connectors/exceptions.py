"""
Connector exceptions
Adapter'lar içeride bu hataları fırlatır; adapter sınırında SyncResult'a çevrilir.
"""
from typing import Optional

from app.core.enums import ErrorType


class MarketplaceError(Exception):
    """Kategorik pazaryeri hatası"""

    error_type = ErrorType.INTERNAL_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, error_type: Optional[ErrorType] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type


class ConfigMissingError(MarketplaceError):
    """Zorunlu kimlik bilgisi eksik - ağa hiç çıkılmaz"""
    error_type = ErrorType.CONFIG_MISSING

    def __init__(self, message: str, missing=None):
        super().__init__(message, status_code=400)
        self.missing = list(missing or [])


class OAuthError(MarketplaceError):
    """Token alınamadı"""
    error_type = ErrorType.OAUTH_ERROR

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message, status_code=status_code)


class MarketplaceAPIError(MarketplaceError):
    """Pazaryeri isteği reddetti (4xx, SOAP failure, GraphQL errors)"""
    error_type = ErrorType.API_ERROR


class ResponseParseError(MarketplaceAPIError):
    """Cevap çözümlenemedi (bozuk XML/JSON)"""

    def __init__(self, message: str = "Pazaryeri cevabı çözümlenemedi"):
        super().__init__(message, status_code=502)
