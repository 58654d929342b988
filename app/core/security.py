"""
API kimlik doğrulama
Authorization: Bearer <token> başlığı api_tokens tablosundaki SHA-256 hash ile eşleştirilir
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database import get_db
from database.models import ApiToken

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CallerIdentity:
    """İsteği yapan kullanıcı"""
    user_id: str


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def resolve_caller(db: Session, token: Optional[str]) -> Optional[CallerIdentity]:
    """Token'ı kullanıcıya çözer; geçersiz veya pasif token için None"""
    if not token:
        return None

    api_token = (
        db.query(ApiToken)
        .filter(ApiToken.token_hash == hash_token(token), ApiToken.is_active.is_(True))
        .first()
    )
    if api_token is None:
        logger.warning("🔒 Geçersiz API token ile istek")
        return None

    api_token.last_used_at = datetime.now(timezone.utc)
    db.commit()
    return CallerIdentity(user_id=api_token.user_id)


def get_optional_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[CallerIdentity]:
    """Token yoksa None döner (sync endpoint'i AUTH_REQUIRED zarfı üretir)"""
    if credentials is None:
        return None
    return resolve_caller(db, credentials.credentials)


def get_current_caller(caller: Optional[CallerIdentity] = Depends(get_optional_caller)) -> CallerIdentity:
    """Geçerli token zorunlu"""
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller
