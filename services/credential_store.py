"""
Credential Store
Kullanıcıya ait pazaryeri bağlantılarını ve kimlik bilgilerini yönetir

Kimlik bilgisi değerleri sadece adapter'a verilir; loglanmaz ve API'den dönmez.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.enums import Marketplace, SyncAction
from app.models import ConnectionOut, SyncResult
from connectors.credentials import describe_missing, public_values, resolve_credentials
from connectors.exceptions import ConfigMissingError
from database.models import MarketplaceConnection

logger = logging.getLogger(__name__)


class CredentialStore:
    """marketplace_connections tablosu üzerinde işlemler"""

    def __init__(self, db: Session):
        self.db = db

    def get_connection(
        self,
        user_id: str,
        connection_id: int,
        marketplace: Optional[Marketplace] = None,
    ) -> Optional[MarketplaceConnection]:
        """
        Kullanıcının bağlantısını döner

        Bağlantı başka kullanıcıya aitse veya pazaryeri uyuşmuyorsa None döner
        (var olup olmadığı dışarıya sızmaz).
        """
        query = self.db.query(MarketplaceConnection).filter(
            MarketplaceConnection.id == connection_id,
            MarketplaceConnection.user_id == user_id,
        )
        if marketplace is not None:
            query = query.filter(MarketplaceConnection.marketplace == marketplace.value)
        return query.first()

    def list_connections(self, user_id: str) -> List[MarketplaceConnection]:
        return (
            self.db.query(MarketplaceConnection)
            .filter(MarketplaceConnection.user_id == user_id)
            .order_by(MarketplaceConnection.marketplace)
            .all()
        )

    def active_connections(self, user_id: Optional[str] = None) -> List[MarketplaceConnection]:
        query = self.db.query(MarketplaceConnection).filter(MarketplaceConnection.is_active.is_(True))
        if user_id is not None:
            query = query.filter(MarketplaceConnection.user_id == user_id)
        return query.all()

    def save(self, user_id: str, marketplace: Marketplace, raw_credentials: Dict[str, str]) -> MarketplaceConnection:
        """
        Bağlantı oluşturur veya mevcut bağlantının kimlik bilgilerini günceller

        Raises:
            ConfigMissingError: zorunlu alanlar eksikse
        """
        credentials, missing = resolve_credentials(marketplace, raw_credentials)
        if missing:
            raise ConfigMissingError(describe_missing(marketplace, missing), missing)

        connection = (
            self.db.query(MarketplaceConnection)
            .filter(
                MarketplaceConnection.user_id == user_id,
                MarketplaceConnection.marketplace == marketplace.value,
            )
            .first()
        )
        if connection is None:
            connection = MarketplaceConnection(user_id=user_id, marketplace=marketplace.value)
            self.db.add(connection)
            logger.info(f"🔌 Yeni bağlantı: user={user_id}, marketplace={marketplace.value}")
        else:
            logger.info(f"🔌 Bağlantı güncellendi: user={user_id}, marketplace={marketplace.value}")

        connection.credentials = credentials
        # Yeni kimlik bilgileri test edilene kadar pasif
        connection.is_active = False
        connection.last_error = None
        self.db.commit()
        self.db.refresh(connection)
        return connection

    def delete(self, user_id: str, connection_id: int) -> bool:
        connection = self.get_connection(user_id, connection_id)
        if connection is None:
            return False
        self.db.delete(connection)
        self.db.commit()
        logger.info(f"🗑️ Bağlantı silindi: id={connection_id}")
        return True

    def record_activity(self, connection: MarketplaceConnection, action: SyncAction, result: SyncResult):
        """
        Bağlantı durumunu işlem sonucuna göre günceller

        - test_connection sonucu is_active'i belirler
        - başarılı her işlem last_sync_at'i günceller
        - başarısız işlem last_error'a yazılır
        """
        if action == SyncAction.TEST_CONNECTION:
            connection.is_active = result.success

        if result.success:
            connection.last_sync_at = datetime.now(timezone.utc)
            connection.last_error = None
        else:
            connection.last_error = result.error

        self.db.commit()

    @staticmethod
    def to_out(connection: MarketplaceConnection) -> ConnectionOut:
        """Dış gösterim - anahtar isimleri ve gizli olmayan değerler"""
        credentials = connection.credentials or {}
        marketplace = Marketplace.normalize(connection.marketplace)
        return ConnectionOut(
            id=connection.id,
            marketplace=connection.marketplace,
            is_active=bool(connection.is_active),
            last_sync_at=connection.last_sync_at,
            last_error=connection.last_error,
            credential_keys=sorted(credentials.keys()),
            identifiers=public_values(marketplace, credentials) if marketplace else {},
        )
