"""
Order Status Sync
Yerel sipariş durum değişikliğini pazaryerine iletir ve yerel kaydı günceller
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.core.enums import ErrorType, Marketplace, OrderStatus
from app.core.security import CallerIdentity
from app.models import CanonicalOrder, OrderLine, SyncResult
from database.models import MarketplaceConnection, MarketplaceOrder
from services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

STATUS_DATE_COLUMNS = {
    OrderStatus.SHIPPED: "shipped_date",
    OrderStatus.DELIVERED: "delivered_date",
    OrderStatus.CANCELLED: "cancelled_date",
}


def order_from_row(row: MarketplaceOrder) -> CanonicalOrder:
    """Yerel sipariş kaydını kanonik siparişe çevirir"""
    return CanonicalOrder(
        id=row.external_id,
        order_number=row.order_number or row.external_id,
        status=OrderStatus(row.status) if row.status in OrderStatus._value2member_map_ else OrderStatus.PENDING,
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        shipping_address=row.shipping_address,
        items=[OrderLine.model_validate(item) for item in row.items or []],
        currency=row.currency or "TRY",
        order_date=row.order_date,
        marketplace_data=row.marketplace_data or {},
    )


class OrderStatusSyncService:
    """Sipariş durumu senkronizasyonu"""

    def __init__(self, db: Session, orchestrator: Optional[SyncOrchestrator] = None):
        self.db = db
        self.orchestrator = orchestrator or SyncOrchestrator(db)

    def _find_connection(self, order: MarketplaceOrder) -> Optional[MarketplaceConnection]:
        query = self.db.query(MarketplaceConnection).filter(MarketplaceConnection.user_id == order.user_id)
        if order.connection_id is not None:
            return query.filter(MarketplaceConnection.id == order.connection_id).first()
        return query.filter(MarketplaceConnection.marketplace == order.platform).first()

    async def push(
        self,
        caller: Optional[CallerIdentity],
        order_id: int,
        status: OrderStatus,
        tracking_number: Optional[str] = None,
        cargo_provider: Optional[str] = None,
    ) -> SyncResult:
        """
        Durumu pazaryerine gönderir

        Yerel sipariş pazaryeri çağrısı başarısız olsa da güncellenir;
        status_synced_at sadece başarıda dolar.
        """
        if caller is None:
            return SyncResult.fail(ErrorType.AUTH_REQUIRED, "Authentication required", 401)

        status = OrderStatus(status)
        order = (
            self.db.query(MarketplaceOrder)
            .filter(MarketplaceOrder.id == order_id, MarketplaceOrder.user_id == caller.user_id)
            .first()
        )
        if order is None:
            return SyncResult.fail(ErrorType.NOT_FOUND, "Sipariş bulunamadı", 404)

        connection = self._find_connection(order)
        marketplace = Marketplace.normalize(order.platform)
        if connection is None or not connection.is_active or marketplace is None:
            return SyncResult.fail(ErrorType.INVALID_REQUEST, "Aktif pazaryeri bağlantısı bulunamadı", 400)

        logger.info(f"🚚 Sipariş {order.external_id} ({marketplace.value}) -> {status.value}")

        adapter = self.orchestrator.build_adapter(marketplace, connection.credentials, connection.id)
        result = await self.orchestrator.run_adapter(
            adapter,
            "push_order_status",
            order_from_row(order),
            status,
            tracking_number,
            cargo_provider,
        )

        now = datetime.now(timezone.utc)
        order.status = status.value
        order.status_synced_at = now if result.success else None
        if tracking_number:
            order.tracking_number = tracking_number
        if cargo_provider:
            order.tracking_company = cargo_provider
        date_column = STATUS_DATE_COLUMNS.get(status)
        if date_column:
            setattr(order, date_column, now)
        self.db.commit()

        if not result.success:
            logger.warning(f"⚠️ Sipariş durumu {marketplace.value}'e iletilemedi: {result.error_type}")
            return result

        return SyncResult.ok({
            "orderId": order.id,
            "marketplace": marketplace.value,
            "status": status.value,
            "message": f"Durum {marketplace.value} ile senkronize edildi",
            "remote": result.data,
        })
