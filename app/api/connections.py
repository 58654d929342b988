"""
Connections API
Pazaryeri bağlantılarının oluşturulması, listelenmesi ve silinmesi
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.dependencies import envelope, get_orchestrator
from app.core.enums import Marketplace, SyncAction
from app.core.security import CallerIdentity, get_current_caller
from app.models import ConnectionCreate, ConnectionOut
from connectors.exceptions import ConfigMissingError
from database import get_db
from services.credential_store import CredentialStore
from services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api/connections", tags=["Connections"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[ConnectionOut])
async def list_connections(
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """Kullanıcının bağlantıları (kimlik bilgisi değerleri dönmez)"""
    store = CredentialStore(db)
    return [store.to_out(c) for c in store.list_connections(caller.user_id)]


@router.post("")
async def create_connection(
    request: ConnectionCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Bağlantı oluşturur veya günceller, ardından bağlantıyı test eder

    Test başarılıysa bağlantı aktifleşir.

    Returns:
        {connection, test} - test alanı SyncResult zarfıdır
    """
    marketplace = Marketplace.normalize(request.marketplace)
    if marketplace is None:
        raise HTTPException(status_code=400, detail=f"Bilinmeyen pazaryeri: {request.marketplace}")

    store = CredentialStore(db)
    try:
        connection = store.save(caller.user_id, marketplace, request.credentials)
    except ConfigMissingError as e:
        raise HTTPException(status_code=400, detail=e.message)

    result = await orchestrator.execute(
        caller,
        marketplace.value,
        SyncAction.TEST_CONNECTION.value,
        connection_id=connection.id,
    )
    db.refresh(connection)

    return {
        "connection": store.to_out(connection).model_dump(mode="json", by_alias=True),
        "test": result.to_response(),
    }


@router.post("/{connection_id}/test")
async def test_connection(
    connection_id: int,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    connection = CredentialStore(db).get_connection(caller.user_id, connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail="Bağlantı bulunamadı")

    result = await orchestrator.execute(
        caller,
        connection.marketplace,
        SyncAction.TEST_CONNECTION.value,
        connection_id=connection.id,
    )
    return envelope(result)


@router.delete("/{connection_id}")
async def delete_connection(
    connection_id: int,
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    if not CredentialStore(db).delete(caller.user_id, connection_id):
        raise HTTPException(status_code=404, detail="Bağlantı bulunamadı")
    return {"deleted": True, "id": connection_id}
