# stockline/api/routers/channel_sync.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.registry import ChannelClientFactory
from stockline.api.deps import get_channel_client_factory, get_credential_provider, get_sync_config
from stockline.core.config import SyncConfig
from stockline.db.session import get_session
from stockline.services.credentials import CredentialProvider
from stockline.services.import_run_service import ImportRunService
from stockline.services.inventory_pull import run_inventory_pull
from stockline.services.inventory_push import run_inventory_push
from stockline.services.order_pull import run_order_pull

router = APIRouter(tags=["channel-sync"])


class ImportRunOut(BaseModel):
    id: int
    source_type: str
    source_ref: str
    triggered_by: str
    rows_total: int
    created: int
    updated: int
    skipped: int
    errors: int
    status: str
    error_details: Optional[List[Dict[str, Any]]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post("/channel-accounts/{account_id}/sync/orders")
async def sync_orders(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    config: SyncConfig = Depends(get_sync_config),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: Optional[ChannelClientFactory] = Depends(get_channel_client_factory),
) -> Dict[str, Any]:
    result = await run_order_pull(
        session, account_id, config, credentials=credentials, client_factory=client_factory
    )
    return result.to_dict()


@router.post("/channel-accounts/{account_id}/sync/inventory")
async def sync_inventory(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    config: SyncConfig = Depends(get_sync_config),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: Optional[ChannelClientFactory] = Depends(get_channel_client_factory),
) -> Dict[str, Any]:
    result = await run_inventory_pull(
        session, account_id, config, credentials=credentials, client_factory=client_factory
    )
    return result.to_dict()


@router.post("/channel-accounts/{account_id}/sync/push")
async def sync_push(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    config: SyncConfig = Depends(get_sync_config),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: Optional[ChannelClientFactory] = Depends(get_channel_client_factory),
) -> Dict[str, Any]:
    result = await run_inventory_push(
        session, account_id, config, credentials=credentials, client_factory=client_factory
    )
    return result.to_dict()


@router.get("/import-runs", response_model=List[ImportRunOut])
async def list_import_runs(
    source_type: Optional[str] = Query(None),
    source_ref: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> List[ImportRunOut]:
    rows = await ImportRunService(session).list_runs(source_type=source_type, source_ref=source_ref, limit=limit)
    return [ImportRunOut.model_validate(r) for r in rows]
