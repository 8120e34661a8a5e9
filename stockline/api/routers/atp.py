# stockline/api/routers/atp.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.api.deps import get_sync_config
from stockline.core.config import SyncConfig
from stockline.db.session import get_session
from stockline.services.atp_service import AtpService
from stockline.services.inventory_service import normalize_sku

router = APIRouter(prefix="/atp", tags=["atp"])


class AtpOut(BaseModel):
    sku: str
    on_hand: int
    reserved: int
    buffer: int
    atp: int


@router.get("", response_model=List[AtpOut])
async def list_atp(session: AsyncSession = Depends(get_session)) -> List[AtpOut]:
    rows = await AtpService(session).list_atp()
    return [AtpOut(sku=r.sku, on_hand=r.on_hand, reserved=r.reserved, buffer=r.buffer, atp=r.effective) for r in rows]


@router.get("/{sku}", response_model=AtpOut)
async def get_atp(
    sku: str,
    account_id: Optional[str] = Query(None, description="渠道账号；带上时扣减该渠道的安全缓冲"),
    session: AsyncSession = Depends(get_session),
    config: SyncConfig = Depends(get_sync_config),
) -> AtpOut:
    r = await AtpService(session, default_buffer=config.default_buffer).compute_atp(normalize_sku(sku), account_id)
    return AtpOut(sku=r.sku, on_hand=r.on_hand, reserved=r.reserved, buffer=r.buffer, atp=r.effective)
