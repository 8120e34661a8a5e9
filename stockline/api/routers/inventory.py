# stockline/api/routers/inventory.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.db.session import get_session
from stockline.services.inventory_service import InventoryService

router = APIRouter(tags=["inventory"])


class StockInIn(BaseModel):
    barcode: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    target_location: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    operator: Optional[str] = None


class PendingPlacementOut(BaseModel):
    id: int
    barcode: str
    sku: str
    target_location: str
    quantity: int
    created_by: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlacementConfirmIn(BaseModel):
    barcode: str = Field(..., min_length=1)
    location: Optional[str] = Field(None, description="实际上架库位；为空时用登记时的目标库位")
    operator: Optional[str] = None


class AdjustIn(BaseModel):
    sku: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    delta: int


class InventoryRecordOut(BaseModel):
    sku: str
    location: str
    on_hand_quantity: int

    model_config = ConfigDict(from_attributes=True)


@router.post("/stock-in", response_model=PendingPlacementOut, status_code=201)
async def stock_in(body: StockInIn, session: AsyncSession = Depends(get_session)) -> PendingPlacementOut:
    row = await InventoryService(session).stock_in(
        body.barcode, body.sku, body.target_location, body.quantity, operator=body.operator
    )
    await session.commit()
    return PendingPlacementOut.model_validate(row)


@router.post("/placements/confirm", response_model=InventoryRecordOut)
async def confirm_placement(body: PlacementConfirmIn, session: AsyncSession = Depends(get_session)) -> InventoryRecordOut:
    rec = await InventoryService(session).confirm_placement(body.barcode, body.location, operator=body.operator)
    await session.commit()
    return InventoryRecordOut.model_validate(rec)


@router.post("/inventory/adjust", response_model=InventoryRecordOut)
async def adjust(body: AdjustIn, session: AsyncSession = Depends(get_session)) -> InventoryRecordOut:
    rec = await InventoryService(session).adjust(body.sku, body.location, body.delta)
    await session.commit()
    return InventoryRecordOut.model_validate(rec)
