# stockline/api/routers/picking.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.api.deps import get_barcode_resolver
from stockline.api.problem import raise_422
from stockline.db.session import get_session
from stockline.models.picking import PickingList
from stockline.services.barcode import BarcodeResolver
from stockline.services.picking_service import PickingService, PickOutcome, TaskSpec

router = APIRouter(prefix="/picking", tags=["picking"])


class PickingTaskOut(BaseModel):
    id: int
    picking_list_id: int
    order_id: Optional[int]
    sku: str
    item_name: Optional[str]
    required_quantity: int
    picked_quantity: int
    status: str
    created_at: datetime
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class PickingListOut(BaseModel):
    id: int
    name: str
    status: str
    created_by: Optional[str]
    created_at: datetime
    done: bool = False
    tasks: List[PickingTaskOut] = []

    model_config = ConfigDict(from_attributes=True)


class PickingTaskIn(BaseModel):
    sku: str = Field(..., min_length=1)
    required_quantity: int = Field(..., gt=0, alias="requiredQuantity")
    item_name: Optional[str] = Field(None, alias="itemName")
    order_id: Optional[int] = Field(None, alias="orderId")

    model_config = ConfigDict(populate_by_name=True)


class PickingListCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    tasks: List[PickingTaskIn] = Field(..., min_length=1)
    created_by: Optional[str] = None


class PickScanIn(BaseModel):
    list_id: Optional[int] = Field(None, description="当前选中的拣货单；为空时扫码会被拒绝")
    barcode: str
    operator: Optional[str] = None


class OperatorIn(BaseModel):
    operator: Optional[str] = None


class PickOutcomeOut(BaseModel):
    task: PickingTaskOut
    task_completed: bool
    list_done: bool


def _list_out(plist: PickingList) -> PickingListOut:
    out = PickingListOut.model_validate(plist)
    out.done = all(t.picked_quantity >= t.required_quantity for t in out.tasks)
    return out


def _outcome_out(o: PickOutcome) -> PickOutcomeOut:
    return PickOutcomeOut(
        task=PickingTaskOut.model_validate(o.task),
        task_completed=o.task_completed,
        list_done=o.list_done,
    )


@router.post("/lists", response_model=PickingListOut, status_code=201)
async def create_list(body: PickingListCreateIn, session: AsyncSession = Depends(get_session)) -> PickingListOut:
    specs = [
        TaskSpec(sku=t.sku, required_quantity=t.required_quantity, item_name=t.item_name, order_id=t.order_id)
        for t in body.tasks
    ]
    plist = await PickingService(session).create_list(body.name, specs, created_by=body.created_by)
    return _list_out(plist)


@router.get("/lists", response_model=List[PickingListOut])
async def list_lists(session: AsyncSession = Depends(get_session)) -> List[PickingListOut]:
    return [_list_out(p) for p in await PickingService(session).list_lists()]


@router.get("/lists/{list_id}", response_model=PickingListOut)
async def get_list(list_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)) -> PickingListOut:
    return _list_out(await PickingService(session).get_list(list_id))


@router.delete("/lists/{list_id}", status_code=204)
async def delete_list(
    list_id: int = Path(..., ge=1),
    operator: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
) -> None:
    await PickingService(session).delete_list(list_id, operator=operator)


@router.post("/scan", response_model=PickOutcomeOut)
async def scan(
    body: PickScanIn,
    session: AsyncSession = Depends(get_session),
    resolver: BarcodeResolver = Depends(get_barcode_resolver),
) -> PickOutcomeOut:
    if not body.barcode.strip():
        raise_422("barcode_required", "barcode is empty")
    outcome = await PickingService(session, resolver=resolver).scan(body.list_id, body.barcode, operator=body.operator)
    return _outcome_out(outcome)


@router.post("/tasks/{task_id}/collect", response_model=PickOutcomeOut)
async def manual_collect(
    body: OperatorIn,
    task_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> PickOutcomeOut:
    outcome = await PickingService(session).manual_collect(task_id, operator=body.operator)
    return _outcome_out(outcome)
