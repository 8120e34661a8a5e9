# stockline/api/routers/orders.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.db.session import get_session
from stockline.services.order_service import OrderService
from stockline.services.packing_service import PackingService
from stockline.services.reservation_service import ReservationService

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderItemIn(BaseModel):
    sku: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0)
    barcode: Optional[str] = None
    item_name: Optional[str] = Field(None, alias="itemName")

    model_config = ConfigDict(populate_by_name=True)


class OrderCreateIn(BaseModel):
    order_number: str = Field(..., min_length=1)
    items: List[OrderItemIn] = Field(..., min_length=1)
    buyer_name: Optional[str] = None
    postal_code: Optional[str] = None


class OrderOut(BaseModel):
    id: int
    order_number: str
    status: str
    account_id: Optional[str] = None
    buyer_name: Optional[str] = None
    items: List[Dict[str, Any]]
    dispatched_barcodes: Optional[List[str]] = None
    shipping_label: Optional[str] = None
    dispatched_by: Optional[str] = None
    dispatched_at: Optional[datetime] = None
    packed_by: Optional[str] = None
    packed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReservationOut(BaseModel):
    id: int
    order_id: int
    sku: str
    quantity: int
    status: str
    cleared_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DispatchIn(BaseModel):
    barcodes: List[str] = Field(default_factory=list)
    shipping_label: Optional[str] = None
    operator: Optional[str] = None


class OperatorIn(BaseModel):
    operator: Optional[str] = None


@router.post("", response_model=OrderOut, status_code=201)
async def create_order(body: OrderCreateIn, session: AsyncSession = Depends(get_session)) -> OrderOut:
    items = [
        {"sku": it.sku, "quantity": it.quantity, "barcode": it.barcode, "itemName": it.item_name}
        for it in body.items
    ]
    order = await OrderService(session).create(
        body.order_number, items, buyer_name=body.buyer_name, postal_code=body.postal_code
    )
    return OrderOut.model_validate(order)


@router.get("", response_model=List[OrderOut])
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> List[OrderOut]:
    return [OrderOut.model_validate(o) for o in await OrderService(session).list_orders(status=status, limit=limit)]


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)) -> OrderOut:
    return OrderOut.model_validate(await OrderService(session).get(order_id))


@router.get("/{order_id}/reservations", response_model=List[ReservationOut])
async def order_reservations(
    order_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)
) -> List[ReservationOut]:
    await OrderService(session).get(order_id)
    rows = await ReservationService(session).list_for_order(order_id)
    return [ReservationOut.model_validate(r) for r in rows]


@router.post("/{order_id}/dispatch", response_model=OrderOut)
async def dispatch(
    body: DispatchIn, order_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)
) -> OrderOut:
    order = await OrderService(session).dispatch(
        order_id, body.barcodes, operator=body.operator, shipping_label=body.shipping_label
    )
    return OrderOut.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel(
    body: OperatorIn, order_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)
) -> OrderOut:
    return OrderOut.model_validate(await OrderService(session).cancel(order_id, operator=body.operator))


@router.post("/{order_id}/mark-packed", response_model=OrderOut)
async def mark_packed(
    body: OperatorIn, order_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)
) -> OrderOut:
    order = await PackingService(session).mark_packed_manual(order_id, operator=body.operator)
    return OrderOut.model_validate(order)
