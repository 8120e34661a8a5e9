# stockline/api/routers/packing.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.api.deps import get_barcode_resolver
from stockline.db.session import get_session
from stockline.services.barcode import BarcodeResolver
from stockline.services.packing_service import PackingService

router = APIRouter(prefix="/packing", tags=["packing"])


class LabelScanIn(BaseModel):
    label: str = Field(..., min_length=1)
    operator: Optional[str] = None


class ItemScanIn(BaseModel):
    code: str = Field(..., min_length=1)


class ConfirmOneIn(BaseModel):
    line_index: int = Field(..., ge=0)


class OperatorIn(BaseModel):
    operator: Optional[str] = None


@router.post("/label")
async def scan_label(body: LabelScanIn, session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    view = await PackingService(session).scan_label(body.label, operator=body.operator)
    return view.to_dict()


@router.get("/sessions")
async def open_sessions(session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    rows = await PackingService(session).open_sessions()
    return {"sessions": [{"id": r.id, "order_id": r.order_id, "state": r.state, "operator": r.operator} for r in rows]}


@router.post("/sessions/{session_id}/scan")
async def scan_item(
    body: ItemScanIn,
    session_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    resolver: BarcodeResolver = Depends(get_barcode_resolver),
) -> Dict[str, Any]:
    view = await PackingService(session, resolver=resolver).scan_item(session_id, body.code)
    return view.to_dict()


@router.post("/sessions/{session_id}/confirm-one")
async def confirm_one(
    body: ConfirmOneIn,
    session_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    view = await PackingService(session).confirm_one(session_id, body.line_index)
    return view.to_dict()


@router.post("/sessions/{session_id}/confirm")
async def confirm(
    body: OperatorIn,
    session_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    view = await PackingService(session).confirm(session_id, operator=body.operator)
    return view.to_dict()


@router.post("/sessions/{session_id}/cancel")
async def cancel(session_id: int = Path(..., ge=1), session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    view = await PackingService(session).cancel(session_id)
    return view.to_dict()
