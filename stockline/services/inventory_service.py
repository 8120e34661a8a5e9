# stockline/services/inventory_service.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.enums import EventAction
from stockline.models.inventory import InventoryRecord, PendingPlacement
from stockline.services.barcode import normalize_code
from stockline.services.errors import Conflict, NotFound, ValidationFailed
from stockline.services.event_log import EventLogWriter

log = logging.getLogger("stockline.inventory")


def normalize_sku(sku: Optional[str]) -> str:
    return (sku or "").strip().upper()


class InventoryService:
    """
    在手量维护：

    - stock_in:          入库登记，生成 PendingPlacement（尚不计入在手）
    - confirm_placement: 上架确认，在手 += 数量，删除暂存行
    - adjust:            直接调整某库位在手量，不允许为负
    - deduct:            拣货完成时按库位顺序扣减，扣到 0 为止

    不管理事务：调用方 commit。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _record(self, sku: str, location: str, *, for_update: bool = False) -> Optional[InventoryRecord]:
        stmt = select(InventoryRecord).where(InventoryRecord.sku == sku, InventoryRecord.location == location)
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def adjust(self, sku: str, location: str, delta: int) -> InventoryRecord:
        sku = normalize_sku(sku)
        location = (location or "").strip()
        if not sku or not location:
            raise ValidationFailed("sku and location are required")

        rec = await self._record(sku, location, for_update=True)
        current = int(rec.on_hand_quantity) if rec is not None else 0
        after = current + int(delta)
        if after < 0:
            raise ValidationFailed(
                f"on-hand for {sku}@{location} would become negative",
                details=[{"type": "validation", "sku_code": sku, "reason": f"{current} + {delta} < 0"}],
            )

        if rec is None:
            rec = InventoryRecord(sku=sku, location=location, on_hand_quantity=after)
            self.session.add(rec)
        else:
            rec.on_hand_quantity = after
        await self.session.flush()
        return rec

    async def deduct(self, sku: str, quantity: int) -> int:
        """从该 SKU 各库位扣减（按库位名），不足时扣到 0；返回实际扣减数量。"""
        remaining = int(quantity)
        taken = 0
        rows = (
            await self.session.execute(
                select(InventoryRecord)
                .where(InventoryRecord.sku == sku, InventoryRecord.on_hand_quantity > 0)
                .order_by(InventoryRecord.location, InventoryRecord.id)
                .with_for_update()
            )
        ).scalars()
        for rec in rows:
            if remaining <= 0:
                break
            step = min(remaining, int(rec.on_hand_quantity))
            rec.on_hand_quantity = int(rec.on_hand_quantity) - step
            remaining -= step
            taken += step
        if remaining > 0:
            log.warning("deduct short: sku=%s wanted=%s taken=%s", sku, quantity, taken)
        await self.session.flush()
        return taken

    async def stock_in(
        self,
        barcode: str,
        sku: str,
        target_location: str,
        quantity: int = 1,
        *,
        operator: Optional[str] = None,
    ) -> PendingPlacement:
        code = normalize_code(barcode)
        sku = normalize_sku(sku)
        if not code or not sku or not (target_location or "").strip():
            raise ValidationFailed("barcode, sku and target_location are required")
        if int(quantity) <= 0:
            raise ValidationFailed("quantity must be positive")

        dup = (
            await self.session.execute(select(PendingPlacement.id).where(PendingPlacement.barcode == code))
        ).scalar_one_or_none()
        if dup is not None:
            raise Conflict(f"barcode {code} is already pending placement", error_code="duplicate_barcode")

        row = PendingPlacement(
            barcode=code,
            sku=sku,
            target_location=target_location.strip(),
            quantity=int(quantity),
            created_by=operator,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise Conflict(f"barcode {code} is already pending placement", error_code="duplicate_barcode") from exc

        EventLogWriter.write(
            self.session,
            action=EventAction.STOCK_IN,
            operator=operator,
            ref=code,
            sku=sku,
            quantity=int(quantity),
            details=f"target={row.target_location}",
        )
        return row

    async def confirm_placement(
        self, barcode: str, location: Optional[str] = None, *, operator: Optional[str] = None
    ) -> InventoryRecord:
        code = normalize_code(barcode)
        pending = (
            await self.session.execute(
                select(PendingPlacement).where(PendingPlacement.barcode == code).with_for_update()
            )
        ).scalar_one_or_none()
        if pending is None:
            raise NotFound(f"no pending placement for barcode {code}")

        loc = (location or "").strip() or pending.target_location
        rec = await self.adjust(pending.sku, loc, int(pending.quantity))

        EventLogWriter.write(
            self.session,
            action=EventAction.PLACEMENT,
            operator=operator,
            ref=code,
            sku=pending.sku,
            quantity=int(pending.quantity),
            details=f"location={loc}",
        )
        await self.session.delete(pending)
        await self.session.flush()
        return rec
