# stockline/services/reservation_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.core.clock import utcnow
from stockline.models.enums import ReservationStatus
from stockline.models.inventory import InventoryRecord
from stockline.models.reservation import Reservation
from stockline.services.errors import InsufficientStock, NotFound, ValidationFailed

log = logging.getLogger("stockline.reservation")


async def sum_on_hand(session: AsyncSession, sku: str) -> int:
    v = (
        await session.execute(
            select(func.coalesce(func.sum(InventoryRecord.on_hand_quantity), 0)).where(
                InventoryRecord.sku == sku
            )
        )
    ).scalar_one()
    return int(v or 0)


async def sum_active_reserved(session: AsyncSession, sku: str) -> int:
    v = (
        await session.execute(
            select(func.coalesce(func.sum(Reservation.quantity), 0)).where(
                Reservation.sku == sku,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
        )
    ).scalar_one()
    return int(v or 0)


class ReservationService:
    """
    Reservation 状态机服务：ACTIVE → CLEARED，只走一次。

    约定：
      - 本服务不管理事务，调用方在外层 commit（订单拉取是"一单一事务"）
      - (order_id, sku) 是 reserve 的幂等键
      - 同一 SKU 的 ACTIVE 合计不允许超过实仓在手量
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, reservation_id: int) -> Reservation:
        row = await self.session.get(Reservation, reservation_id)
        if row is None:
            raise NotFound(f"reservation {reservation_id} not found")
        return row

    async def reserve(self, order_id: int, sku: str, quantity: int) -> Reservation:
        if int(quantity) <= 0:
            raise ValidationFailed(
                "reservation quantity must be positive",
                details=[{"type": "validation", "path": "quantity", "reason": f"got {quantity}"}],
            )

        existing = (
            await self.session.execute(
                select(Reservation).where(Reservation.order_id == order_id, Reservation.sku == sku)
            )
        ).scalar_one_or_none()
        if existing is not None:
            return existing

        on_hand = await sum_on_hand(self.session, sku)
        reserved = await sum_active_reserved(self.session, sku)
        if reserved + int(quantity) > on_hand:
            raise InsufficientStock(
                f"cannot reserve {quantity} x {sku}: on_hand={on_hand}, reserved={reserved}",
                details=[
                    {
                        "type": "shortage",
                        "sku_code": sku,
                        "required_qty": int(quantity),
                        "available_qty": max(0, on_hand - reserved),
                        "short_qty": reserved + int(quantity) - on_hand,
                    }
                ],
            )

        row = Reservation(
            order_id=order_id,
            sku=sku,
            quantity=int(quantity),
            status=ReservationStatus.ACTIVE.value,
        )
        self.session.add(row)
        await self.session.flush()
        log.debug("reserved order=%s sku=%s qty=%s", order_id, sku, quantity)
        return row

    async def clear(self, reservation_id: int, *, reason: str = "manual") -> Reservation:
        """
        ACTIVE → CLEARED。条件 UPDATE 保证并发的两次 clear 只有一次生效；
        已经 CLEARED 的直接返回（no-op）。
        """
        res = await self.session.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
            .values(
                status=ReservationStatus.CLEARED.value,
                cleared_at=utcnow(),
                clear_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        row = (
            await self.session.execute(
                select(Reservation)
                .where(Reservation.id == reservation_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFound(f"reservation {reservation_id} not found")
        if (res.rowcount or 0) == 0:
            log.debug("clear no-op: reservation=%s already %s", reservation_id, row.status)
        return row

    async def clear_for_order(
        self, order_id: int, sku: Optional[str] = None, *, reason: str = "manual"
    ) -> int:
        """清掉订单（或订单下某 SKU）所有 ACTIVE 占用，返回实际清掉的行数。"""
        stmt = (
            update(Reservation)
            .where(
                Reservation.order_id == order_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
            .values(
                status=ReservationStatus.CLEARED.value,
                cleared_at=utcnow(),
                clear_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if sku is not None:
            stmt = stmt.where(Reservation.sku == sku)
        res = await self.session.execute(stmt)
        return int(res.rowcount or 0)

    async def list_for_order(self, order_id: int) -> List[Reservation]:
        rows = (
            await self.session.execute(
                select(Reservation)
                .where(Reservation.order_id == order_id)
                .order_by(Reservation.id)
                .execution_options(populate_existing=True)
            )
        ).scalars()
        return list(rows)
