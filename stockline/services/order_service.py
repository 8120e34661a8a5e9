# stockline/services/order_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.adapters.base import ExternalLine
from stockline.core.clock import utcnow
from stockline.models.enums import EventAction, OrderStatus
from stockline.models.order import Order
from stockline.services.barcode import normalize_code
from stockline.services.errors import Conflict, InvalidTransition, NotFound, ValidationFailed
from stockline.services.event_log import EventLogWriter
from stockline.services.order_pull import aggregate_lines, order_items_payload
from stockline.services.reservation_service import ReservationService

log = logging.getLogger("stockline.orders")


class OrderService:
    """
    订单生命周期：PENDING → DISPATCHED → PACKED；PENDING / DISPATCHED 可取消。

    每个写操作一个事务（本服务自己 commit）。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, order_id: int) -> Order:
        order = (
            await self.session.execute(
                select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if order is None:
            raise NotFound(f"order {order_id} not found", error_code="order_not_found")
        return order

    async def list_orders(self, *, status: Optional[str] = None, limit: int = 100) -> List[Order]:
        stmt = select(Order).order_by(Order.id.desc()).limit(limit)
        if status:
            stmt = stmt.where(Order.status == status.upper())
        return list((await self.session.execute(stmt)).scalars())

    async def create(
        self,
        order_number: str,
        items: Sequence[Dict[str, Any]],
        *,
        buyer_name: Optional[str] = None,
        postal_code: Optional[str] = None,
    ) -> Order:
        """手工建单：与渠道拉单同一套占用规则（每 SKU 一条，库存不足整单拒绝）。"""
        number = (order_number or "").strip()
        if not number:
            raise ValidationFailed("order number is required")
        lines = [
            ExternalLine(
                sku=str(it.get("sku") or ""),
                quantity=int(it.get("quantity") or 1),
                barcode=it.get("barcode"),
                item_name=it.get("itemName"),
            )
            for it in items
        ]
        if not any((ln.sku or "").strip() for ln in lines):
            raise ValidationFailed("order needs at least one line with a sku")

        order = Order(
            order_number=number,
            status=OrderStatus.PENDING.value,
            buyer_name=buyer_name,
            postal_code=postal_code,
            items=order_items_payload(lines),
        )
        self.session.add(order)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            raise Conflict(f"order number {number} already exists", error_code="duplicate_order_number") from exc

        reservations = ReservationService(self.session)
        try:
            for sku, qty in aggregate_lines(lines).items():
                await reservations.reserve(order.id, sku, qty)
        except Exception:
            await self.session.rollback()
            raise
        await self.session.commit()
        return order

    async def dispatch(
        self,
        order_id: int,
        barcodes: Sequence[str],
        *,
        operator: Optional[str] = None,
        shipping_label: Optional[str] = None,
    ) -> Order:
        order = await self.get(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(f"order {order.order_number} is {order.status}, only PENDING can be dispatched")

        codes = [normalize_code(b) for b in barcodes or [] if normalize_code(b)]
        order.status = OrderStatus.DISPATCHED.value
        order.dispatched_barcodes = codes
        order.dispatched_by = operator
        order.dispatched_at = utcnow()
        if shipping_label is not None:
            order.shipping_label = normalize_code(shipping_label) or None

        EventLogWriter.write(
            self.session,
            action=EventAction.ORDER_DISPATCHED,
            operator=operator,
            ref=order.order_number,
            quantity=len(codes),
            details=",".join(codes)[:1000],
        )
        await self.session.commit()
        log.info("order %s dispatched by %s (%d barcodes)", order.order_number, operator, len(codes))
        return order

    async def cancel(self, order_id: int, *, operator: Optional[str] = None) -> Order:
        order = await self.get(order_id)
        if order.status == OrderStatus.CANCELLED.value:
            return order
        if order.status == OrderStatus.PACKED.value:
            raise InvalidTransition(f"order {order.order_number} is already packed")

        cleared = await ReservationService(self.session).clear_for_order(order.id, reason="cancelled")
        order.status = OrderStatus.CANCELLED.value
        EventLogWriter.write(
            self.session,
            action=EventAction.ORDER_CANCELLED,
            operator=operator,
            ref=order.order_number,
            details=f"cleared {cleared} reservations",
        )
        await self.session.commit()
        return order
