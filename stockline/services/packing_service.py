# stockline/services/packing_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from stockline.core.clock import utcnow
from stockline.metrics import observe_scan_rejection
from stockline.models.enums import EventAction, OrderStatus, PackingState
from stockline.models.order import Order
from stockline.models.packing import PackingSession
from stockline.services.barcode import BarcodeResolver, DbBarcodeResolver, normalize_code
from stockline.services.errors import (
    ConcurrentScan,
    InvalidTransition,
    MultipleOrdersMatched,
    NotFound,
    ServiceError,
    ValidationFailed,
)
from stockline.services.event_log import EventLogWriter
from stockline.services.packing_state import PackingProgress

log = logging.getLogger("stockline.packing")


@dataclass
class PackingView:
    session_id: Optional[int]
    order_id: int
    order_number: str
    state: PackingState
    progress: PackingProgress
    matched_line: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "state": self.state.value,
            "matched_line": self.matched_line,
            "complete": self.progress.is_complete,
            "lines": [
                {
                    "index": i,
                    "sku": ln.sku,
                    "barcode": ln.barcode,
                    "item_name": ln.item_name,
                    "quantity": ln.quantity,
                    "scanned": self.progress.scanned[i],
                }
                for i, ln in enumerate(self.progress.lines)
            ],
        }


class PackingService:
    """
    打包核对：把状态机的进度持久化到 packing_sessions。

    - 每次扫码一个事务；版本号不一致（另一终端刚写过）→ ConcurrentScan，本次不生效
    - 确认 / 取消后会话行删除；订单行从不修改
    """

    def __init__(self, session: AsyncSession, *, resolver: Optional[BarcodeResolver] = None) -> None:
        self.session = session
        self.resolver = resolver or DbBarcodeResolver(session)

    def _reject(self, exc: ServiceError) -> ServiceError:
        observe_scan_rejection("packing", exc.error_code)
        return exc

    async def _order(self, order_id: int) -> Order:
        order = (
            await self.session.execute(
                select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if order is None:
            raise NotFound(f"order {order_id} not found", error_code="order_not_found")
        return order

    async def _load(self, session_id: int) -> Tuple[PackingSession, Order, PackingProgress]:
        row = (
            await self.session.execute(
                select(PackingSession)
                .where(PackingSession.id == session_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFound(f"packing session {session_id} not found", error_code="packing_session_not_found")
        order = await self._order(row.order_id)
        base = PackingProgress.start(order.items or [], order.dispatched_barcodes or [])
        scanned = list(row.scanned or [])
        if len(scanned) != len(base.lines):
            scanned = [0] * len(base.lines)
        progress = PackingProgress(
            lines=base.lines,
            scanned=tuple(int(n) for n in scanned),
            state=PackingState(row.state),
            dispatched_barcodes=base.dispatched_barcodes,
        )
        return row, order, progress

    def _view(self, row: Optional[PackingSession], order: Order, progress: PackingProgress, matched: Optional[int] = None) -> PackingView:
        return PackingView(
            session_id=row.id if row is not None else None,
            order_id=order.id,
            order_number=order.order_number,
            state=progress.state,
            progress=progress,
            matched_line=matched,
        )

    async def _save(self, row: PackingSession, progress: PackingProgress) -> None:
        row.scanned = list(progress.scanned)
        row.state = progress.state.value
        try:
            await self.session.commit()
        except StaleDataError as exc:
            await self.session.rollback()
            raise self._reject(ConcurrentScan("packing session was changed by another scan, rescan")) from exc

    # ---------------- 状态迁移 ----------------

    async def scan_label(self, label: str, *, operator: Optional[str] = None) -> PackingView:
        code = normalize_code(label)
        if not code:
            raise ValidationFailed("shipping label is required")

        orders = list(
            (
                await self.session.execute(
                    select(Order)
                    .where(Order.shipping_label == code, Order.status == OrderStatus.DISPATCHED.value)
                    .order_by(Order.id)
                )
            ).scalars()
        )
        if not orders:
            raise self._reject(NotFound(f"no dispatched order with label {code}", error_code="order_not_found"))
        if len(orders) > 1:
            raise self._reject(
                MultipleOrdersMatched(
                    f"{len(orders)} dispatched orders share label {code}",
                    details=[{"type": "state", "reason": o.order_number} for o in orders],
                )
            )

        order = orders[0]
        order_id = order.id
        existing = await self._session_id_for_order(order_id)
        if existing is not None:
            # 已持久化的计数保留，继续上次的会话
            return await self._resume(existing)

        progress = PackingProgress.start(order.items or [], order.dispatched_barcodes or [])
        row = PackingSession(
            order_id=order_id,
            state=progress.state.value,
            scanned=list(progress.scanned),
            operator=operator,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            # 另一个工位同时为该订单开了会话（order_id 唯一），接着用那一个
            await self.session.rollback()
            existing = await self._session_id_for_order(order_id)
            if existing is None:
                raise
            log.info("packing session for order %s opened concurrently, resuming %s", order_id, existing)
            return await self._resume(existing)
        log.info("packing session %s opened for order %s by %s", row.id, order.order_number, operator)
        return self._view(row, order, progress)

    async def _session_id_for_order(self, order_id: int) -> Optional[int]:
        return (
            await self.session.execute(select(PackingSession.id).where(PackingSession.order_id == order_id))
        ).scalar_one_or_none()

    async def _resume(self, session_id: int) -> PackingView:
        row, order, progress = await self._load(session_id)
        return self._view(row, order, progress)

    async def scan_item(self, session_id: int, code: str) -> PackingView:
        row, order, progress = await self._load(session_id)
        c = normalize_code(code)
        resolved = await self.resolver.resolve(c) if c in progress.dispatched_barcodes else None
        try:
            progress, idx = progress.scan(c, resolved)
        except ServiceError as exc:
            raise self._reject(exc)
        await self._save(row, progress)
        return self._view(row, order, progress, idx)

    async def confirm_one(self, session_id: int, line_index: int) -> PackingView:
        """无条码商品手工确认 1 件，守卫与扫码相同。"""
        row, order, progress = await self._load(session_id)
        try:
            progress = progress.count_line(int(line_index))
        except ServiceError as exc:
            raise self._reject(exc)
        await self._save(row, progress)
        return self._view(row, order, progress, int(line_index))

    async def confirm(self, session_id: int, *, operator: Optional[str] = None) -> PackingView:
        row, order, progress = await self._load(session_id)
        try:
            progress = progress.confirm()
        except ServiceError as exc:
            raise self._reject(exc)
        if order.status != OrderStatus.DISPATCHED.value:
            raise self._reject(InvalidTransition(f"order {order.order_number} is {order.status}, not DISPATCHED"))

        order.status = OrderStatus.PACKED.value
        order.packed_by = operator
        order.packed_at = utcnow()
        EventLogWriter.write(
            self.session,
            action=EventAction.ORDER_PACKED,
            operator=operator,
            ref=order.order_number,
            quantity=sum(progress.scanned),
            details="scan verified",
        )
        await self.session.delete(row)
        try:
            await self.session.commit()
        except StaleDataError as exc:
            await self.session.rollback()
            raise self._reject(ConcurrentScan("packing session was changed by another scan, rescan")) from exc
        log.info("order %s packed by %s", order.order_number, operator)
        return self._view(None, order, progress)

    async def cancel(self, session_id: int) -> PackingView:
        row, order, progress = await self._load(session_id)
        progress = progress.cancel()
        await self.session.delete(row)
        try:
            await self.session.commit()
        except StaleDataError as exc:
            await self.session.rollback()
            raise ConcurrentScan("packing session was changed by another scan") from exc
        return self._view(None, order, progress)

    async def mark_packed_manual(self, order_id: int, *, operator: Optional[str] = None) -> Order:
        """不走扫码的手工打包（单独记 ORDER_PACKED_MANUAL）。"""
        order = await self._order(order_id)
        if order.status != OrderStatus.DISPATCHED.value:
            raise InvalidTransition(f"order {order.order_number} is {order.status}, not DISPATCHED")
        open_session = (
            await self.session.execute(select(PackingSession.id).where(PackingSession.order_id == order_id))
        ).scalar_one_or_none()
        if open_session is not None:
            raise InvalidTransition(
                f"order {order.order_number} has an open packing session {open_session}",
                details=[{"type": "state", "reason": "scan_session_open"}],
            )

        order.status = OrderStatus.PACKED.value
        order.packed_by = operator
        order.packed_at = utcnow()
        EventLogWriter.write(
            self.session,
            action=EventAction.ORDER_PACKED_MANUAL,
            operator=operator,
            ref=order.order_number,
            details="manual, not scan verified",
        )
        await self.session.commit()
        return order

    async def open_sessions(self) -> List[PackingSession]:
        return list((await self.session.execute(select(PackingSession).order_by(PackingSession.id))).scalars())
