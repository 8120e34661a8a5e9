# stockline/services/picking_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.core.clock import utcnow
from stockline.metrics import observe_scan_rejection
from stockline.models.enums import EventAction, PickingListStatus, PickingTaskStatus
from stockline.models.picking import PickingList, PickingTask
from stockline.services.barcode import BarcodeResolver, DbBarcodeResolver, normalize_code
from stockline.services.errors import (
    InsufficientStock,
    NoListSelected,
    NoMatchingTask,
    NotFound,
    QuantityExceeded,
    ServiceError,
    UnknownBarcode,
    ValidationFailed,
)
from stockline.services.event_log import EventLogWriter
from stockline.services.inventory_service import InventoryService, normalize_sku
from stockline.services.reservation_service import ReservationService, sum_active_reserved, sum_on_hand

log = logging.getLogger("stockline.picking")


@dataclass(frozen=True)
class TaskSpec:
    sku: str
    required_quantity: int
    item_name: Optional[str] = None
    order_id: Optional[int] = None


@dataclass
class PickOutcome:
    task: PickingTask
    task_completed: bool
    list_done: bool


class PickingService:
    """
    拣货单 + 扫码拣货。

    - 一次扫码 = 一个事务（本服务自己 commit）
    - 计数用条件 UPDATE：picked_quantity < required_quantity 才 +1，数据库约束兜底
    - 任务拣满的那一次：释放订单占用 + 扣减在手量，和计数在同一事务
    - 扣减会让在手量低于其它订单的占用时整次扫码拒绝（InsufficientStock），不落任何变更
    """

    def __init__(self, session: AsyncSession, *, resolver: Optional[BarcodeResolver] = None) -> None:
        self.session = session
        self.resolver = resolver or DbBarcodeResolver(session)

    # ---------------- 拣货单 ----------------

    async def create_list(
        self, name: str, tasks: Sequence[TaskSpec], *, created_by: Optional[str] = None
    ) -> PickingList:
        if not (name or "").strip():
            raise ValidationFailed("picking list name is required")
        if not tasks:
            raise ValidationFailed("picking list needs at least one task")

        for i, spec in enumerate(tasks):
            if not normalize_sku(spec.sku) or int(spec.required_quantity) <= 0:
                raise ValidationFailed(
                    "each task needs a sku and a positive required quantity",
                    details=[{"type": "validation", "path": f"tasks[{i}]"}],
                )

        plist = PickingList(name=name.strip(), status=PickingListStatus.PENDING.value, created_by=created_by)
        self.session.add(plist)
        await self.session.flush()

        for spec in tasks:
            self.session.add(
                PickingTask(
                    picking_list_id=plist.id,
                    order_id=spec.order_id,
                    sku=normalize_sku(spec.sku),
                    item_name=spec.item_name,
                    required_quantity=int(spec.required_quantity),
                    picked_quantity=0,
                    status=PickingTaskStatus.PENDING.value,
                )
            )
            # 逐条 flush，保证 id 与创建顺序一致
            await self.session.flush()

        EventLogWriter.write(
            self.session,
            action=EventAction.PICKING_LIST_CREATED,
            operator=created_by,
            ref=str(plist.id),
            details=f"{plist.name}: {len(tasks)} tasks",
        )
        await self.session.commit()
        return await self.get_list(plist.id)

    async def get_list(self, list_id: int) -> PickingList:
        plist = (
            await self.session.execute(
                select(PickingList)
                .where(PickingList.id == list_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if plist is None:
            raise NotFound(f"picking list {list_id} not found", error_code="picking_list_not_found")
        return plist

    async def list_lists(self) -> List[PickingList]:
        rows = (
            await self.session.execute(
                select(PickingList)
                .order_by(PickingList.created_at.desc(), PickingList.id.desc())
                .execution_options(populate_existing=True)
            )
        ).scalars()
        return list(rows)

    async def delete_list(self, list_id: int, *, operator: Optional[str] = None) -> None:
        plist = await self.get_list(list_id)
        name = plist.name
        await self.session.delete(plist)
        EventLogWriter.write(
            self.session,
            action=EventAction.PICKING_LIST_DELETED,
            operator=operator,
            ref=str(list_id),
            details=name,
        )
        await self.session.commit()

    async def is_done(self, list_id: int) -> bool:
        plist = await self.get_list(list_id)
        return all(t.picked_quantity >= t.required_quantity for t in plist.tasks)

    # ---------------- 扫码 ----------------

    def _reject(self, exc: ServiceError) -> ServiceError:
        observe_scan_rejection("picking", exc.error_code)
        return exc

    async def _tasks_for_sku(self, list_id: int, sku: str) -> List[PickingTask]:
        rows = (
            await self.session.execute(
                select(PickingTask)
                .where(PickingTask.picking_list_id == list_id, PickingTask.sku == sku)
                .order_by(PickingTask.created_at, PickingTask.id)
                .execution_options(populate_existing=True)
            )
        ).scalars()
        return list(rows)

    async def _load_task(self, task_id: int) -> Optional[PickingTask]:
        return (
            await self.session.execute(
                select(PickingTask)
                .where(PickingTask.id == task_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

    async def _increment(self, task_id: int) -> bool:
        res = await self.session.execute(
            update(PickingTask)
            .where(
                PickingTask.id == task_id,
                PickingTask.status == PickingTaskStatus.PENDING.value,
                PickingTask.picked_quantity < PickingTask.required_quantity,
            )
            .values(picked_quantity=PickingTask.picked_quantity + 1)
            .execution_options(synchronize_session=False)
        )
        return (res.rowcount or 0) == 1

    async def _complete_if_full(self, task: PickingTask) -> bool:
        """
        拣满 → COMPLETED。条件 UPDATE 保证只有一次扫码执行"提交数量"。
        """
        now = utcnow()
        res = await self.session.execute(
            update(PickingTask)
            .where(
                PickingTask.id == task.id,
                PickingTask.status == PickingTaskStatus.PENDING.value,
                PickingTask.picked_quantity >= PickingTask.required_quantity,
            )
            .values(status=PickingTaskStatus.COMPLETED.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if (res.rowcount or 0) == 0:
            return False

        if task.order_id is not None:
            cleared = await ReservationService(self.session).clear_for_order(
                task.order_id, task.sku, reason="picked"
            )
            log.debug("task %s cleared %d reservations of order %s", task.id, cleared, task.order_id)

        # 扣减后剩余在手量仍须覆盖其它订单的 ACTIVE 占用
        required = int(task.required_quantity)
        on_hand = await sum_on_hand(self.session, task.sku)
        others = await sum_active_reserved(self.session, task.sku)
        if others > 0 and on_hand - required < others:
            raise InsufficientStock(
                f"picking {required} x {task.sku} would leave on_hand={on_hand - required} "
                f"below {others} reserved by other orders",
                details=[
                    {
                        "type": "shortage",
                        "sku_code": task.sku,
                        "required_qty": required,
                        "available_qty": max(0, on_hand - others),
                        "short_qty": others + required - on_hand,
                    }
                ],
            )
        await InventoryService(self.session).deduct(task.sku, required)
        return True

    async def _refresh_list_status(self, list_id: int) -> bool:
        tasks = (
            await self.session.execute(
                select(PickingTask.picked_quantity, PickingTask.required_quantity).where(
                    PickingTask.picking_list_id == list_id
                )
            )
        ).all()
        done = all(int(p) >= int(r) for p, r in tasks)
        status = PickingListStatus.COMPLETED if done else PickingListStatus.IN_PROGRESS
        await self.session.execute(
            update(PickingList)
            .where(PickingList.id == list_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return done

    async def _count_one(self, task_id: int, list_id: int, action: EventAction, operator: Optional[str], ref: str) -> PickOutcome:
        task = await self._load_task(task_id)
        if task is None:
            raise NotFound(f"picking task {task_id} not found", error_code="picking_task_not_found")
        try:
            completed = await self._complete_if_full(task)
        except InsufficientStock as exc:
            # 连同本次 +1 和占用释放一起撤销
            await self.session.rollback()
            raise self._reject(exc)
        list_done = await self._refresh_list_status(list_id)

        EventLogWriter.write(
            self.session,
            action=action,
            operator=operator,
            ref=ref,
            sku=task.sku,
            quantity=1,
            details=f"list={list_id} task={task_id} {task.picked_quantity}/{task.required_quantity}",
        )
        await self.session.commit()

        task = await self._load_task(task_id) or task
        return PickOutcome(task=task, task_completed=completed, list_done=list_done)

    async def scan(self, list_id: Optional[int], barcode: str, *, operator: Optional[str] = None) -> PickOutcome:
        if list_id is None:
            raise self._reject(NoListSelected("select a picking list before scanning"))

        await self.get_list(list_id)

        code = normalize_code(barcode)
        sku = await self.resolver.resolve(code) if code else None
        if not sku:
            raise self._reject(UnknownBarcode(f"barcode {code!r} is not known"))
        sku = normalize_sku(sku)

        tasks = await self._tasks_for_sku(list_id, sku)
        if not tasks:
            raise self._reject(NoMatchingTask(f"no task for {sku} in picking list {list_id}"))

        for task in tasks:
            if task.status != PickingTaskStatus.PENDING.value or task.is_full:
                continue
            # 并发下目标可能刚被拣满，条件 UPDATE 失败就顺延到下一条
            if await self._increment(task.id):
                log.info("pick scan list=%s task=%s sku=%s by=%s", list_id, task.id, sku, operator)
                return await self._count_one(task.id, list_id, EventAction.PICK_ITEM, operator, code)

        raise self._reject(
            QuantityExceeded(
                f"all tasks for {sku} in picking list {list_id} are already fully picked",
                details=[
                    {
                        "type": "state",
                        "sku_code": sku,
                        "required_qty": sum(t.required_quantity for t in tasks),
                        "picked_qty": sum(t.picked_quantity for t in tasks),
                    }
                ],
            )
        )

    async def manual_collect(self, task_id: int, *, operator: Optional[str] = None) -> PickOutcome:
        """没有条码可扫时按任务手工计 1 件，守卫与扫码相同。"""
        task = await self._load_task(task_id)
        if task is None:
            raise NotFound(f"picking task {task_id} not found", error_code="picking_task_not_found")

        list_id = task.picking_list_id
        if not await self._increment(task_id):
            raise self._reject(
                QuantityExceeded(
                    f"task {task_id} is already fully picked",
                    details=[
                        {
                            "type": "state",
                            "sku_code": task.sku,
                            "required_qty": task.required_quantity,
                            "picked_qty": task.picked_quantity,
                        }
                    ],
                )
            )
        log.info("manual collect list=%s task=%s by=%s", list_id, task_id, operator)
        return await self._count_one(task_id, list_id, EventAction.PICK_ITEM_MANUAL, operator, f"task:{task_id}")
