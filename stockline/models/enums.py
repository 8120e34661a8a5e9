# stockline/models/enums.py
from __future__ import annotations

from enum import StrEnum


class ReservationStatus(StrEnum):
    ACTIVE = "ACTIVE"
    CLEARED = "CLEARED"


class OrderStatus(StrEnum):
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    PACKED = "PACKED"
    CANCELLED = "CANCELLED"


class SyncKind(StrEnum):
    """
    渠道同步的互斥维度：同一 (account, kind) 同时只允许一个 RUNNING。
    """

    ORDERS = "ORDERS"
    INVENTORY = "INVENTORY"
    PUSH = "PUSH"


class SyncLockStatus(StrEnum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class ImportRunStatus(StrEnum):
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ImportSourceType(StrEnum):
    EBAY_ORDERS = "EBAY_ORDERS"
    EBAY_INVENTORY = "EBAY_INVENTORY"
    EBAY_INVENTORY_PUSH = "EBAY_INVENTORY_PUSH"


class PickingTaskStatus(StrEnum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class PickingListStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class PackingState(StrEnum):
    """
    打包扫码状态机：

    VIEWING → LABEL_SCANNED → PACKING → CONFIRMING → PACKED
                                            └──────→ CANCELLED → VIEWING
    """

    VIEWING = "VIEWING"
    LABEL_SCANNED = "LABEL_SCANNED"
    PACKING = "PACKING"
    CONFIRMING = "CONFIRMING"
    PACKED = "PACKED"
    CANCELLED = "CANCELLED"


class EventAction(StrEnum):
    STOCK_IN = "STOCK_IN"
    PLACEMENT = "PLACEMENT"
    PICK_ITEM = "PICK_ITEM"
    PICK_ITEM_MANUAL = "PICK_ITEM_MANUAL"
    PICKING_LIST_CREATED = "PICKING_LIST_CREATED"
    PICKING_LIST_DELETED = "PICKING_LIST_DELETED"
    ORDER_DISPATCHED = "ORDER_DISPATCHED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_PACKED = "ORDER_PACKED"
    ORDER_PACKED_MANUAL = "ORDER_PACKED_MANUAL"
