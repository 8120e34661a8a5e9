# stockline/models/__init__.py
from stockline.models.channel import ChannelAccount, ChannelSkuBuffer, ChannelToken, SyncLock
from stockline.models.event_log import EventLog
from stockline.models.external_index import ExternalInventoryIndex, ExternalOrderIndex
from stockline.models.import_run import ImportRun
from stockline.models.inventory import InventoryRecord, ItemBarcode, PendingPlacement
from stockline.models.order import Order
from stockline.models.packing import PackingSession
from stockline.models.picking import PickingList, PickingTask
from stockline.models.reservation import Reservation

__all__ = [
    "ChannelAccount",
    "ChannelSkuBuffer",
    "ChannelToken",
    "EventLog",
    "ExternalInventoryIndex",
    "ExternalOrderIndex",
    "ImportRun",
    "InventoryRecord",
    "ItemBarcode",
    "Order",
    "PackingSession",
    "PendingPlacement",
    "PickingList",
    "PickingTask",
    "Reservation",
    "SyncLock",
]
