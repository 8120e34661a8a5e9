# stockline/services/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """
    领域层错误基类：服务层只抛这些，HTTP 层统一翻译成 Problem。

    - error_code: 稳定的机器可读码（前端 / 扫码终端按它分支）
    - message:    给人看的短句
    - details:    可选的行内定位信息
    """

    http_status: int = 400
    default_code: str = "service_error"

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or []


class NotFound(ServiceError):
    http_status = 404
    default_code = "not_found"


class Conflict(ServiceError):
    http_status = 409
    default_code = "conflict"


class ValidationFailed(ServiceError):
    http_status = 422
    default_code = "validation_failed"


class UpstreamFailure(ServiceError):
    http_status = 502
    default_code = "upstream_failure"


# ---------- 扫码 ----------


class NoListSelected(ValidationFailed):
    default_code = "no_list_selected"


class UnknownBarcode(NotFound):
    default_code = "unknown_barcode"


class NoMatchingTask(NotFound):
    default_code = "no_matching_task"


class QuantityExceeded(Conflict):
    default_code = "quantity_exceeded"


class ItemNotInOrder(NotFound):
    default_code = "item_not_in_order"


class MultipleOrdersMatched(Conflict):
    default_code = "multiple_orders_matched"


class InvalidTransition(Conflict):
    default_code = "invalid_transition"


class ConcurrentScan(Conflict):
    default_code = "concurrent_scan"


# ---------- 占用 / 同步 ----------


class InsufficientStock(Conflict):
    default_code = "insufficient_stock"


class SyncAlreadyRunning(Conflict):
    default_code = "sync_already_running"


class TokenUnavailable(UpstreamFailure):
    default_code = "token_unavailable"
