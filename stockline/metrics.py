# stockline/metrics.py
from __future__ import annotations

import os
import time

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware

# 渠道同步
SYNC_RUNS = Counter("sync_runs_total", "Channel sync runs", ["kind", "status"])
SYNC_ROWS = Counter("sync_rows_total", "Channel sync rows", ["kind", "outcome"])

# 扫码被拒（拣货 / 打包）
SCAN_REJECTIONS = Counter("scan_rejections_total", "Rejected scans", ["flow", "code"])

http_requests_total = Counter("http_requests_total", "HTTP requests", ["method", "path", "code"])
http_request_duration = Histogram(
    "http_request_duration_seconds", "HTTP request duration seconds", ["method", "path"]
)


def observe_sync_run(kind: str, status: str, *, created: int = 0, updated: int = 0, skipped: int = 0, errors: int = 0) -> None:
    SYNC_RUNS.labels(kind, status).inc()
    for outcome, n in (("created", created), ("updated", updated), ("skipped", skipped), ("error", errors)):
        if n:
            SYNC_ROWS.labels(kind, outcome).inc(n)


def observe_scan_rejection(flow: str, code: str) -> None:
    SCAN_REJECTIONS.labels(flow, code).inc()


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration.labels(request.method, path).observe(elapsed)
        return response


router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """
    单进程直接导出默认 REGISTRY；
    多进程（设置了 PROMETHEUS_MULTIPROC_DIR）时用 MultiProcessCollector 合并各分片。
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
