# stockline/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockline import __version__
from stockline.api.routers.atp import router as atp_router
from stockline.api.routers.channel_sync import router as channel_sync_router
from stockline.api.routers.inventory import router as inventory_router
from stockline.api.routers.orders import router as orders_router
from stockline.api.routers.packing import router as packing_router
from stockline.api.routers.picking import router as picking_router
from stockline.core.config import get_settings
from stockline.core.logging import setup_logging
from stockline.core.scheduler import init_scheduler, shutdown_scheduler
from stockline.db.base import init_models
from stockline.db.session import close_engines
from stockline.http_problem_handlers import register_exception_handlers
from stockline.metrics import PrometheusMiddleware
from stockline.metrics import router as metrics_router

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("stockline")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_models()
    init_scheduler()
    logger.info("stockline %s started (env=%s)", __version__, settings.ENV)
    try:
        yield
    finally:
        shutdown_scheduler()
        await close_engines()


app = FastAPI(
    title="stockline",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

register_exception_handlers(app)

# 可售量
app.include_router(atp_router)

# 渠道同步 / 导入历史
app.include_router(channel_sync_router)

# 入库 / 上架
app.include_router(inventory_router)

# 订单 / 拣货 / 打包
app.include_router(orders_router)
app.include_router(picking_router)
app.include_router(packing_router)

# 观测
app.include_router(metrics_router)


@app.get("/")
async def root():
    return {"name": "stockline", "version": __version__}


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
