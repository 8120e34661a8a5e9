# stockline/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("stockline.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False

MODEL_MODULES = [
    "stockline.models.inventory",
    "stockline.models.reservation",
    "stockline.models.channel",
    "stockline.models.external_index",
    "stockline.models.import_run",
    "stockline.models.order",
    "stockline.models.packing",
    "stockline.models.picking",
    "stockline.models.event_log",
]


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射，create_all 之前调用。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(MODEL_MODULES))
