# stockline/services/barcode.py
from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.inventory import InventoryRecord, ItemBarcode


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip()


class BarcodeResolver(Protocol):
    async def resolve(self, code: str) -> Optional[str]:
        ...


class DbBarcodeResolver:
    """
    条码 → SKU：
    1) item_barcodes 精确命中
    2) 扫到的就是 SKU 本身（库存表里存在该 SKU，大小写不敏感）
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def resolve(self, code: str) -> Optional[str]:
        c = normalize_code(code)
        if not c:
            return None

        sku = (
            await self.session.execute(select(ItemBarcode.sku).where(ItemBarcode.barcode == c))
        ).scalar_one_or_none()
        if sku:
            return str(sku)

        hit = (
            await self.session.execute(
                select(InventoryRecord.sku).where(InventoryRecord.sku == c.upper()).limit(1)
            )
        ).scalar_one_or_none()
        return str(hit) if hit else None
