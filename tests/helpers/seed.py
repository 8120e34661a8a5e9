# tests/helpers/seed.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.channel import ChannelAccount, ChannelSkuBuffer
from stockline.models.external_index import ExternalInventoryIndex
from stockline.models.inventory import InventoryRecord, ItemBarcode
from stockline.models.order import Order


async def seed_stock(session: AsyncSession, sku: str, qty: int, location: str = "A-01") -> None:
    session.add(InventoryRecord(sku=sku, location=location, on_hand_quantity=qty))
    await session.commit()


async def seed_barcode(session: AsyncSession, barcode: str, sku: str) -> None:
    session.add(ItemBarcode(barcode=barcode, sku=sku))
    await session.commit()


async def seed_account(
    session: AsyncSession,
    account_id: str = "ebay-1",
    *,
    enabled: bool = True,
    use_orders: bool = True,
    use_inventory: bool = True,
) -> ChannelAccount:
    acc = ChannelAccount(
        id=account_id,
        platform="ebay",
        name=account_id,
        enabled=enabled,
        use_orders=use_orders,
        use_inventory=use_inventory,
    )
    session.add(acc)
    await session.commit()
    return acc


async def seed_buffer(session: AsyncSession, account_id: str, sku: str, buffer: int) -> None:
    session.add(ChannelSkuBuffer(account_id=account_id, sku=sku, buffer=buffer))
    await session.commit()


async def seed_mapping(session: AsyncSession, account_id: str, external_id: str, sku: Optional[str]) -> None:
    session.add(ExternalInventoryIndex(account_id=account_id, external_id=external_id, sku=sku))
    await session.commit()


async def seed_order(
    session: AsyncSession,
    order_number: str,
    items: Optional[list] = None,
    *,
    status: str = "PENDING",
    shipping_label: Optional[str] = None,
    dispatched_barcodes: Optional[list] = None,
) -> Order:
    order = Order(
        order_number=order_number,
        status=status,
        items=items or [],
        shipping_label=shipping_label,
        dispatched_barcodes=dispatched_barcodes,
    )
    session.add(order)
    await session.commit()
    return order
