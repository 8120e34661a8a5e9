# stockline/services/atp_service.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockline.models.channel import ChannelSkuBuffer
from stockline.models.enums import ReservationStatus
from stockline.models.inventory import InventoryRecord
from stockline.models.reservation import Reservation
from stockline.services.reservation_service import sum_active_reserved, sum_on_hand


@dataclass(frozen=True)
class AtpResult:
    sku: str
    on_hand: int
    reserved: int
    buffer: int
    effective: int


def effective_atp(on_hand: int, reserved: int, buffer: int) -> int:
    return max(0, int(on_hand) - int(reserved) - int(buffer))


class AtpService:
    """
    可售量（ATP）只读计算：

      effective = max(0, on_hand - reserved - buffer)

    - on_hand:  该 SKU 所有库位在手量之和
    - reserved: 该 SKU 所有 ACTIVE 占用之和（跨渠道统一扣减，不按渠道拆）
    - buffer:   渠道 × SKU 的安全缓冲；未配置取 default_buffer；不指定渠道取 0
    """

    def __init__(self, session: AsyncSession, *, default_buffer: int = 0) -> None:
        self.session = session
        self.default_buffer = int(default_buffer)

    async def _buffer(self, sku: str, account_id: Optional[str]) -> int:
        if account_id is None:
            return 0
        v = (
            await self.session.execute(
                select(ChannelSkuBuffer.buffer).where(
                    ChannelSkuBuffer.account_id == account_id,
                    ChannelSkuBuffer.sku == sku,
                )
            )
        ).scalar_one_or_none()
        return int(v) if v is not None else self.default_buffer

    async def compute_atp(self, sku: str, account_id: Optional[str] = None) -> AtpResult:
        on_hand = await sum_on_hand(self.session, sku)
        reserved = await sum_active_reserved(self.session, sku)
        buffer = await self._buffer(sku, account_id)
        return AtpResult(
            sku=sku,
            on_hand=on_hand,
            reserved=reserved,
            buffer=buffer,
            effective=effective_atp(on_hand, reserved, buffer),
        )

    async def list_atp(self) -> List[AtpResult]:
        """所有已知 SKU 的 ATP（不带渠道缓冲），按 SKU 排序。"""
        on_hand_rows = (
            await self.session.execute(
                select(InventoryRecord.sku, func.sum(InventoryRecord.on_hand_quantity)).group_by(
                    InventoryRecord.sku
                )
            )
        ).all()
        reserved_rows = (
            await self.session.execute(
                select(Reservation.sku, func.sum(Reservation.quantity))
                .where(Reservation.status == ReservationStatus.ACTIVE.value)
                .group_by(Reservation.sku)
            )
        ).all()

        on_hand: Dict[str, int] = {str(s): int(q or 0) for s, q in on_hand_rows}
        reserved: Dict[str, int] = {str(s): int(q or 0) for s, q in reserved_rows}

        out: List[AtpResult] = []
        for sku in sorted(set(on_hand) | set(reserved)):
            oh = on_hand.get(sku, 0)
            rs = reserved.get(sku, 0)
            out.append(AtpResult(sku=sku, on_hand=oh, reserved=rs, buffer=0, effective=effective_atp(oh, rs, 0)))
        return out
