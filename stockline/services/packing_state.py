# stockline/services/packing_state.py
"""
打包扫码状态机（纯逻辑，不碰数据库）。

    VIEWING → LABEL_SCANNED → PACKING → CONFIRMING → PACKED
                                            └──────→ CANCELLED → VIEWING

计数按订单行下标记，与 Order.items 同序；订单行本身从不修改。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stockline.models.enums import PackingState
from stockline.services.errors import InvalidTransition, ItemNotInOrder, QuantityExceeded

SCANNABLE_STATES = (PackingState.LABEL_SCANNED, PackingState.PACKING, PackingState.CONFIRMING)


@dataclass(frozen=True)
class PackLine:
    sku: str
    quantity: int
    barcode: Optional[str] = None
    item_name: Optional[str] = None


def lines_from_items(items: Sequence[Dict[str, Any]]) -> Tuple[PackLine, ...]:
    out: List[PackLine] = []
    for it in items or []:
        out.append(
            PackLine(
                sku=str(it.get("sku") or "").strip().upper(),
                quantity=max(1, int(it.get("quantity") or 1)),
                barcode=(str(it["barcode"]).strip() or None) if it.get("barcode") else None,
                item_name=it.get("itemName"),
            )
        )
    return tuple(out)


@dataclass(frozen=True)
class PackingProgress:
    lines: Tuple[PackLine, ...]
    scanned: Tuple[int, ...]
    state: PackingState = PackingState.LABEL_SCANNED
    dispatched_barcodes: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def start(cls, items: Sequence[Dict[str, Any]], dispatched_barcodes: Optional[Sequence[str]] = None) -> "PackingProgress":
        lines = lines_from_items(items)
        return cls(
            lines=lines,
            scanned=tuple(0 for _ in lines),
            state=PackingState.LABEL_SCANNED,
            dispatched_barcodes=tuple(dispatched_barcodes or ()),
        )

    @property
    def is_complete(self) -> bool:
        return all(n >= ln.quantity for n, ln in zip(self.scanned, self.lines))

    def matching_lines(self, code: str, resolved_sku: Optional[str] = None) -> List[int]:
        """
        扫到的码归属到哪些行：
        - 行条码等于该码（订单记录了 dispatched_barcodes 时，该码还必须在其中）
        - 码本身就是行 SKU（无独立条码的商品）
        - 码在发货时记录的 dispatched_barcodes 里，且解析出的 SKU 是行 SKU
        """
        c = (code or "").strip()
        upper = c.upper()
        dispatched = c in self.dispatched_barcodes
        hits: List[int] = []
        for i, ln in enumerate(self.lines):
            if ln.barcode and ln.barcode == c and (dispatched or not self.dispatched_barcodes):
                hits.append(i)
            elif ln.sku == upper:
                hits.append(i)
            elif dispatched and resolved_sku and ln.sku == resolved_sku.strip().upper():
                hits.append(i)
        return hits

    def _require_scannable(self) -> None:
        if self.state not in SCANNABLE_STATES:
            raise InvalidTransition(f"cannot scan items while {self.state.value}")

    def count_line(self, index: int) -> "PackingProgress":
        """给第 index 行 +1；已满 → QuantityExceeded，原进度不变。"""
        self._require_scannable()
        if index < 0 or index >= len(self.lines):
            raise ItemNotInOrder(f"line {index} is not part of the order")
        if self.scanned[index] >= self.lines[index].quantity:
            ln = self.lines[index]
            raise QuantityExceeded(
                f"{ln.sku}: already scanned {self.scanned[index]}/{ln.quantity}",
                details=[{"type": "state", "sku_code": ln.sku, "required_qty": ln.quantity, "picked_qty": self.scanned[index]}],
            )

        scanned = list(self.scanned)
        scanned[index] += 1
        nxt = PackingProgress(
            lines=self.lines,
            scanned=tuple(scanned),
            state=PackingState.PACKING,
            dispatched_barcodes=self.dispatched_barcodes,
        )
        if nxt.is_complete:
            nxt = PackingProgress(
                lines=self.lines,
                scanned=nxt.scanned,
                state=PackingState.CONFIRMING,
                dispatched_barcodes=self.dispatched_barcodes,
            )
        return nxt

    def scan(self, code: str, resolved_sku: Optional[str] = None) -> Tuple["PackingProgress", int]:
        self._require_scannable()
        hits = self.matching_lines(code, resolved_sku)
        if not hits:
            raise ItemNotInOrder(f"{code!r} does not belong to this order")
        for i in hits:
            if self.scanned[i] < self.lines[i].quantity:
                return self.count_line(i), i
        # 全满：用第一条命中行报错
        return self.count_line(hits[0]), hits[0]

    def confirm(self) -> "PackingProgress":
        if self.state != PackingState.CONFIRMING:
            raise InvalidTransition(f"cannot confirm packing while {self.state.value}")
        return PackingProgress(
            lines=self.lines,
            scanned=self.scanned,
            state=PackingState.PACKED,
            dispatched_barcodes=self.dispatched_barcodes,
        )

    def cancel(self) -> "PackingProgress":
        """丢弃计数，回到 VIEWING（经过 CANCELLED）。"""
        if self.state == PackingState.PACKED:
            raise InvalidTransition("order is already packed")
        return PackingProgress(
            lines=self.lines,
            scanned=tuple(0 for _ in self.lines),
            state=PackingState.VIEWING,
            dispatched_barcodes=self.dispatched_barcodes,
        )
