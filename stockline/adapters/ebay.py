# stockline/adapters/ebay.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from stockline.adapters.base import (
    ExternalCatalogItem,
    ExternalLine,
    ExternalOrder,
    PushResult,
)
from stockline.core.clock import UTC

log = logging.getLogger("stockline.adapters.ebay")

EBAY_API_BASES = {
    "production": "https://api.ebay.com",
    "sandbox": "https://api.sandbox.ebay.com",
}

ORDERS_PAGE_SIZE = 200
INVENTORY_PAGE_SIZE = 100
# 防止平台分页异常时无限翻页
MAX_PAGES = 50


class PageLimitExceeded(RuntimeError):
    """翻到 MAX_PAGES 还有下一页：结果不完整，调用方不能当作拉取成功。"""


def api_base_for(env: Optional[str]) -> str:
    e = (env or "production").lower()
    return EBAY_API_BASES["sandbox"] if e == "sandbox" else EBAY_API_BASES["production"]


def _format_since(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    return since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + f"{since.microsecond // 1000:03d}Z"


def _parse_ts(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def _order_from_payload(data: Dict[str, Any]) -> ExternalOrder:
    """eBay Fulfillment API 的 order → ExternalOrder。缺 SKU 的行回落到 legacyItemId。"""
    lines: List[ExternalLine] = []
    for li in data.get("lineItems") or []:
        sku = li.get("sku") or li.get("legacyItemId") or li.get("lineItemId")
        if not sku:
            continue
        lines.append(
            ExternalLine(
                sku=str(sku).strip().upper(),
                quantity=max(1, int(li.get("quantity") or 1)),
                item_name=li.get("title"),
            )
        )

    buyer = data.get("buyer") or {}
    ship_to: Dict[str, Any] = {}
    instructions = data.get("fulfillmentStartInstructions") or []
    if instructions:
        ship_to = ((instructions[0] or {}).get("shippingStep") or {}).get("shipTo") or {}

    external_id = str(data.get("orderId") or data.get("legacyOrderId") or "")
    return ExternalOrder(
        external_id=external_id,
        order_number=str(data.get("legacyOrderId") or external_id),
        items=lines,
        buyer_username=buyer.get("username"),
        buyer_name=ship_to.get("fullName"),
        postal_code=(ship_to.get("contactAddress") or {}).get("postalCode"),
        order_date=_parse_ts(data.get("creationDate")),
        modified_at=_parse_ts(data.get("lastModifiedDate")),
    )


def _catalog_item_from_payload(data: Dict[str, Any]) -> Optional[ExternalCatalogItem]:
    sku = data.get("sku")
    if not sku:
        return None
    qty = ((data.get("availability") or {}).get("shipToLocationAvailability") or {}).get("quantity")
    return ExternalCatalogItem(
        external_id=str(sku),
        sku=str(sku).strip().upper(),
        quantity=int(qty) if qty is not None else None,
        name=(data.get("product") or {}).get("title"),
    )


class EbayClient:
    """
    eBay Sell API 的最小客户端：

    - pull_orders:    Fulfillment API，按 lastmodifieddate 过滤
    - pull_inventory: Inventory API 全量翻页（平台不支持按修改时间过滤，since 只记日志）
    - push_quantity:  PUT inventory_item/{sku}，只改 shipToLocationAvailability.quantity

    每次调用都新建 httpx.AsyncClient，超时取 SyncConfig.http_timeout。
    """

    def __init__(
        self,
        *,
        access_token: str,
        api_env: str = "production",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = api_base_for(api_env)
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    async def pull_orders(self, since: Optional[datetime]) -> Sequence[ExternalOrder]:
        params: Dict[str, Any] = {"limit": ORDERS_PAGE_SIZE, "offset": 0}
        if since is not None:
            params["filter"] = f"lastmodifieddate:[{_format_since(since)}..]"

        out: List[ExternalOrder] = []
        async with self._client() as client:
            for _ in range(MAX_PAGES):
                resp = await client.get("/sell/fulfillment/v1/order", params=params)
                resp.raise_for_status()
                data = resp.json()
                page = data.get("orders") or []
                out.extend(_order_from_payload(o) for o in page)
                if not page or not data.get("next"):
                    break
                params["offset"] = int(params["offset"]) + len(page)
            else:
                raise PageLimitExceeded(f"orders still paging after {MAX_PAGES} pages (since={since})")

        log.info("ebay pull_orders since=%s got=%d", since, len(out))
        return out

    async def pull_inventory(self, since: Optional[datetime]) -> Sequence[ExternalCatalogItem]:
        params: Dict[str, Any] = {"limit": INVENTORY_PAGE_SIZE, "offset": 0}
        out: List[ExternalCatalogItem] = []
        async with self._client() as client:
            for _ in range(MAX_PAGES):
                resp = await client.get("/sell/inventory/v1/inventory_item", params=params)
                resp.raise_for_status()
                data = resp.json()
                page = data.get("inventoryItems") or []
                for raw in page:
                    item = _catalog_item_from_payload(raw)
                    if item is not None:
                        out.append(item)
                if not page or not data.get("next"):
                    break
                params["offset"] = int(params["offset"]) + len(page)
            else:
                raise PageLimitExceeded(f"inventory items still paging after {MAX_PAGES} pages")

        log.info("ebay pull_inventory since=%s got=%d", since, len(out))
        return out

    async def push_quantity(self, sku: str, quantity: int) -> PushResult:
        body = {"availability": {"shipToLocationAvailability": {"quantity": int(quantity)}}}
        url = f"/sell/inventory/v1/inventory_item/{quote(sku, safe='')}"
        async with self._client() as client:
            resp = await client.put(url, json=body)

        if resp.status_code >= 400:
            return PushResult(ok=False, status=resp.status_code, message=resp.text[:500])
        return PushResult(ok=True, status=resp.status_code)
