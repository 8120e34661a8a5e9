# tests/services/test_barcode.py
from __future__ import annotations

import pytest

from stockline.services.barcode import DbBarcodeResolver, normalize_code
from tests.helpers.seed import seed_barcode, seed_stock

pytestmark = pytest.mark.asyncio


async def test_barcode_table_wins_over_sku_lookup(session):
    await seed_stock(session, "A101", 1)
    await seed_barcode(session, "A101", "B202")
    assert await DbBarcodeResolver(session).resolve("A101") == "B202"


async def test_sku_is_resolved_case_insensitively(session):
    await seed_stock(session, "C303", 1)
    resolver = DbBarcodeResolver(session)
    assert await resolver.resolve(" c303 ") == "C303"
    assert await resolver.resolve("unknown") is None
    assert await resolver.resolve("   ") is None


async def test_normalize_code_strips_only():
    assert normalize_code("  ab-1 ") == "ab-1"
    assert normalize_code(None) == ""
