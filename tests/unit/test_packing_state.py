# tests/unit/test_packing_state.py
from __future__ import annotations

import pytest

from stockline.models.enums import PackingState
from stockline.services.errors import InvalidTransition, ItemNotInOrder, QuantityExceeded
from stockline.services.packing_state import PackingProgress, lines_from_items


def _progress(items, dispatched=None):
    return PackingProgress.start(items, dispatched)


def test_lines_are_normalized():
    lines = lines_from_items([{"sku": " a1 ", "quantity": 0, "barcode": " ", "itemName": "Mug"}])
    assert lines[0].sku == "A1"
    assert lines[0].quantity == 1
    assert lines[0].barcode is None
    assert lines[0].item_name == "Mug"


def test_scan_walks_the_state_machine():
    p = _progress([{"sku": "A101", "quantity": 2, "barcode": "B1"}])
    assert p.state == PackingState.LABEL_SCANNED

    p, idx = p.scan("B1")
    assert (idx, p.state, p.scanned) == (0, PackingState.PACKING, (1,))
    p, _ = p.scan("B1")
    assert p.state == PackingState.CONFIRMING
    assert p.is_complete

    with pytest.raises(QuantityExceeded):
        p.scan("B1")

    p = p.confirm()
    assert p.state == PackingState.PACKED
    with pytest.raises(InvalidTransition):
        p.scan("B1")
    with pytest.raises(InvalidTransition):
        p.cancel()


def test_same_sku_on_two_lines_fills_first_open_line():
    p = _progress([{"sku": "A101", "quantity": 1}, {"sku": "A101", "quantity": 1}])
    p, first = p.scan("A101")
    p, second = p.scan("a101")
    assert (first, second) == (0, 1)
    assert p.state == PackingState.CONFIRMING


def test_dispatched_barcode_needs_matching_resolution():
    p = _progress([{"sku": "C303", "quantity": 1}], dispatched=["999"])
    with pytest.raises(ItemNotInOrder):
        p.scan("999", "A101")
    with pytest.raises(ItemNotInOrder):
        p.scan("888", "C303")
    p, idx = p.scan("999", "c303")
    assert idx == 0


def test_line_barcode_must_be_among_dispatched_codes():
    p = _progress([{"sku": "A101", "quantity": 1, "barcode": "B1"}], dispatched=["B9"])
    with pytest.raises(ItemNotInOrder):
        p.scan("B1", "A101")
    assert p.scanned == (0,)
    assert p.state == PackingState.LABEL_SCANNED

    p, idx = p.scan("B9", "A101")
    assert idx == 0
    assert p.state == PackingState.CONFIRMING


def test_rejected_scan_leaves_progress_untouched():
    p = _progress([{"sku": "A101", "quantity": 1}])
    with pytest.raises(ItemNotInOrder):
        p.scan("ZZZ")
    assert p.scanned == (0,)
    assert p.state == PackingState.LABEL_SCANNED


def test_confirm_requires_confirming_and_cancel_resets():
    p = _progress([{"sku": "A101", "quantity": 2}])
    p, _ = p.scan("A101")
    with pytest.raises(InvalidTransition):
        p.confirm()

    reset = p.cancel()
    assert reset.state == PackingState.VIEWING
    assert reset.scanned == (0,)
    with pytest.raises(InvalidTransition):
        reset.scan("A101")
