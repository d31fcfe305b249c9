from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

from splitbill.domain.bill import BillItem
from splitbill.domain.bill_state import DEFAULT_COLORS, BillState
from splitbill.runtime.bill_storage import PERSISTED_KEYS, BillStore


def _edited_state() -> BillState:
    state = BillState(items=[BillItem("Tea", 3, Decimal("10.50")), BillItem("Cake", 1, Decimal("30"))])
    state.active_color = DEFAULT_COLORS[1]
    state.allocate_one(0)
    state.increment_tip(Decimal("4.25"))
    state.bill_text = "Tea 3 10.50 31.50"
    state.bill_image = "data:image/jpeg;base64,/9j/AA=="
    state.num_persons = 3
    state.split_tip_evenly = False
    return state


def test_save_then_load_restores_persisted_fields(tmp_path: Path) -> None:
    BillStore(tmp_path).save(_edited_state())

    loaded = BillStore(tmp_path).load()

    assert [(i.description, i.quantity, i.unit_price, i.color_allocations) for i in loaded.items] == [
        ("Tea", 2, Decimal("10.50"), {DEFAULT_COLORS[1]: 1}),
        ("Cake", 1, Decimal("30"), {}),
    ]
    assert loaded.tip_allocations == {DEFAULT_COLORS[1]: Decimal("4.25")}
    assert loaded.bill_text == "Tea 3 10.50 31.50"
    assert loaded.bill_image == "data:image/jpeg;base64,/9j/AA=="
    assert loaded.active_color == DEFAULT_COLORS[1]
    assert loaded.num_persons == 3
    assert loaded.split_charges_evenly is True
    assert loaded.split_tip_evenly is False


def test_only_changed_keys_are_written(tmp_path: Path) -> None:
    store = BillStore(tmp_path)
    state = BillState()

    assert store.save(state) == list(PERSISTED_KEYS)
    assert store.save(state) == []

    state.num_persons = 2
    assert store.save(state) == ["numPersons"]


def test_fresh_store_does_not_rewrite_identical_files(tmp_path: Path) -> None:
    state = _edited_state()
    BillStore(tmp_path).save(state)

    assert BillStore(tmp_path).save(state) == []


def test_files_are_json_named_by_key(tmp_path: Path) -> None:
    BillStore(tmp_path).save(_edited_state())

    assert sorted(p.name for p in tmp_path.iterdir()) == sorted(f"{key}.json" for key in PERSISTED_KEYS)
    assert json.loads((tmp_path / "numPersons.json").read_text(encoding="utf-8")) == 3
    assert json.loads((tmp_path / "tipAllocations.json").read_text(encoding="utf-8")) == {DEFAULT_COLORS[1]: "4.25"}


def test_corrupt_values_fall_back_to_defaults(tmp_path: Path) -> None:
    store = BillStore(tmp_path)
    store.save(_edited_state())
    (tmp_path / "items.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "splitTipEvenly.json").write_text('"yes"', encoding="utf-8")

    loaded = BillStore(tmp_path).load()

    assert loaded.items == []
    assert loaded.split_tip_evenly is True
    assert loaded.num_persons == 3


def test_unknown_active_color_resets_to_first_color(tmp_path: Path) -> None:
    (tmp_path / "userColors.json").write_text('["#111111", "#222222"]', encoding="utf-8")
    (tmp_path / "activeColor.json").write_text('"#999999"', encoding="utf-8")

    loaded = BillStore(tmp_path).load()

    assert loaded.user_colors == ["#111111", "#222222"]
    assert loaded.active_color == "#111111"


def test_missing_directory_loads_defaults(tmp_path: Path) -> None:
    loaded = BillStore(tmp_path / "missing").load()
    assert loaded.items == []
    assert loaded.user_colors == list(DEFAULT_COLORS)


def test_clear_removes_files(tmp_path: Path) -> None:
    store = BillStore(tmp_path)
    store.save(_edited_state())

    store.clear()

    assert list(tmp_path.iterdir()) == []
    assert store.save(BillState()) == list(PERSISTED_KEYS)
