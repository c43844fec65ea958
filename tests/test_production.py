from __future__ import annotations

import pytest

from conftest import make_production
from lstracker.actions import AddDeliveryEntry
from lstracker.models import DeliveryEntry
from lstracker.services.production import (
    add_production_entries,
    delete_production_entry,
    edit_production_entry,
    machine_number_ok,
)


@pytest.mark.parametrize("value,ok", [("1", True), ("12", True), ("13", False), ("0", False), ("x", False)])
def test_machine_number_ok(value, ok):
    assert machine_number_ok(value, 12) is ok


def test_add_reports_invalid_and_duplicates(seeded_store):
    result = add_production_entries(
        seeded_store,
        [make_production("3000", "4"), make_production("3001", "40"), make_production("1001"), make_production("3000")],
    )
    assert [e.taka_number for e in result.added] == ["3000"]
    assert [e.taka_number for e in result.invalid_machine] == ["3001"]
    assert [e.taka_number for e in result.duplicates] == ["1001", "3000"]
    assert "Taka 3001 (Machine 40)" in result.invalid_message(12)
    assert "maximum of 12" in result.invalid_message(12)


def test_edit_keeps_taka_and_checks_machine(seeded_store):
    updated = edit_production_entry(seeded_store, "1001", machine_number="6", meter="105", date="02/01/2024")
    assert updated.taka_number == "1001"
    assert seeded_store.state.unsynced_changes.production.update == (updated,)
    with pytest.raises(ValueError):
        edit_production_entry(seeded_store, "1001", machine_number="99", meter="1", date="d")
    with pytest.raises(ValueError):
        edit_production_entry(seeded_store, "404", machine_number="1", meter="1", date="d")


def test_delete_returns_cascaded_count(seeded_store):
    d = DeliveryEntry.create(
        taka_number="1001", party_name="P", lot_number="L", delivery_date="d", meter="100", machine_number="5"
    )
    seeded_store.dispatch(AddDeliveryEntry(d))
    assert delete_production_entry(seeded_store, "1001") == 1
    assert delete_production_entry(seeded_store, "1002") == 0
