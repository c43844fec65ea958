from __future__ import annotations

from conftest import make_production
from lstracker.actions import AddDeliveryEntry, AddProductionEntries, DeleteProductionEntry, InitializeState
from lstracker.models import AppState, DeliveryEntry, TakaRange
from lstracker.services.reconciliation import (
    DeliveryCandidate,
    ResolvedDelivery,
    ValidationError,
    ValidationErrorKind,
    cancel_delivery,
    filter_by_range,
    next_tp_number,
    submit_deliveries,
    validate,
)


def _seed_2417(store):
    store.dispatch(
        AddProductionEntries((make_production("2417", machine="10", meter="120", date="15/8/25"),), remote=True)
    )


def test_valid_delivery_resolves_machine_number(store):
    _seed_2417(store)
    result = submit_deliveries(store, [DeliveryCandidate("2417", "120")], party_name="P", lot_number="L")
    assert result.ok
    [entry] = result.entries
    assert entry.machine_number == "10"
    assert entry.tp_number is None
    assert store.state.delivery_entries == (entry,)
    assert store.state.unsynced_changes.delivery.add == (entry,)


def test_meter_mismatch_creates_nothing(store):
    _seed_2417(store)
    result = submit_deliveries(store, [DeliveryCandidate("2417", "121")], party_name="P", lot_number="L")
    assert not result.ok
    assert [e.kind for e in result.errors] == [ValidationErrorKind.METER_MISMATCH]
    assert result.errors[0].description == "Meter not match (taka 2417)"
    assert store.state.delivery_entries == ()


def test_second_delivery_of_same_taka_fails(store):
    _seed_2417(store)
    assert submit_deliveries(store, [DeliveryCandidate("2417", "120")], party_name="P", lot_number="L").ok
    again = submit_deliveries(store, [DeliveryCandidate("2417", "120")], party_name="P", lot_number="L")
    assert [e.kind for e in again.errors] == [ValidationErrorKind.ALREADY_DELIVERED]
    assert again.errors[0].description == "Taka number 2417 has already been delivered."
    assert len(store.state.delivery_entries) == 1


def test_batch_shares_next_tp_number(store):
    store.dispatch(AddProductionEntries(tuple(make_production(str(n), meter="100") for n in range(1, 6)), remote=True))
    earlier = DeliveryEntry.create(
        taka_number="5", party_name="P", lot_number="L", delivery_date="d", meter="100", machine_number="5", tp_number=4
    )
    store.dispatch(AddDeliveryEntry(earlier, remote=True))

    result = submit_deliveries(
        store, [DeliveryCandidate(t, "100") for t in ("1", "2", "3")], party_name="Party", lot_number="Lot"
    )
    assert result.ok
    assert len(result.entries) == 3
    assert {e.tp_number for e in result.entries} == {5}


def test_batch_is_all_or_nothing(store):
    store.dispatch(AddProductionEntries((make_production("1"), make_production("2")), remote=True))
    result = submit_deliveries(
        store, [DeliveryCandidate("1", "100"), DeliveryCandidate("404", "100")], party_name="P", lot_number="L"
    )
    assert not result.ok
    assert [e.kind for e in result.errors] == [ValidationErrorKind.TAKA_NOT_FOUND]
    assert store.state.delivery_entries == ()


def test_repeated_taka_inside_batch_fails(store):
    store.dispatch(AddProductionEntries((make_production("1"),), remote=True))
    result = submit_deliveries(
        store, [DeliveryCandidate("1", "100"), DeliveryCandidate("1", "100")], party_name="P", lot_number="L"
    )
    assert [e.kind for e in result.errors] == [ValidationErrorKind.ALREADY_DELIVERED]
    assert store.state.delivery_entries == ()


def test_machine_mismatch_only_when_given():
    production = [make_production("1", machine="3")]
    assert isinstance(validate(DeliveryCandidate("1", "100", "3"), production, []), ResolvedDelivery)
    err = validate(DeliveryCandidate("1", "100", "4"), production, [])
    assert isinstance(err, ValidationError)
    assert err.kind is ValidationErrorKind.MACHINE_MISMATCH


def test_taka_outside_list_range_is_not_found(store, ranged_settings):
    store.dispatch(InitializeState(AppState(settings=ranged_settings)))
    store.dispatch(AddProductionEntries((make_production("2500"),), remote=True))
    result = submit_deliveries(
        store, [DeliveryCandidate("2500", "100")], party_name="P", lot_number="L", list_key="list1"
    )
    assert [e.kind for e in result.errors] == [ValidationErrorKind.TAKA_NOT_FOUND]
    ok = submit_deliveries(store, [DeliveryCandidate("2500", "100")], party_name="P", lot_number="L", list_key="list2")
    assert ok.ok


def test_range_without_bounds_passes_everything(production):
    assert filter_by_range(production, TakaRange("", "")) == production
    assert [e.taka_number for e in filter_by_range(production, TakaRange("1000", "1001"))] == ["1001"]


def test_next_tp_number_starts_at_one():
    assert next_tp_number([]) == 1


def test_empty_submission_does_nothing(store):
    result = submit_deliveries(store, [], party_name="P", lot_number="L")
    assert not result.ok and not result.errors


def test_delete_production_removes_its_delivery(store):
    _seed_2417(store)
    submit_deliveries(store, [DeliveryCandidate("2417", "120")], party_name="P", lot_number="L")
    store.dispatch(DeleteProductionEntry("2417"))
    assert store.state.delivery_entries == ()


def test_cancel_delivery_returns_taka_to_stock(store):
    _seed_2417(store)
    [entry] = submit_deliveries(store, [DeliveryCandidate("2417", "120")], party_name="P", lot_number="L").entries
    assert cancel_delivery(store, entry.id) == entry
    assert store.state.delivery_entries == ()
    assert cancel_delivery(store, entry.id) is None
