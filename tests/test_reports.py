from __future__ import annotations

from datetime import date

from conftest import make_production
from lstracker.actions import AddDeliveryEntries, AddProductionEntries, InitializeState
from lstracker.models import AppState, DeliveryEntry
from lstracker.services import reports


def _delivery(taka, tp=None, meter="100", when="05/01/2024", party="Party A"):
    return DeliveryEntry.create(
        taka_number=taka, party_name=party, lot_number="L", delivery_date=when, meter=meter, machine_number="5", tp_number=tp
    )


def _state(store, ranged_settings):
    store.dispatch(InitializeState(AppState(settings=ranged_settings)))
    store.dispatch(
        AddProductionEntries(
            (
                make_production("1001", "2", "100", "01/01/2024"),
                make_production("1002", "2", "110.5", "03/01/24"),
                make_production("1003", "10", "90", "10/02/2024"),
                make_production("2001", "1", "95", "bad date"),
            ),
            remote=True,
        )
    )
    store.dispatch(AddDeliveryEntries((_delivery("1001", tp=1), _delivery("2001", tp=1, meter="95")), remote=True))
    return store.state


def test_dashboard_counts(store, ranged_settings):
    counts = reports.dashboard_counts(_state(store, ranged_settings))
    assert counts == {"production": 4, "delivered": 2, "pending": 2, "unsynced": 0}


def test_taka_detail(store, ranged_settings):
    state = _state(store, ranged_settings)
    detail = reports.taka_detail(state, " 1001 ")
    assert detail["isDelivered"] and detail["tpNumber"] == 1 and detail["partyName"] == "Party A"
    assert reports.taka_detail(state, "1002")["isDelivered"] is False
    assert reports.taka_detail(state, "999") is None


def test_list_tables_follow_configured_lists(store, ranged_settings):
    tables = reports.list_tables(_state(store, ranged_settings))
    assert list(tables) == ["list1", "list2"]
    assert list(tables["list1"]["takaNumber"]) == ["1001", "1002", "1003"]
    assert list(tables["list2"]["delivered"]) == [True]


def test_stock_excludes_delivered(store, ranged_settings):
    state = _state(store, ranged_settings)
    assert list(reports.stock_frame(state)["takaNumber"]) == ["1002", "1003"]
    assert reports.stock_frame(state, "list2").empty


def test_stock_summary_per_machine(store, ranged_settings):
    summary = reports.stock_summary(_state(store, ranged_settings))
    assert list(summary["machineNumber"]) == ["2", "10"]
    assert list(summary["takas"]) == [1, 1]
    assert list(summary["meters"]) == [110.5, 90.0]


def test_production_report_by_period(store, ranged_settings):
    state = _state(store, ranged_settings)
    df = reports.production_report(state, start=date(2024, 1, 1), end=date(2024, 1, 31))
    assert list(df["takaNumber"]) == ["1001", "1002"]
    assert len(reports.production_report(state)) == 4


def test_delivery_report_by_list(store, ranged_settings):
    state = _state(store, ranged_settings)
    df = reports.delivery_report(state, list_key="list2")
    assert list(df["takaNumber"]) == ["2001"]
    assert reports.delivery_report(state, start=date(2024, 2, 1), end=date(2024, 2, 28)).empty


def test_tp_groups(store, ranged_settings):
    groups = reports.tp_groups(_state(store, ranged_settings))
    assert groups.to_dict("records") == [{"tpNumber": 1, "partyName": "Party A", "takas": 2, "meters": 195.0}]
