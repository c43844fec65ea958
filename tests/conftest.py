from __future__ import annotations

import pytest

from lstracker.actions import AddProductionEntries, InitializeState
from lstracker.models import AppState, ProductionEntry, Settings, TakaRange
from lstracker.remote import InMemoryRemoteStore
from lstracker.store import Store


def make_production(taka: str, machine: str = "5", meter: str = "100", date: str = "01/01/2024") -> ProductionEntry:
    return ProductionEntry.create(taka_number=taka, machine_number=machine, meter=meter, date=date)


@pytest.fixture
def production():
    return [
        make_production("1001", "5", "100"),
        make_production("1002", "3", "110"),
        make_production("2500", "7", "98"),
    ]


@pytest.fixture
def store():
    s = Store()
    s.dispatch(InitializeState(AppState()))
    return s


@pytest.fixture
def seeded_store(store, production):
    store.dispatch(AddProductionEntries(tuple(production), remote=True))
    return store


@pytest.fixture
def ranged_settings():
    return Settings(
        production_tables=2,
        list_taka_ranges={
            "list1": TakaRange("1000", "1999"),
            "list2": TakaRange("2000", "2999"),
            "list3": TakaRange(),
        },
    )


@pytest.fixture
def remote():
    return InMemoryRemoteStore()
