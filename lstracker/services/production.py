from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from lstracker.actions import AddProductionEntries, DeleteProductionEntry, UpdateProductionEntry
from lstracker.models import ProductionEntry
from lstracker.store import Store
from lstracker.utils import parse_int


@dataclass
class ProductionImportResult:
    added: list[ProductionEntry]
    duplicates: list[ProductionEntry]
    invalid_machine: list[ProductionEntry]

    def invalid_message(self, max_machine_number: int) -> str:
        items = ", ".join(f"Taka {e.taka_number} (Machine {e.machine_number})" for e in self.invalid_machine)
        return f"The following entries have machine numbers exceeding the maximum of {max_machine_number}: {items}"


def machine_number_ok(machine_number: str, max_machine_number: int) -> bool:
    n = parse_int(machine_number)
    return n is not None and 1 <= n <= int(max_machine_number)


def add_production_entries(store: Store, entries: Iterable[ProductionEntry]) -> ProductionImportResult:
    """
    Confirm a batch (manual form or extraction result).
    Entries whose machine number is not numeric or exceeds the configured maximum
    are rejected; the rest go in. Duplicate taka numbers are skipped by the store.
    """
    entries = list(entries)
    max_mc = store.state.settings.max_machine_number

    valid: list[ProductionEntry] = []
    invalid: list[ProductionEntry] = []
    for e in entries:
        (valid if machine_number_ok(e.machine_number, max_mc) else invalid).append(e)

    before = {e.taka_number for e in store.state.production_entries}
    if valid:
        store.dispatch(AddProductionEntries(tuple(valid)))
    after = {e.taka_number for e in store.state.production_entries}

    added: list[ProductionEntry] = []
    duplicates: list[ProductionEntry] = []
    seen: set[str] = set()
    for e in valid:
        if e.taka_number in after and e.taka_number not in before and e.taka_number not in seen:
            added.append(e)
            seen.add(e.taka_number)
        else:
            duplicates.append(e)
    return ProductionImportResult(added=added, duplicates=duplicates, invalid_machine=invalid)


def edit_production_entry(store: Store, taka_number: str, *, machine_number: str, meter: str, date: str) -> ProductionEntry:
    # Taka number is the identity: edits never change it.
    current = next((e for e in store.state.production_entries if e.taka_number == taka_number), None)
    if current is None:
        raise ValueError(f"Taka {taka_number} not found.")
    if not machine_number_ok(machine_number, store.state.settings.max_machine_number):
        raise ValueError(f"Machine number must be between 1 and {store.state.settings.max_machine_number}.")
    updated = ProductionEntry.create(taka_number=taka_number, machine_number=machine_number, meter=meter, date=date)
    store.dispatch(UpdateProductionEntry(updated))
    return updated


def delete_production_entry(store: Store, taka_number: str) -> int:
    """Deletes the taka and its delivery (if any). Returns the number of deliveries removed."""
    cascaded = sum(1 for d in store.state.delivery_entries if d.taka_number == taka_number)
    store.dispatch(DeleteProductionEntry(taka_number))
    return cascaded
