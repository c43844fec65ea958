from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from lstracker.actions import AddDeliveryEntries, AddDeliveryEntry, DeleteDeliveryEntry
from lstracker.models import DeliveryEntry, ProductionEntry, TakaRange
from lstracker.store import Store
from lstracker.utils import today_ddmmyyyy


class ValidationErrorKind(str, Enum):
    TAKA_NOT_FOUND = "TakaNotFound"
    MACHINE_MISMATCH = "MachineMismatch"
    METER_MISMATCH = "MeterMismatch"
    ALREADY_DELIVERED = "AlreadyDelivered"


_DESCRIPTIONS = {
    ValidationErrorKind.TAKA_NOT_FOUND: "Taka Number not found",
    ValidationErrorKind.MACHINE_MISMATCH: "Machine number not match",
    ValidationErrorKind.METER_MISMATCH: "Meter not match",
}


@dataclass(frozen=True)
class ValidationError:
    """Returned, never raised: no state mutation happens when one is produced."""

    kind: ValidationErrorKind
    taka_number: str

    @property
    def title(self) -> str:
        return "Error" if self.kind is ValidationErrorKind.ALREADY_DELIVERED else "Validation Error"

    @property
    def description(self) -> str:
        if self.kind is ValidationErrorKind.ALREADY_DELIVERED:
            return f"Taka number {self.taka_number} has already been delivered."
        return f"{_DESCRIPTIONS[self.kind]} (taka {self.taka_number})"


@dataclass(frozen=True)
class DeliveryCandidate:
    taka_number: str
    meter: str
    machine_number: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> "DeliveryCandidate":
        mc = record.get("machineNumber")
        return cls(
            taka_number=str(record.get("takaNumber") or "").strip(),
            meter=str(record.get("meter") or "").strip(),
            machine_number=str(mc).strip() if mc not in (None, "") else None,
        )


@dataclass(frozen=True)
class ResolvedDelivery:
    candidate: DeliveryCandidate
    machine_number: str


@dataclass(frozen=True)
class SubmissionResult:
    entries: tuple[DeliveryEntry, ...] = ()
    errors: tuple[ValidationError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.entries)


def filter_by_range(entries: Iterable[ProductionEntry], taka_range: Optional[TakaRange]) -> list[ProductionEntry]:
    """Inclusive numeric taka range; a range without numeric bounds passes everything."""
    entries = list(entries)
    if taka_range is None or taka_range.bounds() is None:
        return entries
    return [e for e in entries if taka_range.contains(e.taka_number)]


def validate(
    candidate: DeliveryCandidate,
    production_entries: Sequence[ProductionEntry],
    delivery_entries: Sequence[DeliveryEntry],
    taka_range: Optional[TakaRange] = None,
) -> Union[ResolvedDelivery, ValidationError]:
    space = filter_by_range(production_entries, taka_range)
    production = next((p for p in space if p.taka_number == candidate.taka_number), None)
    if production is None:
        return ValidationError(ValidationErrorKind.TAKA_NOT_FOUND, candidate.taka_number)

    if candidate.machine_number is not None and candidate.machine_number != production.machine_number:
        return ValidationError(ValidationErrorKind.MACHINE_MISMATCH, candidate.taka_number)

    if candidate.meter != production.meter:
        return ValidationError(ValidationErrorKind.METER_MISMATCH, candidate.taka_number)

    if any(d.taka_number == candidate.taka_number for d in delivery_entries):
        return ValidationError(ValidationErrorKind.ALREADY_DELIVERED, candidate.taka_number)

    return ResolvedDelivery(candidate=candidate, machine_number=production.machine_number)


def validate_batch(
    candidates: Sequence[DeliveryCandidate],
    production_entries: Sequence[ProductionEntry],
    delivery_entries: Sequence[DeliveryEntry],
    taka_range: Optional[TakaRange] = None,
) -> tuple[list[ResolvedDelivery], list[ValidationError]]:
    """
    Each candidate is checked against the current state only (not against earlier
    candidates of the same batch), except that a taka repeated inside the batch
    is reported as already delivered for its repeats.
    """
    resolved: list[ResolvedDelivery] = []
    errors: list[ValidationError] = []
    seen: set[str] = set()
    for c in candidates:
        if c.taka_number in seen:
            errors.append(ValidationError(ValidationErrorKind.ALREADY_DELIVERED, c.taka_number))
            continue
        seen.add(c.taka_number)
        result = validate(c, production_entries, delivery_entries, taka_range)
        if isinstance(result, ValidationError):
            errors.append(result)
        else:
            resolved.append(result)
    return resolved, errors


def next_tp_number(delivery_entries: Iterable[DeliveryEntry]) -> int:
    return max((d.tp_number for d in delivery_entries if d.tp_number is not None), default=0) + 1


def submit_deliveries(
    store: Store,
    candidates: Sequence[DeliveryCandidate],
    *,
    party_name: str,
    lot_number: str,
    list_key: Optional[str] = None,
    delivery_date: Optional[str] = None,
) -> SubmissionResult:
    """
    All-or-nothing: if any candidate fails validation nothing is committed.
    Multi-entry batches share one newly allocated TP number; single entries get none.
    """
    if not candidates:
        return SubmissionResult()

    with store.locked():
        return _submit(store, candidates, party_name, lot_number, list_key, delivery_date)


def _submit(store, candidates, party_name, lot_number, list_key, delivery_date) -> SubmissionResult:
    state = store.state
    taka_range = state.settings.range_for(list_key)
    resolved, errors = validate_batch(candidates, state.production_entries, state.delivery_entries, taka_range)
    if errors:
        return SubmissionResult(errors=tuple(errors))

    tp_number = next_tp_number(state.delivery_entries) if len(resolved) > 1 else None
    delivery_date = delivery_date or today_ddmmyyyy()
    entries = tuple(
        DeliveryEntry.create(
            taka_number=r.candidate.taka_number,
            party_name=party_name,
            lot_number=lot_number,
            delivery_date=delivery_date,
            meter=r.candidate.meter,
            machine_number=r.machine_number,
            tp_number=tp_number,
        )
        for r in resolved
    )

    if len(entries) == 1:
        store.dispatch(AddDeliveryEntry(entries[0]))
    else:
        store.dispatch(AddDeliveryEntries(entries))
    return SubmissionResult(entries=entries)


def cancel_delivery(store: Store, entry_id: str) -> Optional[DeliveryEntry]:
    """Removes a delivery; the taka goes back to stock."""
    with store.locked():
        entry = next((d for d in store.state.delivery_entries if d.id == entry_id), None)
        if entry is not None:
            store.dispatch(DeleteDeliveryEntry(entry_id))
    return entry
