from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from lstracker.utils import new_delivery_id, parse_int

LIST_KEYS = ("list1", "list2", "list3")
DEFAULT_MAX_MACHINE_NUMBER = 12


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _opt_int(value: Any) -> Optional[int]:
    # Falsy tp numbers (0, "", None) mean "not part of a scan batch".
    if value in (None, "", 0, "0"):
        return None
    return parse_int(value)


@dataclass(frozen=True)
class ProductionEntry:
    taka_number: str
    machine_number: str
    meter: str
    date: str

    @classmethod
    def create(cls, *, taka_number: Any, machine_number: Any, meter: Any, date: Any) -> "ProductionEntry":
        taka = _text(taka_number)
        if not taka:
            raise ValueError("Taka number is required.")
        return cls(taka_number=taka, machine_number=_text(machine_number), meter=_text(meter), date=_text(date))

    @classmethod
    def from_record(cls, record: dict) -> "ProductionEntry":
        return cls.create(
            taka_number=record.get("takaNumber"),
            machine_number=record.get("machineNumber"),
            meter=record.get("meter"),
            date=record.get("date"),
        )

    def to_record(self) -> dict:
        return {
            "takaNumber": self.taka_number,
            "machineNumber": self.machine_number,
            "meter": self.meter,
            "date": self.date,
        }


@dataclass(frozen=True)
class DeliveryEntry:
    id: str
    taka_number: str
    party_name: str
    lot_number: str
    delivery_date: str
    meter: str
    machine_number: str
    tp_number: Optional[int] = None

    @classmethod
    def create(
        cls,
        *,
        taka_number: Any,
        party_name: Any,
        lot_number: Any,
        delivery_date: Any,
        meter: Any,
        machine_number: Any,
        tp_number: Optional[int] = None,
        id: Optional[str] = None,
    ) -> "DeliveryEntry":
        taka = _text(taka_number)
        if not taka:
            raise ValueError("Taka number is required.")
        return cls(
            id=_text(id) or new_delivery_id(),
            taka_number=taka,
            party_name=_text(party_name),
            lot_number=_text(lot_number),
            delivery_date=_text(delivery_date),
            meter=_text(meter),
            machine_number=_text(machine_number),
            tp_number=_opt_int(tp_number),
        )

    @classmethod
    def from_record(cls, record: dict) -> "DeliveryEntry":
        if not _text(record.get("id")):
            raise ValueError("Delivery entry id is required.")
        return cls.create(
            id=record.get("id"),
            taka_number=record.get("takaNumber"),
            party_name=record.get("partyName"),
            lot_number=record.get("lotNumber"),
            delivery_date=record.get("deliveryDate"),
            meter=record.get("meter"),
            machine_number=record.get("machineNumber"),
            tp_number=record.get("tpNumber"),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "takaNumber": self.taka_number,
            "partyName": self.party_name,
            "lotNumber": self.lot_number,
            "deliveryDate": self.delivery_date,
            "meter": self.meter,
            "machineNumber": self.machine_number,
            "tpNumber": self.tp_number,
        }


@dataclass(frozen=True)
class TakaRange:
    start: str = ""
    end: str = ""

    def bounds(self) -> Optional[tuple[int, int]]:
        lo, hi = parse_int(self.start), parse_int(self.end)
        if lo is None or hi is None:
            return None
        return lo, hi

    def contains(self, taka_number: str) -> bool:
        b = self.bounds()
        if b is None:
            return True
        n = parse_int(taka_number)
        return n is not None and b[0] <= n <= b[1]


def _default_ranges() -> dict[str, TakaRange]:
    return {k: TakaRange() for k in LIST_KEYS}


@dataclass(frozen=True)
class Settings:
    # Connection credentials: held client-side only.
    supabase_url: str = ""
    supabase_key: str = ""
    scan_api_key: str = ""

    production_tables: int = 1
    max_machine_number: int = DEFAULT_MAX_MACHINE_NUMBER
    list_taka_ranges: dict[str, TakaRange] = field(default_factory=_default_ranges)

    def validated(self) -> "Settings":
        if int(self.production_tables) not in (1, 2, 3):
            raise ValueError("Production tables must be 1, 2 or 3.")
        if int(self.max_machine_number) < 1:
            raise ValueError("Must have at least 1 machine.")
        unknown = set(self.list_taka_ranges) - set(LIST_KEYS)
        if unknown:
            raise ValueError(f"Unknown list key(s): {', '.join(sorted(unknown))}")
        return self

    def range_for(self, list_key: Optional[str]) -> Optional[TakaRange]:
        if not list_key:
            return None
        if list_key not in LIST_KEYS:
            raise ValueError(f"Unknown list '{list_key}'.")
        return self.list_taka_ranges.get(list_key, TakaRange())

    @property
    def credentials(self) -> dict[str, str]:
        return {
            "supabase_url": self.supabase_url,
            "supabase_key": self.supabase_key,
            "scan_api_key": self.scan_api_key,
        }

    def with_credentials(self, *, supabase_url: str = "", supabase_key: str = "", scan_api_key: str = "") -> "Settings":
        return replace(self, supabase_url=supabase_url, supabase_key=supabase_key, scan_api_key=scan_api_key)

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def to_record(self, *, include_credentials: bool = False) -> dict:
        rec: dict[str, Any] = {
            "productionTables": int(self.production_tables),
            "maxMachineNumber": int(self.max_machine_number),
            "listTakaRanges": {
                k: {"start": r.start, "end": r.end} for k, r in sorted(self.list_taka_ranges.items())
            },
        }
        if include_credentials:
            rec.update(
                {
                    "supabaseUrl": self.supabase_url,
                    "supabaseKey": self.supabase_key,
                    "scanApiKey": self.scan_api_key,
                }
            )
        return rec

    @classmethod
    def from_record(cls, record: Optional[dict], *, base: Optional["Settings"] = None) -> "Settings":
        """
        Merge a (possibly partial) settings record over `base` (defaults when omitted).
        Missing keys keep the base value, so older blobs and remote rows load cleanly.
        """
        base = base or cls()
        record = record or {}

        ranges = dict(base.list_taka_ranges)
        for key, value in (record.get("listTakaRanges") or {}).items():
            if key in LIST_KEYS and isinstance(value, dict):
                ranges[key] = TakaRange(start=_text(value.get("start")), end=_text(value.get("end")))

        tables = parse_int(record.get("productionTables"))
        max_mc = parse_int(record.get("maxMachineNumber"))
        return cls(
            supabase_url=_text(record.get("supabaseUrl", base.supabase_url)),
            supabase_key=_text(record.get("supabaseKey", base.supabase_key)),
            scan_api_key=_text(record.get("scanApiKey", base.scan_api_key)),
            production_tables=tables if tables is not None else base.production_tables,
            max_machine_number=max_mc if max_mc is not None else base.max_machine_number,
            list_taka_ranges=ranges,
        )


@dataclass(frozen=True)
class EntityChanges:
    add: tuple = ()
    update: tuple = ()
    delete: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.add or self.update or self.delete)

    @property
    def count(self) -> int:
        return len(self.add) + len(self.update) + len(self.delete)


@dataclass(frozen=True)
class UnsyncedChanges:
    production: EntityChanges = EntityChanges()
    delivery: EntityChanges = EntityChanges()
    settings_dirty: bool = False

    @property
    def is_empty(self) -> bool:
        return self.production.is_empty and self.delivery.is_empty and not self.settings_dirty

    @property
    def count(self) -> int:
        return self.production.count + self.delivery.count + (1 if self.settings_dirty else 0)

    def to_record(self) -> dict:
        return {
            "production": {
                "add": [e.to_record() for e in self.production.add],
                "update": [e.to_record() for e in self.production.update],
                "delete": list(self.production.delete),
            },
            "delivery": {
                "add": [e.to_record() for e in self.delivery.add],
                "update": [e.to_record() for e in self.delivery.update],
                "delete": list(self.delivery.delete),
            },
            "settings": bool(self.settings_dirty),
        }

    @classmethod
    def from_record(cls, record: Optional[dict]) -> "UnsyncedChanges":
        record = record or {}
        prod = record.get("production") or {}
        dlv = record.get("delivery") or {}
        return cls(
            production=EntityChanges(
                add=tuple(ProductionEntry.from_record(r) for r in prod.get("add", [])),
                update=tuple(ProductionEntry.from_record(r) for r in prod.get("update", [])),
                delete=tuple(str(k) for k in prod.get("delete", [])),
            ),
            delivery=EntityChanges(
                add=tuple(DeliveryEntry.from_record(r) for r in dlv.get("add", [])),
                update=tuple(DeliveryEntry.from_record(r) for r in dlv.get("update", [])),
                delete=tuple(str(k) for k in dlv.get("delete", [])),
            ),
            settings_dirty=bool(record.get("settings", False)),
        )


@dataclass(frozen=True)
class AppState:
    settings: Settings = Settings()
    production_entries: tuple[ProductionEntry, ...] = ()
    delivery_entries: tuple[DeliveryEntry, ...] = ()
    unsynced_changes: UnsyncedChanges = UnsyncedChanges()
    is_initialized: bool = False
    is_online: bool = False


def initial_state() -> AppState:
    return AppState()
