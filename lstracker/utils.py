from __future__ import annotations

import re
import secrets
from datetime import datetime, date, timezone
from typing import Any, Optional

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def iso_now() -> str:
    # Use UTC ISO timestamps for consistency.
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def today_ddmmyyyy() -> str:
    return date.today().strftime("%d/%m/%Y")


def new_delivery_id() -> str:
    # Timestamp + random suffix: sortable and unique across devices.
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    return f"{stamp}-{secrets.token_hex(3)}"


def parse_int(value: Any) -> Optional[int]:
    """
    Integer parse for taka numbers, machine numbers and range bounds.
    Leading digits are accepted ("2417A" -> 2417), anything else gives None.
    """
    if value is None:
        return None
    m = re.match(r"\s*([+-]?\d+)", str(value))
    return int(m.group(1)) if m else None


def parse_entry_date(value: Any) -> Optional[date]:
    """
    Dates are free text from forms and extraction: dd/mm/yy or dd/mm/yyyy.
    Two-digit years are taken as 20yy.
    """
    parts = str(value or "").strip().split("/")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
    except ValueError:
        return None
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


def to_remote_record(record: dict[str, Any]) -> dict[str, Any]:
    # Top-level keys only: nested JSON (the settings payload) is stored as-is.
    return {camel_to_snake(k): v for k, v in record.items()}


def from_remote_record(row: dict[str, Any]) -> dict[str, Any]:
    return {snake_to_camel(k): v for k, v in row.items()}
