from __future__ import annotations

from datetime import date
from typing import Any, Optional

import pandas as pd

from lstracker.models import LIST_KEYS, AppState
from lstracker.services.reconciliation import filter_by_range
from lstracker.utils import parse_entry_date

PRODUCTION_COLUMNS = ["takaNumber", "machineNumber", "meter", "date"]
DELIVERY_COLUMNS = ["deliveryDate", "takaNumber", "meter", "machineNumber", "partyName", "lotNumber", "tpNumber"]


def _meter_value(meter: str) -> float:
    try:
        return float(str(meter).replace(",", "."))
    except ValueError:
        return 0.0


def dashboard_counts(state: AppState) -> dict[str, Any]:
    delivered = {d.taka_number for d in state.delivery_entries}
    total = len(state.production_entries)
    return {
        "production": total,
        "delivered": len(delivered),
        "pending": total - len(delivered),
        "unsynced": state.unsynced_changes.count,
    }


def taka_detail(state: AppState, taka_number: str) -> Optional[dict[str, Any]]:
    taka_number = str(taka_number).strip()
    production = next((p for p in state.production_entries if p.taka_number == taka_number), None)
    if production is None:
        return None
    delivery = next((d for d in state.delivery_entries if d.taka_number == taka_number), None)
    detail = production.to_record()
    detail.update(
        {
            "isDelivered": delivery is not None,
            "partyName": delivery.party_name if delivery else None,
            "deliveryDate": delivery.delivery_date if delivery else None,
            "lotNumber": delivery.lot_number if delivery else None,
            "tpNumber": delivery.tp_number if delivery else None,
        }
    )
    return detail


def list_tables(state: AppState) -> dict[str, pd.DataFrame]:
    """
    One frame per configured list (settings.production_tables), production entries
    filtered by the list's taka range, with a delivered flag.
    """
    delivered = {d.taka_number for d in state.delivery_entries}
    out: dict[str, pd.DataFrame] = {}
    for key in LIST_KEYS[: state.settings.production_tables]:
        rows = [
            {**e.to_record(), "delivered": e.taka_number in delivered}
            for e in filter_by_range(state.production_entries, state.settings.range_for(key))
        ]
        out[key] = pd.DataFrame(rows, columns=PRODUCTION_COLUMNS + ["delivered"])
    return out


def stock_frame(state: AppState, list_key: Optional[str] = None) -> pd.DataFrame:
    """Stock on hand: production entries with no delivery entry."""
    delivered = {d.taka_number for d in state.delivery_entries}
    entries = filter_by_range(state.production_entries, state.settings.range_for(list_key))
    rows = [e.to_record() for e in entries if e.taka_number not in delivered]
    return pd.DataFrame(rows, columns=PRODUCTION_COLUMNS)


def stock_summary(state: AppState) -> pd.DataFrame:
    """Takas and meters on hand per machine."""
    df = stock_frame(state)
    if df.empty:
        return pd.DataFrame(columns=["machineNumber", "takas", "meters"])
    df = df.assign(meters=df["meter"].map(_meter_value))
    out = (
        df.groupby("machineNumber", as_index=False)
        .agg(takas=("takaNumber", "count"), meters=("meters", "sum"))
        .sort_values("machineNumber", key=lambda s: pd.to_numeric(s, errors="coerce"))
    )
    out["meters"] = out["meters"].round(2)
    return out.reset_index(drop=True)


def _in_period(value: str, start: Optional[date], end: Optional[date]) -> bool:
    if start is None or end is None:
        return True
    d = parse_entry_date(value)
    return d is not None and start <= d <= end


def production_report(
    state: AppState, *, start: Optional[date] = None, end: Optional[date] = None, list_key: Optional[str] = None
) -> pd.DataFrame:
    """
    Production entries in [start, end] (inclusive; both required to filter) and in
    the list's taka range. Entries whose date does not parse are excluded when filtering.
    """
    entries = filter_by_range(state.production_entries, state.settings.range_for(list_key))
    rows = [e.to_record() for e in entries if _in_period(e.date, start, end)]
    return pd.DataFrame(rows, columns=PRODUCTION_COLUMNS)


def delivery_report(
    state: AppState, *, start: Optional[date] = None, end: Optional[date] = None, list_key: Optional[str] = None
) -> pd.DataFrame:
    taka_range = state.settings.range_for(list_key)
    rows = [
        d.to_record()
        for d in state.delivery_entries
        if (taka_range is None or taka_range.contains(d.taka_number)) and _in_period(d.delivery_date, start, end)
    ]
    return pd.DataFrame(rows, columns=DELIVERY_COLUMNS)


def tp_groups(state: AppState) -> pd.DataFrame:
    """Delivery batches (same TP number): party, count and total meters."""
    rows = [d.to_record() for d in state.delivery_entries if d.tp_number is not None]
    if not rows:
        return pd.DataFrame(columns=["tpNumber", "partyName", "takas", "meters"])
    df = pd.DataFrame(rows)
    df = df.assign(meters=df["meter"].map(_meter_value))
    out = df.groupby(["tpNumber", "partyName"], as_index=False).agg(
        takas=("takaNumber", "count"), meters=("meters", "sum")
    )
    out["meters"] = out["meters"].round(2)
    return out.sort_values("tpNumber").reset_index(drop=True)
