"""
Error taxonomy surfaced to the user as short notices (title + description).

Validation failures are plain values (see services/reconciliation.py) so
callers branch on them without exception handling; everything here is an
exception raised or produced at the sync / extraction boundaries.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class TrackerError(Exception):
    title = "Error"

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class ExtractionError(TrackerError):
    title = "Extraction Failed"

    def __init__(self, description: str = "No data could be extracted. Please try a clearer image."):
        super().__init__(description)


class ConnectivitySetupError(TrackerError):
    title = "Database Setup Required"

    def __init__(self, table: str):
        super().__init__(f"Table '{table}' was not found. Run the setup SQL on the remote database.")
        self.table = table


class ConnectivityError(TrackerError):
    title = "Connection Error"


class SyncPushError(TrackerError):
    title = "Sync Failed"

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} failed: {reason}. Pending changes were kept for the next sync.")
        self.operation = operation
        self.reason = reason


class DeliveryConflictError(TrackerError):
    title = "Delivery Conflict"

    def __init__(self, taka_number: str):
        super().__init__(
            f"Taka {taka_number} was delivered on another device first. The local delivery record was dropped."
        )
        self.taka_number = taka_number


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    level: str = "error"  # error / warning / info / success

    @classmethod
    def from_error(cls, err: TrackerError, *, level: Optional[str] = None) -> "Notice":
        return cls(title=err.title, description=err.description, level=level or "error")
