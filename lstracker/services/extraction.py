"""
Boundary to the image-extraction collaborator (an LLM prompt behind an API).

The collaborator is opaque: it takes image bytes and returns
{"entries": [...]} or raises. Both an empty result and a raised error are
reported to the user the same way, as ExtractionError.
"""
from __future__ import annotations

import logging
from typing import Protocol

from lstracker.errors import ExtractionError
from lstracker.models import ProductionEntry
from lstracker.services.reconciliation import DeliveryCandidate

logger = logging.getLogger(__name__)


class Extractor(Protocol):
    def extract_production(self, image: bytes) -> dict: ...

    def extract_delivery(self, image: bytes) -> dict: ...


def _entries(result) -> list[dict]:
    if not isinstance(result, dict):
        return []
    entries = result.get("entries")
    return [e for e in entries if isinstance(e, dict)] if isinstance(entries, list) else []


def extract_production_entries(extractor: Extractor, image: bytes) -> list[ProductionEntry]:
    try:
        raw = _entries(extractor.extract_production(image))
    except Exception as e:
        logger.warning("Production extraction failed: %s", e)
        raise ExtractionError() from e

    entries: list[ProductionEntry] = []
    seen: set[str] = set()
    for r in raw:
        try:
            entry = ProductionEntry.from_record(r)
        except ValueError:
            continue
        if entry.taka_number in seen:
            continue
        seen.add(entry.taka_number)
        entries.append(entry)

    if not entries:
        raise ExtractionError()
    logger.info("Extracted %d production entries", len(entries))
    return entries


def extract_delivery_candidates(extractor: Extractor, image: bytes) -> list[DeliveryCandidate]:
    try:
        raw = _entries(extractor.extract_delivery(image))
    except Exception as e:
        logger.warning("Delivery extraction failed: %s", e)
        raise ExtractionError() from e

    candidates = [c for c in (DeliveryCandidate.from_record(r) for r in raw) if c.taka_number]
    if not candidates:
        raise ExtractionError()
    logger.info("Extracted %d delivery candidates", len(candidates))
    return candidates
