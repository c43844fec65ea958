from __future__ import annotations

import random
from datetime import date, timedelta

from lstracker.actions import InitializeState
from lstracker.models import AppState, ProductionEntry, Settings
from lstracker.persistence import LocalStateStorage
from lstracker.services.production import ProductionImportResult, add_production_entries
from lstracker.services.reconciliation import DeliveryCandidate, SubmissionResult, submit_deliveries
from lstracker.store import Store

DEMO_PARTIES = ["Shree Fabrics", "Laxmi Textiles", "Om Sarees"]


def demo_production_entries(*, seed: int = 7, count: int = 24, start_taka: int = 1001, machines: int = 12) -> list[ProductionEntry]:
    rnd = random.Random(seed)
    base_date = date.today() - timedelta(days=5)
    entries = []
    for i in range(count):
        day = base_date + timedelta(days=i % 5)
        entries.append(
            ProductionEntry.create(
                taka_number=str(start_taka + i),
                machine_number=str(rnd.randint(1, machines)),
                meter=str(rnd.randint(95, 125)),
                date=day.strftime("%d/%m/%Y"),
            )
        )
    return entries


def load_demo_data(store: Store, *, seed: int = 7) -> tuple[ProductionImportResult, SubmissionResult]:
    """Adds demo production takas and delivers a few of them as one TP batch."""
    machines = store.state.settings.max_machine_number
    result = add_production_entries(store, demo_production_entries(seed=seed, machines=machines))

    rnd = random.Random(seed)
    picked = rnd.sample(result.added, k=min(4, len(result.added)))
    candidates = [DeliveryCandidate(taka_number=e.taka_number, meter=e.meter) for e in picked]
    delivered = submit_deliveries(
        store,
        candidates,
        party_name=rnd.choice(DEMO_PARTIES),
        lot_number=f"LOT-{rnd.randint(100, 999)}",
    )
    return result, delivered


def wipe_all(store: Store, storage: LocalStateStorage) -> None:
    """Local reset: entries, queue and settings back to defaults. Credentials are kept."""
    storage.clear()
    credentials = store.state.settings.credentials
    fresh = AppState(settings=Settings().with_credentials(**credentials), is_online=store.state.is_online)
    store.dispatch(InitializeState(fresh))
