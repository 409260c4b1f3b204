from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from .lifecycle import SnapshotPrompt, VersionLifecycleCoordinator
from .metadata_cache_service import MetadataCacheService
from .reconciliation_service import ReconciliationEngine
from .snapshot_service import SnapshotStore
from .storage_service import BlobStorage, LocalBlobStorage
from .traffic_data_service import TrafficDataService
from .version_service import VersionService
from .youtube_service import CatalogClient, YouTubeCatalogClient


@dataclass
class Engine:
    store: SnapshotStore
    cache: MetadataCacheService
    traffic: TrafficDataService
    history: VersionService
    reconciliation: ReconciliationEngine

    def coordinator(self, prompt: SnapshotPrompt) -> VersionLifecycleCoordinator:
        return VersionLifecycleCoordinator(
            self.store,
            self.traffic,
            self.history,
            prompt,
            engine=self.reconciliation,
        )


def build_engine(
    session: Session,
    storage: BlobStorage | None = None,
    catalog: CatalogClient | None = None,
) -> Engine:
    store = SnapshotStore(session, storage or LocalBlobStorage())
    cache = MetadataCacheService(session)
    return Engine(
        store=store,
        cache=cache,
        traffic=TrafficDataService(session),
        history=VersionService(session),
        reconciliation=ReconciliationEngine(catalog or YouTubeCatalogClient(), cache, store),
    )
