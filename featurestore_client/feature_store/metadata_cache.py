"""
Metadata Cache - per-session snapshot of the remote feature store topology.
"""
import threading
from typing import Dict, Optional

import structlog

from ..errors import (
    FeaturegroupNotFoundError,
    FeaturestoreNotFoundError,
    StorageConnectorNotFoundError,
    TrainingDatasetNotFoundError,
)
from ..models import (
    FeaturegroupEntry,
    FeaturestoreMetadata,
    StorageConnectorDescriptor,
    TrainingDatasetEntry,
)
from ..monitoring.metrics import OrchestratorMetrics
from ..rest.client import FeaturestoreRestClient

logger = structlog.get_logger()


class MetadataCache:
    """
    Lazily populated cache of `FeaturestoreMetadata` snapshots, one per store.

    Snapshots are immutable and swapped as a whole under a lock, so a reader
    always sees either the old or the new snapshot. Lookups never refresh on
    a miss: callers refresh explicitly after a topology change.
    """

    def __init__(self, rest_client: FeaturestoreRestClient, metrics: Optional[OrchestratorMetrics] = None):
        """
        Initialize cache.

        Args:
            rest_client: REST client used to fetch metadata.
            metrics: Optional metrics collector.
        """
        self.rest_client = rest_client
        self.metrics = metrics
        self._lock = threading.Lock()
        self._snapshots: Dict[str, FeaturestoreMetadata] = {}
        # Bumped by refresh/invalidate; a fetch only lands if its generation is current
        self._generations: Dict[str, int] = {}

    def _fetch(self, featurestore: str) -> FeaturestoreMetadata:
        """Fetch a fresh snapshot from the backend (two calls: store list, then metadata)."""
        featurestores = tuple(self.rest_client.get_featurestores())
        entry = next((fs for fs in featurestores if fs.name == featurestore), None)
        if entry is None:
            raise FeaturestoreNotFoundError(f"Featurestore '{featurestore}' not found in project")

        metadata = self.rest_client.get_featurestore_metadata(entry, featurestores)
        if self.metrics:
            self.metrics.record_cache_fetch(featurestore)
        logger.info(
            "metadata_cache_fetched",
            featurestore=featurestore,
            featuregroups=len(metadata.featuregroups),
            training_datasets=len(metadata.training_datasets),
            storage_connectors=len(metadata.storage_connectors),
        )
        return metadata

    def get(self, featurestore: str) -> FeaturestoreMetadata:
        """
        Return the cached snapshot, fetching it on first access.

        Args:
            featurestore: Feature store name.

        Returns:
            The memoized snapshot (same object until refresh/invalidate).
        """
        while True:
            with self._lock:
                snapshot = self._snapshots.get(featurestore)
                generation = self._generations.get(featurestore, 0)
            if snapshot is not None:
                return snapshot

            fetched = self._fetch(featurestore)
            with self._lock:
                if self._generations.get(featurestore, 0) == generation:
                    # Another thread may have populated the entry while we were fetching
                    return self._snapshots.setdefault(featurestore, fetched)
            # Refreshed or invalidated during the fetch, so the fetched snapshot may be stale
            logger.debug("metadata_cache_fetch_discarded", featurestore=featurestore)

    def refresh(self, featurestore: str) -> FeaturestoreMetadata:
        """
        Re-fetch unconditionally and replace the cached snapshot.

        When a later refresh or invalidate lands while this fetch is in flight,
        the fetched snapshot is returned but not installed.
        """
        with self._lock:
            generation = self._generations.get(featurestore, 0) + 1
            self._generations[featurestore] = generation

        fetched = self._fetch(featurestore)
        with self._lock:
            installed = self._generations[featurestore] == generation
            if installed:
                self._snapshots[featurestore] = fetched
        logger.info("metadata_cache_refreshed", featurestore=featurestore, installed=installed)
        return fetched

    def invalidate(self, featurestore: str) -> None:
        """Drop the cached snapshot; the next `get` fetches again."""
        with self._lock:
            self._generations[featurestore] = self._generations.get(featurestore, 0) + 1
            self._snapshots.pop(featurestore, None)
        logger.debug("metadata_cache_invalidated", featurestore=featurestore)

    def is_cached(self, featurestore: str) -> bool:
        with self._lock:
            return featurestore in self._snapshots

    # ==================== Lookups ====================

    def find_featuregroup(self, featurestore: str, name: str, version: int) -> FeaturegroupEntry:
        """Return the first feature group matching name and version."""
        metadata = self.get(featurestore)
        for featuregroup in metadata.featuregroups:
            if featuregroup.name == name and featuregroup.version == version:
                return featuregroup
        raise FeaturegroupNotFoundError(
            f"Featuregroup '{name}' version {version} does not exist in featurestore '{featurestore}'"
        )

    def find_training_dataset(self, featurestore: str, name: str, version: int) -> TrainingDatasetEntry:
        """Return the first training dataset matching name and version."""
        metadata = self.get(featurestore)
        for training_dataset in metadata.training_datasets:
            if training_dataset.name == name and training_dataset.version == version:
                return training_dataset
        raise TrainingDatasetNotFoundError(
            f"Training dataset '{name}' version {version} does not exist in featurestore '{featurestore}'"
        )

    def find_storage_connector(self, featurestore: str, name: str) -> StorageConnectorDescriptor:
        """Return the first storage connector with the given name."""
        metadata = self.get(featurestore)
        for connector in metadata.storage_connectors:
            if connector.name == name:
                return connector
        raise StorageConnectorNotFoundError(
            f"Storage connector '{name}' does not exist in featurestore '{featurestore}'"
        )
