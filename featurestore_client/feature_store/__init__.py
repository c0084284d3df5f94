"""
Feature Store client: metadata cache, write orchestration and physical stores.
"""
from .store import FeatureStore
from .metadata_cache import MetadataCache
from .resolver import IdResolver
from .orchestrator import WriteOrchestrator, WriteState
from .offline_store import OfflineStore
from .online_store import OnlineStore
from .statistics import StatisticsComputer

__all__ = [
    "FeatureStore",
    "MetadataCache",
    "IdResolver",
    "WriteOrchestrator",
    "WriteState",
    "OfflineStore",
    "OnlineStore",
    "StatisticsComputer",
]
