"""
Feature Store - unified client session for feature group management.
"""
import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Any
import structlog

from ..config import GATEWAY_CONFIG, STORE_DIR
from ..errors import WriteOutcome
from ..models import (
    FeaturegroupEntry,
    FeaturegroupRequest,
    FeaturegroupRequestBuilder,
    FeaturestoreEntry,
    FeaturestoreMetadata,
    StorageConnectorDescriptor,
    TrainingDatasetRequest,
    table_name,
)
from ..monitoring.metrics import OrchestratorMetrics
from ..rest.client import FeaturestoreRestClient
from ..rest.gateway import HttpGateway, RemoteGateway
from .metadata_cache import MetadataCache
from .offline_store import OfflineStore
from .online_store import OnlineStore
from .orchestrator import WriteOrchestrator
from .resolver import IdResolver
from .statistics import StatisticsComputer

logger = structlog.get_logger()


class FeatureStore:
    """
    Unified Feature Store interface.

    Owns one client session: the gateway, the metadata cache and the
    physical stores are created once and shared by every operation.

    Components:
    - Gateway / REST client: remote feature store API
    - Metadata cache: snapshot of stores, feature groups and connectors
    - Offline Store: table storage (Parquet)
    - Online Store: low-latency serving tables (SQLite)
    """

    def __init__(
        self,
        featurestore: Optional[str] = None,
        base_path: Optional[Path] = None,
        gateway: Optional[RemoteGateway] = None,
        project_id: Optional[int] = None,
        metrics: Optional[OrchestratorMetrics] = None,
    ):
        """
        Initialize Feature Store session.

        Args:
            featurestore: Default feature store name (project store when None).
            base_path: Base directory of the physical stores.
            gateway: Remote gateway (HTTP gateway from config by default).
            project_id: Project owning the feature stores.
            metrics: Metrics collector.
        """
        self.base_path = Path(base_path or STORE_DIR)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.metrics = metrics or OrchestratorMetrics()

        self.gateway = gateway or HttpGateway(metrics=self.metrics)
        self.rest_client = FeaturestoreRestClient(
            self.gateway, project_id if project_id is not None else GATEWAY_CONFIG["project_id"]
        )
        self.cache = MetadataCache(self.rest_client, metrics=self.metrics)
        self.resolver = IdResolver(self.cache)

        self.offline_store = OfflineStore(self.base_path / "offline")
        self.online_store = OnlineStore(self.base_path / "online" / "features.db")
        self.training_dataset_store = OfflineStore(self.base_path / "training_datasets")

        self.orchestrator = WriteOrchestrator(
            rest_client=self.rest_client,
            cache=self.cache,
            resolver=self.resolver,
            offline_store=self.offline_store,
            online_store=self.online_store,
            training_dataset_store=self.training_dataset_store,
            statistics=StatisticsComputer(),
            metrics=self.metrics,
        )
        self._featurestore = featurestore

        logger.info("feature_store_initialized", path=str(self.base_path), featurestore=featurestore)

    # ==================== Session ====================

    def list_featurestores(self) -> List[FeaturestoreEntry]:
        """List the feature stores of the project."""
        return self.orchestrator.list_featurestores()

    @property
    def featurestore(self) -> str:
        """Default feature store; the project store (`<project>_featurestore`) when not set."""
        if self._featurestore is None:
            featurestores = self.list_featurestores()
            if not featurestores:
                raise ValueError("The project has no feature stores")
            project_store = next(
                (fs for fs in featurestores if fs.name.endswith("_featurestore")), featurestores[0]
            )
            self._featurestore = project_store.name
        return self._featurestore

    def _store(self, featurestore: Optional[str]) -> str:
        return featurestore or self.featurestore

    def get_metadata(self, featurestore: Optional[str] = None) -> FeaturestoreMetadata:
        return self.cache.get(self._store(featurestore))

    def refresh_metadata(self, featurestore: Optional[str] = None) -> FeaturestoreMetadata:
        return self.cache.refresh(self._store(featurestore))

    def list_featuregroups(self, featurestore: Optional[str] = None) -> List[str]:
        """List `<name>_<version>` of every feature group in the store."""
        return [table_name(fg.name, fg.version) for fg in self.get_metadata(featurestore).featuregroups]

    def get_featuregroup(self, name: str, version: int = 1, featurestore: Optional[str] = None) -> FeaturegroupEntry:
        return self.cache.find_featuregroup(self._store(featurestore), name, version)

    def get_online_connector(self, featurestore: Optional[str] = None) -> StorageConnectorDescriptor:
        """Return the JDBC connector of the online feature store."""
        return self.orchestrator.get_online_connector(self._store(featurestore))

    # ==================== Feature group writes ====================

    def featuregroup(self, name: str, featurestore: Optional[str] = None) -> FeaturegroupRequestBuilder:
        """Start building a write request for a feature group."""
        return FeaturegroupRequestBuilder(name, featurestore=self._store(featurestore))

    def create_featuregroup(self, request: FeaturegroupRequest) -> WriteOutcome:
        return self.orchestrator.write(request)

    def insert_into_featuregroup(
        self,
        df: pd.DataFrame,
        name: str,
        version: int = 1,
        mode: str = "append",
        online: bool = False,
        offline: bool = True,
        featurestore: Optional[str] = None,
    ) -> int:
        """
        Insert rows into an existing cached feature group.

        Args:
            df: Rows to insert.
            name: Feature group name.
            version: Feature group version.
            mode: "append" or "overwrite".
            online: Also write the rows to the online store.
            offline: Write the rows to the offline store.
            featurestore: Feature store name.

        Returns:
            Number of rows written.
        """
        store = self._store(featurestore)
        entry = self.cache.find_featuregroup(store, name, version)
        table = table_name(name, version)
        if offline:
            self.offline_store.write(df, store, table, mode=mode)
        if online:
            if not entry.online_enabled:
                raise ValueError(f"Featuregroup '{name}' version {version} is not enabled for online serving")
            self.online_store.write(df, store, table, entry.primary_key, mode=mode)
        logger.info("featuregroup_rows_inserted", featurestore=store, table=table, rows=len(df), mode=mode)
        return len(df)

    def sync_table(
        self,
        name: str,
        version: int = 1,
        description: str = "",
        primary_key: Optional[List[str]] = None,
        partition_by: Optional[List[str]] = None,
        jobs: Optional[List[str]] = None,
        featurestore: Optional[str] = None,
    ) -> WriteOutcome:
        return self.orchestrator.sync_table(
            self._store(featurestore),
            name,
            version,
            description=description,
            jobs=jobs or (),
            primary_key=primary_key or (),
            partition_by=partition_by or (),
        )

    def delete_featuregroup_contents(
        self, name: str, version: int = 1, featurestore: Optional[str] = None
    ) -> WriteOutcome:
        return self.orchestrator.delete_contents(self._store(featurestore), name, version)

    def update_featuregroup_stats(
        self,
        name: str,
        version: int = 1,
        stat_columns: Optional[List[str]] = None,
        featurestore: Optional[str] = None,
    ) -> WriteOutcome:
        return self.orchestrator.update_statistics(self._store(featurestore), name, version, stat_columns)

    # ==================== Online serving ====================

    def enable_featuregroup_online(
        self, name: str, version: int = 1, featurestore: Optional[str] = None
    ) -> WriteOutcome:
        return self.orchestrator.enable_online(self._store(featurestore), name, version)

    def disable_featuregroup_online(
        self, name: str, version: int = 1, featurestore: Optional[str] = None
    ) -> WriteOutcome:
        return self.orchestrator.disable_online(self._store(featurestore), name, version)

    def get_feature_vector(
        self, name: str, entity_id: Any, version: int = 1, featurestore: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return the serving row of a single entity."""
        return self.online_store.get_feature_vector(self._store(featurestore), table_name(name, version), entity_id)

    def get_serving_features(
        self,
        name: str,
        entity_ids: List[Any],
        version: int = 1,
        feature_columns: Optional[List[str]] = None,
        featurestore: Optional[str] = None,
    ) -> pd.DataFrame:
        return self.online_store.get_features(
            self._store(featurestore), table_name(name, version), entity_ids, feature_columns
        )

    # ==================== Offline reads ====================

    def get_featuregroup_data(
        self,
        name: str,
        version: int = 1,
        columns: Optional[List[str]] = None,
        featurestore: Optional[str] = None,
    ) -> pd.DataFrame:
        """Read the offline rows of a feature group."""
        store = self._store(featurestore)
        self.cache.find_featuregroup(store, name, version)
        return self.offline_store.read(store, table_name(name, version), columns=columns)

    # ==================== Extended metadata ====================

    def add_metadata(
        self, name: str, metadata: Dict[str, str], version: int = 1, featurestore: Optional[str] = None
    ) -> List[WriteOutcome]:
        """Attach every key-value pair; stops at the first failure."""
        store = self._store(featurestore)
        outcomes = []
        for key, value in metadata.items():
            outcome = self.orchestrator.add_metadata(store, name, version, key, value)
            outcomes.append(outcome)
            if not outcome.succeeded:
                break
        return outcomes

    def get_metadata_attributes(
        self,
        name: str,
        version: int = 1,
        keys: Optional[List[str]] = None,
        featurestore: Optional[str] = None,
    ) -> Dict[str, str]:
        store = self._store(featurestore)
        if not keys:
            return self.orchestrator.get_metadata(store, name, version)
        result: Dict[str, str] = {}
        for key in keys:
            result.update(self.orchestrator.get_metadata(store, name, version, key))
        return result

    def remove_metadata(
        self, name: str, keys: List[str], version: int = 1, featurestore: Optional[str] = None
    ) -> List[WriteOutcome]:
        store = self._store(featurestore)
        return [self.orchestrator.remove_metadata(store, name, version, key) for key in keys]

    # ==================== Training datasets ====================

    def create_training_dataset(
        self,
        df: pd.DataFrame,
        name: str,
        version: int = 1,
        description: str = "",
        data_format: str = "parquet",
        jobs: Optional[List[str]] = None,
        compute_stats: bool = True,
        featurestore: Optional[str] = None,
    ) -> WriteOutcome:
        request = TrainingDatasetRequest(
            featurestore=self._store(featurestore),
            name=name,
            dataframe=df,
            version=version,
            description=description,
            data_format=data_format,
            jobs=tuple(jobs or ()),
            compute_stats=compute_stats,
        )
        return self.orchestrator.create_training_dataset(request)

    def get_training_dataset(
        self, name: str, version: int = 1, featurestore: Optional[str] = None
    ) -> pd.DataFrame:
        return self.orchestrator.read_training_dataset(self._store(featurestore), name, version)

    # ==================== Utility Operations ====================

    def get_status(self) -> Dict[str, Any]:
        """
        Return high-level Feature Store status.

        Returns:
            Status dictionary.
        """
        return {
            "featurestore": self._featurestore,
            "metadata_cached": self._featurestore is not None and self.cache.is_cached(self._featurestore),
            "offline_store": {
                "tables": self.offline_store.list_tables()
            },
            "online_store": {
                "tables": [t["table_name"] for t in self.online_store.list_tables()]
            },
            "training_datasets": self.training_dataset_store.list_tables(),
            "base_path": str(self.base_path)
        }

    def validate_feature_consistency(
        self,
        name: str,
        version: int = 1,
        sample_size: int = 100,
        featurestore: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate consistency between offline and online rows of a feature group.

        Args:
            name: Feature group name.
            version: Feature group version.
            sample_size: Validation sample size.
            featurestore: Feature store name.

        Returns:
            Validation report dictionary.
        """
        store = self._store(featurestore)
        entry = self.cache.find_featuregroup(store, name, version)
        table = table_name(name, version)
        entity_column = entry.primary_key[0] if entry.primary_key else None

        df_offline = self.offline_store.read(store, table)
        if entity_column is None:
            entity_column = str(df_offline.columns[0])
        if len(df_offline) > sample_size:
            df_offline = df_offline.sample(sample_size, random_state=42)

        entity_ids = df_offline[entity_column].tolist()
        df_online = self.online_store.get_features(store, table, entity_ids)

        common_columns = [c for c in df_offline.columns if c in df_online.columns and c != entity_column]

        mismatches = []
        for col in common_columns:
            offline_vals = df_offline.set_index(entity_column)[col]
            online_vals = df_online.set_index(entity_column)[col]

            # Align indexes
            common_idx = offline_vals.index.intersection(online_vals.index)

            if len(common_idx) > 0:
                diff = (offline_vals.loc[common_idx] != online_vals.loc[common_idx]).sum()
                if diff > 0:
                    mismatches.append({"column": col, "mismatches": int(diff)})

        return {
            "featuregroup": table,
            "sample_size": len(entity_ids),
            "common_columns": len(common_columns),
            "is_consistent": len(mismatches) == 0,
            "mismatches": mismatches
        }
