"""
Write Orchestrator - registers and populates feature groups.

A feature group write walks through the states

    VALIDATING -> DISPATCHING -> CREATING -> PHYSICAL_WRITE -> POST_PROCESSING -> DONE

and stops in FAILED on the first error. Nothing is retried and nothing is
rolled back: when the remote create succeeded but a physical write failed,
the outcome carries the assigned IDs and `failed_state="physical_write"`.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd
import structlog

from ..errors import (
    FeaturestoreError,
    PhysicalWriteError,
    ValidationError,
    WriteOutcome,
)
from ..models import (
    FeatureDescriptor,
    FeaturegroupEntry,
    FeaturegroupRequest,
    FeaturegroupVariant,
    FeaturestoreEntry,
    StorageConnectorDescriptor,
    StorageConnectorType,
    TrainingDatasetRequest,
    table_name,
)
from ..monitoring.metrics import OrchestratorMetrics
from ..rest.client import FeaturestoreRestClient
from . import hudi, schema
from .metadata_cache import MetadataCache
from .offline_store import WRITE_MODES as OFFLINE_WRITE_MODES, OfflineStore
from .online_store import WRITE_MODES as ONLINE_WRITE_MODES, OnlineStore
from .resolver import IdResolver
from .statistics import StatisticsComputer

logger = structlog.get_logger()


class WriteState(Enum):
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    CREATING = "creating"
    UPDATING = "updating"
    PHYSICAL_WRITE = "physical_write"
    POST_PROCESSING = "post_processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WritePlan:
    """Everything the remote and physical steps need, built while dispatching."""
    featurestore_id: int
    dto: Dict[str, Any]
    dto_type: str
    features: List[FeatureDescriptor] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)
    write_args: Dict[str, str] = field(default_factory=dict)


class _Run:
    """Tracks the state transitions of one orchestrated operation."""

    def __init__(self, operation: str, featurestore: str, name: str, metrics: Optional[OrchestratorMetrics]):
        self.operation = operation
        self.metrics = metrics
        self.state: Optional[WriteState] = None
        self.completed: List[str] = []
        self.featurestore_id: Optional[int] = None
        self.featuregroup_id: Optional[int] = None
        self.training_dataset_id: Optional[int] = None
        self.log = logger.bind(operation=operation, featurestore=featurestore, name=name)

    def enter(self, state: WriteState) -> None:
        if self.state is not None:
            self.completed.append(self.state.value)
        self.state = state
        self.log.debug("orchestrator_state", state=state.value)

    def _outcome(self, succeeded: bool, **kwargs) -> WriteOutcome:
        if self.metrics:
            self.metrics.record_operation(self.operation, succeeded)
        return WriteOutcome(
            operation=self.operation,
            succeeded=succeeded,
            featurestore_id=self.featurestore_id,
            featuregroup_id=self.featuregroup_id,
            training_dataset_id=self.training_dataset_id,
            completed_states=list(self.completed),
            **kwargs,
        )

    def done(self, data: Optional[Dict[str, Any]] = None) -> WriteOutcome:
        self.enter(WriteState.DONE)
        self.log.info(
            "operation_succeeded",
            featurestore_id=self.featurestore_id,
            featuregroup_id=self.featuregroup_id,
            training_dataset_id=self.training_dataset_id,
        )
        return self._outcome(True, data=data or {})

    def fail(self, error: FeaturestoreError) -> WriteOutcome:
        failed_state = self.state.value if self.state else None
        self.log.error(
            "operation_failed",
            failed_state=failed_state,
            featuregroup_id=self.featuregroup_id,
            **error.to_dict(),
        )
        self.state = WriteState.FAILED
        return self._outcome(False, error=error, failed_state=failed_state)


def _jobs_dto(jobs) -> List[Dict[str, str]]:
    return [{"jobName": job} for job in jobs]


def featuregroup_dto(
    featurestore: str,
    name: str,
    version: int,
    description: str,
    features: List[FeatureDescriptor],
    jobs=(),
    online: bool = False,
    compute_stats: bool = True,
    stat_columns=(),
    incremental: bool = False,
) -> Dict[str, Any]:
    """DTO of a cached feature group."""
    return {
        "featurestoreName": featurestore,
        "name": name,
        "version": version,
        "description": description,
        "jobs": _jobs_dto(jobs),
        "features": [f.to_dict() for f in features],
        "onlineEnabled": online,
        "descStatsEnabled": compute_stats,
        "featCorrEnabled": False,
        "featHistEnabled": False,
        "statisticColumns": list(stat_columns),
        "hudiEnabled": incremental,
    }


def on_demand_dto(request: FeaturegroupRequest, connector_id: int) -> Dict[str, Any]:
    """DTO of an on-demand feature group."""
    return {
        "featurestoreName": request.featurestore,
        "name": request.name,
        "version": request.version,
        "description": request.description,
        "jobs": _jobs_dto(request.jobs),
        "features": [],
        "query": request.sql_query,
        "jdbcConnectorId": connector_id,
    }


def entry_dto(entry: FeaturegroupEntry, featurestore: str, online: Optional[bool] = None) -> Dict[str, Any]:
    """DTO of an already registered feature group, used by update calls."""
    return featuregroup_dto(
        featurestore=featurestore,
        name=entry.name,
        version=entry.version,
        description=entry.description,
        features=list(entry.features),
        jobs=entry.jobs,
        online=entry.online_enabled if online is None else online,
    )


class WriteOrchestrator:
    """
    Coordinates remote feature store calls with the physical writes.

    Every public mutation returns a `WriteOutcome`; call `outcome.unwrap()`
    to raise the carried error instead.
    """

    def __init__(
        self,
        rest_client: FeaturestoreRestClient,
        cache: MetadataCache,
        offline_store: OfflineStore,
        online_store: OnlineStore,
        resolver: Optional[IdResolver] = None,
        training_dataset_store: Optional[OfflineStore] = None,
        statistics: Optional[StatisticsComputer] = None,
        metrics: Optional[OrchestratorMetrics] = None,
    ):
        self.rest_client = rest_client
        self.cache = cache
        self.resolver = resolver or IdResolver(cache)
        self.offline_store = offline_store
        self.online_store = online_store
        self.training_dataset_store = training_dataset_store or offline_store
        self.statistics = statistics or StatisticsComputer()
        self.metrics = metrics

    # ==================== Reads ====================

    def list_featurestores(self) -> List[FeaturestoreEntry]:
        return self.rest_client.get_featurestores()

    def get_online_connector(self, featurestore: str) -> StorageConnectorDescriptor:
        """JDBC connector of the online feature store backing `featurestore`."""
        return self.rest_client.get_online_storage_connector(self.resolver.resolve_featurestore_id(featurestore))

    # ==================== Feature group write ====================

    def write(self, request: FeaturegroupRequest) -> WriteOutcome:
        """
        Create a feature group and populate it.

        Args:
            request: Immutable write request.

        Returns:
            Outcome with the assigned IDs or the typed failure.
        """
        run = _Run("create_featuregroup", request.featurestore, request.name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            features, primary_key = self._validate(request)

            run.enter(WriteState.DISPATCHING)
            plan = self._dispatch(request, features, primary_key)
            run.featurestore_id = plan.featurestore_id

            run.enter(WriteState.CREATING)
            created = self.rest_client.create_featuregroup(plan.featurestore_id, plan.dto, plan.dto_type)
            run.featuregroup_id = created.get("id")
            run.log.info("featuregroup_created", featuregroup_id=run.featuregroup_id, variant=request.variant.value)

            if request.variant != FeaturegroupVariant.ON_DEMAND:
                run.enter(WriteState.PHYSICAL_WRITE)
                self._physical_write(request, plan, run)

            run.enter(WriteState.POST_PROCESSING)
            self._post_process(request, plan, run)
            return run.done()
        except FeaturestoreError as e:
            if run.featuregroup_id is not None or run.state in (
                WriteState.PHYSICAL_WRITE, WriteState.POST_PROCESSING
            ):
                # The group exists remotely; the next lookup must see it
                self.cache.invalidate(request.featurestore)
            return run.fail(e)

    def _validate(self, request: FeaturegroupRequest):
        """Local checks only, no remote call is issued from here."""
        schema.validate_version(request.version)

        if request.variant == FeaturegroupVariant.ON_DEMAND:
            if not request.sql_query:
                raise ValidationError("SQL query cannot be empty for on-demand feature groups")
            if not request.storage_connector:
                raise ValidationError(
                    "To create an on-demand feature group you must specify the name of a JDBC storage connector"
                )
            schema.validate_metadata(request.name, [FeatureDescriptor("query", "STRING")], request.description)
            return [], []

        schema.validate_dataframe(request.dataframe, request.name)
        primary_key = schema.primary_key_get_or_default(request.primary_key, request.dataframe)
        schema.validate_primary_key(request.dataframe, primary_key)
        schema.validate_partition_by(request.dataframe, list(request.partition_by))
        features = schema.infer_features(
            request.dataframe,
            primary_key,
            list(request.partition_by),
            online=request.online,
            online_types=request.online_types,
        )
        schema.validate_metadata(request.name, features, request.description)
        if request.variant == FeaturegroupVariant.CACHED:
            self._validate_mode(request)
        if request.variant == FeaturegroupVariant.INCREMENTAL and request.hudi_operation not in hudi.OPERATIONS:
            raise ValidationError(
                f"Unsupported incremental operation '{request.hudi_operation}', expected one of {hudi.OPERATIONS}"
            )
        return features, primary_key

    @staticmethod
    def _validate_mode(request: FeaturegroupRequest) -> None:
        targets = []
        if request.offline:
            targets.append(("offline", OFFLINE_WRITE_MODES))
        if request.online:
            targets.append(("online", ONLINE_WRITE_MODES))
        for target, modes in targets:
            if request.mode not in modes:
                raise ValidationError(
                    f"Unsupported write mode '{request.mode}' for the {target} store, expected one of {modes}"
                )

    def _dispatch(
        self,
        request: FeaturegroupRequest,
        features: List[FeatureDescriptor],
        primary_key: List[str],
    ) -> WritePlan:
        metadata = self.cache.get(request.featurestore)
        settings = metadata.settings
        dto_type = settings.featuregroup_type(request.variant)

        if request.variant == FeaturegroupVariant.ON_DEMAND:
            connector = self.cache.find_storage_connector(request.featurestore, request.storage_connector)
            if connector.connector_type != StorageConnectorType.JDBC:
                raise ValidationError(
                    "On-demand feature groups can only be linked to JDBC storage connectors, the provided "
                    f"storage connector is of type: {connector.connector_type.value}"
                )
            return WritePlan(metadata.featurestore.id, on_demand_dto(request, connector.id), dto_type)

        if request.online and not settings.online_enabled:
            raise ValidationError(
                f"Online feature store is not enabled for featurestore '{request.featurestore}'"
            )

        dto = featuregroup_dto(
            featurestore=request.featurestore,
            name=request.name,
            version=request.version,
            description=request.description,
            features=features,
            jobs=request.jobs,
            online=request.online,
            compute_stats=request.compute_stats,
            stat_columns=request.stat_columns,
            incremental=request.variant == FeaturegroupVariant.INCREMENTAL,
        )
        plan = WritePlan(metadata.featurestore.id, dto, dto_type, features, primary_key)
        if request.variant == FeaturegroupVariant.INCREMENTAL:
            plan.write_args = hudi.build_write_args(
                request.table_name,
                primary_key,
                list(request.partition_by),
                request.hudi_operation,
                request.featurestore,
                request.hudi_args,
            )
            hudi.validate_write_args(plan.write_args, request.dataframe.columns)
        return plan

    def _physical_write(self, request: FeaturegroupRequest, plan: WritePlan, run: _Run) -> None:
        """Offline first, then online; sequential and not transactional."""
        incremental = request.variant == FeaturegroupVariant.INCREMENTAL

        if request.offline:
            try:
                if incremental:
                    self.offline_store.write_incremental(
                        request.dataframe, request.featurestore, request.table_name, plan.write_args
                    )
                else:
                    self.offline_store.write(
                        request.dataframe, request.featurestore, request.table_name, mode=request.mode
                    )
            except Exception as e:
                raise PhysicalWriteError(
                    f"Offline write of featuregroup '{request.name}' failed: {e}", target="offline"
                ) from e
            run.log.info("offline_write_completed", table=request.table_name)

        if request.online:
            if incremental:
                mode = "overwrite" if plan.write_args.get(hudi.OPERATION) == "bulk_insert" else "upsert"
            else:
                mode = request.mode
            try:
                self.online_store.write(
                    request.dataframe, request.featurestore, request.table_name, plan.primary_key, mode=mode
                )
            except Exception as e:
                raise PhysicalWriteError(
                    f"Online write of featuregroup '{request.name}' failed: {e}", target="online"
                ) from e
            run.log.info("online_write_completed", table=request.table_name)

    def _post_process(self, request: FeaturegroupRequest, plan: WritePlan, run: _Run) -> None:
        if request.compute_stats and request.variant != FeaturegroupVariant.ON_DEMAND:
            if run.featuregroup_id is None:
                self.cache.refresh(request.featurestore)
                run.featuregroup_id = self.resolver.resolve_featuregroup_id(
                    request.featurestore, request.name, request.version
                )
            dto = dict(plan.dto)
            dto["descriptiveStatistics"] = self.statistics.compute(
                request.dataframe, list(request.stat_columns)
            )
            try:
                self.rest_client.update_featuregroup_stats(
                    plan.featurestore_id, run.featuregroup_id, dto, plan.dto_type
                )
            finally:
                self.cache.invalidate(request.featurestore)
            run.log.info("featuregroup_statistics_updated", featuregroup_id=run.featuregroup_id)

        self.cache.refresh(request.featurestore)
        if run.featuregroup_id is None:
            run.featuregroup_id = self.resolver.resolve_featuregroup_id(
                request.featurestore, request.name, request.version
            )

    # ==================== Online serving ====================

    def enable_online(self, featurestore: str, name: str, version: int) -> WriteOutcome:
        """
        Enable online serving and create the serving table when missing.

        Existing offline rows are copied into a newly created serving table.
        """
        run = _Run("enable_online", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            metadata = self.cache.get(featurestore)
            if not metadata.settings.online_enabled:
                raise ValidationError(f"Online feature store is not enabled for featurestore '{featurestore}'")
            entry = self.cache.find_featuregroup(featurestore, name, version)
            if entry.variant == FeaturegroupVariant.ON_DEMAND:
                raise ValidationError("Online serving cannot be enabled for on-demand feature groups")
            run.featurestore_id = metadata.featurestore.id
            run.featuregroup_id = entry.id

            run.enter(WriteState.UPDATING)
            self.rest_client.enable_featuregroup_online(
                run.featurestore_id, entry.id, entry_dto(entry, featurestore, online=True),
                metadata.settings.featuregroup_type(entry.variant),
            )

            run.enter(WriteState.PHYSICAL_WRITE)
            table = table_name(name, version)
            try:
                if self.online_store.create_table(featurestore, table, self._online_features(entry)):
                    if self.offline_store.exists(featurestore, table):
                        self.online_store.write(
                            self.offline_store.read(featurestore, table), featurestore, table,
                            entry.primary_key, mode="overwrite",
                        )
            except Exception as e:
                raise PhysicalWriteError(f"Could not create online table for '{name}': {e}", target="online") from e

            run.enter(WriteState.POST_PROCESSING)
            self.cache.refresh(featurestore)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    def disable_online(self, featurestore: str, name: str, version: int) -> WriteOutcome:
        """Disable online serving and drop the serving table."""
        run = _Run("disable_online", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            metadata = self.cache.get(featurestore)
            entry = self.cache.find_featuregroup(featurestore, name, version)
            run.featurestore_id = metadata.featurestore.id
            run.featuregroup_id = entry.id

            run.enter(WriteState.UPDATING)
            self.rest_client.disable_featuregroup_online(
                run.featurestore_id, entry.id, entry_dto(entry, featurestore, online=False),
                metadata.settings.featuregroup_type(entry.variant),
            )

            run.enter(WriteState.PHYSICAL_WRITE)
            try:
                self.online_store.drop_table(featurestore, table_name(name, version))
            except Exception as e:
                raise PhysicalWriteError(f"Could not drop online table for '{name}': {e}", target="online") from e

            run.enter(WriteState.POST_PROCESSING)
            self.cache.refresh(featurestore)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    @staticmethod
    def _online_features(entry: FeaturegroupEntry) -> List[FeatureDescriptor]:
        return [
            FeatureDescriptor(
                name=f.name,
                type=f.type,
                primary=f.primary,
                partition=f.partition,
                online_type=f.online_type or schema.online_type(f.type),
            )
            for f in entry.features
        ]

    # ==================== Existing tables ====================

    def sync_table(
        self,
        featurestore: str,
        name: str,
        version: int = 1,
        description: str = "",
        jobs=(),
        primary_key=(),
        partition_by=(),
    ) -> WriteOutcome:
        """
        Register an already materialized offline table as a feature group.

        No rows are written; the schema is read from the offline store.
        """
        run = _Run("sync_table", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            schema.validate_version(version)
            table = table_name(name, version)
            if not self.offline_store.exists(featurestore, table):
                raise ValidationError(f"Table '{featurestore}.{table}' does not exist in the offline store")
            table_schema = self.offline_store.schema(featurestore, table)
            pk = schema.primary_key_get_or_default(primary_key, table_schema)
            schema.validate_primary_key(table_schema, pk)
            schema.validate_partition_by(table_schema, list(partition_by))
            features = schema.infer_features(table_schema, pk, list(partition_by))
            schema.validate_metadata(name, features, description)

            run.enter(WriteState.DISPATCHING)
            metadata = self.cache.get(featurestore)
            run.featurestore_id = metadata.featurestore.id
            dto = featuregroup_dto(featurestore, name, version, description, features, jobs=jobs)

            run.enter(WriteState.CREATING)
            created = self.rest_client.sync_hive_table(
                run.featurestore_id, dto, metadata.settings.featuregroup_type(FeaturegroupVariant.CACHED)
            )
            run.featuregroup_id = created.get("id")

            run.enter(WriteState.POST_PROCESSING)
            self.cache.refresh(featurestore)
            if run.featuregroup_id is None:
                run.featuregroup_id = self.resolver.resolve_featuregroup_id(featurestore, name, version)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    def delete_contents(self, featurestore: str, name: str, version: int) -> WriteOutcome:
        """Clear the rows of a feature group while keeping it registered."""
        run = _Run("delete_contents", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            run.featurestore_id = self.resolver.resolve_featurestore_id(featurestore)
            run.featuregroup_id = self.resolver.resolve_featuregroup_id(featurestore, name, version)

            run.enter(WriteState.UPDATING)
            self.rest_client.delete_featuregroup_contents(run.featurestore_id, run.featuregroup_id, name)

            run.enter(WriteState.PHYSICAL_WRITE)
            table = table_name(name, version)
            cleared = {}
            for target, store in (("offline", self.offline_store), ("online", self.online_store)):
                try:
                    cleared[target] = store.clear(featurestore, table)
                except Exception as e:
                    raise PhysicalWriteError(
                        f"Could not clear the {target} table of '{name}': {e}", target=target
                    ) from e
            return run.done(data={"cleared": cleared})
        except FeaturestoreError as e:
            return run.fail(e)

    # ==================== Statistics ====================

    def update_statistics(
        self, featurestore: str, name: str, version: int, stat_columns: Optional[List[str]] = None
    ) -> WriteOutcome:
        """Recompute statistics from the offline table and push them."""
        run = _Run("update_statistics", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            metadata = self.cache.get(featurestore)
            entry = self.cache.find_featuregroup(featurestore, name, version)
            run.featurestore_id = metadata.featurestore.id
            run.featuregroup_id = entry.id
            table = table_name(name, version)
            if not self.offline_store.exists(featurestore, table):
                raise ValidationError(f"Featuregroup '{name}' has no offline data to compute statistics from")

            run.enter(WriteState.UPDATING)
            dto = entry_dto(entry, featurestore)
            dto["statisticColumns"] = list(stat_columns or [])
            dto["descriptiveStatistics"] = self.statistics.compute(
                self.offline_store.read(featurestore, table), stat_columns
            )
            self.rest_client.update_featuregroup_stats(
                run.featurestore_id, entry.id, dto, metadata.settings.featuregroup_type(entry.variant)
            )

            run.enter(WriteState.POST_PROCESSING)
            self.cache.refresh(featurestore)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    # ==================== Extended metadata ====================

    def add_metadata(self, featurestore: str, name: str, version: int, key: str, value: str) -> WriteOutcome:
        """Attach one key-value annotation to a feature group."""
        run = _Run("add_metadata", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            if not key:
                raise ValidationError("Metadata key cannot be empty")
            run.featurestore_id = self.resolver.resolve_featurestore_id(featurestore)
            run.featuregroup_id = self.resolver.resolve_featuregroup_id(featurestore, name, version)

            run.enter(WriteState.UPDATING)
            self.rest_client.add_xattr(run.featurestore_id, run.featuregroup_id, key, value)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    def get_metadata(
        self, featurestore: str, name: str, version: int, key: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Read annotations of a feature group (all of them when `key` is None).

        Raises:
            NotFoundError: The feature group is not in the cache.
            MetadataAttachError: The backend rejected the call.
        """
        featurestore_id = self.resolver.resolve_featurestore_id(featurestore)
        featuregroup_id = self.resolver.resolve_featuregroup_id(featurestore, name, version)
        return self.rest_client.get_xattrs(featurestore_id, featuregroup_id, key)

    def remove_metadata(self, featurestore: str, name: str, version: int, key: str) -> WriteOutcome:
        """Remove one annotation from a feature group."""
        run = _Run("remove_metadata", featurestore, name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            run.featurestore_id = self.resolver.resolve_featurestore_id(featurestore)
            run.featuregroup_id = self.resolver.resolve_featuregroup_id(featurestore, name, version)

            run.enter(WriteState.UPDATING)
            self.rest_client.remove_xattr(run.featurestore_id, run.featuregroup_id, key)
            return run.done()
        except FeaturestoreError as e:
            return run.fail(e)

    # ==================== Training datasets ====================

    def create_training_dataset(self, request: TrainingDatasetRequest) -> WriteOutcome:
        """Register a training dataset, write its rows and push its statistics."""
        run = _Run("create_training_dataset", request.featurestore, request.name, self.metrics)
        try:
            run.enter(WriteState.VALIDATING)
            schema.validate_version(request.version)
            schema.validate_dataframe(request.dataframe, request.name)
            features = schema.infer_features(request.dataframe, primary_key=[])
            schema.validate_metadata(request.name, features, request.description)

            run.enter(WriteState.DISPATCHING)
            metadata = self.cache.get(request.featurestore)
            run.featurestore_id = metadata.featurestore.id
            dto_type = metadata.settings.training_dataset_type
            dto = {
                "featurestoreName": request.featurestore,
                "name": request.name,
                "version": request.version,
                "description": request.description,
                "dataFormat": request.data_format,
                "jobs": _jobs_dto(request.jobs),
                "features": [f.to_dict() for f in features],
            }

            run.enter(WriteState.CREATING)
            created = self.rest_client.create_training_dataset(run.featurestore_id, dto, dto_type)
            run.training_dataset_id = created.get("id")

            run.enter(WriteState.PHYSICAL_WRITE)
            try:
                self.training_dataset_store.write(request.dataframe, request.featurestore, request.table_name)
            except Exception as e:
                raise PhysicalWriteError(
                    f"Write of training dataset '{request.name}' failed: {e}", target="offline"
                ) from e

            run.enter(WriteState.POST_PROCESSING)
            if request.compute_stats:
                if run.training_dataset_id is None:
                    self.cache.refresh(request.featurestore)
                    run.training_dataset_id = self.resolver.resolve_training_dataset_id(
                        request.featurestore, request.name, request.version
                    )
                dto["descriptiveStatistics"] = self.statistics.compute(request.dataframe)
                self.rest_client.update_training_dataset_stats(
                    run.featurestore_id, run.training_dataset_id, dto, dto_type
                )
            self.cache.refresh(request.featurestore)
            return run.done()
        except FeaturestoreError as e:
            if run.training_dataset_id is not None:
                self.cache.invalidate(request.featurestore)
            return run.fail(e)

    def read_training_dataset(self, featurestore: str, name: str, version: int = 1) -> pd.DataFrame:
        """Read the rows of a training dataset written by this client."""
        self.resolver.resolve_training_dataset_id(featurestore, name, version)
        return self.training_dataset_store.read(featurestore, table_name(name, version))
