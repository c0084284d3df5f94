"""
Feature store data model - metadata snapshots, feature descriptors and write requests.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .config import DEFAULT_SETTINGS


class FeaturegroupVariant(Enum):
    """Supported feature group kinds."""
    ON_DEMAND = "on_demand"
    CACHED = "cached"
    INCREMENTAL = "incremental"


class StorageConnectorType(Enum):
    """Storage connector types known to the backend."""
    JDBC = "JDBC"
    S3 = "S3"
    HOPSFS = "HOPSFS"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "StorageConnectorType":
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class FeatureDescriptor:
    """One feature (column) of a feature group."""
    name: str
    type: str
    primary: bool = False
    partition: bool = False
    online_type: Optional[str] = None
    description: str = "-"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "primary": self.primary,
            "partition": self.partition,
        }
        if self.online_type:
            data["onlineType"] = self.online_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeatureDescriptor":
        return cls(
            name=data["name"],
            type=data.get("type", "STRING"),
            primary=bool(data.get("primary", False)),
            partition=bool(data.get("partition", False)),
            online_type=data.get("onlineType"),
            description=data.get("description") or "-",
        )


@dataclass(frozen=True)
class StorageConnectorDescriptor:
    """Storage connector registered in the feature store."""
    id: int
    name: str
    connector_type: StorageConnectorType
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageConnectorDescriptor":
        known = {"id", "name", "storageConnectorType"}
        return cls(
            id=int(data["id"]),
            name=data["name"],
            connector_type=StorageConnectorType.parse(data.get("storageConnectorType")),
            properties={k: v for k, v in data.items() if k not in known},
        )


@dataclass(frozen=True)
class FeaturestoreEntry:
    """Feature store as listed for the project."""
    id: int
    name: str
    project_id: Optional[int] = None
    online_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeaturestoreEntry":
        return cls(
            id=int(data["featurestoreId"]),
            name=data["featurestoreName"],
            project_id=data.get("projectId"),
            online_enabled=bool(data.get("onlineEnabled", False)),
        )


@dataclass(frozen=True)
class FeaturegroupEntry:
    """Feature group as known by the backend."""
    id: int
    name: str
    version: int
    featurestore_id: Optional[int] = None
    featurestore_name: Optional[str] = None
    description: str = ""
    variant: FeaturegroupVariant = FeaturegroupVariant.CACHED
    online_enabled: bool = False
    features: Tuple[FeatureDescriptor, ...] = ()
    jobs: Tuple[str, ...] = ()

    @property
    def primary_key(self) -> List[str]:
        return [f.name for f in self.features if f.primary]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeaturegroupEntry":
        dto_type = str(data.get("type", ""))
        variant = (
            FeaturegroupVariant.ON_DEMAND
            if dto_type.lower().startswith("ondemand")
            else FeaturegroupVariant.CACHED
        )
        return cls(
            id=int(data["id"]),
            name=data["name"],
            version=int(data["version"]),
            featurestore_id=data.get("featurestoreId"),
            featurestore_name=data.get("featurestoreName"),
            description=data.get("description") or "",
            variant=variant,
            online_enabled=bool(data.get("onlineEnabled", data.get("onlineFeaturegroupEnabled", False))),
            features=tuple(FeatureDescriptor.from_dict(f) for f in data.get("features") or []),
            jobs=tuple(j["jobName"] for j in data.get("jobs") or [] if "jobName" in j),
        )


@dataclass(frozen=True)
class TrainingDatasetEntry:
    """Training dataset as known by the backend."""
    id: int
    name: str
    version: int
    featurestore_id: Optional[int] = None
    data_format: str = "parquet"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingDatasetEntry":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            version=int(data["version"]),
            featurestore_id=data.get("featurestoreId"),
            data_format=data.get("dataFormat") or "parquet",
        )


@dataclass(frozen=True)
class FeaturestoreSettings:
    """Store-wide settings delivered with the metadata."""
    cached_featuregroup_type: str = DEFAULT_SETTINGS["cachedFeaturegroupDtoType"]
    on_demand_featuregroup_type: str = DEFAULT_SETTINGS["onDemandFeaturegroupDtoType"]
    training_dataset_type: str = DEFAULT_SETTINGS["trainingDatasetDtoType"]
    online_enabled: bool = DEFAULT_SETTINGS["onlineFeaturestoreEnabled"]

    def featuregroup_type(self, variant: FeaturegroupVariant) -> str:
        """DTO type string the backend expects for a feature group variant."""
        if variant == FeaturegroupVariant.ON_DEMAND:
            return self.on_demand_featuregroup_type
        return self.cached_featuregroup_type

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FeaturestoreSettings":
        merged = {**DEFAULT_SETTINGS, **(data or {})}
        return cls(
            cached_featuregroup_type=merged["cachedFeaturegroupDtoType"],
            on_demand_featuregroup_type=merged["onDemandFeaturegroupDtoType"],
            training_dataset_type=merged["trainingDatasetDtoType"],
            online_enabled=bool(merged["onlineFeaturestoreEnabled"]),
        )


@dataclass(frozen=True)
class FeaturestoreMetadata:
    """
    Snapshot of one feature store's topology.

    Owned by the metadata cache and replaced as a whole on refresh.
    """
    featurestore: FeaturestoreEntry
    featurestores: Tuple[FeaturestoreEntry, ...] = ()
    featuregroups: Tuple[FeaturegroupEntry, ...] = ()
    training_datasets: Tuple[TrainingDatasetEntry, ...] = ()
    storage_connectors: Tuple[StorageConnectorDescriptor, ...] = ()
    settings: FeaturestoreSettings = field(default_factory=FeaturestoreSettings)
    fetched_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def from_json(
        cls,
        data: Dict[str, Any],
        featurestore: FeaturestoreEntry,
        featurestores: Tuple[FeaturestoreEntry, ...] = (),
    ) -> "FeaturestoreMetadata":
        """Build a snapshot from the `/metadata` response body."""
        return cls(
            featurestore=featurestore,
            featurestores=tuple(featurestores),
            featuregroups=tuple(FeaturegroupEntry.from_dict(fg) for fg in data.get("featuregroups") or []),
            training_datasets=tuple(
                TrainingDatasetEntry.from_dict(td) for td in data.get("trainingDatasets") or []
            ),
            storage_connectors=tuple(
                StorageConnectorDescriptor.from_dict(sc) for sc in data.get("storageConnectors") or []
            ),
            settings=FeaturestoreSettings.from_dict(data.get("settings")),
        )


@dataclass(frozen=True)
class FeaturegroupRequest:
    """
    Immutable write intent for one feature group.

    Use `FeaturegroupRequestBuilder` to assemble it; the builder only hands
    out fully constructed requests.
    """
    featurestore: str
    name: str
    version: int = 1
    description: str = ""
    variant: FeaturegroupVariant = FeaturegroupVariant.CACHED
    dataframe: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)
    online: bool = False
    offline: bool = True
    compute_stats: bool = True
    primary_key: Tuple[str, ...] = ()
    partition_by: Tuple[str, ...] = ()
    jobs: Tuple[str, ...] = ()
    online_types: Dict[str, str] = field(default_factory=dict)
    stat_columns: Tuple[str, ...] = ()
    sql_query: Optional[str] = None
    storage_connector: Optional[str] = None
    hudi_args: Dict[str, str] = field(default_factory=dict)
    hudi_operation: str = "bulk_insert"
    mode: str = "overwrite"

    @property
    def table_name(self) -> str:
        return table_name(self.name, self.version)


def table_name(name: str, version: int) -> str:
    """Physical table name of a feature group or training dataset version."""
    return f"{name}_{version}"


class FeaturegroupRequestBuilder:
    """
    Collects request fields and produces a frozen `FeaturegroupRequest`.

    Usage example:
        request = (
            FeaturegroupRequestBuilder("sales", featurestore="demo_featurestore")
            .version(1)
            .dataframe(df)
            .primary_key(["order_id"])
            .build()
        )
    """

    def __init__(self, name: str, featurestore: str):
        self._fields: Dict[str, Any] = {"name": name, "featurestore": featurestore}

    def _set(self, key: str, value: Any) -> "FeaturegroupRequestBuilder":
        self._fields[key] = value
        return self

    def version(self, version: int):
        return self._set("version", version)

    def description(self, description: str):
        return self._set("description", description)

    def dataframe(self, dataframe: pd.DataFrame):
        return self._set("dataframe", dataframe)

    def online(self, online: bool = True):
        return self._set("online", online)

    def offline(self, offline: bool = True):
        return self._set("offline", offline)

    def compute_stats(self, compute_stats: bool = True):
        return self._set("compute_stats", compute_stats)

    def primary_key(self, columns: List[str]):
        return self._set("primary_key", tuple(columns))

    def partition_by(self, columns: List[str]):
        return self._set("partition_by", tuple(columns))

    def jobs(self, jobs: List[str]):
        return self._set("jobs", tuple(jobs))

    def online_types(self, online_types: Dict[str, str]):
        return self._set("online_types", dict(online_types))

    def stat_columns(self, columns: List[str]):
        return self._set("stat_columns", tuple(columns))

    def mode(self, mode: str):
        return self._set("mode", mode)

    def on_demand(self, sql_query: str, storage_connector: str):
        self._set("variant", FeaturegroupVariant.ON_DEMAND)
        self._set("sql_query", sql_query)
        return self._set("storage_connector", storage_connector)

    def incremental(self, hudi_args: Optional[Dict[str, str]] = None, operation: str = "bulk_insert"):
        self._set("variant", FeaturegroupVariant.INCREMENTAL)
        self._set("hudi_operation", operation)
        return self._set("hudi_args", dict(hudi_args or {}))

    def build(self) -> FeaturegroupRequest:
        return FeaturegroupRequest(**self._fields)


@dataclass(frozen=True)
class TrainingDatasetRequest:
    """Immutable write intent for one training dataset."""
    featurestore: str
    name: str
    dataframe: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)
    version: int = 1
    description: str = ""
    data_format: str = "parquet"
    jobs: Tuple[str, ...] = ()
    compute_stats: bool = True

    @property
    def table_name(self) -> str:
        return table_name(self.name, self.version)
