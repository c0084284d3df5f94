"""
Write arguments for incremental (Hudi-style) feature group writes.
"""
from typing import Dict, List, Optional

from ..config import HUDI_DEFAULT_ARGS
from ..errors import ValidationError

TABLE_NAME = "hoodie.table.name"
OPERATION = "hoodie.datasource.write.operation"
RECORD_KEY = "hoodie.datasource.write.recordkey.field"
PARTITION_FIELD = "hoodie.datasource.write.partitionpath.field"
PRECOMBINE_FIELD = "hoodie.datasource.write.precombine.field"
HIVE_SYNC_TABLE = "hoodie.datasource.hive_sync.table"
HIVE_SYNC_DATABASE = "hoodie.datasource.hive_sync.database"
HIVE_SYNC_PARTITION_FIELDS = "hoodie.datasource.hive_sync.partition_fields"
HIVE_PARTITION_EXTRACTOR = "hoodie.datasource.hive_sync.partition_extractor_class"

DEFAULT_PARTITION_EXTRACTOR = "org.apache.hudi.hive.MultiPartKeysValueExtractor"

OPERATIONS = ("bulk_insert", "insert", "upsert")


def merge_args(*layers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """
    Merge argument maps, later layers winning key-for-key.

    >>> merge_args({"a": 1, "b": 2}, {"b": 3, "c": 4}, {"c": 5})
    {'a': 1, 'b': 3, 'c': 5}
    """
    merged: Dict[str, str] = {}
    for layer in layers:
        merged.update(layer or {})
    return merged


def derived_args(
    table_name: str,
    primary_key: List[str],
    partition_by: List[str],
    operation: str,
    featurestore: str,
) -> Dict[str, str]:
    """Arguments that follow from the write operation itself."""
    args = {
        OPERATION: operation,
        TABLE_NAME: table_name,
        RECORD_KEY: primary_key[0],
        HIVE_PARTITION_EXTRACTOR: DEFAULT_PARTITION_EXTRACTOR,
        HIVE_SYNC_TABLE: table_name,
        HIVE_SYNC_DATABASE: featurestore,
    }
    if partition_by:
        joined = ",".join(partition_by)
        args[PARTITION_FIELD] = joined
        args[PRECOMBINE_FIELD] = joined
        args[HIVE_SYNC_PARTITION_FIELDS] = joined
    return args


def build_write_args(
    table_name: str,
    primary_key: List[str],
    partition_by: List[str],
    operation: str,
    featurestore: str,
    overrides: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Build the full argument map: defaults, then derived values, then caller overrides.
    """
    return merge_args(
        HUDI_DEFAULT_ARGS,
        derived_args(table_name, primary_key, partition_by, operation, featurestore),
        overrides,
    )


def split_fields(value: Optional[str]) -> List[str]:
    return [field.strip() for field in (value or "").split(",") if field.strip()]


def validate_write_args(args: Dict[str, str], columns) -> None:
    """
    Check the merged arguments against the dataframe before anything is registered.

    Raises:
        ValidationError: Unknown operation, missing record key, or a key,
            partition or precombine field that is not a column.
    """
    operation = args.get(OPERATION)
    if operation not in OPERATIONS:
        raise ValidationError(f"Unsupported incremental operation '{operation}', expected one of {OPERATIONS}")

    if not split_fields(args.get(RECORD_KEY)):
        raise ValidationError("Incremental writes require a record key")

    available = set(columns)
    for key in (RECORD_KEY, PARTITION_FIELD, PRECOMBINE_FIELD):
        missing = [f for f in split_fields(args.get(key)) if f not in available]
        if missing:
            raise ValidationError(f"Fields {missing} of '{key}' are not columns of the dataframe")
