"""
Schema inference and request validation for feature group writes.
"""
import re
from typing import Dict, Iterable, List, Optional

import pandas as pd
from pandas.api import types as ptypes

from ..config import VALIDATION_CONFIG
from ..errors import ValidationError
from ..models import FeatureDescriptor

# Offline (Hive) type -> online (MySQL) type
ONLINE_TYPE_MAPPING = {
    "TINYINT": "TINYINT",
    "INT": "INT",
    "BIGINT": "BIGINT",
    "FLOAT": "FLOAT",
    "DOUBLE": "DOUBLE",
    "BOOLEAN": "TINYINT",
    "DATE": "DATE",
    "TIMESTAMP": "TIMESTAMP",
    "STRING": "VARCHAR(1000)",
}


def hive_type(dtype) -> str:
    """Map a pandas dtype to the offline (Hive) type of the feature."""
    if ptypes.is_bool_dtype(dtype):
        return "BOOLEAN"
    if ptypes.is_integer_dtype(dtype):
        itemsize = getattr(dtype, "itemsize", 8)
        if itemsize <= 1:
            return "TINYINT"
        return "INT" if itemsize <= 4 else "BIGINT"
    if ptypes.is_float_dtype(dtype):
        return "FLOAT" if getattr(dtype, "itemsize", 8) <= 4 else "DOUBLE"
    if ptypes.is_datetime64_any_dtype(dtype):
        return "TIMESTAMP"
    return "STRING"


def online_type(offline_type: str) -> str:
    return ONLINE_TYPE_MAPPING.get(offline_type, "VARCHAR(1000)")


def primary_key_get_or_default(primary_key: Iterable[str], df: pd.DataFrame) -> List[str]:
    """
    Return the primary key, defaulting to the first column of the dataframe.

    Args:
        primary_key: Primary key columns supplied by the caller (may be empty).
        df: Source dataframe.

    Returns:
        List of primary key columns.
    """
    columns = list(primary_key or [])
    if columns:
        return columns
    if len(df.columns) == 0:
        raise ValidationError("Cannot default the primary key of a dataframe without columns")
    return [str(df.columns[0])]


def validate_dataframe(df: Optional[pd.DataFrame], name: str) -> None:
    if df is None:
        raise ValidationError(f"Dataframe to create featuregroup '{name}' from cannot be None")
    if df.empty or len(df.columns) == 0:
        raise ValidationError(f"Dataframe to create featuregroup '{name}' from is empty")


def validate_primary_key(df: pd.DataFrame, primary_key: List[str]) -> None:
    """Primary key must be a non-empty, duplicate-free subset of the columns."""
    if not primary_key:
        raise ValidationError("Primary key cannot be empty")
    if len(set(primary_key)) != len(primary_key):
        raise ValidationError(f"Primary key contains duplicate columns: {primary_key}")
    missing = [col for col in primary_key if col not in df.columns]
    if missing:
        raise ValidationError(
            f"Invalid primary key {primary_key}, columns {missing} are not part of the dataframe schema: "
            f"{list(df.columns)}"
        )


def validate_partition_by(df: pd.DataFrame, partition_by: List[str]) -> None:
    missing = [col for col in partition_by if col not in df.columns]
    if missing:
        raise ValidationError(f"Partition columns {missing} are not part of the dataframe schema")


def infer_features(
    df: pd.DataFrame,
    primary_key: List[str],
    partition_by: Optional[List[str]] = None,
    online: bool = False,
    online_types: Optional[Dict[str, str]] = None,
) -> List[FeatureDescriptor]:
    """
    Infer the feature schema of a dataframe.

    Args:
        df: Source dataframe.
        primary_key: Primary key columns.
        partition_by: Partition columns.
        online: Whether online types should be attached.
        online_types: Caller overrides of the online type per feature.

    Returns:
        One descriptor per column, in column order.
    """
    partition_by = partition_by or []
    online_types = online_types or {}
    features = []
    for column, dtype in df.dtypes.items():
        name = str(column)
        offline = hive_type(dtype)
        features.append(FeatureDescriptor(
            name=name,
            type=offline,
            primary=name in primary_key,
            partition=name in partition_by,
            online_type=online_types.get(name, online_type(offline)) if online else None,
        ))
    return features


def validate_metadata(name: str, features: List[FeatureDescriptor], description: str) -> None:
    """
    Validate names and description before anything is sent to the backend.
    """
    name_pattern = re.compile(VALIDATION_CONFIG["name_pattern"])
    feature_pattern = re.compile(VALIDATION_CONFIG["feature_name_pattern"])

    if not name or not name_pattern.match(name):
        raise ValidationError(
            f"Illegal featuregroup name '{name}', must match {VALIDATION_CONFIG['name_pattern']}"
        )
    if len(name) > VALIDATION_CONFIG["max_name_length"]:
        raise ValidationError(
            f"Featuregroup name '{name}' exceeds {VALIDATION_CONFIG['max_name_length']} characters"
        )
    if description and len(description) > VALIDATION_CONFIG["max_description_length"]:
        raise ValidationError(
            f"Description exceeds {VALIDATION_CONFIG['max_description_length']} characters"
        )
    if not features:
        raise ValidationError(f"Featuregroup '{name}' must have at least one feature")

    seen = set()
    for feature in features:
        if not feature_pattern.match(feature.name):
            raise ValidationError(
                f"Illegal feature name '{feature.name}', must match {VALIDATION_CONFIG['feature_name_pattern']}"
            )
        if len(feature.name) > VALIDATION_CONFIG["max_feature_name_length"]:
            raise ValidationError(f"Feature name '{feature.name}' is too long")
        if feature.name in seen:
            raise ValidationError(f"Duplicate feature name '{feature.name}'")
        seen.add(feature.name)


def validate_version(version) -> None:
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValidationError(f"Version must be a positive integer, got: {version!r}")
