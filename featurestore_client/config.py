"""
Centralized project configuration.
"""
import os
from pathlib import Path

# Base directories
BASE_DIR = Path(__file__).parent.parent
STORE_DIR = Path(os.getenv("FEATURESTORE_LOCAL_PATH", BASE_DIR / "feature_store"))

# Remote gateway configuration
GATEWAY_CONFIG = {
    "endpoint": os.getenv("FEATURESTORE_REST_ENDPOINT", "https://localhost:8181/hopsworks-api/api"),
    "project_id": int(os.getenv("FEATURESTORE_PROJECT_ID", 1)),
    "api_key": os.getenv("FEATURESTORE_API_KEY"),
    "timeout": float(os.getenv("FEATURESTORE_REST_TIMEOUT", 30)),
    # Only GET calls are retried; create/update calls are issued exactly once
    "get_retries": int(os.getenv("FEATURESTORE_GET_RETRIES", 2)),
    "retry_backoff": float(os.getenv("FEATURESTORE_RETRY_BACKOFF", 0.5)),
    "verify": os.getenv("FEATURESTORE_VERIFY_TLS", "true").lower() == "true",
}

# Physical storage configuration
STORE_CONFIG = {
    "offline_path": STORE_DIR / "offline",
    "online_path": STORE_DIR / "online" / "features.db",
}

# Metadata rules enforced before any remote call
VALIDATION_CONFIG = {
    "name_pattern": r"^[a-z0-9_]+$",
    "feature_name_pattern": r"^[a-zA-Z0-9_]+$",
    "max_name_length": 256,
    "max_feature_name_length": 767,
    "max_description_length": 2000,
}

# DTO type strings used when the store settings do not provide them
DEFAULT_SETTINGS = {
    "cachedFeaturegroupDtoType": "cachedFeaturegroupDTO",
    "onDemandFeaturegroupDtoType": "onDemandFeaturegroupDTO",
    "trainingDatasetDtoType": "hopsfsTrainingDatasetDTO",
    "onlineFeaturestoreEnabled": True,
}

# Incremental (Hudi-style) write defaults
HUDI_DEFAULT_ARGS = {
    "hoodie.datasource.write.storage.type": "COPY_ON_WRITE",
    "hoodie.datasource.write.operation": "bulk_insert",
    "hoodie.datasource.write.partitionpath.field": "",
    "hoodie.datasource.write.precombine.field": "",
    "hoodie.datasource.hive_sync.enable": "true",
    "hoodie.datasource.hive_sync.partition_extractor_class":
        "org.apache.hudi.hive.MultiPartKeysValueExtractor",
}

# Logging configuration
LOG_CONFIG = {
    "level": os.getenv("LOG_LEVEL", "INFO"),
    "format": os.getenv("LOG_FORMAT", "json"),
}
