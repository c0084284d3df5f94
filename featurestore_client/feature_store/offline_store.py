"""
Offline Store - bulk storage for feature group tables.
"""
import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Any
from datetime import datetime
import json
import threading
import structlog

from ..config import STORE_CONFIG
from .hudi import OPERATION, OPERATIONS, PARTITION_FIELD, PRECOMBINE_FIELD, RECORD_KEY, split_fields

logger = structlog.get_logger()

WRITE_MODES = ("overwrite", "append")


class OfflineStore:
    """
    Offline store for feature group tables.

    Each table version is one Parquet file under `<featurestore>/<table>.parquet`,
    indexed by a JSON metadata file.
    """

    def __init__(self, store_path: Optional[Path] = None):
        """
        Initialize offline store.

        Args:
            store_path: Directory where tables are stored.
        """
        self.store_path = Path(store_path or STORE_CONFIG["offline_path"])
        self.store_path.mkdir(parents=True, exist_ok=True)

        self.metadata_path = self.store_path / "metadata.json"
        self._lock = threading.Lock()
        self._metadata = self._load_metadata()

    def _load_metadata(self) -> Dict[str, Any]:
        """Load metadata file."""
        if self.metadata_path.exists():
            with open(self.metadata_path, "r") as f:
                return json.load(f)
        return {"tables": {}, "created_at": datetime.now().isoformat()}

    def _save_metadata(self) -> None:
        """Persist metadata file."""
        self._metadata["updated_at"] = datetime.now().isoformat()
        with open(self.metadata_path, "w") as f:
            json.dump(self._metadata, f, indent=2)

    @staticmethod
    def _key(featurestore: str, table_name: str) -> str:
        return f"{featurestore}.{table_name}"

    def _table_path(self, featurestore: str, table_name: str) -> Path:
        return self.store_path / featurestore / f"{table_name}.parquet"

    def _persist(
        self,
        df: pd.DataFrame,
        featurestore: str,
        table_name: str,
        operation: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> str:
        file_path = self._table_path(featurestore, table_name)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(file_path, index=False)

        key = self._key(featurestore, table_name)
        with self._lock:
            entry = self._metadata["tables"].setdefault(key, {
                "featurestore": featurestore,
                "table_name": table_name,
                "created_at": datetime.now().isoformat(),
                "commits": [],
            })
            entry.update({
                "file_path": str(file_path),
                "num_rows": len(df),
                "columns": [str(c) for c in df.columns],
                **(extra or {}),
            })
            entry["commits"].append({
                "operation": operation,
                "num_rows": len(df),
                "committed_at": datetime.now().isoformat(),
            })
            self._save_metadata()

        logger.info(
            "offline_table_written",
            featurestore=featurestore,
            table=table_name,
            operation=operation,
            rows=len(df),
            columns=len(df.columns)
        )
        return str(file_path)

    def exists(self, featurestore: str, table_name: str) -> bool:
        return self._key(featurestore, table_name) in self._metadata["tables"]

    def write(
        self,
        df: pd.DataFrame,
        featurestore: str,
        table_name: str,
        mode: str = "overwrite",
    ) -> str:
        """
        Write a dataframe into a table.

        Args:
            df: Feature DataFrame.
            featurestore: Feature store (database) name.
            table_name: Target table name.
            mode: "overwrite" replaces the table, "append" adds rows.

        Returns:
            Saved file path.
        """
        if mode not in WRITE_MODES:
            raise ValueError(f"Unsupported write mode '{mode}', expected one of {WRITE_MODES}")

        if mode == "append" and self.exists(featurestore, table_name):
            df = pd.concat([self.read(featurestore, table_name), df], ignore_index=True)

        return self._persist(df, featurestore, table_name, mode)

    def write_incremental(
        self,
        df: pd.DataFrame,
        featurestore: str,
        table_name: str,
        write_args: Dict[str, str],
    ) -> str:
        """
        Incremental write keyed on the record key.

        `upsert` replaces existing rows with the same record key, `insert`
        appends, `bulk_insert` rewrites the table. When a precombine field is
        set, duplicate keys inside the batch keep the row with the highest
        precombine value.
        """
        operation = write_args.get(OPERATION, "bulk_insert")
        if operation not in OPERATIONS:
            raise ValueError(f"Unsupported incremental operation '{operation}', expected one of {OPERATIONS}")
        record_key = split_fields(write_args.get(RECORD_KEY))
        precombine = [c for c in split_fields(write_args.get(PRECOMBINE_FIELD)) if c in df.columns]
        if not record_key:
            raise ValueError("Incremental writes require a record key")

        batch = df
        if precombine:
            batch = batch.sort_values(precombine, kind="stable")
        if operation != "insert":
            batch = batch.drop_duplicates(subset=record_key, keep="last")

        if operation in ("upsert", "insert") and self.exists(featurestore, table_name):
            existing = self.read(featurestore, table_name)
            if operation == "upsert":
                keys = pd.MultiIndex.from_frame(batch[record_key])
                existing_keys = pd.MultiIndex.from_frame(existing[record_key])
                existing = existing[~existing_keys.isin(keys)]
            batch = pd.concat([existing, batch], ignore_index=True)

        return self._persist(
            batch.reset_index(drop=True),
            featurestore,
            table_name,
            operation,
            extra={
                "record_key": record_key,
                "partition_fields": split_fields(write_args.get(PARTITION_FIELD)),
            },
        )

    def read(
        self,
        featurestore: str,
        table_name: str,
        columns: Optional[List[str]] = None,
    ) -> pd.DataFrame:
        """
        Read a table from the offline store.

        Args:
            featurestore: Feature store name.
            table_name: Table name.
            columns: Optional selected columns.

        Returns:
            DataFrame with the table rows.
        """
        entry = self.get_table_info(featurestore, table_name)
        if entry is None:
            raise ValueError(f"Table '{featurestore}.{table_name}' not found")

        df = pd.read_parquet(entry["file_path"], columns=columns)

        logger.debug("offline_table_read", featurestore=featurestore, table=table_name, rows=len(df))
        return df

    def schema(self, featurestore: str, table_name: str) -> pd.DataFrame:
        """Return an empty dataframe carrying the column names and dtypes of a table."""
        return self.read(featurestore, table_name).iloc[0:0]

    def clear(self, featurestore: str, table_name: str) -> bool:
        """
        Remove all rows of a table while keeping its schema.

        Returns:
            True when the table existed.
        """
        if not self.exists(featurestore, table_name):
            return False
        self._persist(self.schema(featurestore, table_name), featurestore, table_name, "clear")
        return True

    def delete_table(self, featurestore: str, table_name: str) -> bool:
        """
        Delete a table and its metadata.

        Returns:
            True when deleted successfully.
        """
        key = self._key(featurestore, table_name)
        with self._lock:
            entry = self._metadata["tables"].pop(key, None)
            if entry is None:
                return False
            file_path = Path(entry["file_path"])
            if file_path.exists():
                file_path.unlink()
            self._save_metadata()

        logger.info("offline_table_deleted", featurestore=featurestore, table=table_name)
        return True

    def list_tables(self, featurestore: Optional[str] = None) -> List[str]:
        """List table names, optionally for one feature store."""
        return [
            entry["table_name"]
            for entry in self._metadata["tables"].values()
            if featurestore is None or entry["featurestore"] == featurestore
        ]

    def get_table_info(self, featurestore: str, table_name: str) -> Optional[Dict[str, Any]]:
        """Get metadata for one table."""
        return self._metadata["tables"].get(self._key(featurestore, table_name))
