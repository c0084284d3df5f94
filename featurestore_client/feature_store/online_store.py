"""
Online Store - low-latency storage for feature serving.
"""
import sqlite3
import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Any
from datetime import datetime
import json
import structlog

from ..config import STORE_CONFIG
from ..models import FeatureDescriptor

logger = structlog.get_logger()

WRITE_MODES = ("overwrite", "append", "upsert")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class OnlineStore:
    """
    Online store for serving feature groups.

    Uses SQLite for low-latency key lookups. Tables are named
    `<featurestore>.<table>` and indexed on their primary key.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize online store.

        Args:
            db_path: SQLite database path.
        """
        self.db_path = Path(db_path or STORE_CONFIG["online_path"])
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        """Initialize internal SQLite tables."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS feature_tables (
                table_name TEXT PRIMARY KEY,
                primary_key TEXT,
                feature_columns TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Return a SQLite connection."""
        return sqlite3.connect(str(self.db_path))

    @staticmethod
    def qualified_name(featurestore: str, table_name: str) -> str:
        return f"{featurestore}.{table_name}"

    def _register(
        self,
        cursor: sqlite3.Cursor,
        table: str,
        primary_key: List[str],
        feature_columns: List[str],
    ) -> None:
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT OR REPLACE INTO feature_tables (table_name, primary_key, feature_columns, created_at, updated_at)
            VALUES (?, ?, ?, COALESCE((SELECT created_at FROM feature_tables WHERE table_name = ?), ?), ?)
        """, (table, json.dumps(primary_key), json.dumps(feature_columns), table, now, now))

    def _create_index(self, cursor: sqlite3.Cursor, table: str, primary_key: List[str]) -> None:
        if not primary_key:
            return
        columns = ", ".join(_quote(c) for c in primary_key)
        cursor.execute(f"CREATE INDEX IF NOT EXISTS {_quote('idx_' + table)} ON {_quote(table)}({columns})")

    def table_exists(self, featurestore: str, table_name: str) -> bool:
        return self.get_table_info(featurestore, table_name) is not None

    def create_table(
        self,
        featurestore: str,
        table_name: str,
        features: List[FeatureDescriptor],
    ) -> bool:
        """
        Create an empty serving table from feature descriptors.

        Returns:
            True when the table was created, False when it already existed.
        """
        if self.table_exists(featurestore, table_name):
            return False

        table = self.qualified_name(featurestore, table_name)
        primary_key = [f.name for f in features if f.primary]
        columns = ", ".join(
            f"{_quote(f.name)} {f.online_type or 'VARCHAR(1000)'}" for f in features
        )

        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(f"CREATE TABLE {_quote(table)} ({columns})")
        self._create_index(cursor, table, primary_key)
        self._register(cursor, table, primary_key, [f.name for f in features if not f.primary])
        conn.commit()
        conn.close()

        logger.info("online_table_created", table=table, features=len(features))
        return True

    def write(
        self,
        df: pd.DataFrame,
        featurestore: str,
        table_name: str,
        primary_key: List[str],
        mode: str = "overwrite",
    ) -> int:
        """
        Materialize a dataframe into a serving table.

        Args:
            df: Feature DataFrame.
            featurestore: Feature store name.
            table_name: Target table name.
            primary_key: Primary key columns (indexed).
            mode: "overwrite" replaces all rows, "append" adds rows,
                "upsert" replaces rows sharing a primary key.

        Returns:
            Number of rows written.
        """
        if mode not in WRITE_MODES:
            raise ValueError(f"Unsupported write mode '{mode}', expected one of {WRITE_MODES}")

        table = self.qualified_name(featurestore, table_name)
        feature_columns = [c for c in df.columns if c not in primary_key]
        exists = self.table_exists(featurestore, table_name)

        conn = self._get_connection()
        try:
            if mode == "upsert" and exists:
                if not primary_key:
                    raise ValueError("Upsert writes require a primary key")
                condition = " AND ".join(f"{_quote(c)} = ?" for c in primary_key)
                keys = [
                    tuple(v.item() if hasattr(v, "item") else v for v in row)
                    for row in df[primary_key].itertuples(index=False, name=None)
                ]
                conn.executemany(f"DELETE FROM {_quote(table)} WHERE {condition}", keys)
            if_exists = "replace" if mode == "overwrite" or not exists else "append"
            df.to_sql(table, conn, if_exists=if_exists, index=False)
            cursor = conn.cursor()
            self._create_index(cursor, table, primary_key)
            self._register(cursor, table, primary_key, [str(c) for c in feature_columns])
            conn.commit()
        finally:
            conn.close()

        logger.info(
            "online_table_written",
            table=table,
            mode=mode,
            rows=len(df),
            features=len(feature_columns)
        )

        return len(df)

    def get_features(
        self,
        featurestore: str,
        table_name: str,
        entity_ids: List[Any],
        feature_columns: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Fetch features for specific entities, keyed on the first primary key column.

        Args:
            featurestore: Feature store name.
            table_name: Source table.
            entity_ids: Entity IDs.
            feature_columns: Columns to return (all by default).

        Returns:
            Feature DataFrame.
        """
        info = self.get_table_info(featurestore, table_name)
        if info is None:
            raise ValueError(f"Table '{self.qualified_name(featurestore, table_name)}' not found")

        table = info["table_name"]
        entity_column = info["primary_key"][0]

        if feature_columns:
            columns_str = ", ".join(_quote(c) for c in [entity_column] + feature_columns)
        else:
            columns_str = "*"

        placeholders = ", ".join(["?" for _ in entity_ids])
        query = f"SELECT {columns_str} FROM {_quote(table)} WHERE {_quote(entity_column)} IN ({placeholders})"

        conn = self._get_connection()
        df = pd.read_sql_query(query, conn, params=entity_ids)
        conn.close()

        logger.debug("online_features_retrieved", table=table, entities=len(entity_ids), rows=len(df))
        return df

    def get_feature_vector(self, featurestore: str, table_name: str, entity_id: Any) -> Dict[str, Any]:
        """Fetch the feature vector of a single entity."""
        df = self.get_features(featurestore, table_name, [entity_id])

        if df.empty:
            return {}

        return df.iloc[0].to_dict()

    def list_tables(self) -> List[Dict[str, Any]]:
        """List available tables."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT table_name, primary_key, feature_columns, created_at, updated_at FROM feature_tables")
        rows = cursor.fetchall()

        conn.close()

        return [
            {
                "table_name": row[0],
                "primary_key": json.loads(row[1]),
                "feature_columns": json.loads(row[2]),
                "created_at": row[3],
                "updated_at": row[4]
            }
            for row in rows
        ]

    def get_table_info(self, featurestore: str, table_name: str) -> Optional[Dict[str, Any]]:
        """Return metadata and row count for a table."""
        table = self.qualified_name(featurestore, table_name)
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "SELECT table_name, primary_key, feature_columns, created_at, updated_at FROM feature_tables WHERE table_name = ?",
            (table,)
        )
        row = cursor.fetchone()

        if not row:
            conn.close()
            return None

        cursor.execute(f"SELECT COUNT(*) FROM {_quote(table)}")
        count = cursor.fetchone()[0]

        conn.close()

        return {
            "table_name": row[0],
            "primary_key": json.loads(row[1]),
            "feature_columns": json.loads(row[2]),
            "num_rows": count,
            "created_at": row[3],
            "updated_at": row[4]
        }

    def clear(self, featurestore: str, table_name: str) -> bool:
        """
        Delete all rows of a table, keeping the table.

        Returns:
            True when the table existed.
        """
        if not self.table_exists(featurestore, table_name):
            return False
        table = self.qualified_name(featurestore, table_name)
        conn = self._get_connection()
        try:
            conn.execute(f"DELETE FROM {_quote(table)}")
            conn.commit()
        finally:
            conn.close()
        logger.info("online_table_cleared", table=table)
        return True

    def drop_table(self, featurestore: str, table_name: str) -> bool:
        """
        Drop table and delete its metadata.

        Returns:
            True when the table existed.
        """
        existed = self.table_exists(featurestore, table_name)
        table = self.qualified_name(featurestore, table_name)
        conn = self._get_connection()
        try:
            conn.execute(f"DROP TABLE IF EXISTS {_quote(table)}")
            conn.execute("DELETE FROM feature_tables WHERE table_name = ?", (table,))
            conn.commit()
        finally:
            conn.close()
        logger.info("online_table_dropped", table=table, existed=existed)
        return existed
