"""
Repository pattern for data access.

Handles the key-value store for session data and preferences, and the
append-only usage ledger.
"""

import json
import logging
import sqlite3
from typing import Any, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import ActionType, UsageRecord

logger = logging.getLogger(__name__)

SAVED_PROMPTS_KEY = "savedPrompts"
AUTOSAVE_ENABLED_KEY = "isAutoSaveEnabled"
MODEL_CONFIG_KEY = "userModelConfig"


class KeyValueStore:
    """Flat namespaced key-value store for JSON blobs.

    Storage failures never propagate: reads degrade to "absent" and writes
    report ``False`` so callers can keep operating in memory.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._ready = False

    def _ensure_table(self, conn: sqlite3.Connection) -> None:
        if self._ready:
            return
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
        self._ready = True

    def get(self, key: str) -> Optional[str]:
        """Read the raw blob stored under ``key``.

        Returns:
            The stored string, or None when absent or unreadable
        """
        try:
            conn = get_connection(self.db_path)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Could not open store %s: %s", self.db_path, e)
            return None
        try:
            self._ensure_table(conn)
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            logger.warning("Could not read key %r: %s", key, e)
            return None
        finally:
            conn.close()

    def set(self, key: str, raw: str) -> bool:
        """Write a raw blob under ``key``.

        Returns:
            True when the write was committed
        """
        try:
            conn = get_connection(self.db_path)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Could not open store %s: %s", self.db_path, e)
            return False
        try:
            self._ensure_table(conn)
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, raw),
            )
            conn.commit()
            return True
        except sqlite3.Error as e:
            logger.error("Could not write key %r: %s", key, e)
            return False
        finally:
            conn.close()

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read and decode a JSON blob; malformed data yields ``default``."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Malformed JSON under key %r: %s", key, e)
            return default

    def set_json(self, key: str, value: Any) -> bool:
        """Encode ``value`` as JSON and write it."""
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Could not serialize value for key %r: %s", key, e)
            return False
        return self.set(key, raw)


def save_model_config(store: KeyValueStore, config: dict) -> bool:
    """Persist the opaque model-configuration blob."""
    return store.set_json(MODEL_CONFIG_KEY, config)


def load_model_config(store: KeyValueStore) -> Optional[dict]:
    """Load the model-configuration blob, or None if never saved."""
    config = store.get_json(MODEL_CONFIG_KEY)
    if config is not None and not isinstance(config, dict):
        logger.warning("Ignoring model config of type %s", type(config).__name__)
        return None
    return config


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_record table if it doesn't exist.

    This creates an append-only ledger for immutable usage records.
    No UPDATE or DELETE operations should ever be performed on this table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp INTEGER NOT NULL,
                model TEXT NOT NULL,
                action_type TEXT NOT NULL,
                prompt_tokens INTEGER NOT NULL,
                candidates_tokens INTEGER NOT NULL,
                thinking_tokens INTEGER,
                cached_content_tokens INTEGER,
                total_tokens INTEGER NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


_INSERT_SQL = """
    INSERT INTO usage_record
    (timestamp, model, action_type, prompt_tokens, candidates_tokens,
     thinking_tokens, cached_content_tokens, total_tokens)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


def _record_params(record: UsageRecord) -> tuple:
    return (
        record.timestamp,
        record.model,
        record.action_type.value,
        record.prompt_tokens,
        record.candidates_tokens,
        record.thinking_tokens,
        record.cached_content_tokens,
        record.total_tokens,
    )


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single usage record to the ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(_INSERT_SQL, _record_params(record))
        conn.commit()
    finally:
        conn.close()


def insert_usage_records(records: List[UsageRecord], db_path: str = DEFAULT_DB_PATH) -> None:
    """Append multiple usage records atomically.

    All records are inserted in a single transaction to ensure consistency.

    Args:
        records: List of usage records to store
        db_path: Path to SQLite database file
    """
    if not records:
        return

    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN TRANSACTION")
        for record in records:
            conn.execute(_INSERT_SQL, _record_params(record))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_usage_records(
    model: Optional[str] = None,
    limit: Optional[int] = None,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageRecord]:
    """Fetch usage records in ingestion order (oldest first).

    Args:
        model: Optional filter for a specific model
        limit: Optional maximum number of records (most recent kept)
        db_path: Path to SQLite database file

    Returns:
        List of usage records ordered by insertion
    """
    conn = get_connection(db_path)
    try:
        query = """
            SELECT timestamp, model, action_type, prompt_tokens, candidates_tokens,
                   thinking_tokens, cached_content_tokens, total_tokens
            FROM usage_record
        """
        params: list = []
        if model:
            query += " WHERE model = ?"
            params.append(model)
        query += " ORDER BY id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        cursor = conn.execute(query, params)
        records = []
        for row in cursor.fetchall():
            records.append(UsageRecord(
                timestamp=row[0],
                model=row[1],
                action_type=ActionType(row[2]),
                prompt_tokens=row[3],
                candidates_tokens=row[4],
                thinking_tokens=row[5],
                cached_content_tokens=row[6],
                total_tokens=row[7],
            ))
        records.reverse()
        return records
    finally:
        conn.close()
