import sqlite3
import json
import logging
import os
from datetime import datetime
from typing import Any, Optional, Protocol
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DATABASE_PATH = os.getenv("DATABASE_PATH", "neurodone.db")

# Named blobs
PATTERNS_KEY = "patterns"
PROJECTS_KEY = "projects"
USAGE_STATS_KEY = "usage_stats"

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True,
        env={**os.environ, "DATABASE_PATH": os.path.abspath(DATABASE_PATH)},
    )

def load_blob(key: str) -> Optional[Any]:
    """
    Load a JSON blob by key.
    Missing keys, corrupt JSON and database errors all come back as None.
    """
    try:
        with get_db() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    except sqlite3.Error as e:
        logger.warning(f"Failed to load '{key}': {e}")
        return None

    if not row:
        return None
    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        logger.warning(f"Corrupt JSON in '{key}', starting empty")
        return None

def save_blob(key: str, value: Any) -> bool:
    """Save a JSON blob. Returns False instead of raising when the write fails."""
    now = datetime.now().isoformat()
    try:
        with get_db() as conn:
            conn.execute(
                """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, json.dumps(value), now)
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to save '{key}': {e}")
        return False
    return True


class Storage(Protocol):
    def load(self, key: str) -> Optional[Any]: ...

    def save(self, key: str, value: Any) -> None: ...


class SQLiteStorage:
    """Storage backed by the kv_store table."""

    def load(self, key: str) -> Optional[Any]:
        return load_blob(key)

    def save(self, key: str, value: Any) -> None:
        save_blob(key, value)


class MemoryStorage:
    """In-process storage. Values are kept as JSON text, like the database does."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self.data = dict(data or {})

    def load(self, key: str) -> Optional[Any]:
        raw = self.data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Corrupt JSON in '{key}', starting empty")
            return None

    def save(self, key: str, value: Any) -> None:
        self.data[key] = json.dumps(value)
