import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
DEFAULT_DB_PATH = Path("data/roomsplit.db")


class DatabaseConfig:
    """Where the document database lives."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)

    @property
    def location(self) -> str:
        return str(self.db_path.absolute())

    def ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def open_connection(config: DatabaseConfig) -> sqlite3.Connection:
    """Open a connection for the JSON document table in WAL mode."""
    config.ensure_directory()
    conn = sqlite3.connect(config.location, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


class DatabaseManager:
    """
    Owns the single connection shared by the document store.

    Writes go through transaction(), which holds a re-entrant lock for
    the duration of the block.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            logger.debug("Opening database at %s", self.config.location)
            self._connection = open_connection(self.config)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block of writes atomically.

        Usage:
            with db_manager.transaction() as conn:
                conn.execute("UPDATE documents SET ...")
        """
        with self._lock:
            conn = self.get_connection()
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def initialize(self, schema_path: Path = SCHEMA_PATH) -> None:
        """Create the documents table on first use. Safe to call every start."""
        script = schema_path.read_text()
        with self._lock:
            conn = self.get_connection()
            conn.executescript(script)
            conn.commit()

    def schema_version(self) -> Optional[int]:
        row = self.get_connection().execute(
            "SELECT MAX(version) AS version FROM schema_version"
        ).fetchone()
        return row["version"] if row else None

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
