import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from roomsplit.database.connection import DatabaseManager

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]


class PersistenceError(Exception):
    """Raised when the document store rejects or fails a read/write."""
    pass


class DocumentNotFoundError(PersistenceError):
    """Raised when updating a document that doesn't exist."""
    pass


class Subscription:
    """Handle returned by DocumentStore.subscribe()."""

    def __init__(self, store: "DocumentStore", listener_id: int):
        self._store = store
        self._listener_id = listener_id
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        if self.active:
            self._store._remove_listener(self._listener_id)
            self.active = False

    def __repr__(self) -> str:
        return f"Subscription(id={self._listener_id}, active={self.active})"


class DocumentStore(ABC):
    """
    Abstract document store: named collections of JSON-like documents.

    Documents returned by reads always carry their id under the "id" key.
    Live queries are push-based: subscribers receive the full matching
    result set, never deltas.
    """

    def __init__(self):
        self._listeners: Dict[int, tuple[str, str, Any, SnapshotCallback]] = {}
        self._next_listener_id = 1

    @abstractmethod
    def add(self, collection: str, data: Document) -> str:
        """
        Insert a document with a generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        """Create or fully replace a document."""
        pass

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document, or None if it doesn't exist."""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        """
        Merge fields into an existing document.

        Raises:
            DocumentNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if something was deleted."""
        pass

    @abstractmethod
    def query(self, collection: str, field: str, value: Any) -> List[Document]:
        """Return every document where `field == value`."""
        pass

    def subscribe(
        self,
        collection: str,
        field: str,
        value: Any,
        callback: SnapshotCallback,
    ) -> Subscription:
        """
        Watch `collection where field == value`.

        The callback gets the current snapshot right away and again after
        every write to the collection. If that first call raises, nothing
        is registered.
        """
        callback(self.query(collection, field, value))

        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (collection, field, value, callback)

        return Subscription(self, listener_id)

    def _remove_listener(self, listener_id: int) -> None:
        self._listeners.pop(listener_id, None)

    def _notify(self, collection: str) -> None:
        """Push a fresh snapshot to every listener on the collection."""
        for collection_name, field, value, callback in list(self._listeners.values()):
            if collection_name != collection:
                continue
            try:
                callback(self.query(collection, field, value))
            except Exception:
                # A broken subscriber must not fail the write that triggered it
                logger.exception(
                    "Subscriber on %s(%s == %r) raised", collection, field, value
                )


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite implementation of the DocumentStore.

    Documents are stored as JSON text in the `documents` table and
    filtered with json_extract().
    """

    def __init__(self, db_manager: DatabaseManager):
        super().__init__()
        self.db = db_manager

    def add(self, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        payload = {k: v for k, v in data.items() if k != "id"}

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
                    (collection, doc_id, json.dumps(payload)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not add document to '{collection}': {e}") from e

        self._notify(collection)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        payload = {k: v for k, v in data.items() if k != "id"}

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)
                    ON CONFLICT (collection, id) DO UPDATE SET
                        data = excluded.data,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (collection, doc_id, json.dumps(payload)),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not write {collection}/{doc_id}: {e}") from e

        self._notify(collection)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            cursor = self.db.get_connection().execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read {collection}/{doc_id}: {e}") from e

        if row is None:
            return None

        return self._row_to_document(row)

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        try:
            with self.db.transaction() as conn:
                row = conn.execute(
                    "SELECT data FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                ).fetchone()

                if row is None:
                    raise DocumentNotFoundError(
                        f"No document {collection}/{doc_id} to update"
                    )

                data = json.loads(row["data"])
                data.update({k: v for k, v in fields.items() if k != "id"})

                conn.execute(
                    """
                    UPDATE documents SET data = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE collection = ? AND id = ?
                    """,
                    (json.dumps(data), collection, doc_id),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not update {collection}/{doc_id}: {e}") from e

        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> bool:
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, doc_id),
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not delete {collection}/{doc_id}: {e}") from e

        if deleted:
            self._notify(collection)
        return deleted

    def query(self, collection: str, field: str, value: Any) -> List[Document]:
        sql = "SELECT id, data FROM documents WHERE collection = ?"
        params: List[Any] = [collection]

        if value is None:
            sql += " AND json_extract(data, ?) IS NULL"
            params.append(f"$.{field}")
        else:
            sql += " AND json_extract(data, ?) = ?"
            params.extend([f"$.{field}", value])

        sql += " ORDER BY rowid"

        try:
            rows = self.db.get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not query '{collection}': {e}") from e

        return [self._row_to_document(row) for row in rows]

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        document = json.loads(row["data"])
        document["id"] = row["id"]
        return document
