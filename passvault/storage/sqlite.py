"""
SQLite-backed entry store.

Schema: one ``entries`` table keyed by a unique ``name``; the encrypted
password is a BLOB, tags are a JSON array, timestamps are ISO-8601 UTC.

Security Note:
    Never log password blobs. Only entry names and operations are logged.
"""
import sqlite3
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Union

import orjson

from ..exceptions import AlreadyExists, NotFound, StorageError
from .base import Entry, SecretStore, utcnow, validate_entry

logger = logging.getLogger("passvault.storage")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        username TEXT,
        password BLOB NOT NULL,
        url TEXT,
        notes TEXT,
        tags TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entries_name ON entries(name)",
    "CREATE INDEX IF NOT EXISTS idx_entries_username ON entries(username)",
    "CREATE INDEX IF NOT EXISTS idx_entries_created_at ON entries(created_at)",
)

_COLUMNS = "id, name, username, password, url, notes, tags, created_at, updated_at"

_INSERT_ENTRY = """
INSERT INTO entries (name, username, password, url, notes, tags, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_ENTRY = f"SELECT {_COLUMNS} FROM entries WHERE name = ?"

_UPDATE_ENTRY = """
UPDATE entries
SET username = ?, password = ?, url = ?, notes = ?, tags = ?, updated_at = ?
WHERE name = ?
"""

_DELETE_ENTRY = "DELETE FROM entries WHERE name = ?"

_SELECT_ALL = f"SELECT {_COLUMNS} FROM entries ORDER BY name"

_SEARCH_ENTRIES = f"""
SELECT {_COLUMNS} FROM entries
WHERE name LIKE ? ESCAPE '\\' OR username LIKE ? ESCAPE '\\'
   OR url LIKE ? ESCAPE '\\' OR notes LIKE ? ESCAPE '\\'
ORDER BY name
"""


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _row_to_entry(row: Any) -> Entry:
    return Entry(
        id=row["id"],
        name=row["name"],
        username=row["username"] or "",
        password=bytes(row["password"]),
        url=row["url"] or "",
        notes=row["notes"] or "",
        tags=orjson.loads(row["tags"]) if row["tags"] else [],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SQLiteStore(SecretStore):
    """Entry store on a single SQLite database file.

    Args:
        path: Database file path, or ``":memory:"``.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = str(path)
        self._mu = threading.RLock()
        try:
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
        except sqlite3.Error as err:
            raise StorageError(f"failed to open database: {err}") from err
        self._conn.row_factory = sqlite3.Row

    @property
    def path(self) -> str:
        return self._path

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.Error as err:
            raise StorageError(f"database error: {err}") from err

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        with self._mu:
            for statement in _SCHEMA:
                self._execute(statement)
        logger.debug("SQLite store ready at %s", self._path)

    def close(self) -> None:
        with self._mu:
            self._conn.close()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def put(self, entry: Entry) -> Entry:
        validate_entry(entry)
        with self._mu:
            try:
                with self._conn:
                    cursor = self._conn.execute(
                        _INSERT_ENTRY,
                        (
                            entry.name,
                            entry.username,
                            entry.password,
                            entry.url,
                            entry.notes,
                            orjson.dumps(entry.tags).decode("utf-8"),
                            entry.created_at.isoformat(),
                            entry.updated_at.isoformat(),
                        ),
                    )
            except sqlite3.IntegrityError as err:
                raise AlreadyExists(f"entry already exists: {entry.name}") from err
            except sqlite3.Error as err:
                raise StorageError(f"failed to add entry: {err}") from err
        logger.debug("Stored entry %s", entry.name)
        return entry.model_copy(update={"id": cursor.lastrowid})

    def get(self, name: str) -> Entry:
        with self._mu:
            row = self._execute(_SELECT_ENTRY, (name,)).fetchone()
        if row is None:
            raise NotFound(f"entry not found: {name}")
        return _row_to_entry(row)

    @staticmethod
    def _update_params(entry: Entry, touch: bool) -> tuple:
        updated_at = utcnow() if touch else entry.updated_at
        return (
            entry.username,
            entry.password,
            entry.url,
            entry.notes,
            orjson.dumps(entry.tags).decode("utf-8"),
            updated_at.isoformat(),
            entry.name,
        )

    def update(self, entry: Entry, touch: bool = True) -> Entry:
        validate_entry(entry)
        with self._mu:
            cursor = self._execute(_UPDATE_ENTRY, self._update_params(entry, touch))
            if cursor.rowcount == 0:
                raise NotFound(f"entry not found: {entry.name}")
            stored = self.get(entry.name)
        logger.debug("Updated entry %s", entry.name)
        return stored

    def update_many(self, entries: Iterable[Entry], touch: bool = True) -> None:
        """Run every update in a single transaction.

        Any failure, including a missing entry, rolls back the whole batch.
        """
        entries = list(entries)
        for entry in entries:
            validate_entry(entry)
        with self._mu:
            try:
                with self._conn:
                    for entry in entries:
                        cursor = self._conn.execute(
                            _UPDATE_ENTRY, self._update_params(entry, touch)
                        )
                        if cursor.rowcount == 0:
                            raise NotFound(f"entry not found: {entry.name}")
            except sqlite3.Error as err:
                raise StorageError(f"batch update failed: {err}") from err
        logger.debug("Updated %d entr(ies) in one transaction", len(entries))

    def delete(self, name: str) -> None:
        with self._mu:
            cursor = self._execute(_DELETE_ENTRY, (name,))
        if cursor.rowcount == 0:
            raise NotFound(f"entry not found: {name}")
        logger.debug("Deleted entry %s", name)

    def list_entries(self) -> list[Entry]:
        with self._mu:
            rows = self._execute(_SELECT_ALL).fetchall()
        return [_row_to_entry(row) for row in rows]

    def search(self, query: str) -> list[Entry]:
        pattern = _like_pattern(query)
        with self._mu:
            rows = self._execute(_SEARCH_ENTRIES, (pattern,) * 4).fetchall()
        return [_row_to_entry(row) for row in rows]

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def backup(self, path: Union[str, Path]) -> None:
        """Copy the database to ``path`` using the SQLite online backup API."""
        with self._mu:
            try:
                dest = sqlite3.connect(str(path))
                try:
                    self._conn.backup(dest)
                finally:
                    dest.close()
            except sqlite3.Error as err:
                raise StorageError(f"failed to back up database: {err}") from err
        logger.info("Vault database backed up to %s", path)

    def restore(self, path: Union[str, Path]) -> None:
        """Replace the current contents with the database at ``path``."""
        if not Path(path).exists():
            raise StorageError(f"backup file not found: {path}")
        with self._mu:
            try:
                source = sqlite3.connect(str(path))
                try:
                    source.backup(self._conn)
                finally:
                    source.close()
            except sqlite3.Error as err:
                raise StorageError(f"failed to restore database: {err}") from err
        logger.info("Vault database restored from %s", path)
