"""In-process store, used for tests and the ``memory`` storage type."""
import logging
import threading
from typing import Iterable, Optional

from ..exceptions import AlreadyExists, NotFound
from .base import Entry, SecretStore, utcnow, validate_entry

logger = logging.getLogger("passvault.storage")


class MemoryStore(SecretStore):
    """Dict-backed store; entries are copied in and out."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}
        self._next_id = 1
        self._mu = threading.RLock()

    def put(self, entry: Entry) -> Entry:
        validate_entry(entry)
        with self._mu:
            if entry.name in self._entries:
                raise AlreadyExists(f"entry already exists: {entry.name}")
            stored = entry.model_copy(deep=True, update={"id": self._next_id})
            self._next_id += 1
            self._entries[entry.name] = stored
        logger.debug("Stored entry %s", entry.name)
        return stored.model_copy(deep=True)

    def get(self, name: str) -> Entry:
        with self._mu:
            try:
                return self._entries[name].model_copy(deep=True)
            except KeyError:
                raise NotFound(f"entry not found: {name}") from None

    @staticmethod
    def _merge(current: Optional[Entry], entry: Entry, touch: bool) -> Entry:
        if current is None:
            raise NotFound(f"entry not found: {entry.name}")
        return entry.model_copy(
            deep=True,
            update={
                "id": current.id,
                "created_at": current.created_at,
                "updated_at": utcnow() if touch else entry.updated_at,
            },
        )

    def update(self, entry: Entry, touch: bool = True) -> Entry:
        validate_entry(entry)
        with self._mu:
            stored = self._merge(self._entries.get(entry.name), entry, touch)
            self._entries[entry.name] = stored
        logger.debug("Updated entry %s", entry.name)
        return stored.model_copy(deep=True)

    def update_many(self, entries: Iterable[Entry], touch: bool = True) -> None:
        entries = list(entries)
        for entry in entries:
            validate_entry(entry)
        with self._mu:
            staged = dict(self._entries)
            for entry in entries:
                staged[entry.name] = self._merge(staged.get(entry.name), entry, touch)
            self._entries = staged
        logger.debug("Updated %d entr(ies) in one batch", len(entries))

    def delete(self, name: str) -> None:
        with self._mu:
            if self._entries.pop(name, None) is None:
                raise NotFound(f"entry not found: {name}")
        logger.debug("Deleted entry %s", name)

    def list_entries(self) -> list[Entry]:
        with self._mu:
            return [
                entry.model_copy(deep=True)
                for entry in sorted(self._entries.values(), key=lambda e: e.name)
            ]
