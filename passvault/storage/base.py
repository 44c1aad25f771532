"""
Storage contract for encrypted vault entries.

A store only ever sees ciphertext in ``Entry.password``; metadata (username,
url, notes, tags) is kept as plain text. Implementations serialize their own
reads and writes.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from ..exceptions import InvalidEntry


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entry(BaseModel):
    """A stored credential. ``password`` holds the encrypted blob."""

    id: Optional[int] = None
    name: str
    username: str = ""
    password: bytes
    url: str = ""
    notes: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def __repr__(self) -> str:
        # Keep the blob out of reprs and tracebacks.
        return f"<Entry name={self.name!r} username={self.username!r} tags={self.tags!r}>"

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, username, url and notes."""
        q = query.lower()
        return any(
            q in field.lower()
            for field in (self.name, self.username, self.url, self.notes)
        )


class StorageStats(BaseModel):
    total_entries: int = 0
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None
    average_pass_age: float = 0.0  # in days


def validate_entry(entry: Optional[Entry]) -> None:
    """Reject entries a store must never persist.

    Raises:
        InvalidEntry: If entry is None, nameless, or has no password blob.
    """
    if entry is None:
        raise InvalidEntry("invalid entry")
    if not entry.name:
        raise InvalidEntry("entry name is required")
    if not entry.password:
        raise InvalidEntry("entry password is required")


class SecretStore(ABC):
    """CRUD contract for encrypted entries.

    ``put`` raises ``AlreadyExists`` for a duplicate name; ``get``, ``update``,
    ``update_many`` and ``delete`` raise ``NotFound`` for a missing one.
    """

    def initialize(self) -> None:
        """Prepare the backend (create tables, directories...)."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "SecretStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @abstractmethod
    def put(self, entry: Entry) -> Entry:
        ...

    @abstractmethod
    def get(self, name: str) -> Entry:
        ...

    @abstractmethod
    def update(self, entry: Entry, touch: bool = True) -> Entry:
        ...

    @abstractmethod
    def update_many(self, entries: Iterable[Entry], touch: bool = True) -> None:
        """Apply several updates as one unit: all of them or none."""

    @abstractmethod
    def delete(self, name: str) -> None:
        ...

    @abstractmethod
    def list_entries(self) -> list[Entry]:
        ...

    def search(self, query: str) -> list[Entry]:
        return [entry for entry in self.list_entries() if entry.matches(query)]

    def by_tag(self, tag: str) -> list[Entry]:
        return [entry for entry in self.list_entries() if tag in entry.tags]

    def stats(self) -> StorageStats:
        entries = self.list_entries()
        if not entries:
            return StorageStats()
        now = utcnow()
        ages = [(now - entry.updated_at).total_seconds() / 86400 for entry in entries]
        return StorageStats(
            total_entries=len(entries),
            oldest_entry=min(entry.created_at for entry in entries),
            newest_entry=max(entry.created_at for entry in entries),
            average_pass_age=sum(ages) / len(ages),
        )
