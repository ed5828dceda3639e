"""
Storage backends for users, memory logs and anchor receipts.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple
from pathlib import Path
from sovereign.core.types import AnchorReceipt, MemoryEntry, UserRecord


class StorageBackend(ABC):
    """Abstract base for all persistent storage implementations."""

    @abstractmethod
    def ensure_user(self, identity: str) -> UserRecord:
        """Idempotent create; returns the existing record if present."""

    @abstractmethod
    def get_user(self, identity: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    def append_entry(self, identity: str, content: str, embedding: Sequence[float]) -> MemoryEntry:
        pass

    @abstractmethod
    def append_entries(self, identity: str, items: Sequence[Tuple[str, Sequence[float]]]) -> List[MemoryEntry]:
        """Atomic batch of (content, embedding) pairs: all are written or none."""

    @abstractmethod
    def load_entries(self, identity: str) -> List[MemoryEntry]:
        """All entries for identity, ascending (created_at, sequence)."""

    @abstractmethod
    def get_entry_count(self, identity: str) -> int:
        pass

    @abstractmethod
    def record_anchor(self, receipt: AnchorReceipt) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    """
    sqlite:///abs/path.db, sqlite://relative.db, sqlite://:memory: or a bare file path.
    """
    uri = uri.strip()
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):]
        if raw_path in ("", ":memory:", "/:memory:"):
            return SQLiteStorage(":memory:")
        return SQLiteStorage(Path(raw_path).resolve())

    elif "://" in uri:
        raise ValueError(f"Unsupported storage URI: {uri}")
    elif uri:
        from .sqlite import SQLiteStorage
        return SQLiteStorage(Path(uri).resolve())
    else:
        raise ValueError("Empty storage URI")


from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "SQLiteStorage"]
