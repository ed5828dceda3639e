import logging
from typing import List, Optional, Sequence, Tuple

from sovereign.core.types import MemoryEntry
from sovereign.providers import Retriever
from sovereign.storage import StorageBackend

logger = logging.getLogger(__name__)


class MemoryLog:
    """
    Append-only per-identity record of interactions.

    Ordering is (created_at, sequence) ascending; the storage sequence breaks
    timestamp ties so the order is total and stable. Similarity lookup is
    delegated to an optional Retriever.
    """

    def __init__(self, storage: StorageBackend, retriever: Optional[Retriever] = None):
        self.storage = storage
        self.retriever = retriever

    def append(self, identity: str, content: str, embedding: Sequence[float] = ()) -> MemoryEntry:
        """Raises StorageError if the write fails; nothing is written in that case."""
        entry = self.storage.append_entry(identity, content, embedding)
        logger.info("Appended memory entry %s (seq %d)", entry.id, entry.sequence)
        return entry

    def append_many(self, identity: str, items: Sequence[Tuple[str, Sequence[float]]]) -> List[MemoryEntry]:
        """Append (content, embedding) pairs as one unit; a StorageError means none were written."""
        entries = self.storage.append_entries(identity, items)
        for entry in entries:
            logger.info("Appended memory entry %s (seq %d)", entry.id, entry.sequence)
        return entries

    def list_ordered(self, identity: str) -> List[MemoryEntry]:
        return self.storage.load_entries(identity)

    def count(self, identity: str) -> int:
        return self.storage.get_entry_count(identity)

    def top_relevant(self, identity: str, query_vector: Sequence[float], k: int) -> List[MemoryEntry]:
        """Best-effort: no retriever or a failing one yields []."""
        if self.retriever is None or k <= 0:
            return []
        try:
            return list(self.retriever.top_relevant(identity, query_vector, k))
        except Exception as e:
            logger.warning("Memory retrieval failed, continuing without context: %s", e)
            return []
