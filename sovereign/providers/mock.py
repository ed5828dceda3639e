"""
Deterministic stand-ins for the external providers, used by the default
server wiring and by tests. Swap in real clients through the same Protocols.
"""

import hashlib
from datetime import datetime, timezone
from typing import List, Sequence

import numpy as np

from sovereign.core.types import AnchorReceipt, MemoryEntry
from sovereign.crypto.hashing import record_hash
from sovereign.storage import StorageBackend

EMBEDDING_DIM = 1536


class HashEmbedder:
    """Pseudo-embedding seeded by sha256(text): same text, same vector."""

    def __init__(self, dim: int = EMBEDDING_DIM):
        self.dim = dim

    def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return rng.random(self.dim).tolist()


class EchoCompleter:
    def complete(self, context: str, prompt: str) -> str:
        found = "some" if context else "no"
        return f'This is a simulated AI response. You asked: "{prompt}". I found {found} context.'


class CosineRetriever:
    """
    Brute-force cosine similarity over an identity's stored embeddings.
    Fine for demo-sized logs; a vector index replaces it in production.
    """

    def __init__(self, storage: StorageBackend, min_score: float = 0.0):
        self.storage = storage
        self.min_score = min_score

    def top_relevant(self, identity: str, query_vector: Sequence[float], k: int) -> List[MemoryEntry]:
        if k <= 0:
            return []
        entries = [e for e in self.storage.load_entries(identity) if len(e.embedding) == len(query_vector)]
        if not entries:
            return []

        q = np.asarray(query_vector, dtype=float)
        q = q / (np.linalg.norm(q) + 1e-12)
        matrix = np.asarray([e.embedding for e in entries], dtype=float)
        matrix = matrix / (np.linalg.norm(matrix, axis=1, keepdims=True) + 1e-12)
        scores = matrix @ q

        # stable sort keeps log order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [entries[i] for i in order if scores[i] >= self.min_score]


class LocalAnchor:
    """
    Records the handoff in storage instead of submitting a transaction.
    receipt_id = sha256(JCS({identity, state_root, committed_at})).
    """

    name = "local"

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def commit(self, identity: str, state_root: str) -> AnchorReceipt:
        committed_at = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        receipt_id = record_hash({
            "identity": identity,
            "state_root": state_root,
            "committed_at": committed_at,
        })
        receipt = AnchorReceipt(
            identity=identity,
            state_root=state_root,
            receipt_id=receipt_id,
            committed_at=committed_at,
            anchor=self.name,
        )
        self.storage.record_anchor(receipt)
        return receipt
