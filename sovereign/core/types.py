from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional


class DigestFraming(str, Enum):
    """How entry contents are fed into the state-root hash."""
    CONCAT = "concat"                    # raw bytes back to back (original deployment)
    LENGTH_PREFIXED = "length-prefixed"  # 8-byte big-endian length before each entry


@dataclass(frozen=True)
class Challenge:
    """One-time message a wallet must sign to prove key ownership."""
    identity: str           # base58 public key
    nonce: str              # hex, 32 random bytes
    message: str            # exact text to be signed
    issued_at: float        # unix seconds


@dataclass(frozen=True)
class Session:
    identity: str
    session_id: str         # random jti, independent of the identity
    expires_at: float       # unix seconds


@dataclass(frozen=True)
class UserRecord:
    identity: str
    created_at: str         # ISO 8601 UTC


@dataclass(frozen=True)
class MemoryEntry:
    """Single immutable entry in an identity's memory log."""
    id: str                         # UUID4
    identity: str
    content: str
    created_at: str                 # ISO 8601 UTC with micros
    sequence: int = 0               # storage insertion order, breaks timestamp ties
    embedding: List[float] = field(default_factory=list)

    def to_dict(self, include_embedding: bool = False) -> dict:
        d = asdict(self)
        if not include_embedding:
            d.pop("embedding")
        return d


@dataclass(frozen=True)
class AnchorReceipt:
    """Returned by a ledger anchor once a state root has been handed off."""
    identity: str
    state_root: str
    receipt_id: str
    committed_at: str
    anchor: str = "local"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SyncResult:
    state_root: str
    message: str
    receipt: Optional[AnchorReceipt] = None
