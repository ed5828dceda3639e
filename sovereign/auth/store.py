import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from sovereign.core.types import Challenge

DEFAULT_CHALLENGE_TTL = 300.0


class ChallengeStore(ABC):
    """
    Outstanding authentication challenges keyed by claimed identity.
    At most one per identity: a later put silently replaces the earlier one.
    """

    @abstractmethod
    def put(self, identity: str, challenge: Challenge) -> None:
        pass

    @abstractmethod
    def get(self, identity: str) -> Optional[Challenge]:
        """None when absent or expired."""

    @abstractmethod
    def remove(self, identity: str) -> None:
        pass

    @abstractmethod
    def take(self, identity: str, message: str) -> Optional[Challenge]:
        """Atomically remove and return the challenge iff its message is `message`."""


class InMemoryChallengeStore(ChallengeStore):
    """
    Process-scoped map with a per-entry TTL. A restart drops every
    outstanding challenge, so nothing issued before it can be redeemed.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_CHALLENGE_TTL, clock: Callable[[], float] = time.time):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[str, Challenge] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _expired(self, challenge: Challenge) -> bool:
        return self._clock() - challenge.issued_at >= self.ttl_seconds

    def _purge_locked(self) -> int:
        stale = [k for k, c in self._items.items() if self._expired(c)]
        for k in stale:
            del self._items[k]
        return len(stale)

    def put(self, identity: str, challenge: Challenge) -> None:
        """Also drops every expired challenge, so unread identities do not accumulate."""
        with self._lock:
            self._purge_locked()
            self._items[identity] = challenge

    def get(self, identity: str) -> Optional[Challenge]:
        with self._lock:
            challenge = self._items.get(identity)
            if challenge is not None and self._expired(challenge):
                del self._items[identity]
                return None
            return challenge

    def remove(self, identity: str) -> None:
        with self._lock:
            self._items.pop(identity, None)

    def take(self, identity: str, message: str) -> Optional[Challenge]:
        with self._lock:
            challenge = self._items.get(identity)
            if challenge is None or challenge.message != message:
                return None
            del self._items[identity]
            if self._expired(challenge):
                return None
            return challenge

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()
