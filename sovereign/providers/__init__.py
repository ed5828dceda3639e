"""
Pluggable external capabilities: embeddings, completions, similarity
retrieval and ledger anchoring. Each is a structural Protocol so real
clients and deterministic stand-ins are interchangeable.
"""

import atexit
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, List, Protocol, Sequence, TypeVar, runtime_checkable

from sovereign.core.errors import SovereignError, UpstreamError, UpstreamTimeout
from sovereign.core.types import AnchorReceipt, MemoryEntry

T = TypeVar("T")

DEFAULT_PROVIDER_TIMEOUT = 10.0


@runtime_checkable
class Embedder(Protocol):
    def embed(self, text: str) -> List[float]: ...


@runtime_checkable
class Completer(Protocol):
    def complete(self, context: str, prompt: str) -> str: ...


@runtime_checkable
class Retriever(Protocol):
    def top_relevant(self, identity: str, query_vector: Sequence[float], k: int) -> List[MemoryEntry]: ...


@runtime_checkable
class LedgerAnchor(Protocol):
    def commit(self, identity: str, state_root: str) -> AnchorReceipt: ...


_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="sovereign-provider")
atexit.register(_executor.shutdown, wait=False)


def call_with_timeout(fn: Callable[..., T], *args: Any, timeout: float, name: str = "provider") -> T:
    """
    Run a provider call on the shared pool and wait at most `timeout` seconds.

    Timeout -> UpstreamTimeout, any other exception -> UpstreamError.
    SovereignError subclasses raised by the provider pass through unchanged.
    The worker thread is not interrupted; its late result is discarded.
    """
    future = _executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        future.cancel()
        raise UpstreamTimeout(f"{name} timed out after {timeout:g}s") from e
    except SovereignError:
        raise
    except Exception as e:
        raise UpstreamError(f"{name} failed: {e}") from e


__all__ = [
    "Embedder",
    "Completer",
    "Retriever",
    "LedgerAnchor",
    "call_with_timeout",
    "DEFAULT_PROVIDER_TIMEOUT",
]
