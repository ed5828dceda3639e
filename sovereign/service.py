from dataclasses import dataclass
from typing import Optional

from sovereign.auth.authenticator import Authenticator
from sovereign.auth.sessions import SessionIssuer
from sovereign.auth.store import ChallengeStore, InMemoryChallengeStore
from sovereign.chain.sync import StateSync
from sovereign.chat.orchestrator import ChatOrchestrator
from sovereign.config import Settings
from sovereign.memory.digest import StateDigester
from sovereign.memory.log import MemoryLog
from sovereign.providers import Completer, Embedder, LedgerAnchor, Retriever
from sovereign.providers.mock import CosineRetriever, EchoCompleter, HashEmbedder
from sovereign.storage import StorageBackend, create_storage


@dataclass
class Services:
    """Everything one running instance needs, wired together."""
    settings: Settings
    storage: StorageBackend
    auth: Authenticator
    log: MemoryLog
    digester: StateDigester
    chat: ChatOrchestrator
    sync: StateSync

    def close(self) -> None:
        self.storage.close()


def build_services(
    settings: Optional[Settings] = None,
    storage: Optional[StorageBackend] = None,
    challenges: Optional[ChallengeStore] = None,
    embedder: Optional[Embedder] = None,
    completer: Optional[Completer] = None,
    retriever: Optional[Retriever] = None,
    anchor: Optional[LedgerAnchor] = None,
) -> Services:
    """
    Providers default to the deterministic stand-ins; pass real clients to
    replace any of them. No anchor means /sync only returns the root.
    """
    settings = settings or Settings.from_env()
    storage = storage or create_storage(settings.database_url)

    sessions = SessionIssuer(settings.session_secret, ttl_seconds=settings.session_ttl)
    if challenges is None:
        challenges = InMemoryChallengeStore(ttl_seconds=settings.challenge_ttl)
    auth = Authenticator(storage, sessions, challenges)

    log = MemoryLog(storage, retriever if retriever is not None else CosineRetriever(storage))
    digester = StateDigester(log, settings.digest_framing)
    chat = ChatOrchestrator(
        auth,
        log,
        embedder or HashEmbedder(),
        completer or EchoCompleter(),
        timeout=settings.provider_timeout,
        top_k=settings.retrieval_k,
        log_replies=settings.log_replies,
    )
    sync = StateSync(auth, digester, anchor, timeout=settings.provider_timeout)

    return Services(
        settings=settings,
        storage=storage,
        auth=auth,
        log=log,
        digester=digester,
        chat=chat,
        sync=sync,
    )
