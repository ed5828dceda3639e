import logging
from typing import Optional

from sovereign.auth.authenticator import Authenticator, short_id
from sovereign.core.errors import ValidationError
from sovereign.memory.log import MemoryLog
from sovereign.providers import (
    DEFAULT_PROVIDER_TIMEOUT,
    Completer,
    Embedder,
    call_with_timeout,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


class ChatOrchestrator:
    """
    Ties an authenticated session to memory writes:
    resolve session -> embed prompt -> retrieve context -> complete -> append.

    The append happens only after every provider call has succeeded, so a
    failed request leaves the log untouched. With reply logging on, the
    prompt and the reply are committed together.
    """

    def __init__(
        self,
        auth: Authenticator,
        log: MemoryLog,
        embedder: Embedder,
        completer: Completer,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        top_k: int = DEFAULT_TOP_K,
        log_replies: bool = False,
    ):
        self.auth = auth
        self.log = log
        self.embedder = embedder
        self.completer = completer
        self.timeout = timeout
        self.top_k = top_k
        self.log_replies = log_replies

    def handle(self, token: Optional[str], prompt: Optional[str]) -> str:
        session = self.auth.resolve_session(token)
        if not prompt or not prompt.strip():
            raise ValidationError("Missing prompt")

        identity = session.identity
        embedding = call_with_timeout(self.embedder.embed, prompt, timeout=self.timeout, name="embedding provider")

        similar = self.log.top_relevant(identity, embedding, self.top_k)
        context = "\n".join(m.content for m in similar)

        reply = call_with_timeout(
            self.completer.complete, context, prompt, timeout=self.timeout, name="completion provider"
        )
        if not isinstance(reply, str):
            reply = str(reply)

        items = [(prompt, embedding)]
        if self.log_replies:
            reply_embedding = call_with_timeout(
                self.embedder.embed, reply, timeout=self.timeout, name="embedding provider"
            )
            items.append((reply, reply_embedding))

        self.log.append_many(identity, items)

        logger.info("Chat for %s: %d context entries", short_id(identity), len(similar))
        return reply
