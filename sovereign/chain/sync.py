import logging
from typing import Optional

from sovereign.auth.authenticator import Authenticator, short_id
from sovereign.core.types import SyncResult
from sovereign.memory.digest import StateDigester
from sovereign.providers import DEFAULT_PROVIDER_TIMEOUT, LedgerAnchor, call_with_timeout

logger = logging.getLogger(__name__)

PENDING_MESSAGE = "State hash generated successfully. Next, submit this to Solana UpdateState instruction."
COMMITTED_MESSAGE = "State hash generated and committed to {anchor} anchor."


class StateSync:
    """
    Computes the caller's state root and, when an anchor is configured,
    hands it off. Transaction construction belongs to the anchor, not here.
    """

    def __init__(
        self,
        auth: Authenticator,
        digester: StateDigester,
        anchor: Optional[LedgerAnchor] = None,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ):
        self.auth = auth
        self.digester = digester
        self.anchor = anchor
        self.timeout = timeout

    def sync(self, token: Optional[str]) -> SyncResult:
        session = self.auth.resolve_session(token)
        root = self.digester.compute_root(session.identity)

        if self.anchor is None:
            logger.info("State root for %s: %s", short_id(session.identity), root)
            return SyncResult(state_root=root, message=PENDING_MESSAGE)

        receipt = call_with_timeout(
            self.anchor.commit, session.identity, root, timeout=self.timeout, name="ledger anchor"
        )
        logger.info("Anchored %s for %s (receipt %s)", root, short_id(session.identity), receipt.receipt_id)
        return SyncResult(
            state_root=root,
            message=COMMITTED_MESSAGE.format(anchor=receipt.anchor),
            receipt=receipt,
        )
