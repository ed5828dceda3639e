import logging
import secrets
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict

from sovereign.auth.sessions import SessionIssuer
from sovereign.auth.store import ChallengeStore, InMemoryChallengeStore
from sovereign.core.encoding import decode_identity, decode_signature
from sovereign.core.errors import ChallengeNotFound, InvalidSignature
from sovereign.core.types import Challenge, Session
from sovereign.crypto.keys import WalletKeyPair
from sovereign.storage import StorageBackend

logger = logging.getLogger(__name__)

CHALLENGE_PREAMBLE = "Sign this message to authenticate with Sovereign AI."
NONCE_BYTES = 32


def build_challenge_message(nonce: str) -> str:
    return f"{CHALLENGE_PREAMBLE}\nNonce: {nonce}"


def short_id(identity: str) -> str:
    return identity if len(identity) <= 10 else f"{identity[:4]}…{identity[-4:]}"


class Authenticator:
    """
    Wallet challenge-response login.

    request_challenge -> client signs the returned text -> login(identity, signature)
    -> session token. Challenges are single use; logins for the same identity
    are serialized so two racing requests cannot both consume one challenge.
    """

    def __init__(
        self,
        storage: StorageBackend,
        sessions: SessionIssuer,
        challenges: ChallengeStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.sessions = sessions
        self.challenges = challenges if challenges is not None else InMemoryChallengeStore(clock=clock)
        self._clock = clock
        # identity -> [lock, holders]; an entry lives only while someone holds or waits on it
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _identity_lock(self, identity: str):
        with self._locks_guard:
            entry = self._locks.get(identity)
            if entry is None:
                entry = self._locks[identity] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[identity]

    def request_challenge(self, identity: str) -> str:
        """Issue (or replace) the challenge for identity and return the exact text to sign."""
        decode_identity(identity)
        nonce = secrets.token_hex(NONCE_BYTES)
        challenge = Challenge(
            identity=identity,
            nonce=nonce,
            message=build_challenge_message(nonce),
            issued_at=self._clock(),
        )
        self.challenges.put(identity, challenge)
        logger.info("Issued challenge for %s", short_id(identity))
        return challenge.message

    def login(self, identity: str, signature: str) -> str:
        """
        Verify `signature` over the stored challenge for `identity`.

        Raises MalformedInput, ChallengeNotFound or InvalidSignature. A failed
        verification leaves the challenge in place.
        """
        decode_identity(identity)
        sig_bytes = decode_signature(signature)

        with self._identity_lock(identity):
            challenge = self.challenges.get(identity)
            if challenge is None:
                raise ChallengeNotFound("No challenge found or expired")

            verifier = WalletKeyPair.from_identity(identity)
            if not verifier.verify_bytes(sig_bytes, challenge.message.encode("utf-8")):
                logger.warning("Rejected signature for %s", short_id(identity))
                raise InvalidSignature("Invalid signature")

            # user row first: a StorageError here leaves the challenge redeemable
            self.storage.ensure_user(identity)
            if self.challenges.take(identity, challenge.message) is None:
                raise ChallengeNotFound("No challenge found or expired")

        token = self.sessions.issue(identity)
        logger.info("Login succeeded for %s", short_id(identity))
        return token

    def resolve_session(self, token: str | None) -> Session:
        return self.sessions.resolve(token)
