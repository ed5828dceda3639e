import threading
import time
from pathlib import Path

import jwt
import pytest

from sovereign.auth.authenticator import Authenticator, CHALLENGE_PREAMBLE
from sovereign.auth.sessions import SessionIssuer
from sovereign.auth.store import InMemoryChallengeStore
from sovereign.core.encoding import b58_encode
from sovereign.core.errors import (
    ChallengeNotFound,
    InvalidSignature,
    MalformedInput,
    Unauthorized,
)
from sovereign.core.types import Challenge
from sovereign.crypto.keys import WalletKeyPair
from sovereign.storage import SQLiteStorage

SECRET = "test-secret-with-enough-entropy-0123456789"


class FakeClock:
    def __init__(self, now: float = 1_800_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def storage(tmp_path: Path) -> SQLiteStorage:
    s = SQLiteStorage(tmp_path / "auth.db")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth(storage: SQLiteStorage, clock: FakeClock) -> Authenticator:
    return Authenticator(
        storage,
        SessionIssuer(SECRET, ttl_seconds=600),
        InMemoryChallengeStore(ttl_seconds=300, clock=clock),
        clock=clock,
    )


@pytest.fixture
def wallet() -> WalletKeyPair:
    return WalletKeyPair.generate()


def test_challenge_message_format(auth: Authenticator, wallet: WalletKeyPair):
    message = auth.request_challenge(wallet.identity)
    preamble, nonce_line = message.split("\n")
    assert preamble == CHALLENGE_PREAMBLE
    assert nonce_line.startswith("Nonce: ")
    nonce = nonce_line[len("Nonce: "):]
    assert len(nonce) == 64  # 32 random bytes, hex
    int(nonce, 16)


def test_challenges_are_fresh(auth: Authenticator, wallet: WalletKeyPair):
    assert auth.request_challenge(wallet.identity) != auth.request_challenge(wallet.identity)


def test_request_challenge_rejects_malformed_identity(auth: Authenticator):
    with pytest.raises(MalformedInput):
        auth.request_challenge("not-a-key")


def test_login_returns_token_and_creates_user(auth: Authenticator, storage: SQLiteStorage, wallet: WalletKeyPair):
    message = auth.request_challenge(wallet.identity)
    token = auth.login(wallet.identity, wallet.sign_text(message))

    assert token
    assert token != wallet.identity
    assert storage.get_user(wallet.identity) is not None
    assert auth.resolve_session(token).identity == wallet.identity


def test_challenge_is_single_use(auth: Authenticator, wallet: WalletKeyPair):
    signature = wallet.sign_text(auth.request_challenge(wallet.identity))
    auth.login(wallet.identity, signature)

    with pytest.raises(ChallengeNotFound):
        auth.login(wallet.identity, signature)


def test_login_without_challenge(auth: Authenticator, wallet: WalletKeyPair):
    with pytest.raises(ChallengeNotFound):
        auth.login(wallet.identity, wallet.sign_text("anything"))


def test_new_challenge_supersedes_old(auth: Authenticator, wallet: WalletKeyPair):
    old_signature = wallet.sign_text(auth.request_challenge(wallet.identity))
    new_message = auth.request_challenge(wallet.identity)

    with pytest.raises(InvalidSignature):
        auth.login(wallet.identity, old_signature)

    # the failed attempt did not burn the current challenge
    assert auth.login(wallet.identity, wallet.sign_text(new_message))


def test_signature_over_whitespace_variant_rejected(auth: Authenticator, wallet: WalletKeyPair):
    message = auth.request_challenge(wallet.identity)
    with pytest.raises(InvalidSignature):
        auth.login(wallet.identity, wallet.sign_text(message + " "))
    with pytest.raises(InvalidSignature):
        auth.login(wallet.identity, wallet.sign_text(message.strip() + "\n"))


def test_signature_from_other_wallet_rejected(auth: Authenticator, wallet: WalletKeyPair):
    message = auth.request_challenge(wallet.identity)
    intruder = WalletKeyPair.generate()
    with pytest.raises(InvalidSignature):
        auth.login(wallet.identity, intruder.sign_text(message))


def test_login_rejects_malformed_signature(auth: Authenticator, wallet: WalletKeyPair):
    auth.request_challenge(wallet.identity)
    with pytest.raises(MalformedInput):
        auth.login(wallet.identity, "!!!")
    with pytest.raises(MalformedInput):
        auth.login(wallet.identity, b58_encode(b"\x00" * 10))


def test_challenge_expires(auth: Authenticator, clock: FakeClock, wallet: WalletKeyPair):
    signature = wallet.sign_text(auth.request_challenge(wallet.identity))
    clock.advance(301)
    with pytest.raises(ChallengeNotFound):
        auth.login(wallet.identity, signature)


def test_concurrent_logins_consume_challenge_once(auth: Authenticator, wallet: WalletKeyPair):
    signature = wallet.sign_text(auth.request_challenge(wallet.identity))
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            auth.login(wallet.identity, signature)
            result = "ok"
        except ChallengeNotFound:
            result = "not-found"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["not-found", "ok"]


def test_store_replace_and_take(clock: FakeClock):
    store = InMemoryChallengeStore(ttl_seconds=10, clock=clock)
    first = Challenge("id", "01", "first", clock())
    second = Challenge("id", "02", "second", clock())
    store.put("id", first)
    store.put("id", second)

    assert store.get("id") == second
    assert store.take("id", "first") is None
    assert store.take("id", "second") == second
    assert store.get("id") is None


def test_store_purge_expired(clock: FakeClock):
    store = InMemoryChallengeStore(ttl_seconds=10, clock=clock)
    store.put("a", Challenge("a", "01", "m", clock()))
    clock.advance(5)
    store.put("b", Challenge("b", "02", "m", clock()))
    clock.advance(6)

    assert store.purge_expired() == 1
    assert len(store) == 1
    assert store.get("b") is not None


def test_store_put_drops_expired_challenges(clock: FakeClock):
    store = InMemoryChallengeStore(ttl_seconds=10, clock=clock)
    for i in range(50):
        store.put(f"id-{i}", Challenge(f"id-{i}", "00", "m", clock()))
    assert len(store) == 50

    clock.advance(11)
    store.put("fresh", Challenge("fresh", "01", "m", clock()))
    assert len(store) == 1


def test_abandoned_challenges_do_not_accumulate(auth: Authenticator, clock: FakeClock):
    wallets = [WalletKeyPair.generate() for _ in range(20)]
    for w in wallets:
        auth.request_challenge(w.identity)
        with pytest.raises(InvalidSignature):
            auth.login(w.identity, WalletKeyPair.generate().sign_text("wrong"))
    assert len(auth.challenges) == 20

    clock.advance(301)
    auth.request_challenge(wallets[0].identity)
    assert len(auth.challenges) == 1
    assert auth._locks == {}


def test_login_locks_released_after_race(auth: Authenticator, wallet: WalletKeyPair):
    signature = wallet.sign_text(auth.request_challenge(wallet.identity))
    barrier = threading.Barrier(4)

    def attempt():
        barrier.wait()
        try:
            auth.login(wallet.identity, signature)
        except ChallengeNotFound:
            pass

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert auth._locks == {}


def test_session_tokens_are_unique_per_login():
    issuer = SessionIssuer(SECRET)
    a, b = issuer.issue("same-identity"), issuer.issue("same-identity")
    assert a != b
    assert issuer.resolve(a).session_id != issuer.resolve(b).session_id


def test_session_expired():
    issuer = SessionIssuer(SECRET, ttl_seconds=60)
    token = issuer.issue("someone", now=time.time() - 120)
    with pytest.raises(Unauthorized, match="expired"):
        issuer.resolve(token)


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_session_rejects_invalid(token):
    with pytest.raises(Unauthorized):
        SessionIssuer(SECRET).resolve(token)


def test_session_rejects_foreign_secret():
    forged = jwt.encode(
        {"sub": "victim", "jti": "x", "exp": int(time.time()) + 60},
        "another-secret-entirely-0123456789abcdef",
        algorithm="HS256",
    )
    with pytest.raises(Unauthorized):
        SessionIssuer(SECRET).resolve(forged)


def test_raw_identity_is_not_a_session(auth: Authenticator, wallet: WalletKeyPair):
    with pytest.raises(Unauthorized):
        auth.resolve_session(wallet.identity)
