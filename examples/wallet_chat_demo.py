# examples/wallet_chat_demo.py
# Run with: python examples/wallet_chat_demo.py
#
# Walks the whole flow in-process: challenge -> wallet signature -> login ->
# chat -> sync (with the local anchor standing in for the on-chain program).

import hashlib
import tempfile
from pathlib import Path

from sovereign.config import Settings
from sovereign.core.errors import ChallengeNotFound
from sovereign.crypto.keys import WalletKeyPair
from sovereign.providers.mock import LocalAnchor
from sovereign.service import build_services
from sovereign.storage import create_storage


if __name__ == "__main__":
    workdir = Path(tempfile.mkdtemp(prefix="sovereign-demo-"))
    settings = Settings(database_url=f"sqlite://{workdir / 'demo.db'}")
    storage = create_storage(settings.database_url)
    services = build_services(settings, storage=storage, anchor=LocalAnchor(storage))

    wallet = WalletKeyPair.generate()
    print(f"Wallet identity: {wallet.identity}")

    message = services.auth.request_challenge(wallet.identity)
    print(f"Challenge:\n{message}\n")

    signature = wallet.sign_text(message)
    token = services.auth.login(wallet.identity, signature)
    print(f"Session token: {token[:32]}...")

    try:
        services.auth.login(wallet.identity, signature)
    except ChallengeNotFound as e:
        print(f"Replay rejected: {e}\n")

    for prompt in ["My favourite colour is teal.", "What is my favourite colour?"]:
        print(f"> {prompt}")
        print(f"  {services.chat.handle(token, prompt)}")

    result = services.sync.sync(token)
    expected = hashlib.sha256(
        "".join(e.content for e in services.log.list_ordered(wallet.identity)).encode("utf-8")
    ).hexdigest()
    print(f"\nState root: {result.state_root}")
    print(f"Matches offline digest: {result.state_root == expected}")
    print(f"Receipt: {result.receipt.receipt_id if result.receipt else '-'}")
    print(result.message)

    services.close()
