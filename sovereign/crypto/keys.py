from typing import Optional

from cryptography.exceptions import InvalidSignature as _BadSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from sovereign.core.encoding import b58_encode, decode_identity


class WalletKeyPair:
    """
    Ed25519 keypair in the Solana wallet format: the identity is the base58
    encoded 32-byte public key, signatures are base58 encoded 64-byte values.

    Verification-only instances (from_identity) carry no private key.
    """

    def __init__(self, public_key: Ed25519PublicKey, private_key: Optional[Ed25519PrivateKey] = None):
        self._public = public_key
        self._private = private_key

    @classmethod
    def generate(cls) -> "WalletKeyPair":
        private = Ed25519PrivateKey.generate()
        return cls(private.public_key(), private)

    @classmethod
    def from_identity(cls, identity: str) -> "WalletKeyPair":
        """Raises MalformedInput if the identity is not a 32-byte base58 key."""
        raw = decode_identity(identity)
        return cls(Ed25519PublicKey.from_public_bytes(raw))

    def public_key_bytes(self) -> bytes:
        return self._public.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def identity(self) -> str:
        return b58_encode(self.public_key_bytes())

    def sign_bytes(self, data: bytes) -> bytes:
        if self._private is None:
            raise ValueError("Verification-only keypair cannot sign")
        return self._private.sign(data)

    def sign_text(self, message: str) -> str:
        """Sign the UTF-8 bytes of message, return base58 signature (what a wallet adapter hands back)."""
        return b58_encode(self.sign_bytes(message.encode("utf-8")))

    def verify_bytes(self, signature: bytes, data: bytes) -> bool:
        try:
            self._public.verify(signature, data)
            return True
        except _BadSignature:
            return False
