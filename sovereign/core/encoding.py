import base58

from sovereign.core.errors import MalformedInput

IDENTITY_LENGTH = 32    # raw Ed25519 public key
SIGNATURE_LENGTH = 64   # raw Ed25519 signature


def b58_encode(data: bytes) -> str:
    return base58.b58encode(data).decode("ascii")


def b58_decode(s: str) -> bytes:
    """Decode a base58 (Bitcoin alphabet) string. Raises ValueError on bad input."""
    return base58.b58decode(s.encode("ascii"))


def _decode_fixed(value: str, length: int, what: str) -> bytes:
    if not isinstance(value, str) or not value.strip():
        raise MalformedInput(f"Missing {what}")
    try:
        raw = b58_decode(value.strip())
    except (ValueError, UnicodeEncodeError) as e:
        raise MalformedInput(f"Invalid {what} encoding: {e}") from e
    if len(raw) != length:
        raise MalformedInput(f"Invalid {what}: expected {length} bytes, got {len(raw)}")
    return raw


def decode_identity(identity: str) -> bytes:
    """base58 identity -> 32 public key bytes"""
    return _decode_fixed(identity, IDENTITY_LENGTH, "identity")


def decode_signature(signature: str) -> bytes:
    """base58 signature -> 64 signature bytes"""
    return _decode_fixed(signature, SIGNATURE_LENGTH, "signature")
