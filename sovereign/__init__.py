# sovereign/__init__.py
"""
Sovereign — wallet-authenticated chat memory with anchorable state roots.
Ed25519 challenge-response login, an append-only per-identity memory log,
and a deterministic SHA-256 state root ready to hand to an on-chain account.
"""

__version__ = "0.1.0"
