from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")

def canonical_json(obj: Any) -> bytes:
    """
    Deterministic UTF-8 bytes for a JSON-compatible object (RFC 8785 / JCS).
    Used wherever a record is hashed, e.g. anchor receipts.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string (handy for JSONL export)."""
    return canonical_json(obj).decode("utf-8")
