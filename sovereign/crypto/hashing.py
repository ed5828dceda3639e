import hashlib
from typing import Iterable, Union

from sovereign.core.canon import canonical_json
from sovereign.core.types import DigestFraming


def digest_contents(
    contents: Iterable[str],
    framing: Union[DigestFraming, str] = DigestFraming.CONCAT,
) -> str:
    """
    Fold an ordered sequence of entry contents into one lowercase hex SHA-256.

    CONCAT feeds the raw UTF-8 bytes with no separators, so ["ab", "c"] and
    ["a", "bc"] collide. LENGTH_PREFIXED writes each entry's byte length as an
    8-byte big-endian integer first.
    An empty sequence gives the hash of the empty input.
    """
    framing = DigestFraming(framing)
    h = hashlib.sha256()
    for content in contents:
        data = content.encode("utf-8")
        if framing is DigestFraming.LENGTH_PREFIXED:
            h.update(len(data).to_bytes(8, "big"))
        h.update(data)
    return h.hexdigest()


def record_hash(record: dict) -> str:
    """hex(sha256(canonical_json(record)))"""
    return hashlib.sha256(canonical_json(record)).hexdigest()
