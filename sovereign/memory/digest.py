from typing import Union

from sovereign.core.types import DigestFraming
from sovereign.crypto.hashing import digest_contents
from sovereign.memory.log import MemoryLog


class StateDigester:
    """
    Folds an identity's ordered memory log into a single state root
    (lowercase hex SHA-256). Pure function of list_ordered(identity);
    nothing is cached, so every append is reflected on the next call.
    """

    def __init__(self, log: MemoryLog, framing: Union[DigestFraming, str] = DigestFraming.CONCAT):
        self.log = log
        self.framing = DigestFraming(framing)

    def compute_root(self, identity: str) -> str:
        entries = self.log.list_ordered(identity)
        return digest_contents((e.content for e in entries), self.framing)
