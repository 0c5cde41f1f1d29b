"""
Pseudo-random seed sources.

Both implementations return 32 bytes per call. Settlement reads the low 16
bytes for the win draw and the high 16 bytes for prize selection.
"""

import hashlib
import os

from lazylotto.chain import Chain, Contract
from lazylotto.errors import BadParameters

SEED_BYTES = 32
HALF = SEED_BYTES // 2
MAX_HALF = (1 << (8 * HALF)) - 1


def split_seed(seed: bytes):
    """Return ``(high, low)`` integers of a 32 byte seed."""
    if len(seed) != SEED_BYTES:
        raise BadParameters("seed must be 32 bytes", length=len(seed))
    return int.from_bytes(seed[:HALF], "big"), int.from_bytes(seed[HALF:], "big")


class PrngSystemContract(Contract):
    """Ledger PRNG service: fresh entropy mixed with the caller's salt."""

    def __init__(self, chain: Chain, name: str = "PrngSystemContract"):
        super().__init__(chain, name)
        self.draws = 0

    def get_seed(self, user_salt: bytes = b"") -> bytes:
        self.draws += 1
        return hashlib.sha256(os.urandom(SEED_BYTES) + user_salt).digest()


class MockPrng(PrngSystemContract):
    """Deterministic PRNG returning a constant ``(seed, number)`` pair."""

    def __init__(self, chain: Chain, seed: int = 0, number: int = 0, name: str = "MockPrng"):
        super().__init__(chain, name)
        self.set_values(seed, number)

    def set_values(self, seed: int = 0, number: int = 0):
        if not (0 <= seed <= MAX_HALF and 0 <= number <= MAX_HALF):
            raise BadParameters("mock values must fit in 16 bytes", seed=seed, number=number)
        self.seed = seed
        self.number = number

    def get_seed(self, user_salt: bytes = b"") -> bytes:
        self.draws += 1
        return self.seed.to_bytes(HALF, "big") + self.number.to_bytes(HALF, "big")
