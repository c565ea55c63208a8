"""
Random number generation utilities.

A single seeded NumPy generator is shared by the stages that need randomness
(initial site placement). Seeds are strings so runs can be named and
reproduced.
"""

import hashlib
from typing import Optional

import numpy as np

from ..config import settings

# Global generator instance
_rng = None


def _seed_to_int(seed: str) -> int:
    digest = hashlib.sha256(str(seed).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "little")


def set_random_seed(seed: str) -> None:
    """
    Reseed the shared generator.

    Args:
        seed: Seed string to use
    """
    global _rng
    _rng = np.random.default_rng(_seed_to_int(seed))


def get_rng(seed: Optional[str] = None) -> np.random.Generator:
    """
    Get a generator.

    Args:
        seed: If given, a fresh generator for this seed is returned and the
            shared one is left untouched.

    Returns:
        numpy Generator instance
    """
    global _rng
    if seed is not None:
        return np.random.default_rng(_seed_to_int(seed))
    if _rng is None:
        set_random_seed(settings.random_seed)
    return _rng
