from __future__ import annotations
import logging
import os
from typing import Callable, Optional

from .errors import InvalidInputError, RandomSourceError

logger = logging.getLogger(__name__)

# Any callable returning n fresh random bytes; os.urandom is the platform CSPRNG.
RandomSource = Callable[[int], bytes]

MAX_SALT_LENGTH = 2**63 - 1


def generate_salt(length: int, source: Optional[RandomSource] = None) -> bytes:
    """
    Return exactly `length` fresh bytes from a secure random source.

    Args:
        length: Salt size in bytes (>= 1)
        source: Replacement random source, mainly for tests

    Raises:
        InvalidInputError: If length is not a positive integer
        RandomSourceError: If the source fails or returns the wrong size
    """
    if isinstance(length, bool) or not isinstance(length, int) or not 1 <= length <= MAX_SALT_LENGTH:
        raise InvalidInputError(f"Salt length must be an integer in 1..{MAX_SALT_LENGTH}, got {length!r}.")

    read = source or os.urandom
    try:
        salt = read(length)
    except (OSError, NotImplementedError) as e:
        raise RandomSourceError(f"Secure random source failed: {e}") from e

    if not isinstance(salt, (bytes, bytearray)) or len(salt) != length:
        got = len(salt) if isinstance(salt, (bytes, bytearray)) else type(salt).__name__
        raise RandomSourceError(f"Random source returned {got} instead of {length} bytes.")

    logger.debug("Generated %d-byte salt", length)
    return bytes(salt)
