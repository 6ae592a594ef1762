from __future__ import annotations
from dataclasses import dataclass
from typing import Callable

from cryptography.hazmat.primitives import hashes

from .errors import UnsupportedHashAlgorithmError


HashFactory = Callable[[], hashes.HashAlgorithm]


@dataclass(frozen=True)
class HashAlgorithm:
    name: str
    output_len: int          # derived key length in bytes
    factory: HashFactory


_REGISTRY: dict[str, HashAlgorithm] = {
    "sha256": HashAlgorithm("sha256", 32, hashes.SHA256),
    "sha512": HashAlgorithm("sha512", 64, hashes.SHA512),
}


def names() -> tuple[str, ...]:
    return tuple(_REGISTRY)


def get(name: str) -> HashAlgorithm:
    # Case-sensitive; unknown names are rejected rather than mapped to sha256.
    try:
        return _REGISTRY[name]
    except KeyError:
        raise UnsupportedHashAlgorithmError(name, names()) from None


def lookup(name: str) -> tuple[int, HashFactory]:
    """Return (output length, hash factory) for a registered algorithm name."""
    algo = get(name)
    return algo.output_len, algo.factory
