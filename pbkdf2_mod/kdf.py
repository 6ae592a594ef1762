from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import algorithms
from .algorithms import HashFactory
from .errors import InvalidInputError

logger = logging.getLogger(__name__)


MAX_INT64 = 2**63 - 1

DEFAULT_ITERATIONS = 100_000
DEFAULT_SALT_LENGTH = 16
DEFAULT_HASH_ALGORITHM = "sha256"
DEFAULT_FORMAT = '{{ printf "%s:%s" (b64enc .Salt) (b64enc .Key) }}'


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_INT64:
        raise InvalidInputError(f"{name} must be an integer in 1..{MAX_INT64}, got {value!r}.")
    return value


@dataclass(frozen=True)
class DerivationRequest:
    password: Union[str, bytes] = field(repr=False)
    iterations: int = DEFAULT_ITERATIONS
    salt_length: int = DEFAULT_SALT_LENGTH
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    format: str = DEFAULT_FORMAT

    def __post_init__(self):
        if not isinstance(self.password, (str, bytes)) or len(self.password) == 0:
            raise InvalidInputError("Password must be a non-empty string.")
        if isinstance(self.password, str):
            try:
                self.password.encode("utf-8")
            except UnicodeEncodeError:
                raise InvalidInputError("Password must be valid UTF-8.") from None
        _positive_int("iterations", self.iterations)
        _positive_int("salt_length", self.salt_length)
        if not isinstance(self.format, str):
            raise InvalidInputError("Format must be a string.")
        # Fail before any randomness is drawn.
        algorithms.get(self.hash_algorithm)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "DerivationRequest":
        """Build a request from a host record; absent or None fields take defaults."""
        if record.get("password") is None:
            raise InvalidInputError("Missing required field: password.")

        def pick(name: str, default: Any) -> Any:
            value = record.get(name)
            return default if value is None else value

        return cls(
            password=record["password"],
            iterations=pick("iterations", DEFAULT_ITERATIONS),
            salt_length=pick("salt_length", DEFAULT_SALT_LENGTH),
            hash_algorithm=pick("hash_algorithm", DEFAULT_HASH_ALGORITHM),
            format=pick("format", DEFAULT_FORMAT),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "format": self.format,
            "password": self.password,
            "hash_algorithm": self.hash_algorithm,
            "salt_length": self.salt_length,
        }


def derive_key(
    password: Union[bytes, bytearray],
    salt: bytes,
    iterations: int,
    length: int,
    hash_factory: HashFactory,
) -> bytes:
    """
    PBKDF2-HMAC over `password` and `salt`.

    Args:
        password: Raw password bytes
        salt: Salt bytes
        iterations: PRF rounds per output block (>= 1)
        length: Derived key size in bytes (>= 1)
        hash_factory: Zero-argument callable returning a cryptography hash algorithm

    Returns:
        Exactly `length` bytes; identical inputs always give identical output.
    """
    _positive_int("iterations", iterations)
    _positive_int("length", length)
    if not isinstance(password, (bytes, bytearray)):
        raise InvalidInputError("Password must be bytes.")

    kdf = PBKDF2HMAC(
        algorithm=hash_factory(),
        length=length,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(password)


def derive_for_request(request: DerivationRequest, salt: bytes) -> bytes:
    """Derive the key for `request`, sized to its hash algorithm's output."""
    key_len, hash_factory = algorithms.lookup(request.hash_algorithm)
    if isinstance(request.password, str):
        secret = bytearray(request.password.encode("utf-8"))
    else:
        secret = bytearray(request.password)

    logger.debug(
        "Deriving %d-byte key: algorithm=%s iterations=%d salt_len=%d",
        key_len, request.hash_algorithm, request.iterations, len(salt),
    )
    try:
        return derive_key(secret, salt, request.iterations, key_len, hash_factory)
    finally:
        # Best-effort wipe of the encoded copy we own.
        secret[:] = b"\x00" * len(secret)
