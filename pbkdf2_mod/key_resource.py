from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .errors import InvalidInputError, KeyDerivationError, RandomSourceError, TemplateError
from .kdf import DerivationRequest, derive_for_request
from .salt import RandomSource, generate_salt
from .template import FormatContext, render

logger = logging.getLogger(__name__)


TYPE_NAME = "pbkdf2_key"


@dataclass(frozen=True)
class KeyState:
    request: DerivationRequest
    salt: bytes = field(repr=False)
    key: bytes = field(repr=False)
    result: str = field(repr=False)

    def to_record(self) -> dict[str, Any]:
        record = self.request.to_record()
        record.update(salt=self.salt, key=self.key, result=self.result)
        return record


def generate(request: DerivationRequest, random_source: Optional[RandomSource] = None) -> KeyState:
    """
    Run one derivation: fresh salt, PBKDF2 key, rendered format.

    Either a complete KeyState is returned or an exception propagates;
    nothing is produced halfway.

    Raises:
        RandomSourceError: If the salt cannot be generated
        TemplateError: If the format does not parse or render
    """
    salt = generate_salt(request.salt_length, random_source)
    key = derive_for_request(request, salt)
    result = render(request.format, FormatContext(
        iterations=request.iterations,
        salt=salt,
        key=key,
    ))
    return KeyState(request=request, salt=salt, key=key, result=result)


@dataclass(frozen=True)
class Diagnostic:
    summary: str
    detail: str


@dataclass
class KeyResponse:
    state: Optional[KeyState] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return bool(self.diagnostics)


def _diagnostic(err: KeyDerivationError) -> Diagnostic:
    if isinstance(err, InvalidInputError):
        return Diagnostic("Input Error", str(err))
    if isinstance(err, RandomSourceError):
        return Diagnostic("Salt Error", str(err))
    if isinstance(err, TemplateError):
        return Diagnostic("Format Error", str(err))
    return Diagnostic("Key Error", str(err))


class KeyResource:
    """
    Host-facing lifecycle around `generate`.

    Create and update both derive a brand new salt and key. A failed
    derivation leaves the stored state exactly as it was. Read does not
    re-derive: without the stored salt there is nothing to check against.
    """

    def __init__(self, random_source: Optional[RandomSource] = None):
        self._random_source = random_source
        self._state: Optional[KeyState] = None

    @property
    def state(self) -> Optional[KeyState]:
        return self._state

    def _apply(self, record: Mapping[str, Any]) -> KeyResponse:
        try:
            request = DerivationRequest.from_record(record)
            state = generate(request, self._random_source)
        except KeyDerivationError as e:
            diag = _diagnostic(e)
            logger.warning("%s: %s", diag.summary, diag.detail)
            return KeyResponse(state=self._state, diagnostics=[diag])

        self._state = state
        logger.info(
            "Derived %s key: algorithm=%s iterations=%d salt_len=%d",
            TYPE_NAME, request.hash_algorithm, request.iterations, request.salt_length,
        )
        return KeyResponse(state=state)

    def create(self, record: Mapping[str, Any]) -> KeyResponse:
        return self._apply(record)

    def update(self, record: Mapping[str, Any]) -> KeyResponse:
        return self._apply(record)

    def read(self) -> KeyResponse:
        return KeyResponse(state=self._state)

    def delete(self) -> KeyResponse:
        self._state = None
        return KeyResponse()
