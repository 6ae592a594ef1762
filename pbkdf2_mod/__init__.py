"""PBKDF2 key derivation with template-formatted output."""

from .algorithms import lookup
from .errors import (
    InvalidInputError,
    KeyDerivationError,
    RandomSourceError,
    TemplateError,
    TemplateExecError,
    TemplateSyntaxError,
    UnsupportedHashAlgorithmError,
)
from .kdf import DerivationRequest, derive_key
from .key_resource import KeyResource, KeyState, generate
from .salt import generate_salt
from .template import FormatContext, render

__all__ = [
    "DerivationRequest",
    "FormatContext",
    "InvalidInputError",
    "KeyDerivationError",
    "KeyResource",
    "KeyState",
    "RandomSourceError",
    "TemplateError",
    "TemplateExecError",
    "TemplateSyntaxError",
    "UnsupportedHashAlgorithmError",
    "derive_key",
    "generate",
    "generate_salt",
    "lookup",
    "render",
]

__version__ = "0.1.0"
