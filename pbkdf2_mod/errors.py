from __future__ import annotations


class KeyDerivationError(Exception):
    """Base exception for key derivation and formatting."""


class InvalidInputError(KeyDerivationError, ValueError):
    """Raised when a derivation request is out of range or incomplete."""


class UnsupportedHashAlgorithmError(InvalidInputError):
    def __init__(self, name: str, known: tuple[str, ...]):
        self.name = name
        super().__init__(
            f"Unsupported hash algorithm {name!r} (expected one of: {', '.join(known)})."
        )


class RandomSourceError(KeyDerivationError):
    """Raised when the secure random source fails or returns short output."""


class TemplateError(KeyDerivationError):
    """Raised when a format template cannot be parsed or rendered."""


class TemplateSyntaxError(TemplateError):
    pass


class TemplateExecError(TemplateError):
    pass
