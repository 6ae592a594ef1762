"""Shared fixtures for the pbkdf2_mod test suite."""

import pytest

from pbkdf2_mod.template import FormatContext


class CountingSource:
    """Deterministic random source: each call returns the next byte value repeated."""

    def __init__(self):
        self.calls = 0

    def __call__(self, n):
        self.calls += 1
        return bytes([self.calls % 256]) * n


@pytest.fixture
def counting_source():
    return CountingSource()


@pytest.fixture
def zero_source():
    return lambda n: b"\x00" * n


@pytest.fixture
def zero_ctx():
    """16 zero-byte salt, 32 zero-byte key, 100000 iterations."""
    return FormatContext(iterations=100000, salt=b"\x00" * 16, key=b"\x00" * 32)
