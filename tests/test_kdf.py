"""Tests for PBKDF2 derivation and derivation requests."""

import pytest

from pbkdf2_mod import algorithms
from pbkdf2_mod.errors import InvalidInputError, UnsupportedHashAlgorithmError
from pbkdf2_mod.kdf import (
    DEFAULT_FORMAT,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_ITERATIONS,
    DEFAULT_SALT_LENGTH,
    DerivationRequest,
    derive_for_request,
    derive_key,
)


SHA256 = algorithms.lookup("sha256")[1]
SHA512 = algorithms.lookup("sha512")[1]


# =============================================================================
# KNOWN-ANSWER VECTORS
# =============================================================================

class TestKnownAnswers:
    """Published PBKDF2-HMAC vectors for password="password", salt="salt"."""

    def test_sha256_one_iteration(self):
        dk = derive_key(b"password", b"salt", 1, 32, SHA256)
        assert dk.hex() == "120fb6cffcf8b32c43e7225256c4f837a86548c92ccc35480805987cb70be17b"

    def test_sha256_two_iterations(self):
        dk = derive_key(b"password", b"salt", 2, 32, SHA256)
        assert dk.hex() == "ae4d0c95af6b46d32d0adff928f06dd02a303f8ef3c251dfd6e2d85a95474c43"

    def test_sha256_4096_iterations(self):
        dk = derive_key(b"password", b"salt", 4096, 32, SHA256)
        assert dk.hex() == "c5e478d59288c841aa530db6845c4c8d962893a001ce4e11a4963873aa98134a"

    def test_sha512_one_iteration(self):
        dk = derive_key(b"password", b"salt", 1, 64, SHA512)
        assert dk.hex() == (
            "867f70cf1ade02cff3752599a3a53dc4af34c7a669815ae5d513554e1c8cf252"
            "c02d470a285a0501bad999bfe943c08f050235d7d68b1da55e63f73b60a57fce"
        )


# =============================================================================
# DERIVATION PROPERTIES
# =============================================================================

class TestDeriveKey:

    def test_deterministic(self):
        a = derive_key(b"hunter2", b"\x01" * 16, 10, 32, SHA256)
        b = derive_key(b"hunter2", b"\x01" * 16, 10, 32, SHA256)
        assert a == b

    @pytest.mark.parametrize("length", [1, 16, 32, 33, 64, 100])
    def test_length(self, length):
        assert len(derive_key(b"pw", b"salt", 2, length, SHA256)) == length

    def test_longer_output_extends_shorter(self):
        """Multi-block output starts with the single-block output."""
        short = derive_key(b"pw", b"salt", 3, 32, SHA256)
        long = derive_key(b"pw", b"salt", 3, 48, SHA256)
        assert long[:32] == short

    def test_salt_changes_key(self):
        assert derive_key(b"pw", b"a", 2, 32, SHA256) != derive_key(b"pw", b"b", 2, 32, SHA256)

    def test_algorithm_changes_key(self):
        assert derive_key(b"pw", b"s", 2, 32, SHA256) != derive_key(b"pw", b"s", 2, 32, SHA512)

    def test_bytearray_password(self):
        assert derive_key(bytearray(b"password"), b"salt", 1, 32, SHA256) == \
            derive_key(b"password", b"salt", 1, 32, SHA256)

    @pytest.mark.parametrize("iterations", [0, -5, True])
    def test_bad_iterations(self, iterations):
        with pytest.raises(InvalidInputError):
            derive_key(b"pw", b"salt", iterations, 32, SHA256)

    def test_bad_length(self):
        with pytest.raises(InvalidInputError):
            derive_key(b"pw", b"salt", 1, 0, SHA256)

    def test_str_password_rejected(self):
        with pytest.raises(InvalidInputError):
            derive_key("pw", b"salt", 1, 32, SHA256)


# =============================================================================
# REQUESTS
# =============================================================================

class TestDerivationRequest:

    def test_defaults(self):
        req = DerivationRequest(password="pw")
        assert req.iterations == DEFAULT_ITERATIONS == 100000
        assert req.salt_length == DEFAULT_SALT_LENGTH == 16
        assert req.hash_algorithm == DEFAULT_HASH_ALGORITHM == "sha256"
        assert req.format == DEFAULT_FORMAT

    def test_password_hidden_from_repr(self):
        req = DerivationRequest(password="correct horse")
        assert "correct horse" not in repr(req)

    @pytest.mark.parametrize("password", ["", b"", None, 123])
    def test_bad_password(self, password):
        with pytest.raises(InvalidInputError):
            DerivationRequest(password=password)

    @pytest.mark.parametrize("field", ["iterations", "salt_length"])
    @pytest.mark.parametrize("value", [0, -1, "10", 2.0, 2**63, 2**64])
    def test_non_positive_counts(self, field, value):
        with pytest.raises(InvalidInputError, match=field):
            DerivationRequest(password="pw", **{field: value})

    def test_max_int64_accepted(self):
        req = DerivationRequest(password="pw", iterations=2**63 - 1, salt_length=2**63 - 1)
        assert req.iterations == 2**63 - 1

    def test_password_must_encode_as_utf8(self):
        with pytest.raises(InvalidInputError, match="valid UTF-8"):
            DerivationRequest(password="pw\udcff")

    def test_unknown_algorithm(self):
        with pytest.raises(UnsupportedHashAlgorithmError):
            DerivationRequest(password="pw", hash_algorithm="sha1")

    def test_format_must_be_string(self):
        with pytest.raises(InvalidInputError):
            DerivationRequest(password="pw", format=None)

    def test_from_record_fills_defaults(self):
        req = DerivationRequest.from_record({"password": "pw", "iterations": None})
        assert req == DerivationRequest(password="pw")

    def test_from_record_overrides(self):
        req = DerivationRequest.from_record({
            "password": "pw",
            "iterations": 5,
            "salt_length": 8,
            "hash_algorithm": "sha512",
            "format": "{{ .Iterations }}",
        })
        assert (req.iterations, req.salt_length, req.hash_algorithm, req.format) == \
            (5, 8, "sha512", "{{ .Iterations }}")

    def test_from_record_requires_password(self):
        with pytest.raises(InvalidInputError, match="password"):
            DerivationRequest.from_record({"iterations": 5})

    def test_to_record_round_trip(self):
        req = DerivationRequest(password="pw", iterations=7)
        assert DerivationRequest.from_record(req.to_record()) == req


class TestDeriveForRequest:

    def test_key_length_follows_algorithm(self):
        assert len(derive_for_request(DerivationRequest(password="pw", iterations=1), b"s")) == 32
        req = DerivationRequest(password="pw", iterations=1, hash_algorithm="sha512")
        assert len(derive_for_request(req, b"s")) == 64

    def test_str_password_is_utf8(self):
        text = DerivationRequest(password="pässword", iterations=2)
        raw = DerivationRequest(password="pässword".encode("utf-8"), iterations=2)
        assert derive_for_request(text, b"salt") == derive_for_request(raw, b"salt")

    def test_matches_known_answer(self):
        req = DerivationRequest(password="password", iterations=1)
        assert derive_for_request(req, b"salt").hex() == \
            "120fb6cffcf8b32c43e7225256c4f837a86548c92ccc35480805987cb70be17b"
