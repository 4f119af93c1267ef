"""
Unit tests for token encryption and key derivation.
"""

import hashlib
import hmac
import os

import pytest

from dynapager.codec import flatten_key, unflatten_key
from dynapager.crypto import (
    SubKeys,
    b64u_decode,
    b64u_encode,
    decode_token,
    derive_keys,
    encode_token,
)
from dynapager.exceptions import TokenError


@pytest.fixture
def keys() -> SubKeys:
    return SubKeys(enc_key=os.urandom(32), sig_key=os.urandom(32))


@pytest.mark.unit
class TestDeriveKeys:
    """Test sub-key derivation."""

    def test_matches_hmac_sha256(self) -> None:
        secret = b"s" * 32
        keys = derive_keys(secret)
        assert keys.enc_key == hmac.new(secret, b"\x01", hashlib.sha256).digest()
        assert keys.sig_key == hmac.new(secret, b"\x02", hashlib.sha256).digest()

    def test_keys_are_independent(self) -> None:
        keys = derive_keys(os.urandom(32))
        assert len(keys.enc_key) == len(keys.sig_key) == 32
        assert keys.enc_key != keys.sig_key

    def test_deterministic(self) -> None:
        assert derive_keys(b"secret") == derive_keys(b"secret")

    def test_string_secret(self) -> None:
        assert derive_keys("secret") == derive_keys(b"secret")


@pytest.mark.unit
class TestBase64Url:
    """Test URL-safe Base64 without padding."""

    def test_no_padding_or_unsafe_characters(self) -> None:
        encoded = b64u_encode(b"\xfb\xff\xfe")
        assert encoded == "-__-"
        assert b64u_decode(encoded) == b"\xfb\xff\xfe"

    def test_restores_padding(self) -> None:
        for size in range(1, 10):
            data = os.urandom(size)
            assert "=" not in b64u_encode(data)
            assert b64u_decode(b64u_encode(data)) == data


@pytest.mark.unit
class TestEncodeDecode:
    """Test token encryption."""

    def test_encode_and_decode(self, keys: SubKeys) -> None:
        key = {"PK": b"hello", "SK": b"world"}
        token = encode_token(flatten_key(key), keys)
        decoded = unflatten_key(decode_token(token, keys))
        assert decoded == key
        assert len(b64u_decode(token)) == 64
        assert len(token) == 86

    def test_string_key_has_same_length(self, keys: SubKeys) -> None:
        token = encode_token(flatten_key({"PK": "hello", "SK": "world"}), keys)
        assert len(token) == 86

    def test_none_values_are_dropped(self, keys: SubKeys) -> None:
        token = encode_token(flatten_key({"PK": None, "SK": "world"}), keys)
        assert unflatten_key(decode_token(token, keys)) == {"SK": "world"}

    def test_minimum_length(self, keys: SubKeys) -> None:
        token = encode_token(b"", keys)
        assert len(token) >= 42
        assert decode_token(token, keys) == b""

    def test_fresh_iv_per_token(self, keys: SubKeys) -> None:
        plaintext = flatten_key({"PK": "a"})
        first, second = encode_token(plaintext, keys), encode_token(plaintext, keys)
        assert first != second
        assert b64u_decode(first)[:16] != b64u_decode(second)[:16]

    def test_url_safe(self, keys: SubKeys) -> None:
        for _ in range(20):
            token = encode_token(os.urandom(40), keys)
            assert not set(token) - set(
                "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
            )

    def test_context_roundtrip(self, keys: SubKeys) -> None:
        token = encode_token(b"payload", keys, b"user-1")
        assert decode_token(token, keys, b"user-1") == b"payload"


@pytest.mark.unit
class TestTamperDetection:
    """Test that every manipulation surfaces as the same TokenError."""

    def test_swapped_encryption_key(self, keys: SubKeys) -> None:
        token = encode_token(flatten_key({"SK": "world"}), keys)
        with pytest.raises(TokenError):
            decode_token(token, SubKeys(enc_key=keys.sig_key, sig_key=keys.sig_key))

    def test_swapped_signing_key(self, keys: SubKeys) -> None:
        token = encode_token(flatten_key({"SK": "world"}), keys)
        with pytest.raises(TokenError):
            decode_token(token, SubKeys(enc_key=keys.enc_key, sig_key=keys.enc_key))

    def test_truncated_token(self, keys: SubKeys) -> None:
        token = encode_token(flatten_key({"SK": "world"}), keys)
        with pytest.raises(TokenError):
            decode_token(token[1:], keys)

    def test_context_mismatch(self, keys: SubKeys) -> None:
        token = encode_token(b"payload", keys, b"user-1")
        with pytest.raises(TokenError):
            decode_token(token, keys, b"user-2")
        with pytest.raises(TokenError):
            decode_token(token, keys)

    def test_every_bit_flip_is_detected(self, keys: SubKeys) -> None:
        raw = b64u_decode(encode_token(flatten_key({"PK": "hello", "SK": "world"}), keys))
        for pos in range(len(raw)):
            for bit in range(8):
                tampered = bytearray(raw)
                tampered[pos] ^= 1 << bit
                with pytest.raises(TokenError):
                    decode_token(b64u_encode(bytes(tampered)), keys)

    @pytest.mark.parametrize("token", ["", "abc", "!" * 86, "A" * 49, "A" * 86])
    def test_garbage(self, keys: SubKeys, token: str) -> None:
        with pytest.raises(TokenError) as exc_info:
            decode_token(token, keys)
        assert str(exc_info.value) == "Token is invalid"

    def test_error_does_not_chain_cause(self, keys: SubKeys) -> None:
        with pytest.raises(TokenError) as exc_info:
            decode_token("A" * 86, keys)
        assert exc_info.value.__cause__ is None
