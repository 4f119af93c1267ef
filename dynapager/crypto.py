"""
Authenticated encryption of pagination tokens.

The secret handed to the paginator is never used directly. Two independent
sub-keys are derived from it with HMAC-SHA256: one for AES-256-CBC
encryption and one for signing.

The plaintext is encrypted with a random IV. The additional authenticated
data (the "context"), the IV, the ciphertext and the length of the context
are concatenated to form the message that is signed. The token is the
Base64-URL encoding of IV || ciphertext || first 16 bytes of the HMAC.
"""

import base64
import os
import struct
from typing import NamedTuple

from cryptography.hazmat.primitives import constant_time, hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ._logging import logger
from .exceptions import TokenError

IV_LENGTH = 16
TAG_LENGTH = 16
BLOCK_SIZE = 16
MIN_TOKEN_LENGTH = 48

ENC_KEY_TAG = b"\x01"
SIG_KEY_TAG = b"\x02"


class SubKeys(NamedTuple):
    enc_key: bytes
    sig_key: bytes


def _hmac_sha256(key: bytes, message: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(message)
    return h.finalize()


def derive_keys(secret: bytes | str) -> SubKeys:
    """Derives the encryption and the signing key from a single secret."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return SubKeys(
        enc_key=_hmac_sha256(secret, ENC_KEY_TAG),
        sig_key=_hmac_sha256(secret, SIG_KEY_TAG),
    )


def b64u_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64u_decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def _signature(sig_key: bytes, aad: bytes, ciphertext: bytes) -> bytes:
    # the length of the context is appended as a 64-bit big-endian integer
    message = aad + ciphertext + struct.pack(">Q", len(aad))
    return _hmac_sha256(sig_key, message)[:TAG_LENGTH]


def encode_token(plaintext: bytes, keys: SubKeys, aad: bytes = b"") -> str:
    """Encrypts and signs plaintext into a URL-safe token."""
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(keys.enc_key), modes.CBC(iv)).encryptor()
    ciphertext = iv + encryptor.update(padded) + encryptor.finalize()
    return b64u_encode(ciphertext + _signature(keys.sig_key, aad, ciphertext))


def _decode_token(token: str, keys: SubKeys, aad: bytes) -> bytes:
    if len(token) <= MIN_TOKEN_LENGTH:
        raise ValueError("token too short")
    encrypted = b64u_decode(token)
    if len(encrypted) < IV_LENGTH + BLOCK_SIZE + TAG_LENGTH or len(encrypted) % BLOCK_SIZE:
        raise ValueError("token has an invalid length")

    ciphertext, tag = encrypted[:-TAG_LENGTH], encrypted[-TAG_LENGTH:]
    if not constant_time.bytes_eq(_signature(keys.sig_key, aad, ciphertext), tag):
        raise ValueError("signature mismatch")

    iv, body = ciphertext[:IV_LENGTH], ciphertext[IV_LENGTH:]
    decryptor = Cipher(algorithms.AES(keys.enc_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def decode_token(token: str, keys: SubKeys, aad: bytes = b"") -> bytes:
    """
    Verifies and decrypts a token produced by encode_token.

    Raises:
        TokenError: For any malformed, tampered or foreign token
    """
    try:
        return _decode_token(token, keys, aad)
    except (ValueError, TypeError):
        logger.debug("Rejected pagination token")
        raise TokenError() from None
