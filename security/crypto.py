"""
Per-record encryption of stored secrets.

Every record carries its own random salt. The AES-256 key is derived from
the process-wide secret and that salt with PBKDF2-SHA256, and every call to
``encrypt`` draws a fresh IV, so the same plaintext never produces the same
ciphertext twice.

Ciphertext format: ``hex(iv) + ":" + hex(aes_cbc_pkcs7(plaintext))``.
"""

from __future__ import annotations

import logging
import secrets

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app

logger = logging.getLogger(__name__)

SALT_BYTES = 16
IV_BYTES = 16
KEY_BYTES = 32
KDF_ITERATIONS = 100_000
SEPARATOR = ":"


class CryptoError(Exception):
    """Base class for failures while reading back a stored secret."""


class MalformedCiphertext(CryptoError):
    """Stored value is not an ``iv:data`` hex pair."""


class DecryptionError(CryptoError):
    """Wrong key or tampered data: padding or UTF-8 decoding failed."""


def generate_salt() -> str:
    return secrets.token_bytes(SALT_BYTES).hex()


class EncryptionEngine:
    """
    AES-256-CBC with a PBKDF2 key per salt.

    ``strict=False`` keeps the legacy behaviour of returning "" for a
    malformed value. Padding and decoding failures raise in both modes.
    """

    def __init__(self, secret: str, iterations: int = KDF_ITERATIONS, strict: bool = True):
        if not isinstance(secret, str) or not secret:
            raise ValueError("Encryption secret must be a non-empty string")
        if iterations < 1:
            raise ValueError("KDF iterations must be positive")
        self._secret = secret.encode("utf-8")
        self.iterations = iterations
        self.strict = strict

    def derive_key(self, salt: str) -> bytes:
        if not salt:
            raise ValueError("Salt must be a non-empty string")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_BYTES,
            # the hex text itself is the salt, as it is stored
            salt=salt.encode("utf-8"),
            iterations=self.iterations,
        )
        return kdf.derive(self._secret)

    def encrypt(self, plaintext: str, salt: str) -> str:
        if not plaintext:
            return ""

        key = self.derive_key(salt)
        iv = secrets.token_bytes(IV_BYTES)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        body = encryptor.update(padded) + encryptor.finalize()

        return iv.hex() + SEPARATOR + body.hex()

    def decrypt(self, ciphertext: str, salt: str) -> str:
        if not ciphertext:
            return ""

        try:
            iv, body = self._split(ciphertext)
        except MalformedCiphertext:
            if self.strict:
                raise
            logger.warning("Discarding malformed ciphertext (%d chars)", len(ciphertext))
            return ""

        key = self.derive_key(salt)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecryptionError("Stored secret could not be decrypted") from exc

    @staticmethod
    def _split(ciphertext: str) -> tuple[bytes, bytes]:
        iv_hex, sep, body_hex = ciphertext.partition(SEPARATOR)
        if not sep or not iv_hex or not body_hex:
            raise MalformedCiphertext("Expected 'iv:data'")

        try:
            iv = bytes.fromhex(iv_hex)
            body = bytes.fromhex(body_hex)
        except ValueError as exc:
            raise MalformedCiphertext("Ciphertext parts must be hex") from exc

        if len(iv) != IV_BYTES:
            raise MalformedCiphertext("IV must be 16 bytes")
        if len(body) % IV_BYTES:
            raise MalformedCiphertext("Ciphertext is not a whole number of AES blocks")
        return iv, body


def engine_from_config(config) -> EncryptionEngine:
    return EncryptionEngine(
        secret=config.get("PWD_SECRET_KEY"),
        iterations=config.get("PWD_KDF_ITERATIONS", KDF_ITERATIONS),
        strict=config.get("PWD_STRICT_DECRYPT", True),
    )


def get_engine() -> EncryptionEngine:
    """Engine bound to the running app (created in create_app)."""
    return current_app.extensions["encryption_engine"]
