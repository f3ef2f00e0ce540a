"""Password credential handling.

A credential is ``base64(iv || AES-CBC(key, iv, pkcs7(password)))`` with a
16 byte IV. The browser encrypts with the shared key; the handler decrypts and
compares against the configured password.
"""

import base64
import binascii
import hmac
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_SIZE = 16


class InvalidCredential(Exception):
    """The credential could not be decoded or decrypted."""


class PasswordCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) not in (16, 24, 32):
            raise ValueError(f"Invalid AES key length: {len(key)} bytes")
        self._key = key

    @classmethod
    def from_base64(cls, encoded_key: str) -> "PasswordCipher":
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except binascii.Error as e:
            raise ValueError(f"ENCRYPTION_KEY is not valid base64: {e}") from e
        return cls(key)

    def encrypt(self, plaintext: str, iv: Optional[bytes] = None) -> str:
        iv = iv if iv is not None else os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, credential: str) -> str:
        try:
            raw = base64.b64decode(credential)
            iv, ciphertext = raw[:IV_SIZE], raw[IV_SIZE:]
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as e:
            # binascii.Error and UnicodeDecodeError are ValueErrors too
            raise InvalidCredential(str(e)) from e

    def matches(self, credential: str, expected: str) -> bool:
        """Decrypt ``credential`` and compare it to ``expected`` exactly."""
        plaintext = self.decrypt(credential)
        return hmac.compare_digest(plaintext.encode("utf-8"), expected.encode("utf-8"))


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key suitable for ENCRYPTION_KEY."""
    return base64.b64encode(os.urandom(32)).decode("ascii")
