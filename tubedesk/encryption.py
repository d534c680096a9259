"""Symmetric encryption for stored YouTube API keys."""
from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import re
from typing import Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger("tubedesk.encryption")

_IV_BYTES = 16
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
_HEX_TEXT = re.compile(r"^[0-9a-fA-F]*$")


def derive_key(secret: str) -> bytes:
    """Turn the configured secret into a 32 byte AES key.

    A 64 character hex string is used verbatim, a 44 character base64 string
    is decoded, anything else is hashed with SHA-256.
    """

    if _HEX_KEY.match(secret):
        return bytes.fromhex(secret)
    if len(secret) == 44 and secret.endswith("="):
        try:
            decoded = base64.b64decode(secret, validate=True)
        except (binascii.Error, ValueError):
            decoded = b""
        if len(decoded) == 32:
            return decoded
    return hashlib.sha256(secret.encode("utf-8")).digest()


class ApiKeyCipher:
    """AES-256-CBC with a random IV per value; ciphertext and IV are hex encoded."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Encryption secret must not be empty")
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> Tuple[str, str]:
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext.hex(), iv.hex()

    def decrypt(self, encrypted: str, iv: str) -> str:
        if not encrypted or not _HEX_TEXT.match(encrypted):
            raise ValueError("Encrypted data must be a non-empty hexadecimal string")
        if not _HEX_TEXT.match(iv) or len(iv) != _IV_BYTES * 2:
            raise ValueError(f"Invalid IV: expected {_IV_BYTES * 2} hex characters, got {len(iv)}")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(bytes.fromhex(iv))).decryptor()
        try:
            padded = decryptor.update(bytes.fromhex(encrypted)) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as exc:
            raise ValueError("Stored API key could not be decrypted. Save the key again to repair it.") from exc


def build_api_key_cipher(secret: Optional[str]) -> Optional[ApiKeyCipher]:
    """Return a cipher for ``secret`` or ``None`` when encryption is not configured."""

    if not secret:
        logger.warning(
            "YOUTUBE_API_ENCRYPTION_KEY is not configured; YouTube API keys will be stored unencrypted."
        )
        return None
    return ApiKeyCipher(secret)


__all__ = ["ApiKeyCipher", "build_api_key_cipher", "derive_key"]
