"""AES-GCM decryption of confidential config values.

Encrypted values travel as three hex segments joined by ``--``::

    hex(ciphertext) -- hex(iv) -- hex(tag)

The secret key is itself a hex string resolved from another config.
"""

from __future__ import annotations

import os
from typing import Protocol

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

_SEPARATOR = "--"
_TAG_SIZE = 16
_IV_SIZE = 12


class Decrypter(Protocol):
    def decrypt_value(self, secret_key: str, value: str) -> str: ...


def decrypt_value(secret_key: str, value: str) -> str:
    """Decrypt a ``ciphertext--iv--tag`` payload.

    Parameters
    ----------
    secret_key:
        Hex-encoded AES key (16, 24 or 32 bytes once decoded).
    value:
        The encrypted payload.

    Returns
    -------
    str
        The UTF-8 plaintext.

    Raises
    ------
    ValueError
        If the payload or key is malformed.
    cryptography.exceptions.InvalidTag
        If the key is wrong or the data has been tampered with.
    """
    parts = value.split(_SEPARATOR)
    if len(parts) != 3:
        raise ValueError("encrypted value must have three '--' separated parts")
    ciphertext, iv, tag = (bytes.fromhex(part) for part in parts)
    aesgcm = AESGCM(bytes.fromhex(secret_key))
    return aesgcm.decrypt(iv, ciphertext + tag, None).decode("utf-8")


def encrypt_value(secret_key: str, plaintext: str) -> str:
    """Encrypt *plaintext* into the ``ciphertext--iv--tag`` payload format.

    A fresh random 12-byte IV is generated for every call.
    """
    iv = os.urandom(_IV_SIZE)
    aesgcm = AESGCM(bytes.fromhex(secret_key))
    sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]
    return _SEPARATOR.join((ciphertext.hex(), iv.hex(), tag.hex()))


def generate_key() -> str:
    """Generate a random 256-bit AES key as a hex string."""
    return AESGCM.generate_key(bit_length=256).hex()


class AesGcmDecrypter:
    """Default :class:`Decrypter` backed by :func:`decrypt_value`."""

    def decrypt_value(self, secret_key: str, value: str) -> str:
        return decrypt_value(secret_key, value)
