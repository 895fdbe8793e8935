"""
Keychain codec.

The keychain is the JSON object ``{"accountId": ..., "seed": ...}``.  It is
sealed with AES-256-GCM and shipped as a base64 envelope::

    base64(json({"IV": b64(iv),
                 "cipherText": b64(ciphertext || tag),
                 "cipherName": "aes",
                 "modeName": "gcm"}))

Every failure to open an envelope is a ``DecryptionError``; a payload that
decrypts but is not a keychain is a ``KeychainFormatError``.
"""

from __future__ import annotations

import json

from keychain_core.crypto_utils import (
    GCM_IV_SIZE,
    GCM_TAG_SIZE,
    aes_gcm_decrypt,
    aes_gcm_encrypt,
    b64decode,
    b64encode,
)
from keychain_core.errors import DecryptionError, KeychainFormatError

CIPHER_NAME = "aes"
MODE_NAME = "gcm"
KEYCHAIN_KEYS = frozenset({"accountId", "seed"})


def encrypt_data(plaintext: str, key: bytes) -> str:
    ciphertext, iv, tag = aes_gcm_encrypt(key, plaintext.encode("utf-8"))
    envelope = {
        "IV": b64encode(iv),
        "cipherText": b64encode(ciphertext + tag),
        "cipherName": CIPHER_NAME,
        "modeName": MODE_NAME,
    }
    return b64encode(json.dumps(envelope).encode("utf-8"))


def decrypt_data(envelope: str, key: bytes) -> str:
    try:
        raw = json.loads(b64decode(envelope).decode("utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("envelope is not an object")
        if raw.get("cipherName") != CIPHER_NAME or raw.get("modeName") != MODE_NAME:
            raise ValueError("unsupported cipher")
        iv = b64decode(raw["IV"])
        sealed = b64decode(raw["cipherText"])
        if len(iv) != GCM_IV_SIZE or len(sealed) < GCM_TAG_SIZE:
            raise ValueError("truncated envelope")
        plaintext = aes_gcm_decrypt(key, iv, sealed[:-GCM_TAG_SIZE], sealed[-GCM_TAG_SIZE:])
        return plaintext.decode("utf-8")
    except (ValueError, KeyError, TypeError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise DecryptionError(str(exc)) from None


def encode_keychain(account_id: str, seed: str) -> str:
    return json.dumps({"accountId": account_id, "seed": seed})


def decode_keychain(plaintext: str) -> tuple[str, str]:
    """Parse a decrypted keychain.  Returns (account_id, seed)."""
    try:
        raw = json.loads(plaintext)
    except ValueError:
        raise KeychainFormatError("payload is not JSON") from None
    if not isinstance(raw, dict) or set(raw) != KEYCHAIN_KEYS:
        raise KeychainFormatError("payload must hold exactly accountId and seed")
    account_id, seed = raw["accountId"], raw["seed"]
    if not isinstance(account_id, str) or not isinstance(seed, str):
        raise KeychainFormatError("accountId and seed must be strings")
    return account_id, seed
