"""
Cryptographic primitives for keychain-core.

Thin wrappers around ``hashlib`` / ``hmac`` and pycryptodome that the
credential and keychain layers build on:
  - SHA-256 and HMAC-SHA256
  - scrypt key stretching
  - AES-256-GCM authenticated encryption
  - StrKey (base32 + CRC16-XModem) address / seed encoding
  - Strict base64 helpers
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt as _scrypt

# StrKey version bytes
VERSION_ACCOUNT_ID = 6 << 3      # 'G'
VERSION_SEED = 18 << 3           # 'S'
VERSION_BALANCE_ID = 1 << 3      # 'B'

STRKEY_LENGTH = 56
GCM_IV_SIZE = 12
GCM_TAG_SIZE = 16


# ===================================================================
#  Hashing
# ===================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hmac_sha256(key: bytes, msg: bytes) -> bytes:
    return hmac.new(key, msg, hashlib.sha256).digest()


def random_bytes(n: int) -> bytes:
    return os.urandom(n)


# ===================================================================
#  Key stretching
# ===================================================================

def scrypt(password: bytes, salt: bytes, key_len: int, n: int, r: int, p: int) -> bytes:
    """scrypt(password, salt) -> *key_len* bytes.  Raises ValueError on bad cost params."""
    return _scrypt(password, salt, key_len, N=n, r=r, p=p)


# ===================================================================
#  AES-256-GCM
# ===================================================================

def aes_gcm_encrypt(key: bytes, data: bytes) -> tuple[bytes, bytes, bytes]:
    """Encrypt *data* with AES-GCM. Returns (ciphertext, iv, tag)."""
    iv = random_bytes(GCM_IV_SIZE)
    cipher = AES.new(key, AES.MODE_GCM, nonce=iv, mac_len=GCM_TAG_SIZE)
    ciphertext, tag = cipher.encrypt_and_digest(data)
    return ciphertext, iv, tag


def aes_gcm_decrypt(key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> bytes:
    """Decrypt and verify AES-GCM ciphertext. Raises ValueError on tamper or wrong key."""
    cipher = AES.new(key, AES.MODE_GCM, nonce=iv, mac_len=GCM_TAG_SIZE)
    return cipher.decrypt_and_verify(ciphertext, tag)


# ===================================================================
#  Base64
# ===================================================================

def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Strict standard-alphabet base64 decode. Raises ValueError."""
    if not isinstance(text, str):
        raise ValueError("base64 input must be a string")
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"Invalid base64: {exc}") from exc


# ===================================================================
#  StrKey
# ===================================================================

def crc16_xmodem(data: bytes) -> int:
    crc = 0x0000
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def strkey_encode(version: int, payload: bytes) -> str:
    body = bytes([version]) + payload
    checksum = crc16_xmodem(body).to_bytes(2, "little")
    return base64.b32encode(body + checksum).decode("ascii")


def strkey_decode(version: int, encoded: str) -> bytes:
    """Decode a StrKey and return the 32-byte payload.

    Raises ValueError on wrong length, alphabet, version byte or checksum.
    """
    if not isinstance(encoded, str) or len(encoded) != STRKEY_LENGTH:
        raise ValueError("StrKey must be a 56-character string")
    try:
        raw = base64.b32decode(encoded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"Invalid base32: {exc}") from exc
    body, checksum = raw[:-2], raw[-2:]
    if body[0] != version:
        raise ValueError("Invalid version byte")
    if crc16_xmodem(body).to_bytes(2, "little") != checksum:
        raise ValueError("Invalid checksum")
    # 5 bits * 56 chars carries exactly 35 bytes; re-encoding catches
    # non-canonical trailing bits.
    if strkey_encode(version, body[1:]) != encoded:
        raise ValueError("Non-canonical StrKey")
    return body[1:]


def is_valid_strkey(version: int, encoded: str) -> bool:
    try:
        strkey_decode(version, encoded)
    except ValueError:
        return False
    return True
