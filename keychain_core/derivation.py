"""
Credential derivation: (salt, email, password, kdf params) -> master key.

The master key is split into two independent sub-keys by HMAC-SHA256
under distinct labels:
  - wallet id   (public lookup handle, hex-encoded)
  - wallet key  (AES-256 key for the keychain)

All functions here are pure and deterministic.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Union

from keychain_core.crypto_utils import b64decode, hmac_sha256, scrypt, sha256
from keychain_core.errors import KdfError

KDF_VERSION = b"\x01"
WALLET_ID_LABEL = b"WALLET_ID"
WALLET_KEY_LABEL = b"WALLET_KEY"


@dataclass(frozen=True)
class KdfParams:
    """scrypt cost parameters as published by the wallet server."""
    algorithm: str = "scrypt"
    bits: int = 256
    n: int = 4096
    r: int = 8
    p: int = 1

    def __post_init__(self):
        if self.algorithm != "scrypt":
            raise KdfError(f"Unsupported KDF algorithm: {self.algorithm!r}")
        for name in ("bits", "n", "r", "p"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise KdfError(f"KDF parameter {name} must be a positive integer")
        if self.bits % 8:
            raise KdfError("KDF parameter bits must be a multiple of 8")
        if self.n < 2 or self.n & (self.n - 1):
            raise KdfError("KDF parameter n must be a power of two greater than 1")

    @property
    def key_length(self) -> int:
        return self.bits // 8

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> KdfParams:
        if not isinstance(raw, Mapping):
            raise KdfError("KDF params must be a mapping")
        known = {k: raw[k] for k in ("algorithm", "bits", "n", "r", "p") if k in raw}
        return cls(**known)

    def to_dict(self) -> dict:
        return asdict(self)


KdfParamsLike = Union[KdfParams, Mapping[str, Any]]


def coerce_kdf_params(kdf_params: KdfParamsLike | None) -> KdfParams:
    if kdf_params is None:
        raise KdfError("KDF params required")
    if isinstance(kdf_params, KdfParams):
        return kdf_params
    return KdfParams.from_dict(kdf_params)


def derive_master_key(salt: str, email: str, password: str,
                      kdf_params: KdfParamsLike) -> bytes:
    """
    Stretch *password* into the master key.

    The scrypt salt is ``SHA256(0x01 || salt_bytes || utf8(email))`` so
    that the same password under two emails never collides.
    """
    params = coerce_kdf_params(kdf_params)
    if not salt:
        raise KdfError("Salt must be a non-empty base64 string")
    try:
        salt_bytes = b64decode(salt)
    except ValueError as exc:
        raise KdfError("Salt must be a non-empty base64 string") from exc
    if not salt_bytes:
        raise KdfError("Salt must be a non-empty base64 string")

    kdf_salt = sha256(KDF_VERSION + salt_bytes + email.encode("utf-8"))
    try:
        return scrypt(password.encode("utf-8"), kdf_salt, params.key_length,
                      params.n, params.r, params.p)
    except ValueError as exc:
        raise KdfError(f"scrypt rejected parameters: {exc}") from exc


def derive_wallet_id(master_key: bytes) -> bytes:
    return hmac_sha256(master_key, WALLET_ID_LABEL)


def derive_wallet_key(master_key: bytes) -> bytes:
    return hmac_sha256(master_key, WALLET_KEY_LABEL)
