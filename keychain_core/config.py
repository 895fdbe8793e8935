"""
TOML-based configuration for keychain-core.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from keychain_core.config import load_config
    cfg = load_config("keychain.toml")
    params = cfg.kdf.to_params()
    store = KeychainStore.from_config(cfg.storage)
    middleware = signature_auth_middleware_from_config(cfg.auth)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]

from keychain_core.derivation import KdfParams


@dataclass
class KdfConfig:
    """scrypt cost used when encrypting new keychains.

    Keychains must be decrypted with the exact parameters they were
    encrypted with, so store them next to each keychain.
    """
    algorithm: str = "scrypt"
    bits: int = 256
    n: int = 4096
    r: int = 8
    p: int = 1

    def to_params(self) -> KdfParams:
        return KdfParams(algorithm=self.algorithm, bits=self.bits, n=self.n, r=self.r, p=self.p)


@dataclass
class AuthConfig:
    """Signed-request settings."""
    validity_seconds: int = 60        # client: lifetime of a signature
    max_validity_seconds: int = 60    # server: furthest accepted expiry


@dataclass
class StorageConfig:
    """Keychain store settings."""
    path: str = "data/keychains.db"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class KeychainConfig:
    """Top-level configuration container."""
    kdf: KdfConfig = field(default_factory=KdfConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> KeychainConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        KEYCHAIN_KDF_N          -> kdf.n
        KEYCHAIN_KDF_R          -> kdf.r
        KEYCHAIN_KDF_P          -> kdf.p
        KEYCHAIN_AUTH_VALIDITY  -> auth.validity_seconds
        KEYCHAIN_AUTH_MAX_VALIDITY -> auth.max_validity_seconds
        KEYCHAIN_DB_PATH        -> storage.path
        KEYCHAIN_LOG_LEVEL      -> logging.level
        KEYCHAIN_LOG_FMT        -> logging.format
    """
    cfg = KeychainConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("kdf", cfg.kdf),
                ("auth", cfg.auth),
                ("storage", cfg.storage),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("KEYCHAIN_KDF_N"):
        cfg.kdf.n = int(v)
    if v := os.environ.get("KEYCHAIN_KDF_R"):
        cfg.kdf.r = int(v)
    if v := os.environ.get("KEYCHAIN_KDF_P"):
        cfg.kdf.p = int(v)
    if v := os.environ.get("KEYCHAIN_AUTH_VALIDITY"):
        cfg.auth.validity_seconds = int(v)
    if v := os.environ.get("KEYCHAIN_AUTH_MAX_VALIDITY"):
        cfg.auth.max_validity_seconds = int(v)
    if v := os.environ.get("KEYCHAIN_DB_PATH"):
        cfg.storage.path = v
    if v := os.environ.get("KEYCHAIN_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("KEYCHAIN_LOG_FMT"):
        cfg.logging.format = v

    return cfg
