"""
keychain-core - credential and identity core for a blockchain client SDK.

Key features:
- Deterministic wallet id and encryption key from email + password (scrypt)
- AES-256-GCM encrypted keychains for storage on a wallet server
- Recovery-seed restore with an independent recovery keychain
- Ed25519 signed, clock-skew-aware request authentication headers
"""

__version__ = "1.0.0"
__all__ = [
    "crypto_utils",
    "keypair",
    "derivation",
    "keychain",
    "wallet",
    "auth",
    "errors",
    "config",
    "logging_config",
    "storage",
]
