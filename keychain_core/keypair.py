"""
Ed25519 signing keypair with StrKey-encoded addresses.

A Keypair holds a verification key and, optionally, the signing key
derived from a 32-byte secret seed.  Public keys are exposed as
``G...`` account ids, seeds as ``S...`` secret strings.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from keychain_core.crypto_utils import (
    VERSION_ACCOUNT_ID,
    VERSION_BALANCE_ID,
    VERSION_SEED,
    b64decode,
    b64encode,
    is_valid_strkey,
    random_bytes,
    strkey_decode,
    strkey_encode,
)

HINT_SIZE = 4
SIGNATURE_SIZE = 64


@dataclass(frozen=True)
class DecoratedSignature:
    """Signature plus the last four bytes of the signer's public key."""
    hint: bytes
    signature: bytes

    def to_xdr(self) -> bytes:
        # opaque hint[4]; opaque signature<64>
        padding = b"\x00" * (-len(self.signature) % 4)
        return (
            self.hint
            + struct.pack(">I", len(self.signature))
            + self.signature
            + padding
        )

    @classmethod
    def from_xdr(cls, raw: bytes) -> DecoratedSignature:
        if len(raw) < HINT_SIZE + 4:
            raise ValueError("Decorated signature too short")
        hint = raw[:HINT_SIZE]
        (length,) = struct.unpack(">I", raw[HINT_SIZE:HINT_SIZE + 4])
        if length > SIGNATURE_SIZE:
            raise ValueError("Signature longer than 64 bytes")
        body = raw[HINT_SIZE + 4:]
        padded = length + (-length % 4)
        if len(body) != padded or any(body[length:]):
            raise ValueError("Malformed signature body")
        return cls(hint=hint, signature=body[:length])

    def to_base64(self) -> str:
        return b64encode(self.to_xdr())

    @classmethod
    def from_base64(cls, text: str) -> DecoratedSignature:
        return cls.from_xdr(b64decode(text))


class Keypair:
    """Ed25519 keypair.  Use the factory classmethods, not the constructor."""

    def __init__(self, verify_key: VerifyKey, signing_key: SigningKey | None = None):
        self._verify_key = verify_key
        self._signing_key = signing_key

    # ---- factory methods ----

    @classmethod
    def random(cls) -> Keypair:
        return cls.from_raw_seed(random_bytes(32))

    @classmethod
    def from_raw_seed(cls, seed: bytes) -> Keypair:
        if len(seed) != 32:
            raise ValueError("Raw seed must be 32 bytes")
        sk = SigningKey(seed)
        return cls(sk.verify_key, sk)

    @classmethod
    def from_secret(cls, secret: str) -> Keypair:
        """Parse an ``S...`` secret seed.  Raises ValueError if malformed."""
        return cls.from_raw_seed(strkey_decode(VERSION_SEED, secret))

    @classmethod
    def from_public_key(cls, account_id: str) -> Keypair:
        """Verify-only keypair from a ``G...`` account id."""
        return cls(VerifyKey(strkey_decode(VERSION_ACCOUNT_ID, account_id)))

    # ---- validators ----

    @staticmethod
    def is_valid_public_key(value: object) -> bool:
        return isinstance(value, str) and is_valid_strkey(VERSION_ACCOUNT_ID, value)

    @staticmethod
    def is_valid_secret_key(value: object) -> bool:
        return isinstance(value, str) and is_valid_strkey(VERSION_SEED, value)

    @staticmethod
    def is_valid_balance_key(value: object) -> bool:
        return isinstance(value, str) and is_valid_strkey(VERSION_BALANCE_ID, value)

    # ---- accessors ----

    @property
    def raw_public_key(self) -> bytes:
        return bytes(self._verify_key)

    def account_id(self) -> str:
        return strkey_encode(VERSION_ACCOUNT_ID, self.raw_public_key)

    def can_sign(self) -> bool:
        return self._signing_key is not None

    def secret(self) -> str:
        if self._signing_key is None:
            raise ValueError("Keypair has no secret seed")
        return strkey_encode(VERSION_SEED, bytes(self._signing_key))

    def signature_hint(self) -> bytes:
        return self.raw_public_key[-HINT_SIZE:]

    # ---- signing ----

    def sign(self, data: bytes) -> bytes:
        """Detached 64-byte Ed25519 signature over *data*."""
        if self._signing_key is None:
            raise ValueError("Keypair cannot sign without a secret seed")
        return bytes(self._signing_key.sign(data).signature)

    def sign_decorated(self, data: bytes) -> DecoratedSignature:
        return DecoratedSignature(hint=self.signature_hint(), signature=self.sign(data))

    def verify(self, data: bytes, signature: bytes) -> bool:
        try:
            self._verify_key.verify(data, signature)
        except (BadSignatureError, ValueError):
            return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.raw_public_key == other.raw_public_key

    def __hash__(self) -> int:
        return hash(self.raw_public_key)

    def __repr__(self) -> str:
        return f"Keypair({self.account_id()})"
