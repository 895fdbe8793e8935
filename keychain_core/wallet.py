"""
Wallet identity for keychain-core.

A wallet binds a login email to an Ed25519 keypair and provides:
  - Fresh generation, login (decrypt a keychain) and recovery-seed restore
  - Deterministic wallet id derivation from credentials
  - Keychain encryption for storage on a wallet server
  - Recovery data: a second keychain of the same seed keyed by a recovery seed
  - Clock-skew-aware signed request headers
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from keychain_core.auth import SIGNATURE_VALID_SEC, RequestAuthenticator
from keychain_core.crypto_utils import b64encode, random_bytes
from keychain_core.derivation import (
    KdfParamsLike,
    coerce_kdf_params,
    derive_master_key,
    derive_wallet_id,
    derive_wallet_key,
)
from keychain_core.errors import (
    DecryptionError,
    KeychainFormatError,
    TimestampError,
    ValidationError,
)
from keychain_core.keychain import decode_keychain, decrypt_data, encode_keychain, encrypt_data
from keychain_core.keypair import Keypair

logger = logging.getLogger("keychain_wallet")

SALT_SIZE = 16
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


@dataclass(frozen=True)
class EncryptedKeychain:
    """The at-rest artifact produced by ``Wallet.encrypt``."""
    id: str
    account_id: str
    email: str
    salt: str
    keychain_data: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "email": self.email,
            "salt": self.salt,
            "keychainData": self.keychain_data,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EncryptedKeychain:
        try:
            fields = {
                "id": data["id"],
                "account_id": data["accountId"],
                "email": data["email"],
                "salt": data["salt"],
                "keychain_data": data["keychainData"],
            }
        except KeyError as exc:
            raise ValidationError(f"Encrypted keychain is missing {exc.args[0]!r}") from exc
        for name, value in fields.items():
            if not isinstance(value, str) or not value:
                raise ValidationError(f"Encrypted keychain field {name} must be a non-empty string")
        return cls(**fields)


def _require_text(value: object, message: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(message)
    return value


def _check_wallet_id(wallet_id: object) -> str:
    if not isinstance(wallet_id, str) or not _HEX_RE.match(wallet_id):
        raise ValidationError("Hex encoded wallet ID expected.")
    return wallet_id


class Wallet:
    """Manages a user's keypair and its encrypted keychain."""

    def __init__(
        self,
        email: str,
        keypair: Keypair | str,
        account_id: str,
        wallet_id: str | None = None,
        *,
        signature_validity: int = SIGNATURE_VALID_SEC,
        clock: Callable[[], float] = time.time,
    ):
        _require_text(email, "Email is required.")

        if keypair is None:
            raise ValidationError("No keypair provided.")
        if isinstance(keypair, str):
            if not Keypair.is_valid_secret_key(keypair):
                raise ValidationError("Invalid secret seed.")
            keypair = Keypair.from_secret(keypair)
        elif not isinstance(keypair, Keypair):
            raise ValidationError("Invalid keypair. Expected a Keypair instance or a string seed.")
        if not keypair.can_sign():
            raise ValidationError("Keypair has no secret seed.")

        if not Keypair.is_valid_public_key(account_id):
            raise ValidationError("Invalid account ID.")
        if account_id != keypair.account_id():
            raise ValidationError("Account ID does not match the keypair.")

        if wallet_id is not None:
            _check_wallet_id(wallet_id)

        self._email = email
        self._keypair = keypair
        self._account_id = account_id
        self._id = wallet_id
        self._clock = clock
        self._clock_offset = 0.0
        self._authenticator = RequestAuthenticator(keypair, signature_validity, clock)

    # ---- factory methods ----

    @classmethod
    def generate(cls, email: str, **options) -> Wallet:
        """Brand-new wallet with a random keypair and no wallet id.

        *options* (``signature_validity``, ``clock``) go to the constructor,
        as for every factory below.
        """
        keypair = Keypair.random()
        wallet = cls(email, keypair, keypair.account_id(), **options)
        logger.info(f"Generated wallet for account {wallet.account_id}")
        return wallet

    @classmethod
    def from_encrypted(cls, keychain_data: str, kdf_params: KdfParamsLike, salt: str,
                       email: str, password: str, **options) -> Wallet:
        """
        Decrypt a keychain obtained from a wallet server (login flow).

        Raises ``DecryptionError`` or ``KeychainFormatError`` on a wrong
        password or corrupted data; both read as "Invalid credentials."
        """
        _require_text(email, "Email is required.")
        _require_text(password, "Password must be a non-empty string.")
        _require_text(keychain_data, "Keychain data is required.")

        master_key = derive_master_key(salt, email, password, kdf_params)
        wallet_id = derive_wallet_id(master_key).hex()
        wallet_key = derive_wallet_key(master_key)

        try:
            account_id, seed = decode_keychain(decrypt_data(keychain_data, wallet_key))
            wallet = cls(email, seed, account_id, wallet_id, **options)
        except DecryptionError as exc:
            logger.info(f"Keychain decryption failed ({exc.code})")
            raise
        except KeychainFormatError as exc:
            logger.info(f"Keychain payload rejected ({exc.code})")
            raise
        except ValidationError:
            logger.info(f"Keychain payload rejected ({KeychainFormatError.code})")
            raise KeychainFormatError("decrypted keychain failed validation") from None
        return wallet

    @classmethod
    def from_keychain(cls, keychain: EncryptedKeychain, kdf_params: KdfParamsLike,
                      password: str, **options) -> Wallet:
        """Login from a stored ``EncryptedKeychain``; the stored id must match."""
        wallet = cls.from_encrypted(
            keychain.keychain_data, kdf_params, keychain.salt, keychain.email, password, **options,
        )
        if wallet.wallet_id != keychain.id:
            raise DecryptionError("wallet id mismatch")
        return wallet

    @classmethod
    def from_recovery_seed(cls, kdf_params: KdfParamsLike, salt: str, email: str,
                           recovery_seed: str, **options) -> Wallet:
        """Restore the recovery wallet from its own secret seed."""
        if not Keypair.is_valid_secret_key(recovery_seed):
            raise ValidationError("Invalid recovery seed.")
        recovery_keypair = Keypair.from_secret(recovery_seed)
        wallet_id = cls.derive_id(email, recovery_seed, kdf_params, salt)
        return cls(email, recovery_keypair, recovery_keypair.account_id(), wallet_id, **options)

    @staticmethod
    def derive_id(email: str, password: str, kdf_params: KdfParamsLike, salt: str) -> str:
        """Hex wallet id for the given credentials."""
        _require_text(email, "Email is required.")
        _require_text(password, "Password must be a non-empty string.")
        master_key = derive_master_key(salt, email, password, kdf_params)
        return derive_wallet_id(master_key).hex()

    # ---- accessors ----

    @property
    def id(self) -> str:
        if not self._id:
            raise ValidationError("This wallet has no wallet ID yet.")
        return self._id

    @property
    def wallet_id(self) -> str | None:
        return self._id

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def email(self) -> str:
        return self._email

    @property
    def secret_seed(self) -> str:
        return self._keypair.secret()

    @property
    def keypair(self) -> Keypair:
        return self._keypair

    @property
    def clock_offset(self) -> float:
        return self._clock_offset

    def adopt_id(self, wallet_id: str) -> None:
        """Attach a wallet id returned by ``encrypt``.  Ids never change once set."""
        _check_wallet_id(wallet_id)
        if self._id is not None and self._id != wallet_id:
            raise ValidationError("Wallet already has a different wallet ID.")
        self._id = wallet_id

    # ---- keychain encryption ----

    def encrypt(self, kdf_params: KdfParamsLike, password: str) -> tuple[EncryptedKeychain, str]:
        """
        Encrypt this wallet's keychain under *password*.

        Returns ``(keychain, wallet_id)``.  The wallet itself is not
        modified; call ``adopt_id`` to attach the id.
        """
        return self._seal(kdf_params, password, self._account_id)

    def encrypt_recovery_data(self, kdf_params: KdfParamsLike,
                              recovery_keypair: Keypair) -> tuple[EncryptedKeychain, str]:
        """
        Encrypt this wallet's keychain under the recovery seed.

        The artifact is filed under the recovery keypair's account id, but
        decrypting it with the recovery seed yields this wallet's own
        account id and seed.
        """
        if not isinstance(recovery_keypair, Keypair) or not recovery_keypair.can_sign():
            raise ValidationError("Recovery keypair with a secret seed required.")
        return self._seal(kdf_params, recovery_keypair.secret(), recovery_keypair.account_id())

    def _seal(self, kdf_params: KdfParamsLike | None, password: str,
              framing_account_id: str) -> tuple[EncryptedKeychain, str]:
        if kdf_params is None:
            raise ValidationError("KDF params required")
        _require_text(password, "Password must be a non-empty string")
        params = coerce_kdf_params(kdf_params)

        salt = b64encode(random_bytes(SALT_SIZE))
        master_key = derive_master_key(salt, self._email, password, params)
        keychain_data = encrypt_data(
            encode_keychain(self._account_id, self._keypair.secret()),
            derive_wallet_key(master_key),
        )
        wallet_id = derive_wallet_id(master_key).hex()

        keychain = EncryptedKeychain(
            id=wallet_id,
            account_id=framing_account_id,
            email=self._email,
            salt=salt,
            keychain_data=keychain_data,
        )
        return keychain, wallet_id

    # ---- request signing ----

    def sign_request(self, uri: str) -> dict[str, str]:
        """Auth headers for *uri*, corrected for the server clock."""
        offset = self._clock_offset
        return self._authenticator.sign_request(uri, offset)

    def synchronize_time(self, timestamp: float) -> None:
        """Record the server's UNIX time (seconds) to correct signing expiry."""
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) \
                or not math.isfinite(timestamp):
            raise TimestampError("Invalid timestamp. A UNIX timestamp in seconds expected.")
        self._clock_offset = self._clock() - timestamp

    def __repr__(self) -> str:
        return f"Wallet({self._email}, {self._account_id})"
