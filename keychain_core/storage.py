"""
SQLite-based keychain store.

Persists ``EncryptedKeychain`` artifacts together with the KDF parameters
they were sealed with, the way a wallet server keeps them:

  - lookup by wallet id (login after the client derived the id)
  - login parameters by email (salt + KDF params needed to derive the id)
  - recovery parameters by email, for login with a recovery seed

Only ciphertext is ever written; the store never sees a seed.

Usage:
    with KeychainStore("data/keychains.db") as store:
        store.save_keychain(keychain, kdf_params)
        keychain, params = store.load_keychain(wallet_id)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import TYPE_CHECKING

from keychain_core.derivation import KdfParams, KdfParamsLike, coerce_kdf_params
from keychain_core.wallet import EncryptedKeychain

if TYPE_CHECKING:
    from keychain_core.config import StorageConfig

logger = logging.getLogger("keychain_storage")


class KeychainStore:
    """Thin SQLite wrapper for persisting encrypted keychains."""

    CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/keychains.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_tables()
        self._ensure_schema_version()
        logger.info(f"Keychain store opened: {db_path}")

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS keychains (
                id            TEXT PRIMARY KEY,
                account_id    TEXT NOT NULL,
                email         TEXT NOT NULL,
                salt          TEXT NOT NULL,
                keychain_data TEXT NOT NULL,
                kdf_params    TEXT NOT NULL,
                is_recovery   INTEGER NOT NULL DEFAULT 0,
                created_at    REAL NOT NULL
            )
        """)
        c.execute("""
            CREATE INDEX IF NOT EXISTS idx_keychains_email
            ON keychains (email, is_recovery)
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Keychain store schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION})."
            )

    # ── keychains ────────────────────────────────────────────────

    def save_keychain(self, keychain: EncryptedKeychain, kdf_params: KdfParamsLike,
                      is_recovery: bool = False) -> None:
        params = coerce_kdf_params(kdf_params)
        self._conn.execute(
            """INSERT OR REPLACE INTO keychains
               (id, account_id, email, salt, keychain_data, kdf_params, is_recovery, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                keychain.id,
                keychain.account_id,
                keychain.email,
                keychain.salt,
                keychain.keychain_data,
                json.dumps(params.to_dict()),
                int(is_recovery),
                time.time(),
            ),
        )
        self._conn.commit()
        kind = "recovery keychain" if is_recovery else "keychain"
        logger.info(f"Stored {kind} {keychain.id[:12]}... for {keychain.account_id}")

    def load_keychain(self, wallet_id: str) -> tuple[EncryptedKeychain, KdfParams] | None:
        row = self._conn.execute(
            "SELECT * FROM keychains WHERE id = ?", (wallet_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_keychain(row), KdfParams.from_dict(json.loads(row["kdf_params"]))

    def login_params(self, email: str) -> tuple[str, KdfParams] | None:
        """Salt and KDF params of the newest primary keychain for *email*."""
        return self._newest_params(email, is_recovery=False)

    def recovery_params(self, email: str) -> tuple[str, KdfParams] | None:
        """Salt and KDF params of the newest recovery keychain for *email*.

        ``Wallet.from_recovery_seed`` needs these to derive the recovery
        wallet id before the row can be loaded.
        """
        return self._newest_params(email, is_recovery=True)

    def _newest_params(self, email: str, is_recovery: bool) -> tuple[str, KdfParams] | None:
        row = self._conn.execute(
            """SELECT salt, kdf_params FROM keychains
               WHERE email = ? AND is_recovery = ?
               ORDER BY created_at DESC LIMIT 1""",
            (email, int(is_recovery)),
        ).fetchone()
        if row is None:
            return None
        return row["salt"], KdfParams.from_dict(json.loads(row["kdf_params"]))

    def delete_keychain(self, wallet_id: str) -> bool:
        cur = self._conn.execute("DELETE FROM keychains WHERE id = ?", (wallet_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM keychains").fetchone()[0]

    @staticmethod
    def _row_to_keychain(row: sqlite3.Row) -> EncryptedKeychain:
        return EncryptedKeychain(
            id=row["id"],
            account_id=row["account_id"],
            email=row["email"],
            salt=row["salt"],
            keychain_data=row["keychain_data"],
        )

    @classmethod
    def from_config(cls, storage_config: StorageConfig) -> KeychainStore:
        """Open the store at the ``[storage]`` config path."""
        return cls(storage_config.path)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
