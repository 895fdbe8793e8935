"""
Exception hierarchy for keychain-core.

Every failure is raised synchronously to the caller and never retried
internally.  Login and recovery failures (``DecryptionError`` and
``KeychainFormatError``) share the same user-facing message so that a
caller cannot tell which derivation or decoding step rejected the input.
"""

from __future__ import annotations


class KeychainCoreError(Exception):
    """Base class for all keychain-core errors."""


class ValidationError(KeychainCoreError):
    """Malformed or missing argument; raised before any crypto runs."""


class KdfError(KeychainCoreError):
    """Bad key-derivation parameters or salt."""


class TimestampError(KeychainCoreError):
    """Invalid server timestamp passed to time synchronisation."""


class AuthenticationError(KeychainCoreError):
    """A signed request failed verification."""


class CredentialsError(KeychainCoreError):
    """
    Login / recovery failure.

    ``str(exc)`` is always the generic message; ``exc.code`` carries the
    internal fault code for logs and metrics.
    """

    code = "invalid_credentials"
    message = "Invalid credentials."

    def __init__(self, detail: str = ""):
        super().__init__(self.message)
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class DecryptionError(CredentialsError):
    """Wrong key, tampered ciphertext or unreadable envelope."""

    code = "decryption_failed"


class KeychainFormatError(CredentialsError):
    """Decrypted payload is not a well-formed keychain."""

    code = "keychain_format"
