"""
Signed request authentication.

Client side, ``RequestAuthenticator`` produces three headers that bind a
request URI to an expiry timestamp::

    X-AuthValidUnTillTimestamp   unix seconds, decimal
    X-AuthPublicKey              signer account id (G...)
    X-AuthSignature              base64 decorated signature

The signed bytes are ``SHA256("{ uri: '<uri>', valid_untill: '<ts>'}")``.
URIs may not contain a single quote, so the (uri, ts) pair is always
recoverable from the payload.

Server side, ``verify_request`` rebuilds the payload from the headers and
``make_signature_auth_middleware`` wraps it for aiohttp.
"""

from __future__ import annotations

import logging
import math
import time
from typing import TYPE_CHECKING, Callable, Mapping

from aiohttp import web

from keychain_core.crypto_utils import sha256
from keychain_core.errors import AuthenticationError, ValidationError
from keychain_core.keypair import DecoratedSignature, Keypair

if TYPE_CHECKING:
    from keychain_core.config import AuthConfig

logger = logging.getLogger("keychain_auth")

SIGNATURE_VALID_SEC = 60
_MAX_TIMESTAMP_DIGITS = 12

HEADER_VALID_UNTIL = "X-AuthValidUnTillTimestamp"
HEADER_PUBLIC_KEY = "X-AuthPublicKey"
HEADER_SIGNATURE = "X-AuthSignature"


def signature_base(uri: str, valid_until: int) -> bytes:
    return f"{{ uri: '{uri}', valid_untill: '{valid_until}'}}".encode("utf-8")


def _check_uri(uri: object) -> str:
    if not isinstance(uri, str) or not uri:
        raise ValidationError("URI required.")
    if "'" in uri:
        raise ValidationError("URI must not contain a single quote.")
    return uri


class RequestAuthenticator:
    """Signs request URIs with a wallet keypair for a fixed validity window."""

    def __init__(self, keypair: Keypair, validity_seconds: int = SIGNATURE_VALID_SEC,
                 clock: Callable[[], float] = time.time):
        if isinstance(validity_seconds, bool) or not isinstance(validity_seconds, int) \
                or validity_seconds <= 0:
            raise ValidationError("validity_seconds must be a positive integer")
        if not keypair.can_sign():
            raise ValidationError("Request signing needs a keypair with a secret seed")
        self._keypair = keypair
        self.validity_seconds = validity_seconds
        self._clock = clock

    def valid_until(self, clock_offset: float = 0.0) -> int:
        return math.floor(self._clock() - clock_offset) + self.validity_seconds

    def sign_request(self, uri: str, clock_offset: float = 0.0) -> dict[str, str]:
        """Return the auth headers for *uri*, expiring ``validity_seconds`` from now."""
        uri = _check_uri(uri)
        valid_until = self.valid_until(clock_offset)
        digest = sha256(signature_base(uri, valid_until))
        signature = self._keypair.sign_decorated(digest)
        return {
            HEADER_VALID_UNTIL: str(valid_until),
            HEADER_PUBLIC_KEY: self._keypair.account_id(),
            HEADER_SIGNATURE: signature.to_base64(),
        }


# ═══════════════════════════════════════════════════════════════════
#  Verification
# ═══════════════════════════════════════════════════════════════════

def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    if not value:
        raise AuthenticationError(f"Missing {name} header")
    return value


def verify_request(uri: str, headers: Mapping[str, str], now: float | None = None,
                   max_validity: int = SIGNATURE_VALID_SEC) -> str:
    """
    Check the auth headers produced by ``RequestAuthenticator`` for *uri*.

    Rejects expired timestamps and timestamps further than *max_validity*
    seconds ahead of *now*.  Returns the signer's account id.
    """
    raw_valid_until = _header(headers, HEADER_VALID_UNTIL)
    public_key = _header(headers, HEADER_PUBLIC_KEY)
    raw_signature = _header(headers, HEADER_SIGNATURE)

    if len(raw_valid_until) > _MAX_TIMESTAMP_DIGITS or not raw_valid_until.isascii() \
            or not raw_valid_until.isdigit():
        raise AuthenticationError("Malformed expiry timestamp")
    valid_until = int(raw_valid_until)
    if now is None:
        now = time.time()
    if valid_until < now:
        raise AuthenticationError("Signature expired")
    if valid_until - now > max_validity:
        raise AuthenticationError("Expiry too far in the future")

    if not Keypair.is_valid_public_key(public_key):
        raise AuthenticationError("Malformed public key")
    signer = Keypair.from_public_key(public_key)
    try:
        decorated = DecoratedSignature.from_base64(raw_signature)
    except ValueError as exc:
        raise AuthenticationError("Malformed signature") from exc
    if decorated.hint != signer.signature_hint():
        raise AuthenticationError("Signature hint does not match public key")

    try:
        uri = _check_uri(uri)
    except ValidationError as exc:
        raise AuthenticationError(str(exc)) from exc
    digest = sha256(signature_base(uri, valid_until))
    if not signer.verify(digest, decorated.signature):
        raise AuthenticationError("Bad signature")
    return public_key


def make_signature_auth_middleware(max_validity: int = SIGNATURE_VALID_SEC,
                                   clock: Callable[[], float] = time.time):
    """aiohttp middleware that requires a valid request signature.

    The verified signer is stored as ``request["auth_account_id"]``.
    """

    @web.middleware
    async def signature_auth_middleware(request: web.Request, handler):
        try:
            account_id = verify_request(
                request.path_qs, request.headers, now=clock(), max_validity=max_validity,
            )
        except AuthenticationError as exc:
            logger.warning(f"Rejected signed request to {request.path}: {exc}")
            raise web.HTTPUnauthorized(text="Invalid request signature") from exc
        request["auth_account_id"] = account_id
        return await handler(request)

    return signature_auth_middleware


def signature_auth_middleware_from_config(auth_config: AuthConfig,
                                          clock: Callable[[], float] = time.time):
    """Build the signature middleware from the ``[auth]`` config section."""
    return make_signature_auth_middleware(auth_config.max_validity_seconds, clock)
