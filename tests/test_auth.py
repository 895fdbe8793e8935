"""
Tests for keychain_core.auth — signed request headers and verification.

Covers:
  - RequestAuthenticator header generation and validity window
  - Canonical signature base
  - verify_request: expiry, far-future, tampering, malformed headers
  - aiohttp signature middleware
"""

from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from keychain_core.auth import (
    HEADER_PUBLIC_KEY,
    HEADER_SIGNATURE,
    HEADER_VALID_UNTIL,
    RequestAuthenticator,
    make_signature_auth_middleware,
    signature_auth_middleware_from_config,
    signature_base,
    verify_request,
)
from keychain_core.config import AuthConfig
from keychain_core.errors import AuthenticationError, ValidationError
from keychain_core.keypair import Keypair

NOW = 1_700_000_000.0


def _authenticator(keypair=None, validity=60, now=NOW):
    return RequestAuthenticator(keypair or Keypair.random(), validity, clock=lambda: now)


# ═══════════════════════════════════════════════════════════════════
#  Signing
# ═══════════════════════════════════════════════════════════════════

class TestSignatureBase:
    def test_format(self):
        assert signature_base("/a", 10) == b"{ uri: '/a', valid_untill: '10'}"

    def test_distinct_pairs_distinct_bytes(self):
        assert signature_base("/a1", 0) != signature_base("/a", 10)


class TestRequestAuthenticator:
    def test_header_names(self):
        headers = _authenticator().sign_request("/accounts")
        assert set(headers) == {HEADER_VALID_UNTIL, HEADER_PUBLIC_KEY, HEADER_SIGNATURE}

    def test_valid_until(self):
        auth = _authenticator(now=NOW + 0.9)
        assert auth.sign_request("/x")[HEADER_VALID_UNTIL] == str(int(NOW) + 60)

    def test_offset_subtracted(self):
        auth = _authenticator()
        assert auth.valid_until(clock_offset=30) == int(NOW) - 30 + 60

    def test_public_key_header(self, fixed_keypair):
        headers = _authenticator(fixed_keypair).sign_request("/x")
        assert headers[HEADER_PUBLIC_KEY] == fixed_keypair.account_id()

    @pytest.mark.parametrize("validity", [0, -5, 1.5, True])
    def test_invalid_validity(self, validity):
        with pytest.raises(ValidationError):
            RequestAuthenticator(Keypair.random(), validity)

    def test_verify_only_keypair_rejected(self):
        public = Keypair.from_public_key(Keypair.random().account_id())
        with pytest.raises(ValidationError):
            RequestAuthenticator(public)

    @pytest.mark.parametrize("uri", ["", None, "/it's"])
    def test_bad_uri(self, uri):
        with pytest.raises(ValidationError):
            _authenticator().sign_request(uri)


# ═══════════════════════════════════════════════════════════════════
#  Verification
# ═══════════════════════════════════════════════════════════════════

class TestVerifyRequest:
    def test_accepts_fresh_signature(self, fixed_keypair):
        headers = _authenticator(fixed_keypair).sign_request("/accounts?limit=5")
        assert verify_request("/accounts?limit=5", headers, now=NOW) == fixed_keypair.account_id()

    def test_accepts_until_expiry(self):
        headers = _authenticator().sign_request("/x")
        assert verify_request("/x", headers, now=NOW + 59)
        assert verify_request("/x", headers, now=NOW + 60)

    def test_rejects_expired(self):
        headers = _authenticator().sign_request("/x")
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW + 61)

    def test_rejects_far_future(self):
        headers = _authenticator(validity=600).sign_request("/x")
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)
        assert verify_request("/x", headers, now=NOW, max_validity=600)

    def test_rejects_other_uri(self):
        headers = _authenticator().sign_request("/x")
        with pytest.raises(AuthenticationError):
            verify_request("/y", headers, now=NOW)

    def test_rejects_shifted_timestamp(self):
        headers = _authenticator().sign_request("/x")
        headers[HEADER_VALID_UNTIL] = str(int(headers[HEADER_VALID_UNTIL]) - 1)
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)

    def test_rejects_other_public_key(self):
        headers = _authenticator().sign_request("/x")
        headers[HEADER_PUBLIC_KEY] = Keypair.random().account_id()
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)

    def test_rejects_same_hint_wrong_signature(self, fixed_keypair):
        headers = _authenticator(fixed_keypair).sign_request("/x")
        forged = _authenticator(fixed_keypair).sign_request("/y")
        headers[HEADER_SIGNATURE] = forged[HEADER_SIGNATURE]
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)

    @pytest.mark.parametrize("header", [HEADER_VALID_UNTIL, HEADER_PUBLIC_KEY, HEADER_SIGNATURE])
    def test_missing_header(self, header):
        headers = _authenticator().sign_request("/x")
        del headers[header]
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)

    @pytest.mark.parametrize("header,value", [
        (HEADER_VALID_UNTIL, "soon"),
        (HEADER_VALID_UNTIL, "-1"),
        (HEADER_PUBLIC_KEY, "GNOTAKEY"),
        (HEADER_SIGNATURE, "%%%"),
        (HEADER_SIGNATURE, "AAAA"),
        (HEADER_VALID_UNTIL, "9" * 5000),
        (HEADER_VALID_UNTIL, "1" * 13),
    ])
    def test_malformed_header(self, header, value):
        headers = _authenticator().sign_request("/x")
        headers[header] = value
        with pytest.raises(AuthenticationError):
            verify_request("/x", headers, now=NOW)

    def test_header_lookup_is_case_insensitive(self):
        headers = {k.lower(): v for k, v in _authenticator().sign_request("/x").items()}
        assert verify_request("/x", headers, now=NOW)


# ═══════════════════════════════════════════════════════════════════
#  aiohttp middleware
# ═══════════════════════════════════════════════════════════════════

async def _whoami(request: web.Request) -> web.Response:
    return web.json_response({"account_id": request["auth_account_id"]})


def _make_client(now=NOW):
    app = web.Application(middlewares=[make_signature_auth_middleware(clock=lambda: now)])
    app.router.add_get("/whoami", _whoami)
    return TestClient(TestServer(app))


class TestSignatureMiddleware:
    @pytest.mark.asyncio
    async def test_signed_request_accepted(self, fixed_keypair):
        headers = _authenticator(fixed_keypair).sign_request("/whoami?x=1")
        async with _make_client() as client:
            resp = await client.get("/whoami?x=1", headers=headers)
            assert resp.status == 200
            body = await resp.json()
            assert body["account_id"] == fixed_keypair.account_id()

    @pytest.mark.asyncio
    async def test_unsigned_request_rejected(self):
        async with _make_client() as client:
            resp = await client.get("/whoami")
            assert resp.status == 401

    @pytest.mark.asyncio
    async def test_expired_request_rejected(self):
        headers = _authenticator().sign_request("/whoami")
        async with _make_client(now=NOW + 120) as client:
            resp = await client.get("/whoami", headers=headers)
            assert resp.status == 401

    @pytest.mark.asyncio
    async def test_signature_for_other_path_rejected(self):
        headers = _authenticator().sign_request("/other")
        async with _make_client() as client:
            resp = await client.get("/whoami", headers=headers)
            assert resp.status == 401

    @pytest.mark.asyncio
    async def test_oversized_timestamp_rejected(self):
        headers = _authenticator().sign_request("/whoami")
        headers[HEADER_VALID_UNTIL] = "9" * 5000
        async with _make_client() as client:
            resp = await client.get("/whoami", headers=headers)
            assert resp.status == 401


class TestMiddlewareFromConfig:
    @pytest.mark.asyncio
    async def test_max_validity_taken_from_config(self):
        headers = _authenticator(validity=600).sign_request("/whoami")
        for max_validity, status in [(60, 401), (600, 200)]:
            middleware = signature_auth_middleware_from_config(
                AuthConfig(max_validity_seconds=max_validity), clock=lambda: NOW,
            )
            app = web.Application(middlewares=[middleware])
            app.router.add_get("/whoami", _whoami)
            async with TestClient(TestServer(app)) as client:
                resp = await client.get("/whoami", headers=headers)
                assert resp.status == status
