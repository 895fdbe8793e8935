"""
Tests for keychain_core.keychain — AES-GCM envelope and keychain payload.

Covers:
  - Envelope shape
  - encrypt / decrypt round-trip
  - Tamper detection on every byte of the sealed ciphertext
  - Wrong key / garbage envelopes
  - Strict keychain payload decoding
"""

import base64
import json

import pytest

from keychain_core.errors import CredentialsError, DecryptionError, KeychainFormatError
from keychain_core.keychain import decode_keychain, decrypt_data, encode_keychain, encrypt_data

KEY = b"\x33" * 32
PAYLOAD = encode_keychain("GACCOUNT", "SSEED")


def _open(envelope: str) -> dict:
    return json.loads(base64.b64decode(envelope))


def _seal(raw: dict) -> str:
    return base64.b64encode(json.dumps(raw).encode()).decode()


class TestEnvelope:
    def test_shape(self):
        raw = _open(encrypt_data(PAYLOAD, KEY))
        assert set(raw) == {"IV", "cipherText", "cipherName", "modeName"}
        assert raw["cipherName"] == "aes"
        assert raw["modeName"] == "gcm"
        assert len(base64.b64decode(raw["IV"])) == 12

    def test_roundtrip(self):
        assert decrypt_data(encrypt_data(PAYLOAD, KEY), KEY) == PAYLOAD

    def test_unicode_roundtrip(self):
        text = json.dumps({"accountId": "G", "seed": "sëëd🚀"})
        assert decrypt_data(encrypt_data(text, KEY), KEY) == text

    def test_fresh_iv_each_call(self):
        assert encrypt_data(PAYLOAD, KEY) != encrypt_data(PAYLOAD, KEY)


class TestTamperDetection:
    def test_wrong_key(self):
        with pytest.raises(DecryptionError):
            decrypt_data(encrypt_data(PAYLOAD, KEY), b"\x34" * 32)

    def test_every_byte_flip_detected(self):
        raw = _open(encrypt_data(PAYLOAD, KEY))
        sealed = base64.b64decode(raw["cipherText"])
        for i in range(len(sealed)):
            flipped = bytearray(sealed)
            flipped[i] ^= 0x01
            raw["cipherText"] = base64.b64encode(bytes(flipped)).decode()
            with pytest.raises(DecryptionError):
                decrypt_data(_seal(raw), KEY)

    def test_iv_flip_detected(self):
        raw = _open(encrypt_data(PAYLOAD, KEY))
        iv = bytearray(base64.b64decode(raw["IV"]))
        iv[0] ^= 0x80
        raw["IV"] = base64.b64encode(bytes(iv)).decode()
        with pytest.raises(DecryptionError):
            decrypt_data(_seal(raw), KEY)

    def test_truncated_ciphertext(self):
        raw = _open(encrypt_data(PAYLOAD, KEY))
        raw["cipherText"] = base64.b64encode(b"\x00" * 8).decode()
        with pytest.raises(DecryptionError):
            decrypt_data(_seal(raw), KEY)

    @pytest.mark.parametrize("envelope", [
        "",
        "%%%",
        base64.b64encode(b"not json").decode(),
        base64.b64encode(b"[1, 2]").decode(),
        base64.b64encode(json.dumps({"IV": "AAAA"}).encode()).decode(),
    ])
    def test_garbage_envelopes(self, envelope):
        with pytest.raises(DecryptionError):
            decrypt_data(envelope, KEY)

    def test_unsupported_mode(self):
        raw = _open(encrypt_data(PAYLOAD, KEY))
        raw["modeName"] = "ccm"
        with pytest.raises(DecryptionError):
            decrypt_data(_seal(raw), KEY)


class TestKeychainPayload:
    def test_encode_decode(self):
        assert decode_keychain(encode_keychain("GABC", "SXYZ")) == ("GABC", "SXYZ")

    @pytest.mark.parametrize("plaintext", [
        "not json",
        "[]",
        json.dumps({"accountId": "G"}),
        json.dumps({"seed": "S"}),
        json.dumps({"accountId": "G", "seed": "S", "extra": 1}),
        json.dumps({"accountId": 1, "seed": "S"}),
        json.dumps({"accountId": "G", "seed": None}),
    ])
    def test_malformed_payloads(self, plaintext):
        with pytest.raises(KeychainFormatError):
            decode_keychain(plaintext)


class TestIndistinguishableErrors:
    def test_same_message_for_both_failures(self):
        with pytest.raises(CredentialsError) as dec:
            decrypt_data("%%%", KEY)
        with pytest.raises(CredentialsError) as fmt:
            decode_keychain("[]")
        assert str(dec.value) == str(fmt.value) == "Invalid credentials."
        assert dec.value.code != fmt.value.code
