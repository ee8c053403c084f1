"""Unit tests for the AES-GCM credential vault.

Tests encryption round trips, nonce uniqueness and the typed failure modes
that callers rely on to tell configuration errors from tampering.
"""

import base64
import json

import pytest

from infrastructure.encryption import (
    CiphertextTooShortError,
    CredentialVault,
    DecryptionError,
    InvalidEncodingError,
    InvalidKeyLengthError,
    NONCE_SIZE,
    VaultError,
    check_key,
    decrypt,
    encrypt,
)

KEY = bytes(range(32))
OTHER_KEY = bytes(range(1, 33))


class TestRoundTrip:
    """Test encrypt/decrypt with the correct key."""

    def test_bytes_round_trip(self):
        blob = encrypt(b"secret token", KEY)
        assert decrypt(blob, KEY) == b"secret token"

    def test_str_is_utf8_encoded(self):
        blob = encrypt("zażółć", KEY)
        assert decrypt(blob, KEY).decode("utf-8") == "zażółć"

    def test_empty_plaintext(self):
        assert decrypt(encrypt(b"", KEY), KEY) == b""

    def test_blob_layout_is_nonce_plus_ciphertext_and_tag(self):
        blob = encrypt(b"abc", KEY)
        payload = base64.b64decode(blob)
        # 12-byte nonce + 3 bytes ciphertext + 16-byte tag
        assert len(payload) == NONCE_SIZE + 3 + 16

    def test_same_plaintext_encrypts_differently(self):
        """A fresh nonce per call means no two blobs are equal."""
        blobs = {encrypt(b"same", KEY) for _ in range(20)}
        assert len(blobs) == 20
        nonces = {base64.b64decode(b)[:NONCE_SIZE] for b in blobs}
        assert len(nonces) == 20


class TestKeyValidation:
    """Test key length enforcement."""

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_wrong_key_length_rejected(self, length):
        with pytest.raises(InvalidKeyLengthError) as exc_info:
            encrypt(b"x", b"k" * length)
        assert f"got {length} bytes" in str(exc_info.value)

    def test_decrypt_checks_key_before_decoding(self):
        with pytest.raises(InvalidKeyLengthError):
            decrypt("not base64 at all", b"short")

    def test_none_key_rejected(self):
        with pytest.raises(InvalidKeyLengthError):
            check_key(None)


class TestDecryptFailures:
    """Test the distinct decrypt error types."""

    def test_wrong_key_raises_decryption_error(self):
        blob = encrypt(b"secret", KEY)
        with pytest.raises(DecryptionError):
            decrypt(blob, OTHER_KEY)

    def test_tampered_ciphertext_raises_decryption_error(self):
        payload = bytearray(base64.b64decode(encrypt(b"secret", KEY)))
        payload[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt(base64.b64encode(bytes(payload)).decode("ascii"), KEY)

    def test_invalid_base64_raises_encoding_error(self):
        with pytest.raises(InvalidEncodingError):
            decrypt("!!!not-base64!!!", KEY)

    def test_short_payload_raises_too_short(self):
        blob = base64.b64encode(b"12345").decode("ascii")
        with pytest.raises(CiphertextTooShortError):
            decrypt(blob, KEY)

    def test_errors_share_vault_base_class(self):
        for error in (InvalidKeyLengthError, InvalidEncodingError, CiphertextTooShortError, DecryptionError):
            assert issubclass(error, VaultError)

    def test_decryption_error_is_not_an_encoding_error(self):
        blob = encrypt(b"secret", KEY)
        with pytest.raises(DecryptionError) as exc_info:
            decrypt(blob, OTHER_KEY)
        assert not isinstance(exc_info.value, InvalidEncodingError)
        assert str(exc_info.value) == "decryption failed"


class TestCredentialVault:
    """Test the key-bound vault used by sync tasks."""

    def test_json_round_trip(self):
        vault = CredentialVault(KEY)
        credentials = {"api_token": "t0k3n", "organization_id": 42, "sandbox": True}
        assert vault.decrypt_json(vault.encrypt_json(credentials)) == credentials

    def test_decrypt_json_rejects_non_object(self):
        vault = CredentialVault(KEY)
        blob = vault.encrypt(json.dumps(["not", "an", "object"]))
        with pytest.raises(ValueError):
            vault.decrypt_json(blob)

    def test_empty_blob_is_a_vault_error(self):
        vault = CredentialVault(KEY)
        with pytest.raises(VaultError):
            vault.decrypt_json("")

    def test_constructor_validates_key(self):
        with pytest.raises(InvalidKeyLengthError):
            CredentialVault(b"too short")

    def test_from_hex(self):
        vault = CredentialVault.from_hex(KEY.hex())
        assert vault.decrypt(encrypt(b"x", KEY)) == b"x"

    def test_from_hex_rejects_non_hex(self):
        with pytest.raises(InvalidKeyLengthError):
            CredentialVault.from_hex("zz" * 32)

    def test_rotate_re_encrypts_under_new_key(self):
        old_vault = CredentialVault(KEY)
        new_vault = CredentialVault(OTHER_KEY)
        blob = old_vault.encrypt_json({"api_key": "abc"})

        rotated = old_vault.rotate(blob, new_vault)

        assert new_vault.decrypt_json(rotated) == {"api_key": "abc"}
        with pytest.raises(DecryptionError):
            old_vault.decrypt(rotated)
