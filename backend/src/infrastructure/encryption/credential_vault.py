"""
AES-GCM Credential Vault for Provider Integrations

Encrypts and decrypts provider credential blobs at rest using AES-256-GCM.
Each blob carries its own random nonce and authentication tag.

Storage format: base64(nonce (12 bytes) + ciphertext + auth tag (16 bytes))
"""

import base64
import binascii
import json
import logging
import os
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12


class VaultError(Exception):
    """Base class for credential vault failures."""
    pass


class InvalidKeyLengthError(VaultError):
    """Raised when the vault key is not exactly 32 bytes."""
    pass


class InvalidEncodingError(VaultError):
    """Raised when an encrypted blob is not valid base64."""
    pass


class CiphertextTooShortError(VaultError):
    """Raised when a decoded blob is smaller than the nonce."""
    pass


class DecryptionError(VaultError):
    """Raised when authenticated decryption fails.

    Deliberately carries no detail about which part of the payload failed.
    """
    pass


def check_key(key: bytes) -> None:
    """Validate vault key length.

    Args:
        key: Raw key bytes

    Raises:
        InvalidKeyLengthError: If key is not 32 bytes
    """
    if key is None or len(key) != KEY_SIZE:
        got = 0 if key is None else len(key)
        raise InvalidKeyLengthError(
            f"invalid key length: key must be {KEY_SIZE} bytes, got {got} bytes"
        )


def encrypt(plaintext: Union[bytes, str], key: bytes) -> str:
    """
    Encrypt plaintext into a storable blob.

    A fresh random nonce is generated per call, so encrypting the same
    plaintext twice yields different blobs.

    Args:
        plaintext: Data to encrypt (str is UTF-8 encoded)
        key: 32-byte AES key

    Returns:
        Base64 string: nonce + ciphertext + auth tag

    Raises:
        InvalidKeyLengthError: If key is not 32 bytes
    """
    check_key(key)

    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)

    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt(blob: str, key: bytes) -> bytes:
    """
    Decrypt a blob produced by encrypt().

    Args:
        blob: Base64 string (nonce + ciphertext + auth tag)
        key: 32-byte AES key

    Returns:
        Decrypted plaintext bytes

    Raises:
        InvalidKeyLengthError: If key is not 32 bytes
        InvalidEncodingError: If blob is not valid base64
        CiphertextTooShortError: If decoded payload is shorter than the nonce
        DecryptionError: If authentication fails (wrong key or tampering)
    """
    check_key(key)

    try:
        payload = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise InvalidEncodingError(f"invalid base64 ciphertext: {e}") from e

    if len(payload) < NONCE_SIZE:
        raise CiphertextTooShortError(
            f"ciphertext too short: {len(payload)} bytes, need at least {NONCE_SIZE}"
        )

    nonce, ciphertext = payload[:NONCE_SIZE], payload[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise DecryptionError("decryption failed") from None


class CredentialVault:
    """
    Vault bound to a single key, used by sync tasks.

    Usage:
        vault = CredentialVault(settings.encryption_key_bytes())
        blob = vault.encrypt_json({"api_token": "..."})
        creds = vault.decrypt_json(blob)
    """

    def __init__(self, key: bytes):
        check_key(key)
        self._key = key

    @classmethod
    def from_hex(cls, key_hex: str) -> "CredentialVault":
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise InvalidKeyLengthError(f"invalid key: not a hex string: {e}") from e
        return cls(key)

    def encrypt(self, plaintext: Union[bytes, str]) -> str:
        return encrypt(plaintext, self._key)

    def decrypt(self, blob: str) -> bytes:
        return decrypt(blob, self._key)

    def encrypt_json(self, data: Dict[str, Any]) -> str:
        """Serialize credentials to JSON and encrypt them."""
        return self.encrypt(json.dumps(data, sort_keys=True))

    def decrypt_json(self, blob: str) -> Dict[str, Any]:
        """
        Decrypt a credential blob and parse it as a JSON object.

        Raises:
            VaultError: On any vault failure
            ValueError: If the plaintext is not a JSON object
        """
        plaintext = self.decrypt(blob)
        data = json.loads(plaintext.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("credentials must be a JSON object")
        return data

    def rotate(self, blob: str, new_vault: "CredentialVault") -> str:
        """Re-encrypt a blob under another vault's key."""
        return new_vault.encrypt(self.decrypt(blob))
