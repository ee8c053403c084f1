"""Infrastructure encryption utilities."""

from .credential_vault import (
    KEY_SIZE,
    NONCE_SIZE,
    CredentialVault,
    VaultError,
    InvalidKeyLengthError,
    InvalidEncodingError,
    CiphertextTooShortError,
    DecryptionError,
    check_key,
    encrypt,
    decrypt,
)

__all__ = [
    "KEY_SIZE",
    "NONCE_SIZE",
    "CredentialVault",
    "VaultError",
    "InvalidKeyLengthError",
    "InvalidEncodingError",
    "CiphertextTooShortError",
    "DecryptionError",
    "check_key",
    "encrypt",
    "decrypt",
]
