"""
Wallet package - Signing keys for flock-pay.

Contains:
- SigningWallet: protocol the payment negotiator signs through
- LocalWallet: single-key wallet
- CredentialStore, Credentials: stored key and model selection
"""

from .crypto import (
    SigningWallet,
    LocalWallet,
    GeneratedWallet,
    recover_signer,
    is_valid_address,
    is_valid_private_key,
    encrypt_secret,
    decrypt_secret,
)
from .credentials import Credentials, CredentialStore

__all__ = [
    "SigningWallet",
    "LocalWallet",
    "GeneratedWallet",
    "recover_signer",
    "is_valid_address",
    "is_valid_private_key",
    "encrypt_secret",
    "decrypt_secret",
    "Credentials",
    "CredentialStore",
]
