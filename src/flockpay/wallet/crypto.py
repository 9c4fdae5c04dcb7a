"""
Wallet Crypto - Signing wallets and at-rest key encryption.

- SigningWallet: the capability the negotiator depends on (address + sign)
- LocalWallet: single private key, EIP-191 personal-message signatures
- Argon2id key derivation + AES-256-GCM for storing a key under a password
"""

import re
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

# Cryptography
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from argon2.low_level import hash_secret_raw, Type

# Ethereum
from eth_account import Account
from eth_account.messages import encode_defunct

# Enable HD wallet features (mnemonic generation)
Account.enable_unaudited_hdwallet_features()


# ============================================
# Security Constants
# ============================================

# Argon2id parameters (OWASP recommendations for high-security)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits for AES-256

# AES-GCM constants
AES_IV_SIZE = 12  # 96 bits (recommended for GCM)
AES_TAG_SIZE = 16
SALT_SIZE = 16

ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
PRIVATE_KEY_PATTERN = re.compile(r'^0x[a-fA-F0-9]{64}$')


# ============================================
# Signing capability
# ============================================

@runtime_checkable
class SigningWallet(Protocol):
    """Anything that can sign x402 authorizations."""

    @property
    def address(self) -> str: ...

    def sign(self, message: str) -> str: ...


@dataclass
class GeneratedWallet:
    """A freshly generated keypair."""
    address: str
    private_key: str  # 0x... - keep secret!
    mnemonic: Optional[str] = None


def _normalize_key(private_key: str) -> str:
    pkey = private_key.strip()
    if pkey.startswith("0X"):
        pkey = "0x" + pkey[2:]
    if not pkey.startswith("0x"):
        pkey = "0x" + pkey
    return pkey


class LocalWallet:
    """
    Simple wallet from a single private key held in memory.

    Signs with EIP-191 personal messages (the scheme ethers' signMessage uses),
    never raw transactions.
    """

    def __init__(self, private_key: str):
        pkey = _normalize_key(private_key)
        if not PRIVATE_KEY_PATTERN.match(pkey):
            raise ValueError("Invalid private key format")
        self._account = Account.from_key(pkey)

    @classmethod
    def from_private_key(cls, private_key: str) -> "LocalWallet":
        return cls(private_key)

    @staticmethod
    def generate(include_mnemonic: bool = False) -> GeneratedWallet:
        """Generate a new random keypair."""
        if include_mnemonic:
            account, mnemonic = Account.create_with_mnemonic(num_words=12)
        else:
            account, mnemonic = Account.create(secrets.token_hex(32)), None
        return GeneratedWallet(
            address=account.address,
            private_key="0x" + bytes(account.key).hex(),
            mnemonic=mnemonic,
        )

    @property
    def address(self) -> str:
        """The wallet address (checksummed)."""
        return self._account.address

    def sign(self, message: str) -> str:
        """Sign a text message. Returns hex signature with 0x prefix."""
        signed = self._account.sign_message(encode_defunct(text=message))
        sig_hex = signed.signature.hex()
        if not sig_hex.startswith("0x"):
            sig_hex = "0x" + sig_hex
        return sig_hex

    def __repr__(self) -> str:
        return f"LocalWallet({self.address})"


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that produced a personal-message signature."""
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def is_valid_address(address: str) -> bool:
    """Check Ethereum address format (0x + 40 hex chars)."""
    return bool(ADDRESS_PATTERN.match(address or ""))


def is_valid_private_key(private_key: str) -> bool:
    """Check private key format (optional 0x + 64 hex chars)."""
    return bool(PRIVATE_KEY_PATTERN.match(_normalize_key(private_key or "")))


# ============================================
# Key Derivation / Encryption
# ============================================

def derive_key(password: str, salt: bytes) -> bytes:
    """
    Derive an encryption key from password using Argon2id.

    Each guess costs ~64MB RAM and roughly a second of CPU.
    """
    return hash_secret_raw(
        secret=password.encode('utf-8'),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID
    )


def encrypt_secret(secret: str, password: str) -> dict:
    """
    Encrypt a secret (e.g. a private key) with a password.

    Returns a JSON-safe dict of hex strings: ciphertext, iv, tag, salt.
    """
    salt = secrets.token_bytes(SALT_SIZE)
    key = derive_key(password, salt)
    iv = secrets.token_bytes(AES_IV_SIZE)

    aesgcm = AESGCM(key)
    ciphertext_and_tag = aesgcm.encrypt(iv, secret.encode('utf-8'), None)

    return {
        "ciphertext": ciphertext_and_tag[:-AES_TAG_SIZE].hex(),
        "iv": iv.hex(),
        "tag": ciphertext_and_tag[-AES_TAG_SIZE:].hex(),
        "salt": salt.hex(),
    }


def decrypt_secret(blob: dict, password: str) -> str:
    """
    Decrypt a secret produced by encrypt_secret.

    Raises: InvalidTag if password is wrong or data is tampered.
    """
    key = derive_key(password, bytes.fromhex(blob["salt"]))
    ciphertext_and_tag = bytes.fromhex(blob["ciphertext"]) + bytes.fromhex(blob["tag"])

    aesgcm = AESGCM(key)
    plaintext = aesgcm.decrypt(bytes.fromhex(blob["iv"]), ciphertext_and_tag, None)

    return plaintext.decode('utf-8')
