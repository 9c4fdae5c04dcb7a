"""
Credential Store - JSON persistence for the signing key and model choice.

The payment core only reads credentials (get_credentials); writes come
from the CLI. Single-writer: there is no locking, so two processes saving
at once can lose an update (last writer wins).
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag

from ..config import DEFAULT_MODEL
from ..errors import CredentialsError
from ..utils import get_credentials_path, set_secure_permissions
from .crypto import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

# Stored key -> Credentials attribute
_FIELD_MAP = {
    "apiKey": "api_key",
    "wallet": "wallet",
    "privateKey": "private_key",
    "model": "model",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


@dataclass
class Credentials:
    """Stored credentials. private_key is None when encrypted and no password was given."""
    private_key: Optional[str] = None
    wallet: Optional[str] = None
    model: Optional[str] = None
    api_key: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    encrypted: bool = False

    def masked(self) -> dict:
        """Dict safe for display (private key truncated)."""
        return {
            "wallet": self.wallet,
            "model": self.model,
            "apiKey": self.api_key,
            "privateKey": f"{self.private_key[:10]}..." if self.private_key else None,
            "encrypted": self.encrypted,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class CredentialStore:
    """Reads and merges the credentials file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_credentials_path()

    def _read_raw(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load credentials: {e}")
            return None
        return data if isinstance(data, dict) else None

    def get_credentials(self, password: Optional[str] = None) -> Optional[Credentials]:
        """
        Load saved credentials, or None if there are none.

        An encrypted private key is decrypted when a password is supplied.

        Raises:
            CredentialsError: password given but wrong
        """
        data = self._read_raw()
        if data is None:
            return None

        creds = Credentials(**{attr: data.get(key) for key, attr in _FIELD_MAP.items()})

        blob = data.get("encryptedPrivateKey")
        if blob:
            creds.encrypted = True
            if password is not None:
                try:
                    creds.private_key = decrypt_secret(blob, password)
                except (InvalidTag, KeyError, ValueError) as e:
                    raise CredentialsError("Could not decrypt private key (wrong password?)") from e
        return creds

    def save(self, password: Optional[str] = None, **fields) -> Path:
        """
        Save credentials, merging with what is already stored.

        Keyword names are Credentials attributes (private_key, wallet, model, api_key).
        With a password, the private key is stored encrypted.
        """
        unknown = set(fields) - set(_FIELD_MAP.values())
        if unknown:
            raise ValueError(f"Unknown credential fields: {sorted(unknown)}")

        existing = self._read_raw() or {}
        reverse = {attr: key for key, attr in _FIELD_MAP.items()}
        merged = dict(existing)
        for attr, value in fields.items():
            merged[reverse[attr]] = value

        if password is not None and merged.get("privateKey"):
            merged["encryptedPrivateKey"] = encrypt_secret(merged.pop("privateKey"), password)
        elif "private_key" in fields:
            merged.pop("encryptedPrivateKey", None)

        now = datetime.now(timezone.utc).isoformat()
        merged["updatedAt"] = now
        merged.setdefault("createdAt", now)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(merged, f, indent=2)
        set_secure_permissions(self.path)
        return self.path

    def delete(self) -> bool:
        """Delete stored credentials. Returns False if there was nothing to delete."""
        if not self.path.exists():
            return False
        self.path.unlink()
        return True

    def has_credentials(self) -> bool:
        """True if an API key or a (possibly encrypted) private key is stored."""
        data = self._read_raw() or {}
        return bool(data.get("apiKey") or data.get("privateKey") or data.get("encryptedPrivateKey"))

    def switch_model(self, model: str) -> None:
        self.save(model=model)

    def current_model(self) -> str:
        creds = self.get_credentials()
        return (creds.model if creds else None) or DEFAULT_MODEL
