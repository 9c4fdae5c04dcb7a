"""
Shared utility functions for flock-pay.

Contains path helpers and common utilities used across packages.
"""

import os
from pathlib import Path


CREDENTIALS_FILE = "flock-credentials.json"
HISTORY_FILE = "flock-payment-history.json"
SETTINGS_FILE = "settings.json"

# Secure file permissions (Unix only)
SECURE_FILE_MODE = 0o600  # Owner read/write only


def get_data_dir() -> Path:
    """
    Get the data directory.

    Priority:
    1. $FLOCKPAY_HOME
    2. OpenClaw directory (~/.openclaw/) if it exists
    3. Current working directory
    """
    override = os.getenv("FLOCKPAY_HOME")
    if override:
        return Path(override).expanduser()

    openclaw_dir = Path.home() / ".openclaw"
    if openclaw_dir.is_dir():
        return openclaw_dir

    return Path.cwd()


def get_credentials_path() -> Path:
    """Get path to the credentials file."""
    return get_data_dir() / CREDENTIALS_FILE


def get_history_path() -> Path:
    """Get path to the payment history file."""
    return get_data_dir() / HISTORY_FILE


def get_settings_path() -> Path:
    """Get path to settings file."""
    return get_data_dir() / SETTINGS_FILE


def get_logs_dir() -> Path:
    """Get the logs directory."""
    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def set_secure_permissions(filepath: Path) -> None:
    """
    Set restrictive file permissions on Unix systems.

    No-op on Windows (NTFS uses ACLs, not Unix permissions).
    """
    if os.name == 'posix':
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError:
            # Best effort - don't fail the save if chmod fails
            pass
