"""
Settings - Runtime configuration.

Defaults, overridden by settings.json in the data directory, overridden by
FLOCKPAY_* environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from .networks import DEFAULT_NETWORK, NETWORKS
from .utils import CREDENTIALS_FILE, HISTORY_FILE, get_data_dir, get_settings_path

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.flock.io/v1"
DEFAULT_MAX_PAYMENT_USD = Decimal("0.10")
DEFAULT_MODEL = "deepseek-v3.2"


@dataclass
class Settings:
    """Configuration shared by the negotiator, funding monitor and ledger."""
    network: str = DEFAULT_NETWORK
    max_payment_usd: Decimal = DEFAULT_MAX_PAYMENT_USD
    api_base_url: str = DEFAULT_API_URL
    request_timeout: float = 120.0
    chain_timeout: float = 10.0
    max_records: int = 1000
    data_dir: Path = field(default_factory=get_data_dir)
    custom_rpcs: dict = field(default_factory=dict)  # network name -> RPC URL
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.network not in NETWORKS:
            raise ValueError(f"Unknown network: {self.network}")
        try:
            self.max_payment_usd = Decimal(str(self.max_payment_usd))
        except InvalidOperation:
            raise ValueError(f"Invalid max_payment_usd: {self.max_payment_usd!r}")
        if not self.max_payment_usd.is_finite() or self.max_payment_usd < 0:
            raise ValueError(f"max_payment_usd must be a non-negative number, got {self.max_payment_usd}")
        if self.max_records <= 0:
            raise ValueError("max_records must be positive")
        self.data_dir = Path(self.data_dir)

    @property
    def credentials_path(self) -> Path:
        return self.data_dir / CREDENTIALS_FILE

    @property
    def history_path(self) -> Path:
        return self.data_dir / HISTORY_FILE


def _load_settings_file(path: Path) -> dict:
    """Load settings from disk."""
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load settings: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings file {path}: expected a JSON object")
        return {}
    return data


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build Settings from settings.json and FLOCKPAY_* environment variables."""
    data = _load_settings_file(path or get_settings_path())

    known = {
        "network", "max_payment_usd", "api_base_url", "request_timeout",
        "chain_timeout", "max_records", "custom_rpcs", "log_level",
    }
    values = {k: v for k, v in data.items() if k in known}

    env_map = {
        "FLOCKPAY_NETWORK": "network",
        "FLOCKPAY_MAX_PAYMENT_USD": "max_payment_usd",
        "FLOCKPAY_API_URL": "api_base_url",
        "FLOCKPAY_LOG_LEVEL": "log_level",
    }
    for env_name, key in env_map.items():
        value = os.getenv(env_name)
        if value:
            values[key] = value

    if "max_payment_usd" in values:
        try:
            values["max_payment_usd"] = Decimal(str(values["max_payment_usd"]))
        except InvalidOperation:
            raise ValueError(f"Invalid max_payment_usd: {values['max_payment_usd']!r}")

    home = os.getenv("FLOCKPAY_HOME")
    if home:
        values["data_dir"] = Path(home).expanduser()

    return Settings(**values)
