"""Settings, network table and log path tests."""

import json
from datetime import datetime
from decimal import Decimal

import pytest

from flockpay.config import Settings, load_settings
from flockpay.services.logging import get_log_file_path
from flockpay.networks import NETWORKS, USDC, format_address, require_network, to_caip_network


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json")
        assert settings.network == "base"
        assert settings.max_payment_usd == Decimal("0.10")
        assert settings.data_dir == tmp_path
        assert settings.history_path == tmp_path / "flock-payment-history.json"
        assert settings.credentials_path == tmp_path / "flock-credentials.json"

    def test_file_then_env(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"network": "base-sepolia", "max_payment_usd": "0.5", "max_records": 50}))
        monkeypatch.setenv("FLOCKPAY_MAX_PAYMENT_USD", "0.25")

        settings = load_settings(path)
        assert settings.network == "base-sepolia"
        assert settings.max_records == 50
        assert settings.max_payment_usd == Decimal("0.25")

    def test_corrupt_file_uses_defaults(self, tmp_path, caplog):
        path = tmp_path / "settings.json"
        path.write_text("[")
        assert load_settings(path).network == "base"
        assert "Failed to load settings" in caplog.text

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            Settings(network="solana")

    def test_invalid_max_payment_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FLOCKPAY_MAX_PAYMENT_USD", "ten cents")
        with pytest.raises(ValueError):
            load_settings(tmp_path / "settings.json")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-0.01"])
    def test_non_finite_max_payment_env(self, tmp_path, monkeypatch, value):
        monkeypatch.setenv("FLOCKPAY_MAX_PAYMENT_USD", value)
        with pytest.raises(ValueError):
            load_settings(tmp_path / "settings.json")

    def test_non_finite_max_payment_argument(self):
        with pytest.raises(ValueError):
            Settings(max_payment_usd="Infinity")


class TestNetworks:
    def test_caip_ids(self):
        assert to_caip_network("base") == "eip155:8453"
        assert to_caip_network("ethereum") == "eip155:1"

    def test_require_network(self):
        assert require_network("optimism").chain_id == 10
        with pytest.raises(ValueError):
            require_network("nope")

    def test_usdc_configured_for_base(self):
        assert "base" in USDC.addresses
        assert USDC.decimals == 6
        assert set(USDC.addresses) <= set(NETWORKS)

    def test_format_address(self):
        assert format_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"


class TestLogging:
    def test_daily_log_file_in_data_dir(self, tmp_path):
        path = get_log_file_path(datetime(2026, 3, 1))
        assert path == tmp_path / "logs" / "flockpay-2026-03-01.log"
        assert path.parent.is_dir()
