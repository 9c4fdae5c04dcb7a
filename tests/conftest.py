"""Shared fixtures: a fixed signing key, a counting wallet, and a fake clock."""

import pytest

from flockpay.wallet.crypto import LocalWallet

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
PAY_TO = "0x209693Bc6afc0C5328bA36FaF03C514EF312287C"


class CountingWallet:
    """LocalWallet wrapper that records every message it signs."""

    def __init__(self, private_key: str = TEST_PRIVATE_KEY):
        self._wallet = LocalWallet(private_key)
        self.signed = []

    @property
    def address(self) -> str:
        return self._wallet.address

    def sign(self, message: str) -> str:
        self.signed.append(message)
        return self._wallet.sign(message)


class FakeClock:
    """Manually advanced clock; sleep() moves time forward instead of blocking."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def wallet():
    return CountingWallet()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep every test's data files inside its own tmp directory."""
    monkeypatch.setenv("FLOCKPAY_HOME", str(tmp_path))
    for name in ("FLOCKPAY_NETWORK", "FLOCKPAY_MAX_PAYMENT_USD", "FLOCKPAY_API_URL", "FLOCKPAY_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
