"""Funding monitor tests with fake balance sources and a fake clock."""

import threading

import pytest

from flockpay.errors import FundingTimeout
from flockpay.networks import NETWORKS
from flockpay.services.funding import (
    STATUS_UNKNOWN,
    STATUS_VERIFIED,
    FundingMonitor,
    UsdcBalanceChecker,
    format_units,
    poll_until,
    to_raw,
)

ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
ETH = 10 ** 18


class FakeSource:
    """Balances per chain; a value that is an Exception is raised instead."""

    def __init__(self, balances):
        self.balances = balances
        self.calls = []

    def get_balance(self, address, chain):
        self.calls.append(chain)
        value = self.balances[chain]
        if callable(value):
            value = value()
        if isinstance(value, Exception):
            raise value
        return value


class SequenceSource:
    """Returns successive balances on every read, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values)
        self.reads = 0

    def get_balance(self, address, chain):
        self.reads += 1
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


class TestUnits:
    def test_to_raw(self):
        assert to_raw("0.001", 18) == 10 ** 15
        assert to_raw("0.01", 6) == 10_000

    def test_format_units(self):
        assert format_units(5 * 10 ** 17, 18) == "0.5"
        assert format_units(12 * ETH, 18) == "12"
        assert format_units(0, 18) == "0"


class TestCheckBalance:
    def test_sums_all_chains(self):
        source = FakeSource({"ethereum": ETH, "base": 2 * ETH, "optimism": 0})
        result = FundingMonitor(source).check_balance(ADDRESS)

        assert result.total_raw == 3 * ETH
        assert result.total_balance == "3"
        assert result.has_funds
        assert result.balances["optimism"].balance == "0"
        assert not result.balances["optimism"].has_funds
        assert sorted(source.calls) == ["base", "ethereum", "optimism"]

    def test_failing_chain_is_isolated(self):
        source = FakeSource({"ethereum": RuntimeError("rpc down"), "base": ETH})
        result = FundingMonitor(source).check_balance(ADDRESS, chains=["ethereum", "base"])

        assert result.balances["ethereum"].error == "rpc down"
        assert not result.balances["ethereum"].ok
        assert result.balances["base"].ok
        assert result.total_raw == ETH
        assert result.max_raw() == ETH

    def test_slow_chain_times_out(self):
        release = threading.Event()

        def hang():
            release.wait(5)
            return ETH

        source = FakeSource({"ethereum": hang, "base": ETH})
        try:
            result = FundingMonitor(source).check_balance(ADDRESS, chains=["ethereum", "base"], timeout=0.05)
        finally:
            release.set()

        assert result.balances["ethereum"].error == "Timeout"
        assert result.balances["base"].balance_raw == ETH
        assert result.total_raw == ETH

    def test_all_chains_failing(self):
        source = FakeSource({"ethereum": ValueError("bad"), "base": ValueError("bad")})
        result = FundingMonitor(source).check_balance(ADDRESS, chains=["ethereum", "base"])
        assert result.total_raw == 0
        assert not result.has_funds
        assert result.max_raw() == 0


class TestWaitForFunding:
    def test_already_funded_polls_once(self, clock):
        source = FakeSource({"ethereum": 0, "base": ETH})
        checks = []
        monitor = FundingMonitor(source, clock=clock, sleep=clock.sleep)

        result = monitor.wait_for_funding(ADDRESS, on_check=checks.append)

        assert result.max_raw() == ETH
        assert len(checks) == 1
        assert clock.sleeps == []

    def test_threshold_is_per_chain_not_total(self, clock):
        # 0.0006 on each chain sums past 0.001 but no single chain reaches it
        source = FakeSource({"ethereum": 6 * 10 ** 14, "base": 6 * 10 ** 14})
        monitor = FundingMonitor(source, clock=clock, sleep=clock.sleep)

        with pytest.raises(FundingTimeout):
            monitor.wait_for_funding(ADDRESS, min_balance="0.001", poll_interval=5, max_wait=10)

    def test_funded_after_a_few_polls(self, clock):
        source = SequenceSource(0, 0, 0, 0, ETH)
        monitor = FundingMonitor(source, clock=clock, sleep=clock.sleep)

        result = monitor.wait_for_funding(ADDRESS, chains=["base"], poll_interval=5, max_wait=60)

        assert result.max_raw() == ETH
        assert clock.sleeps == [5, 5, 5, 5]

    def test_times_out_without_real_sleep(self, clock):
        source = FakeSource({"ethereum": 0, "base": 0})
        monitor = FundingMonitor(source, clock=clock, sleep=clock.sleep)
        start = clock.now

        with pytest.raises(FundingTimeout) as excinfo:
            monitor.wait_for_funding(ADDRESS, poll_interval=5, max_wait=30)

        assert clock.now - start <= 30 + 5
        assert excinfo.value.last_result is not None
        assert excinfo.value.last_result.total_raw == 0
        assert "30s" in str(excinfo.value)

    def test_last_sleep_is_clamped_to_deadline(self, clock):
        source = FakeSource({"base": 0})
        monitor = FundingMonitor(source, clock=clock, sleep=clock.sleep)

        with pytest.raises(FundingTimeout):
            monitor.wait_for_funding(ADDRESS, chains=["base"], poll_interval=4, max_wait=10)

        assert clock.sleeps == [4, 4, 2]


class TestPollUntil:
    def test_zero_max_wait_checks_once(self, clock):
        calls = []

        def check():
            calls.append(1)
            return 0

        with pytest.raises(FundingTimeout):
            poll_until(check, lambda r: r > 0, 1, 0, clock, clock.sleep)
        assert len(calls) == 1


class TestUsdcBalanceChecker:
    def test_verified_balance(self):
        checker = UsdcBalanceChecker("base", source=FakeSource({"base": 10_500_000}))
        reading = checker.check(ADDRESS)
        assert reading.status == STATUS_VERIFIED
        assert reading.is_verified
        assert reading.balance == "10.50"
        assert reading.balance_raw == 10_500_000
        assert reading.has_minimum

    @pytest.mark.parametrize("raw, expected", [(9_999, False), (10_000, True)])
    def test_minimum_threshold(self, raw, expected):
        checker = UsdcBalanceChecker("base", source=FakeSource({"base": raw}))
        assert checker.check(ADDRESS).has_minimum is expected

    def test_failure_reads_as_unknown_zero(self):
        checker = UsdcBalanceChecker("base", source=FakeSource({"base": ConnectionError("no route")}))
        reading = checker.check(ADDRESS)
        assert reading.status == STATUS_UNKNOWN
        assert not reading.is_verified
        assert reading.balance == "0.00"
        assert reading.balance_raw == 0
        assert not reading.has_minimum
        assert reading.error == "no route"

    def test_unconfigured_network(self):
        with pytest.raises(ValueError):
            UsdcBalanceChecker("optimism", source=FakeSource({}))

    def test_wait_for_funding(self, clock):
        source = SequenceSource(0, 5_000, 20_000)
        checker = UsdcBalanceChecker("base", source=source, clock=clock, sleep=clock.sleep)
        reading = checker.wait_for_funding(ADDRESS, min_balance="0.01", poll_interval=5, max_wait=60)
        assert reading.balance_raw == 20_000
        assert source.reads == 3

    def test_wait_timeout_carries_last_reading(self, clock):
        checker = UsdcBalanceChecker(
            "base",
            source=FakeSource({"base": RuntimeError("down")}),
            clock=clock,
            sleep=clock.sleep,
        )
        with pytest.raises(FundingTimeout) as excinfo:
            checker.wait_for_funding(ADDRESS, poll_interval=5, max_wait=15)
        assert excinfo.value.last_result.status == STATUS_UNKNOWN


class TestCustomRpcs:
    LOCAL_RPC = "http://127.0.0.1:8545"

    def test_usdc_checker_uses_override(self):
        checker = UsdcBalanceChecker("base", custom_rpcs={"base": self.LOCAL_RPC})
        assert checker.source.web3_for("base").provider.endpoint_uri == self.LOCAL_RPC

    def test_monitor_uses_override_and_default_elsewhere(self):
        monitor = FundingMonitor(custom_rpcs={"base": self.LOCAL_RPC})
        assert monitor.source.web3_for("base").provider.endpoint_uri == self.LOCAL_RPC
        assert monitor.source.web3_for("ethereum").provider.endpoint_uri == NETWORKS["ethereum"].rpc_url
