"""
Funding Monitor - Balance checks and wait-for-funding polling.

check_balance() reads every requested chain concurrently; each chain is
bounded by its own timeout and a failing chain only marks its own sample.
wait_for_funding() polls check_balance() until one chain meets the
threshold or max_wait elapses.

UsdcBalanceChecker is the stablecoin variant: one chain, the USDC
contract, 6 decimals, and a read failure reported as an "unknown" zero
balance instead of an exception.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Protocol

from web3 import Web3

from ..errors import BalanceCheckFailed, FundingTimeout
from ..networks import DEFAULT_NETWORK, ERC20_ABI, NATIVE_CHAINS, USDC, require_network

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_WAIT = 600.0  # 10 minutes

# Native balance threshold (whole ETH)
DEFAULT_MIN_NATIVE_BALANCE = "0.001"

# $0.01 in USDC smallest units
USDC_MINIMUM_RAW = 10_000
USDC_MIN_BALANCE = "0.01"

# Reading status values
STATUS_VERIFIED = "verified"
STATUS_UNKNOWN = "unknown"


def to_raw(amount, decimals: int) -> int:
    """Convert a whole-unit amount ('0.01') to smallest units, truncating."""
    return int(Decimal(str(amount)).scaleb(decimals))


def format_units(raw: int, decimals: int) -> str:
    """Format smallest units as a plain decimal string ('0.5', '12')."""
    return f"{Decimal(raw).scaleb(-decimals).normalize():f}"


# ============================================
# Balance sources
# ============================================

class BalanceSource(Protocol):
    """Reads a raw integer balance; raises on any failure."""

    def get_balance(self, address: str, chain: str) -> int: ...


class _Web3Source:
    """Caches one Web3 instance per chain."""

    def __init__(self, custom_rpcs: Optional[Dict[str, str]] = None, timeout: float = DEFAULT_CHAIN_TIMEOUT):
        self.custom_rpcs = custom_rpcs or {}
        self.timeout = timeout
        self._w3: Dict[str, Web3] = {}

    def web3_for(self, chain: str) -> Web3:
        if chain not in self._w3:
            network = require_network(chain)
            rpc = self.custom_rpcs.get(chain) or network.rpc_url
            self._w3[chain] = Web3(Web3.HTTPProvider(rpc, request_kwargs={"timeout": self.timeout}))
        return self._w3[chain]


class NativeBalanceSource(_Web3Source):
    """Native asset balance via eth_getBalance."""

    def get_balance(self, address: str, chain: str) -> int:
        w3 = self.web3_for(chain)
        return int(w3.eth.get_balance(Web3.to_checksum_address(address)))


class Erc20BalanceSource(_Web3Source):
    """ERC-20 balanceOf against a fixed per-network contract."""

    def __init__(self, contracts: Dict[str, str], **kwargs):
        super().__init__(**kwargs)
        self.contracts = contracts

    def get_balance(self, address: str, chain: str) -> int:
        if chain not in self.contracts:
            raise ValueError(f"No token contract configured for {chain}")
        w3 = self.web3_for(chain)
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(self.contracts[chain]),
            abi=ERC20_ABI,
        )
        return int(contract.functions.balanceOf(Web3.to_checksum_address(address)).call())


# ============================================
# Results
# ============================================

@dataclass
class BalanceSample:
    """One chain's balance reading."""
    chain: str
    balance: str          # Formatted, whole units
    balance_raw: int      # Smallest units
    has_funds: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FundingResult:
    """Balances across chains for one address."""
    address: str
    balances: Dict[str, BalanceSample]
    total_balance: str
    total_raw: int
    has_funds: bool
    checked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def max_raw(self) -> int:
        """Largest single-chain balance among chains that answered."""
        return max((s.balance_raw for s in self.balances.values() if s.ok), default=0)


# ============================================
# Polling
# ============================================

def poll_until(
    check: Callable[[], object],
    done: Callable[[object], bool],
    poll_interval: float,
    max_wait: float,
    clock: Callable[[], float],
    sleep: Callable[[float], None],
    on_check: Optional[Callable[[object], None]] = None,
):
    """
    Call check() every poll_interval seconds until done(result) or max_wait.

    Returns the first result satisfying done(). Raises FundingTimeout
    (carrying the last result) once elapsed time reaches max_wait.
    """
    start = clock()
    polls = 0
    while True:
        result = check()
        polls += 1
        if on_check is not None:
            on_check(result)
        if done(result):
            return result

        remaining = max_wait - (clock() - start)
        logger.debug(f"Funding poll {polls}: not funded yet ({remaining:.1f}s left)")
        if remaining <= 0:
            break
        sleep(min(poll_interval, remaining))
        if clock() - start >= max_wait:
            break

    raise FundingTimeout(max_wait, last_result=result)


class FundingMonitor:
    """
    Multi-chain balance checks.

    Args:
        source: BalanceSource (defaults to native balance over web3)
        decimals: Scale of the balances the source returns
        chain_timeout: Upper bound on each chain's read, in seconds
        custom_rpcs: Chain name -> RPC URL overrides for the default source
        clock, sleep: Injectable time functions (tests use fakes)
    """

    def __init__(
        self,
        source: Optional[BalanceSource] = None,
        decimals: int = 18,
        chain_timeout: float = DEFAULT_CHAIN_TIMEOUT,
        custom_rpcs: Optional[Dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source or NativeBalanceSource(custom_rpcs=custom_rpcs, timeout=chain_timeout)
        self.decimals = decimals
        self.chain_timeout = chain_timeout
        self._clock = clock
        self._sleep = sleep

    def _sample(self, chain: str, raw: int) -> BalanceSample:
        return BalanceSample(
            chain=chain,
            balance=format_units(raw, self.decimals),
            balance_raw=raw,
            has_funds=raw > 0,
        )

    def _failed(self, error: BalanceCheckFailed) -> BalanceSample:
        logger.warning(f"Balance check failed on {error.chain}: {error.reason}")
        return BalanceSample(chain=error.chain, balance="0", balance_raw=0, has_funds=False, error=error.reason)

    def check_balance(
        self,
        address: str,
        chains: Iterable[str] = NATIVE_CHAINS,
        timeout: Optional[float] = None,
    ) -> FundingResult:
        """
        Read every chain in parallel.

        A chain that errors or exceeds the timeout yields a sample with error
        set and is left out of the totals; the others are unaffected.
        """
        chains = list(dict.fromkeys(chains))
        timeout = self.chain_timeout if timeout is None else timeout
        samples: Dict[str, BalanceSample] = {}

        executor = ThreadPoolExecutor(max_workers=max(len(chains), 1), thread_name_prefix="balance")
        try:
            futures = {chain: executor.submit(self.source.get_balance, address, chain) for chain in chains}
            deadline = time.monotonic() + timeout
            for chain, future in futures.items():
                remaining = max(deadline - time.monotonic(), 0.0)
                try:
                    samples[chain] = self._sample(chain, int(future.result(timeout=remaining)))
                except FutureTimeout:
                    samples[chain] = self._failed(BalanceCheckFailed(chain, "Timeout"))
                except Exception as e:
                    samples[chain] = self._failed(BalanceCheckFailed(chain, str(e) or type(e).__name__))
        finally:
            # Don't block on a hung RPC call
            executor.shutdown(wait=False, cancel_futures=True)

        total_raw = sum(s.balance_raw for s in samples.values() if s.ok)
        return FundingResult(
            address=address,
            balances=samples,
            total_balance=format_units(total_raw, self.decimals),
            total_raw=total_raw,
            has_funds=total_raw > 0,
        )

    def wait_for_funding(
        self,
        address: str,
        min_balance=DEFAULT_MIN_NATIVE_BALANCE,
        chains: Iterable[str] = ("ethereum", "base"),
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        on_check: Optional[Callable[[FundingResult], None]] = None,
    ) -> FundingResult:
        """
        Poll until any single chain holds at least min_balance.

        Raises:
            FundingTimeout: max_wait elapsed first
        """
        chains = list(chains)
        min_raw = to_raw(min_balance, self.decimals)
        start = self._clock()

        def check() -> FundingResult:
            # Keep an in-flight poll from running past the deadline
            remaining = max_wait - (self._clock() - start)
            timeout = min(self.chain_timeout, remaining) if remaining > 0 else self.chain_timeout
            return self.check_balance(address, chains, timeout=timeout)

        return poll_until(
            check,
            lambda result: result.max_raw() >= min_raw,
            poll_interval,
            max_wait,
            self._clock,
            self._sleep,
            on_check,
        )


# ============================================
# USDC variant
# ============================================

@dataclass
class UsdcBalance:
    """USDC balance for one address on one network."""
    address: str
    balance: str          # Two decimals (e.g., "10.50")
    balance_raw: int      # 6 decimals
    has_minimum: bool     # >= $0.01
    network: str
    status: str = STATUS_VERIFIED
    error: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return self.status == STATUS_VERIFIED


class UsdcBalanceChecker:
    """
    USDC balance on one network, available even when the RPC is not.

    A failed read comes back as a zero balance with status 'unknown' so
    callers can decide whether to treat it as unfunded.
    """

    def __init__(
        self,
        network: str = DEFAULT_NETWORK,
        source: Optional[BalanceSource] = None,
        chain_timeout: float = DEFAULT_CHAIN_TIMEOUT,
        custom_rpcs: Optional[Dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if network not in USDC.addresses:
            raise ValueError(f"USDC is not configured on {network}")
        self.network = network
        self.source = source or Erc20BalanceSource(USDC.addresses, custom_rpcs=custom_rpcs, timeout=chain_timeout)
        self._clock = clock
        self._sleep = sleep

    def check(self, address: str) -> UsdcBalance:
        try:
            raw = int(self.source.get_balance(address, self.network))
        except Exception as e:
            logger.warning(f"USDC balance check failed on {self.network}: {e}")
            return UsdcBalance(
                address=address,
                balance="0.00",
                balance_raw=0,
                has_minimum=False,
                network=self.network,
                status=STATUS_UNKNOWN,
                error=str(e) or type(e).__name__,
            )

        return UsdcBalance(
            address=address,
            balance=f"{Decimal(raw).scaleb(-USDC.decimals):.2f}",
            balance_raw=raw,
            has_minimum=raw >= USDC_MINIMUM_RAW,
            network=self.network,
        )

    def wait_for_funding(
        self,
        address: str,
        min_balance=USDC_MIN_BALANCE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        on_check: Optional[Callable[[UsdcBalance], None]] = None,
    ) -> UsdcBalance:
        """
        Poll until the USDC balance reaches min_balance.

        Raises:
            FundingTimeout: max_wait elapsed first (last reading attached)
        """
        min_raw = to_raw(min_balance, USDC.decimals)
        return poll_until(
            lambda: self.check(address),
            lambda reading: reading.balance_raw >= min_raw,
            poll_interval,
            max_wait,
            self._clock,
            self._sleep,
            on_check,
        )
