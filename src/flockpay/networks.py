"""
flock-pay Networks - Chain and token configurations.

Native-asset balances are read from Ethereum, Base and Optimism; x402
payments and USDC balances live on Base (or Base Sepolia for testing).
"""

from dataclasses import dataclass


# ============================================
# Network Configurations
# ============================================

@dataclass(frozen=True)
class NetworkConfig:
    """Configuration for a blockchain network."""
    chain_id: int
    name: str
    display_name: str
    rpc_url: str
    explorer_url: str
    is_testnet: bool
    native_symbol: str
    native_decimals: int = 18


NETWORKS = {
    "ethereum": NetworkConfig(
        chain_id=1,
        name="ethereum",
        display_name="Ethereum",
        rpc_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
        is_testnet=False,
        native_symbol="ETH",
    ),
    "base": NetworkConfig(
        chain_id=8453,
        name="base",
        display_name="Base",
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
        is_testnet=False,
        native_symbol="ETH",
    ),
    "optimism": NetworkConfig(
        chain_id=10,
        name="optimism",
        display_name="Optimism",
        rpc_url="https://mainnet.optimism.io",
        explorer_url="https://optimistic.etherscan.io",
        is_testnet=False,
        native_symbol="ETH",
    ),
    "base-sepolia": NetworkConfig(
        chain_id=84532,
        name="base-sepolia",
        display_name="Base Sepolia",
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        is_testnet=True,
        native_symbol="ETH",
    ),
}

DEFAULT_NETWORK = "base"

# Chains polled for native balance when the caller does not say
NATIVE_CHAINS = ("ethereum", "base", "optimism")


# ============================================
# Token Configurations
# ============================================

@dataclass(frozen=True)
class TokenConfig:
    """Configuration for an ERC-20 token."""
    symbol: str
    name: str
    decimals: int
    addresses: dict  # network name -> contract address


USDC = TokenConfig(
    symbol="USDC",
    name="USD Coin",
    decimals=6,
    addresses={
        "base": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "base-sepolia": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    },
)


# Minimal ERC-20 ABI for balance checking
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
]


# ============================================
# Utility Functions
# ============================================

def require_network(name: str) -> NetworkConfig:
    """Get network config by name, raising ValueError for unknown names."""
    network = NETWORKS.get(name)
    if network is None:
        raise ValueError(f"Unknown network: {name}. Expected one of {sorted(NETWORKS)}")
    return network


def to_caip_network(name: str) -> str:
    """
    Convert a network name to CAIP-2 format (e.g., 'base' -> 'eip155:8453').

    Strings already in CAIP-2 form are returned unchanged.
    """
    if name.startswith("eip155:"):
        return name
    return f"eip155:{require_network(name).chain_id}"


def format_address(address: str, chars: int = 4) -> str:
    """Format address as 0x1234...5678"""
    if len(address) <= chars * 2 + 2:
        return address
    return f"{address[:chars+2]}...{address[-chars:]}"
