"""
flock-pay - x402 payment client, funding monitor and payment ledger.
"""

from .errors import FlockPayError
from .services.negotiator import PaymentNegotiator
from .services.funding import FundingMonitor, UsdcBalanceChecker
from .models.ledger import PaymentLedger
from .wallet.crypto import LocalWallet

__version__ = "0.1.0"

__all__ = [
    "FlockPayError",
    "PaymentNegotiator",
    "FundingMonitor",
    "UsdcBalanceChecker",
    "PaymentLedger",
    "LocalWallet",
]
