"""
Services package - Payment and funding services for flock-pay.

Contains:
- PaymentNegotiator: x402 handshake client
- FundingMonitor, UsdcBalanceChecker: balance polling
- x402 wire types: PaymentRequirement, SignedPaymentAuthorization, PaymentProof
"""

from .x402 import (
    PaymentRequirement,
    SignedPaymentAuthorization,
    PaymentProof,
    HEADER_PAYMENT,
    HEADER_PAYMENT_REQUIRED,
    HEADER_PAYMENT_RESPONSE,
)
from .negotiator import (
    PaymentNegotiator,
    NegotiationResult,
    ChatResult,
    NonceFactory,
    estimate_cost,
    PROOF_VERIFIED,
    PROOF_ABSENT,
    PROOF_UNREADABLE,
)
from .funding import (
    FundingMonitor,
    FundingResult,
    BalanceSample,
    NativeBalanceSource,
    Erc20BalanceSource,
    UsdcBalanceChecker,
    UsdcBalance,
)

__all__ = [
    "PaymentRequirement",
    "SignedPaymentAuthorization",
    "PaymentProof",
    "HEADER_PAYMENT",
    "HEADER_PAYMENT_REQUIRED",
    "HEADER_PAYMENT_RESPONSE",
    "PaymentNegotiator",
    "NegotiationResult",
    "ChatResult",
    "NonceFactory",
    "estimate_cost",
    "PROOF_VERIFIED",
    "PROOF_ABSENT",
    "PROOF_UNREADABLE",
    "FundingMonitor",
    "FundingResult",
    "BalanceSample",
    "NativeBalanceSource",
    "Erc20BalanceSource",
    "UsdcBalanceChecker",
    "UsdcBalance",
]
