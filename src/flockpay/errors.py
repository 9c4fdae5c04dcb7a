"""
Errors - Exception taxonomy for flock-pay.

Every error carries a stable string code so callers (and the CLI) can
branch on the kind of failure without matching on message text.

Families:
- PaymentError: x402 negotiation failures
- FundingError: balance polling failures
- LedgerError: invalid payment records
- CredentialsError: missing or unreadable signing keys
"""

from typing import Any, Optional


class FlockPayError(Exception):
    """Base class for all flock-pay errors."""
    code = "FLOCKPAY_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


# ============================================
# Payment negotiation
# ============================================

class PaymentError(FlockPayError):
    """A 402 handshake could not be completed."""
    code = "PAYMENT_ERROR"


class MissingPaymentHeader(PaymentError):
    """402 response without an X-PAYMENT-REQUIRED header."""
    code = "MISSING_PAYMENT_HEADER"


class InvalidPaymentHeader(PaymentError):
    """X-PAYMENT-REQUIRED (or X-PAYMENT) could not be decoded."""
    code = "INVALID_PAYMENT_HEADER"


class UnsupportedPaymentScheme(PaymentError):
    """Server asked for a scheme other than 'exact'."""
    code = "UNSUPPORTED_SCHEME"


class PaymentLimitExceeded(PaymentError):
    """Requested amount is above the per-request ceiling."""
    code = "EXCEEDS_PER_REQUEST_MAX"

    def __init__(self, amount_usd, max_usd):
        super().__init__(f"Payment amount ${amount_usd} exceeds max ${max_usd}")
        self.amount_usd = amount_usd
        self.max_usd = max_usd


class PaymentRetriesExhausted(PaymentError):
    """Server kept answering 402 after every signed attempt."""
    code = "PAYMENT_RETRIES_EXHAUSTED"

    def __init__(self, attempts: int):
        super().__init__(f"Payment failed after {attempts} attempts")
        self.attempts = attempts


class PaymentTransportError(PaymentError):
    """Network failure while sending a paid retry."""
    code = "PAYMENT_TRANSPORT_ERROR"


class NonceReuseError(PaymentError):
    """Randomness source kept returning nonces that were already issued."""
    code = "NONCE_REUSED"


# ============================================
# Funding
# ============================================

class FundingError(FlockPayError):
    code = "FUNDING_ERROR"


class FundingTimeout(FundingError):
    """Balance never reached the threshold before the deadline."""
    code = "FUNDING_TIMEOUT"

    def __init__(self, max_wait: float, last_result: Any = None):
        super().__init__(f"Timeout waiting for funding after {max_wait:g}s")
        self.max_wait = max_wait
        self.last_result = last_result


class BalanceCheckFailed(FundingError):
    """A single chain's balance read failed or timed out."""
    code = "BALANCE_CHECK_FAILED"

    def __init__(self, chain: str, reason: str):
        super().__init__(f"{chain}: {reason}")
        self.chain = chain
        self.reason = reason


# ============================================
# Storage
# ============================================

class LedgerError(FlockPayError):
    code = "INVALID_RECORD"


class CredentialsError(FlockPayError):
    code = "CREDENTIALS_ERROR"
