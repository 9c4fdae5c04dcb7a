"""
Models package - Data models for flock-pay.

Contains:
- PaymentRecord: one completed payment
- PaymentLedger: capacity-bounded JSON history of payments
- PaymentSummary: spend statistics
"""

from .payment import PaymentRecord, generate_payment_id
from .ledger import PaymentLedger, PaymentSummary, DEFAULT_MAX_RECORDS

__all__ = [
    "PaymentRecord",
    "generate_payment_id",
    "PaymentLedger",
    "PaymentSummary",
    "DEFAULT_MAX_RECORDS",
]
