"""
Payment record model.

One completed x402 payment, as stored in the payment history file.
Field names on disk are camelCase so existing history files stay readable.
"""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..errors import LedgerError
from ..services.x402 import PaymentProof


def generate_payment_id() -> str:
    """Generate a unique payment ID (pay_<32 hex>)."""
    return f"pay_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class PaymentRecord:
    """A recorded payment. Immutable once created."""
    id: str
    transaction_hash: str
    timestamp: int          # Unix milliseconds
    amount: str             # USD, decimal string
    model: str
    network: str
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def create(
        cls,
        proof: PaymentProof,
        model: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        payment_id: Optional[str] = None,
    ) -> "PaymentRecord":
        """Create a new record from a payment proof."""
        return cls.from_dict({
            "id": payment_id or generate_payment_id(),
            "transactionHash": proof.transaction_hash,
            "timestamp": proof.timestamp,
            "amount": proof.amount,
            "model": model,
            "network": proof.network,
            "tokens": {"input": input_tokens, "output": output_tokens},
        })

    @property
    def amount_decimal(self) -> Decimal:
        return Decimal(self.amount)

    @property
    def paid_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    def format_datetime(self) -> str:
        """Format timestamp as YYYY-MM-DD HH:MM:SS (UTC)."""
        return self.paid_at.strftime("%Y-%m-%d %H:%M:%S")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        return {
            "id": self.id,
            "transactionHash": self.transaction_hash,
            "timestamp": self.timestamp,
            "amount": self.amount,
            "model": self.model,
            "network": self.network,
            "tokens": {"input": self.input_tokens, "output": self.output_tokens},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentRecord":
        """Create from dictionary with input validation."""
        if not isinstance(data, dict):
            raise LedgerError(f"Payment record must be an object, got {type(data).__name__}")

        record_id = data.get("id")
        if not record_id or not isinstance(record_id, str):
            raise LedgerError("Payment record missing id")

        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) \
                or (isinstance(timestamp, float) and not math.isfinite(timestamp)) or timestamp < 0:
            raise LedgerError(f"timestamp must be non-negative milliseconds, got {timestamp!r}")

        amount = str(data.get("amount") or "0")
        try:
            if Decimal(amount) < 0 or not Decimal(amount).is_finite():
                raise LedgerError(f"amount must be a non-negative number, got {amount!r}")
        except InvalidOperation:
            raise LedgerError(f"amount must be a decimal string, got {amount!r}")

        tokens = data.get("tokens") or {}
        try:
            input_tokens = int(tokens.get("input", 0))
            output_tokens = int(tokens.get("output", 0))
        except (AttributeError, TypeError, ValueError):
            raise LedgerError(f"tokens must be {{input, output}} integers, got {tokens!r}")

        return cls(
            id=record_id,
            transaction_hash=str(data.get("transactionHash", "")),
            timestamp=int(timestamp),
            amount=amount,
            model=str(data.get("model", "")),
            network=str(data.get("network", "")),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
