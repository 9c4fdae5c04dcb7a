"""
Payment Ledger - JSON persistence for completed payments.

The history file is an ordered JSON array, oldest first, capped at
max_records entries (oldest dropped). Every record() is a full
read-modify-write with no locking: one writer at a time is assumed, and
two processes recording concurrently can lose an update. Multi-process use
needs an external lock or a different storage backend.
"""

import json
import logging
import time
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional

from ..errors import LedgerError
from ..services.x402 import PaymentProof
from ..utils import get_history_path, set_secure_permissions
from .payment import PaymentRecord, generate_payment_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 1000
DAY_MS = 24 * 60 * 60 * 1000

# Amounts are reported to 4 decimal places ("12.3456")
AMOUNT_QUANTUM = Decimal("0.0001")


def format_amount(value: Decimal) -> str:
    return str(value.quantize(AMOUNT_QUANTUM))


@dataclass(frozen=True)
class PaymentSummary:
    """Aggregate spend statistics."""
    total_spent: str
    total_payments: int
    last_24h_count: int
    last_24h_amount: str
    top_model: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "totalSpent": self.total_spent,
            "totalPayments": self.total_payments,
            "last24h": {"count": self.last_24h_count, "amount": self.last_24h_amount},
        }
        if self.top_model is not None:
            data["topModel"] = self.top_model
        return data


class PaymentLedger:
    """Append-only, capacity-bounded payment history."""

    def __init__(
        self,
        path: Optional[Path] = None,
        max_records: int = DEFAULT_MAX_RECORDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_records <= 0:
            raise ValueError("max_records must be positive")
        self.path = Path(path) if path else get_history_path()
        self.max_records = max_records
        self._clock = clock

    def _load(self) -> list:
        """Load history from disk, oldest first. Unreadable data reads as empty."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load payment history: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring payment history {self.path}: expected a JSON array")
            return []

        records = []
        for item in data:
            try:
                records.append(PaymentRecord.from_dict(item))
            except LedgerError as e:
                logger.warning(f"Skipping invalid payment record: {e}")
        return records

    def _save(self, records: list) -> None:
        """Save history to disk, keeping only the newest max_records."""
        trimmed = records[-self.max_records:]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([r.to_dict() for r in trimmed], f, indent=2)
        set_secure_permissions(self.path)

    def record(
        self,
        proof: PaymentProof,
        model: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> PaymentRecord:
        """Append a payment and persist the (truncated) history."""
        records = self._load()
        used_ids = {r.id for r in records}

        payment_id = generate_payment_id()
        while payment_id in used_ids:
            payment_id = generate_payment_id()

        record = PaymentRecord.create(proof, model, input_tokens, output_tokens, payment_id=payment_id)
        records.append(record)
        self._save(records)
        return record

    def history(self, limit: int = 50) -> list:
        """Most recent payments, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._load()[-limit:]))

    def total_spent(self) -> str:
        """Total spent in USD (e.g., "12.3456")."""
        return format_amount(sum((r.amount_decimal for r in self._load()), Decimal(0)))

    def summary(self) -> PaymentSummary:
        """Totals, the last 24 hours, and the most used model."""
        records = self._load()
        now_ms = int(self._clock() * 1000)
        window_start = now_ms - DAY_MS

        total = Decimal(0)
        recent_count = 0
        recent_amount = Decimal(0)
        model_counts: Counter = Counter()

        for r in records:
            total += r.amount_decimal
            if window_start <= r.timestamp < now_ms:
                recent_count += 1
                recent_amount += r.amount_decimal
            model_counts[r.model] += 1

        # Counter keeps first-seen order, so max() breaks ties by first appearance
        top_model = max(model_counts, key=model_counts.__getitem__) if model_counts else None

        return PaymentSummary(
            total_spent=format_amount(total),
            total_payments=len(records),
            last_24h_count=recent_count,
            last_24h_amount=format_amount(recent_amount),
            top_model=top_model,
        )

    def clear(self) -> int:
        """Delete the history file. Returns count of cleared records."""
        count = len(self._load())
        if self.path.exists():
            self.path.unlink()
        return count
