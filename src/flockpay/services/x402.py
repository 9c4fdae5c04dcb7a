"""
x402 wire codec.

Header values are base64-encoded JSON:
- X-PAYMENT-REQUIRED: PaymentRequirement (server -> client, with a 402)
- X-PAYMENT: SignedPaymentAuthorization (client -> server, on retry)
- X-PAYMENT-RESPONSE: payment proof (server -> client, on success)

Only the "exact" scheme (pay exactly maxAmountRequired of one token) is supported.
"""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ..errors import InvalidPaymentHeader, UnsupportedPaymentScheme

PAYMENT_STATUS_CODE = 402

HEADER_PAYMENT = "X-PAYMENT"
HEADER_PAYMENT_REQUIRED = "X-PAYMENT-REQUIRED"
HEADER_PAYMENT_RESPONSE = "X-PAYMENT-RESPONSE"

SCHEME_EXACT = "exact"
DEFAULT_TOKEN_DECIMALS = 6  # USDC

# validBefore - validAfter, in seconds
AUTHORIZATION_WINDOW_SECONDS = 60

NONCE_BYTES = 32

# ASCII digits only; str.isdigit() also accepts superscripts and other scripts
AMOUNT_PATTERN = re.compile(r"[0-9]+")


def encode_header(payload: Dict[str, Any]) -> str:
    """JSON-encode then base64-encode a header payload."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_header(value: str) -> Dict[str, Any]:
    """
    Decode a base64 JSON header value into a dict.

    Raises:
        InvalidPaymentHeader: not base64, not JSON, or not a JSON object
    """
    try:
        raw = base64.b64decode(value.strip(), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise InvalidPaymentHeader(f"Invalid payment header: {e}") from e
    if not isinstance(data, dict):
        raise InvalidPaymentHeader("Invalid payment header: expected a JSON object")
    return data


# ============================================
# Payment requirement
# ============================================

@dataclass(frozen=True)
class PaymentRequirement:
    """Parsed payment requirement from a 402 response."""
    scheme: str
    network: str
    max_amount_required: str   # Smallest token unit, decimal string
    resource: str
    pay_to: str
    required_decimals: int = DEFAULT_TOKEN_DECIMALS
    description: Optional[str] = None
    token: Optional[str] = None
    extra: Optional[dict] = None

    @property
    def amount_usd(self) -> Decimal:
        """Amount in whole tokens (USD for a stablecoin)."""
        return Decimal(int(self.max_amount_required)).scaleb(-self.required_decimals)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentRequirement":
        """
        Create from the wire dict with input validation.

        Raises:
            InvalidPaymentHeader: required fields missing or malformed
            UnsupportedPaymentScheme: scheme is not 'exact'
        """
        amount = data.get("maxAmountRequired")
        if amount is None or str(amount).strip() == "":
            raise InvalidPaymentHeader("Payment requirement missing maxAmountRequired")
        amount = str(amount)
        if not AMOUNT_PATTERN.fullmatch(amount):
            raise InvalidPaymentHeader(f"maxAmountRequired must be a non-negative integer, got {amount!r}")

        pay_to = data.get("payTo")
        if not pay_to:
            raise InvalidPaymentHeader("Payment requirement missing payTo")

        decimals = data.get("requiredDecimals", DEFAULT_TOKEN_DECIMALS)
        if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 36:
            raise InvalidPaymentHeader(f"requiredDecimals must be an integer in 0..36, got {decimals!r}")

        scheme = data.get("scheme") or SCHEME_EXACT
        if scheme != SCHEME_EXACT:
            raise UnsupportedPaymentScheme(f"Unsupported payment scheme: {scheme}")

        return cls(
            scheme=scheme,
            network=str(data.get("network", "")),
            max_amount_required=amount,
            resource=str(data.get("resource", "")),
            pay_to=str(pay_to),
            required_decimals=decimals,
            description=data.get("description"),
            token=data.get("token"),
            extra=data.get("extra"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "scheme": self.scheme,
            "network": self.network,
            "maxAmountRequired": self.max_amount_required,
            "resource": self.resource,
            "payTo": self.pay_to,
            "requiredDecimals": self.required_decimals,
        }
        for key, value in (("description", self.description), ("token", self.token), ("extra", self.extra)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_header(cls, value: str) -> "PaymentRequirement":
        return cls.from_dict(decode_header(value))

    def to_header(self) -> str:
        return encode_header(self.to_dict())


# ============================================
# Signed authorization
# ============================================

@dataclass(frozen=True)
class SignedPaymentAuthorization:
    """
    A time-windowed, nonce-tagged, signed payment statement.

    The signature covers canonical_message(): compact JSON with sorted keys
    over every field except the signature itself.
    """
    scheme: str
    network: str          # CAIP-2 (e.g., 'eip155:8453')
    amount: str
    resource: str
    pay_to: str
    payer: str
    valid_after: int
    valid_before: int
    nonce: str            # 0x + 64 hex chars
    signature: str = ""

    def unsigned_dict(self) -> Dict[str, Any]:
        return {
            "scheme": self.scheme,
            "network": self.network,
            "amount": self.amount,
            "resource": self.resource,
            "payTo": self.pay_to,
            "payer": self.payer,
            "validAfter": str(self.valid_after),
            "validBefore": str(self.valid_before),
            "nonce": self.nonce,
        }

    def canonical_message(self) -> str:
        return json.dumps(self.unsigned_dict(), separators=(",", ":"), sort_keys=True)

    def to_dict(self) -> Dict[str, Any]:
        data = self.unsigned_dict()
        data["signature"] = self.signature
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedPaymentAuthorization":
        try:
            return cls(
                scheme=data["scheme"],
                network=data["network"],
                amount=str(data["amount"]),
                resource=data.get("resource", ""),
                pay_to=data["payTo"],
                payer=data["payer"],
                valid_after=int(data["validAfter"]),
                valid_before=int(data["validBefore"]),
                nonce=data["nonce"],
                signature=data.get("signature", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidPaymentHeader(f"Invalid payment authorization: {e}") from e

    def to_header(self) -> str:
        return encode_header(self.to_dict())

    @classmethod
    def from_header(cls, value: str) -> "SignedPaymentAuthorization":
        return cls.from_dict(decode_header(value))


# ============================================
# Payment proof
# ============================================

@dataclass(frozen=True)
class PaymentProof:
    """Server's confirmation that a payment was accepted."""
    transaction_hash: str
    amount: str       # USD, decimal string
    network: str
    timestamp: int    # Unix milliseconds

    @classmethod
    def from_header(cls, value: str, network: str, timestamp: int) -> "PaymentProof":
        """
        Decode an X-PAYMENT-RESPONSE header.

        Raises:
            InvalidPaymentHeader: undecodable, no transaction hash, or an amount
                that is not a non-negative decimal
        """
        data = decode_header(value)
        tx_hash = data.get("transactionHash") or data.get("txHash")
        if not tx_hash:
            raise InvalidPaymentHeader("Payment response missing transactionHash")

        amount = str(data.get("amount") or "0")
        try:
            parsed = Decimal(amount)
        except InvalidOperation:
            raise InvalidPaymentHeader(f"Payment response amount is not a decimal: {amount!r}")
        if not parsed.is_finite() or parsed < 0:
            raise InvalidPaymentHeader(f"Payment response amount must be non-negative, got {amount!r}")

        return cls(
            transaction_hash=str(tx_hash),
            amount=amount,
            network=network,
            timestamp=timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "amount": self.amount,
            "network": self.network,
            "timestamp": self.timestamp,
        }
