"""
Payment Negotiator - Transparent x402 handling for outgoing requests.

negotiate() sends a request; on 402 Payment Required it decodes the
requirement, checks it against the per-request ceiling, signs a fresh
60-second authorization and resends. At most three signed attempts are
made; a fourth consecutive 402 is terminal.

The negotiator is an explicit handle: build one per wallet/config and pass it
around. It keeps no state between calls other than its configuration and the
set of nonces it has issued.
"""

import logging
import secrets
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..config import DEFAULT_API_URL, DEFAULT_MAX_PAYMENT_USD
from ..errors import (
    InvalidPaymentHeader,
    MissingPaymentHeader,
    NonceReuseError,
    PaymentLimitExceeded,
    PaymentRetriesExhausted,
    PaymentTransportError,
)
from ..networks import DEFAULT_NETWORK, format_address, to_caip_network
from ..wallet.crypto import SigningWallet
from .x402 import (
    AUTHORIZATION_WINDOW_SECONDS,
    HEADER_PAYMENT,
    HEADER_PAYMENT_REQUIRED,
    HEADER_PAYMENT_RESPONSE,
    NONCE_BYTES,
    PAYMENT_STATUS_CODE,
    PaymentProof,
    PaymentRequirement,
    SignedPaymentAuthorization,
)

logger = logging.getLogger(__name__)

MAX_PAYMENT_ATTEMPTS = 3
MAX_NONCE_REDRAWS = 8

# Proof status values
PROOF_VERIFIED = "verified"      # Header present and decoded
PROOF_ABSENT = "absent"          # No payment-response header
PROOF_UNREADABLE = "unreadable"  # Header present but could not be decoded


class NonceFactory:
    """
    Issues 32-byte nonces that never repeat for the lifetime of this object.

    The randomness source is injectable so tests can supply deterministic
    bytes; production uses secrets.token_bytes unconditionally.
    """

    def __init__(self, source: Callable[[int], bytes] = secrets.token_bytes):
        self._source = source
        self._issued: set = set()

    def __call__(self) -> str:
        for _ in range(MAX_NONCE_REDRAWS):
            raw = self._source(NONCE_BYTES)
            if len(raw) != NONCE_BYTES:
                raise ValueError(f"Nonce source returned {len(raw)} bytes, expected {NONCE_BYTES}")
            nonce = "0x" + raw.hex()
            if nonce not in self._issued:
                self._issued.add(nonce)
                return nonce
            logger.warning("Nonce source repeated an issued nonce; drawing again")
        raise NonceReuseError(f"Nonce source repeated {MAX_NONCE_REDRAWS} times in a row")

    @property
    def issued_count(self) -> int:
        return len(self._issued)


@dataclass
class NegotiationResult:
    """Final response plus the payment proof, when the server sent one."""
    response: httpx.Response
    proof: Optional[PaymentProof] = None
    proof_status: str = PROOF_ABSENT
    attempts: int = 0  # Signed payment attempts made

    @property
    def paid(self) -> bool:
        return self.attempts > 0


@dataclass
class ChatResult:
    """Chat completion body plus payment proof (if x402 was used)."""
    data: Dict[str, Any]
    payment: Optional[PaymentProof] = None
    proof_status: str = PROOF_ABSENT

    @property
    def content(self) -> str:
        choices = self.data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    @property
    def usage(self) -> Dict[str, int]:
        return self.data.get("usage") or {}


class PaymentNegotiator:
    """
    x402 payment client.

    Usage:
        wallet = LocalWallet.from_private_key("0x...")
        with PaymentNegotiator(wallet) as negotiator:
            result = negotiator.chat("deepseek-v3.2", [{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        wallet: SigningWallet,
        network: str = DEFAULT_NETWORK,
        max_payment_usd: Decimal = DEFAULT_MAX_PAYMENT_USD,
        base_url: str = DEFAULT_API_URL,
        client: Optional[httpx.Client] = None,
        timeout: float = 120.0,
        clock: Callable[[], float] = time.time,
        nonce_source: Callable[[int], bytes] = secrets.token_bytes,
        max_attempts: int = MAX_PAYMENT_ATTEMPTS,
    ):
        self.wallet = wallet
        self.network = network
        self.caip_network = to_caip_network(network)
        self.max_payment_usd = Decimal(str(max_payment_usd))
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self._clock = clock
        self._nonces = NonceFactory(nonce_source)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def __enter__(self) -> "PaymentNegotiator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this negotiator created it."""
        if self._owns_client:
            self._client.close()

    @property
    def address(self) -> str:
        return self.wallet.address

    # ============================================
    # Core handshake
    # ============================================

    def negotiate(self, request: httpx.Request) -> NegotiationResult:
        """
        Send a request, paying through x402 if the server asks for it.

        Non-402 responses (success or error) are returned as-is.

        Raises:
            MissingPaymentHeader: 402 without X-PAYMENT-REQUIRED
            InvalidPaymentHeader: X-PAYMENT-REQUIRED could not be decoded
            PaymentLimitExceeded: amount above max_payment_usd (nothing signed)
            PaymentRetriesExhausted: still 402 after max_attempts signed retries
            PaymentTransportError: network failure while sending a paid retry
        """
        response = self._client.send(request)
        attempts = 0

        while response.status_code == PAYMENT_STATUS_CODE:
            if attempts >= self.max_attempts:
                raise PaymentRetriesExhausted(attempts)

            requirement = self._read_requirement(response)
            self._check_limit(requirement)

            authorization = self.build_authorization(requirement)
            attempts += 1
            logger.info(
                f"Paying ${requirement.amount_usd} to {format_address(requirement.pay_to)} "
                f"(attempt {attempts}/{self.max_attempts})"
            )

            paid_request = self._with_payment(request, authorization)
            try:
                response = self._client.send(paid_request)
            except httpx.HTTPError as e:
                raise PaymentTransportError(f"Paid request failed: {e}") from e

        proof, status = self._read_proof(response)
        return NegotiationResult(response=response, proof=proof, proof_status=status, attempts=attempts)

    def build_authorization(self, requirement: PaymentRequirement) -> SignedPaymentAuthorization:
        """Create and sign a fresh authorization valid for the next 60 seconds."""
        now = int(self._clock())
        unsigned = SignedPaymentAuthorization(
            scheme=requirement.scheme,
            network=self.caip_network,
            amount=requirement.max_amount_required,
            resource=requirement.resource,
            pay_to=requirement.pay_to,
            payer=self.wallet.address,
            valid_after=now,
            valid_before=now + AUTHORIZATION_WINDOW_SECONDS,
            nonce=self._nonces(),
        )
        signature = self.wallet.sign(unsigned.canonical_message())
        return replace(unsigned, signature=signature)

    def _read_requirement(self, response: httpx.Response) -> PaymentRequirement:
        header = response.headers.get(HEADER_PAYMENT_REQUIRED)
        if not header:
            raise MissingPaymentHeader(f"402 response missing {HEADER_PAYMENT_REQUIRED} header")
        return PaymentRequirement.from_header(header)

    def _check_limit(self, requirement: PaymentRequirement) -> None:
        amount = requirement.amount_usd
        if amount > self.max_payment_usd:
            logger.warning(f"Refusing payment of ${amount}: above max ${self.max_payment_usd}")
            raise PaymentLimitExceeded(amount, self.max_payment_usd)

    @staticmethod
    def _with_payment(request: httpx.Request, authorization: SignedPaymentAuthorization) -> httpx.Request:
        headers = httpx.Headers(request.headers)
        headers[HEADER_PAYMENT] = authorization.to_header()
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )

    def _read_proof(self, response: httpx.Response) -> Tuple[Optional[PaymentProof], str]:
        header = response.headers.get(HEADER_PAYMENT_RESPONSE)
        if not header:
            return None, PROOF_ABSENT
        try:
            proof = PaymentProof.from_header(
                header,
                network=self.network,
                timestamp=int(self._clock() * 1000),
            )
        except InvalidPaymentHeader as e:
            # The request itself succeeded; report the proof as unreadable
            logger.warning(f"Could not decode {HEADER_PAYMENT_RESPONSE}: {e}")
            return None, PROOF_UNREADABLE
        return proof, PROOF_VERIFIED

    # ============================================
    # Convenience API
    # ============================================

    def request(self, method: str, path: str, **kwargs) -> NegotiationResult:
        """Build a request against base_url and negotiate it."""
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}/{path.lstrip('/')}"
        return self.negotiate(self._client.build_request(method, url, **kwargs))

    def chat(self, model: str, messages: List[Dict[str, str]], **params) -> ChatResult:
        """
        Send a chat completion request with automatic x402 payment.

        Raises:
            httpx.HTTPStatusError: final response was not 2xx
        """
        body = {"model": model, "messages": messages}
        body.update(params)
        result = self.request("POST", "/chat/completions", json=body)
        result.response.raise_for_status()
        return ChatResult(data=result.response.json(), payment=result.proof, proof_status=result.proof_status)

    def list_models(self) -> List[Dict[str, Any]]:
        """List available models."""
        result = self.request("GET", "/models")
        result.response.raise_for_status()
        data = result.response.json()
        return data.get("data", data) if isinstance(data, dict) else data


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    input_price: Decimal,
    output_price: Decimal,
) -> Dict[str, Decimal]:
    """Estimate cost in USD from per-million-token prices."""
    million = Decimal(1_000_000)
    input_cost = Decimal(input_tokens) / million * Decimal(str(input_price))
    output_cost = Decimal(output_tokens) / million * Decimal(str(output_price))
    return {
        "input_cost": input_cost,
        "output_cost": output_cost,
        "total_cost": input_cost + output_cost,
    }
