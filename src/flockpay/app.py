"""
flock-pay - Pay-per-request LLM access via x402.

Command line entry point.

    flock-pay chat "Hello"          Send a paid chat completion
    flock-pay wallet                Show address, USDC balance and spend
    flock-pay payments [limit]      Payment summary and recent history
    flock-pay fund [--min 0.01]     Wait for the wallet to be funded
"""

import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

import httpx
from dotenv import load_dotenv

from .config import Settings, load_settings
from .errors import FlockPayError, FundingTimeout, LedgerError
from .models import PaymentLedger
from .services.funding import DEFAULT_MAX_WAIT, USDC_MIN_BALANCE, UsdcBalance, UsdcBalanceChecker
from .services.logging import configure_logging, get_log_file_path
from .services.negotiator import PaymentNegotiator
from .wallet import CredentialStore, LocalWallet

logger = logging.getLogger(__name__)

PASSWORD_ENV = "FLOCKPAY_KEY_PASSWORD"


def _load_wallet(store: CredentialStore, create: bool = False) -> Optional[LocalWallet]:
    """Wallet from stored credentials, generating and saving one if asked."""
    creds = store.get_credentials()
    if creds is not None and creds.encrypted:
        password = os.getenv(PASSWORD_ENV) or getpass.getpass("Wallet password: ")
        creds = store.get_credentials(password=password)

    if creds is not None and creds.private_key:
        return LocalWallet(creds.private_key)
    if not create:
        return None

    generated = LocalWallet.generate()
    store.save(private_key=generated.private_key, wallet=generated.address)
    logger.info(f"Created wallet {generated.address}")
    print(f"Created new wallet: {generated.address}")
    return LocalWallet(generated.private_key)


def _usdc_checker(settings: Settings) -> UsdcBalanceChecker:
    return UsdcBalanceChecker(
        settings.network,
        chain_timeout=settings.chain_timeout,
        custom_rpcs=settings.custom_rpcs,
    )


def _print_funding_prompt(reading: UsdcBalance) -> None:
    print(f"Wallet {reading.address} needs USDC on {reading.network} to pay for requests.")
    print(f"Current balance: ${reading.balance}" + (" (unverified)" if not reading.is_verified else ""))
    print(f"Send at least ${USDC_MIN_BALANCE} USDC, then run: flock-pay fund")


def cmd_chat(args, settings: Settings) -> int:
    store = CredentialStore(settings.credentials_path)
    wallet = _load_wallet(store, create=True)
    checker = _usdc_checker(settings)

    reading = checker.check(wallet.address)
    if reading.is_verified and not reading.has_minimum:
        _print_funding_prompt(reading)
        return 1

    model = args.model or store.current_model()
    messages = [{"role": "user", "content": " ".join(args.message)}]

    with PaymentNegotiator(
        wallet,
        network=settings.network,
        max_payment_usd=settings.max_payment_usd,
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
    ) as negotiator:
        result = negotiator.chat(model, messages)

    if result.payment is not None:
        ledger = PaymentLedger(settings.history_path, max_records=settings.max_records)
        try:
            ledger.record(
                result.payment,
                model,
                input_tokens=int(result.usage.get("prompt_tokens") or 0),
                output_tokens=int(result.usage.get("completion_tokens") or 0),
            )
        except (LedgerError, TypeError, ValueError) as e:
            # Already paid: keep the reply even if the record is rejected
            logger.warning(f"Could not record payment {result.payment.transaction_hash}: {e}")

    print(result.content)
    return 0


def cmd_wallet(args, settings: Settings) -> int:
    store = CredentialStore(settings.credentials_path)
    wallet = _load_wallet(store)
    if wallet is None:
        print("No wallet configured. Run: flock-pay chat <message> to create one.")
        return 1

    reading = _usdc_checker(settings).check(wallet.address)
    ledger = PaymentLedger(settings.history_path, max_records=settings.max_records)

    print(f"Address:     {wallet.address}")
    print(f"Network:     {settings.network}")
    balance = f"${reading.balance} USDC"
    if not reading.is_verified:
        balance += " (unknown: balance check failed)"
    print(f"Balance:     {balance}")
    print(f"Model:       {store.current_model()}")
    print(f"Total spent: ${ledger.total_spent()}")
    return 0


def cmd_payments(args, settings: Settings) -> int:
    ledger = PaymentLedger(settings.history_path, max_records=settings.max_records)
    summary = ledger.summary()

    print(f"Total spent:    ${summary.total_spent} ({summary.total_payments} payments)")
    print(f"Last 24 hours:  ${summary.last_24h_amount} ({summary.last_24h_count} payments)")
    if summary.top_model:
        print(f"Top model:      {summary.top_model}")

    records = ledger.history(args.limit)
    if records:
        print()
    for record in records:
        tokens = f"{record.input_tokens}/{record.output_tokens} tokens"
        print(f"{record.format_datetime()}  ${record.amount:<10} {record.model:<20} {tokens}")
    return 0


def cmd_fund(args, settings: Settings) -> int:
    store = CredentialStore(settings.credentials_path)
    wallet = _load_wallet(store, create=True)
    checker = _usdc_checker(settings)

    print(f"Waiting for at least ${args.min} USDC at {wallet.address} on {settings.network}...")

    def on_check(reading: UsdcBalance) -> None:
        status = "" if reading.is_verified else " (unknown)"
        print(f"  balance: ${reading.balance}{status}")

    try:
        reading = checker.wait_for_funding(
            wallet.address,
            min_balance=args.min,
            max_wait=args.max_wait,
            on_check=on_check,
        )
    except FundingTimeout as e:
        print(str(e))
        return 1

    print(f"Funded: ${reading.balance} USDC")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flock-pay", description="Pay-per-request LLM access via x402")
    parser.add_argument("--log-level", help="Logging level (default from settings)")
    parser.add_argument("--log-file", action="store_true", help="Also append logs to the daily log file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Send a paid chat completion")
    chat.add_argument("message", nargs="+", help="Message text")
    chat.add_argument("--model", help="Model ID (defaults to the stored model)")
    chat.set_defaults(handler=cmd_chat)

    wallet = subparsers.add_parser("wallet", help="Show wallet address, balance and spend")
    wallet.set_defaults(handler=cmd_wallet)

    payments = subparsers.add_parser("payments", help="Show payment summary and history")
    payments.add_argument("limit", nargs="?", type=int, default=10, help="Number of payments to list")
    payments.set_defaults(handler=cmd_payments)

    fund = subparsers.add_parser("fund", help="Wait for USDC funding")
    fund.add_argument("--min", default=USDC_MIN_BALANCE, help="Minimum USDC balance")
    fund.add_argument("--max-wait", type=float, default=DEFAULT_MAX_WAIT, help="Seconds to wait")
    fund.set_defaults(handler=cmd_fund)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ValueError as e:
        configure_logging()
        logger.error(f"Invalid settings: {e}")
        return 2

    # Configure logging before anything else runs
    configure_logging(args.log_level or settings.log_level, get_log_file_path() if args.log_file else None)

    try:
        return args.handler(args, settings)
    except FlockPayError as e:
        print(f"Error [{e.code}]: {e}", file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as e:
        print(f"Error: server returned {e.response.status_code}", file=sys.stderr)
        return 1
    except httpx.HTTPError as e:
        print(f"Error: request failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
