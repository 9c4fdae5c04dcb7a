"""CLI tests. Network access is replaced by fake balance checkers and httpx.MockTransport."""

import httpx
import pytest

from flockpay import app
from flockpay.app import build_parser, main
from flockpay.models import PaymentLedger
from flockpay.services.funding import STATUS_UNKNOWN, STATUS_VERIFIED, UsdcBalance
from flockpay.services.negotiator import PaymentNegotiator
from flockpay.services.x402 import HEADER_PAYMENT_REQUIRED, HEADER_PAYMENT_RESPONSE, PaymentProof, encode_header
from flockpay.wallet import CredentialStore

from conftest import PAY_TO, TEST_PRIVATE_KEY

CHAT_BODY = {
    "choices": [{"message": {"role": "assistant", "content": "Hello!"}}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3},
}


class TestParser:
    def test_chat_joins_words(self):
        args = build_parser().parse_args(["chat", "hello", "there"])
        assert args.message == ["hello", "there"]

    def test_payments_limit(self):
        assert build_parser().parse_args(["payments", "5"]).limit == 5

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestPaymentsCommand:
    def test_summary_and_history(self, tmp_path, capsys):
        ledger = PaymentLedger(tmp_path / "flock-payment-history.json")
        ledger.record(
            PaymentProof(transaction_hash="0x1", amount="0.0125", network="base", timestamp=0),
            "deepseek-v3.2",
            input_tokens=7,
            output_tokens=9,
        )

        assert main(["payments"]) == 0

        out = capsys.readouterr().out
        assert "$0.0125 (1 payments)" in out
        assert "Top model:      deepseek-v3.2" in out
        assert "7/9 tokens" in out

    def test_empty_history(self, capsys):
        assert main(["payments"]) == 0
        assert "$0.0000 (0 payments)" in capsys.readouterr().out


class TestWalletCommand:
    def test_no_wallet(self, capsys):
        assert main(["wallet"]) == 1
        assert "No wallet configured" in capsys.readouterr().out


def _reading(balance_raw: int, status: str = STATUS_VERIFIED) -> UsdcBalance:
    return UsdcBalance(
        address="0x0",
        balance=f"{balance_raw / 1_000_000:.2f}",
        balance_raw=balance_raw,
        has_minimum=balance_raw >= 10_000,
        network="base",
        status=status,
    )


class ChatServer:
    """402 first, then 200 with the given payment-response payload."""

    def __init__(self, proof_payload=None):
        self.proof_payload = proof_payload
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.requests) == 1:
            return httpx.Response(402, headers={HEADER_PAYMENT_REQUIRED: encode_header({
                "scheme": "exact",
                "network": "eip155:8453",
                "maxAmountRequired": "1000",
                "resource": "https://api.test/v1/chat/completions",
                "payTo": PAY_TO,
            })})
        headers = {}
        if self.proof_payload is not None:
            headers[HEADER_PAYMENT_RESPONSE] = encode_header(self.proof_payload)
        return httpx.Response(200, json=CHAT_BODY, headers=headers)


@pytest.fixture
def chat_env(tmp_path, monkeypatch):
    """Stored wallet plus patched balance checker and HTTP transport."""
    CredentialStore(tmp_path / "flock-credentials.json").save(private_key=TEST_PRIVATE_KEY)

    env = {"reading": _reading(5_000_000), "server": ChatServer(), "checker_kwargs": None}

    class FakeChecker:
        def __init__(self, network, **kwargs):
            env["checker_kwargs"] = kwargs

        def check(self, address):
            return env["reading"]

    def negotiator(wallet, **kwargs):
        client = httpx.Client(transport=httpx.MockTransport(env["server"]))
        return PaymentNegotiator(wallet, client=client, **kwargs)

    monkeypatch.setattr(app, "UsdcBalanceChecker", FakeChecker)
    monkeypatch.setattr(app, "PaymentNegotiator", negotiator)
    return env


class TestChatCommand:
    def test_paid_chat_records_payment(self, chat_env, tmp_path, capsys):
        chat_env["server"] = ChatServer({"transactionHash": "0xabc", "amount": "0.001"})

        assert main(["chat", "hi"]) == 0

        assert capsys.readouterr().out.strip() == "Hello!"
        (record,) = PaymentLedger(tmp_path / "flock-payment-history.json").history()
        assert record.transaction_hash == "0xabc"
        assert record.amount == "0.001"
        assert record.model == "deepseek-v3.2"
        assert record.input_tokens == 12
        assert record.output_tokens == 3

    def test_bad_proof_amount_still_prints_reply(self, chat_env, tmp_path, capsys):
        chat_env["server"] = ChatServer({"transactionHash": "0xabc", "amount": "$0.001"})

        assert main(["chat", "hi"]) == 0

        assert "Hello!" in capsys.readouterr().out
        assert len(chat_env["server"].requests) == 2
        assert PaymentLedger(tmp_path / "flock-payment-history.json").history() == []

    def test_no_proof_records_nothing(self, chat_env, tmp_path, capsys):
        assert main(["chat", "hi"]) == 0
        assert "Hello!" in capsys.readouterr().out
        assert PaymentLedger(tmp_path / "flock-payment-history.json").history() == []

    def test_verified_low_balance_stops_before_request(self, chat_env, capsys):
        chat_env["reading"] = _reading(9_999)

        assert main(["chat", "hi"]) == 1

        assert "needs USDC" in capsys.readouterr().out
        assert chat_env["server"].requests == []

    def test_unknown_balance_proceeds(self, chat_env, capsys):
        chat_env["reading"] = _reading(0, status=STATUS_UNKNOWN)

        assert main(["chat", "hi"]) == 0

        assert "Hello!" in capsys.readouterr().out
        assert len(chat_env["server"].requests) == 2

    def test_custom_rpcs_reach_balance_checker(self, chat_env, tmp_path):
        (tmp_path / "settings.json").write_text('{"custom_rpcs": {"base": "http://127.0.0.1:8545"}}')

        main(["chat", "hi"])

        assert chat_env["checker_kwargs"]["custom_rpcs"] == {"base": "http://127.0.0.1:8545"}
