"""
Shared fixtures: deterministic keys, a signed ``exact`` payment and the
matching merchant requirements, plus fakes for the ledger-facing ports.
"""

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from eth_account import Account

from x402_facilitator.adapters.bases import FacilitatorAdapter
from x402_facilitator.adapters.evm.constants import USDC_MAINNET
from x402_facilitator.adapters.evm.relay import LedgerPort
from x402_facilitator.adapters.evm.signatures import sign_erc3009_authorization
from x402_facilitator.engine.exceptions import SubmissionRejectedError
from x402_facilitator.schemas.bases import SettlementResult, SettlementState, VerificationResult
from x402_facilitator.schemas.https import SupportedKind, SupportedResponse


# Test keys (do not use in production!)
PAYER_PRIVATE_KEY = "0x1234567890123456789012345678901234567890123456789012345678901234"
RELAY_PRIVATE_KEY = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcdefabcdefabcdefabcdefabcd"
PAY_TO = "0x209693bc6afc0c5328ba36faf03c514ef312287c"
NONCE = "0x" + "11" * 32
NOW = 1_700_000_000
AMOUNT = 1_000_000


class FakeLedger(LedgerPort):
    """
    In-memory ledger port.

    ``outcomes`` is consumed one entry per submission: ``None`` accepts the
    transaction, an exception instance is raised as-is, a string is raised
    as a node rejection.  Every pending-nonce read returns ``pending_nonce``
    and then increments it when ``advance_nonce`` is set.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None, gas_price: int = 10_000_000_000, pending_nonce: int = 7, advance_nonce: bool = False):
        self.outcomes = list(outcomes or [])
        self.gas_price = gas_price
        self.pending_nonce = pending_nonce
        self.advance_nonce = advance_nonce
        self.nonce_reads: List[int] = []
        self.submitted: List[bytes] = []

    async def get_pending_nonce(self, address: str) -> int:
        nonce = self.pending_nonce
        self.nonce_reads.append(nonce)
        if self.advance_nonce:
            self.pending_nonce += 1
        return nonce

    async def get_gas_price(self) -> int:
        return self.gas_price

    async def send_raw_transaction(self, raw_transaction: bytes, tx_hash: str) -> str:
        self.submitted.append(raw_transaction)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is None:
            return tx_hash
        if isinstance(outcome, Exception):
            raise outcome
        raise SubmissionRejectedError(outcome, tx_hash=tx_hash)


@pytest.fixture
def payer_address() -> str:
    return Account.from_key(PAYER_PRIVATE_KEY).address


@pytest.fixture
def relay_address() -> str:
    return Account.from_key(RELAY_PRIVATE_KEY).address


@pytest.fixture
def make_payload() -> Callable[..., Dict[str, Any]]:
    """Factory for wire-format payment payloads signed by the payer key.

    Keyword overrides replace authorization fields after signing, so they
    can be used to produce malformed or tampered payloads.
    """

    def _make(
        *,
        value: int = AMOUNT,
        valid_after: int = NOW - 600,
        valid_before: int = NOW + 600,
        nonce: str = NONCE,
        recipient: str = PAY_TO,
        private_key: str = PAYER_PRIVATE_KEY,
        scheme: str = "exact",
        network: str = USDC_MAINNET.caip2,
        signature: Optional[str] = None,
        **authorization_overrides: Any,
    ) -> Dict[str, Any]:
        exact = sign_erc3009_authorization(
            private_key=private_key,
            recipient=recipient,
            value=value,
            valid_after=valid_after,
            valid_before=valid_before,
            nonce=nonce,
        )
        authorization = exact.authorization.model_dump(by_alias=True)
        authorization.update(authorization_overrides)
        return {
            "x402Version": 2,
            "scheme": scheme,
            "network": network,
            "payload": {
                "signature": signature if signature is not None else exact.signature,
                "authorization": authorization,
            },
        }

    return _make


@pytest.fixture
def requirements() -> Dict[str, Any]:
    return {
        "scheme": "exact",
        "network": USDC_MAINNET.caip2,
        "amount": str(AMOUNT),
        "asset": USDC_MAINNET.address,
        "payTo": PAY_TO,
        "maxTimeoutSeconds": 60,
        "extra": {"name": USDC_MAINNET.name, "version": USDC_MAINNET.version},
    }


@pytest.fixture
def chain_state_ok() -> AsyncMock:
    """ChainStateChecker stand-in reporting an executable authorization."""
    checker = AsyncMock()
    checker.check.return_value = (None, {"balance": str(AMOUNT * 10), "nonce_used": False})
    return checker


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def make_ledger() -> Callable[..., FakeLedger]:
    return FakeLedger


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def pay_to() -> str:
    return PAY_TO


@pytest.fixture
def relay_private_key() -> str:
    return RELAY_PRIVATE_KEY


@pytest.fixture
def payer_private_key() -> str:
    return PAYER_PRIVATE_KEY


class StubFacilitator(FacilitatorAdapter):
    """
    Adapter returning canned results and recording its calls.

    ``verify_result`` / ``settle_result`` may be exception instances, which
    are raised instead of returned.
    """

    def __init__(self, verify_result=None, settle_result=None):
        self.verify_result = verify_result or VerificationResult.valid(PAY_TO)
        self.settle_result = settle_result or SettlementResult(
            success=True,
            state=SettlementState.SUBMITTED,
            payer=PAY_TO,
            transaction="0x" + "ee" * 32,
            network=USDC_MAINNET.caip2,
            attempts=1,
        )
        self.calls: List[str] = []

    async def verify(self, payload, requirements):
        self.calls.append("verify")
        if isinstance(self.verify_result, Exception):
            raise self.verify_result
        return self.verify_result

    async def settle(self, payload, requirements):
        self.calls.append("settle")
        if isinstance(self.settle_result, Exception):
            raise self.settle_result
        return self.settle_result

    def supported(self) -> SupportedResponse:
        return SupportedResponse(
            kinds=[SupportedKind(scheme="exact", network=USDC_MAINNET.caip2)],
            signers={"eip155:*": [Account.from_key(RELAY_PRIVATE_KEY).address]},
        )


@pytest.fixture
def stub_facilitator() -> StubFacilitator:
    return StubFacilitator()


@pytest.fixture
def make_stub_facilitator() -> Callable[..., StubFacilitator]:
    return StubFacilitator


@pytest.fixture
def verify_request(make_payload, requirements) -> Dict[str, Any]:
    return {"paymentPayload": make_payload(), "paymentRequirements": requirements}
