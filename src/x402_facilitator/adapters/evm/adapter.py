"""
EVM facilitator adapter.

``EVMFacilitator`` composes the verification pipeline

    validate_authorization -> verify_authorization_signature -> ChainStateChecker

and hands positive verdicts to the ``SettlementRelay`` on settlement.  It is
the only component that reads the wall clock and the only place where
ledger exceptions are turned into reason codes.
"""

import logging
import time
from typing import Callable, List, Optional, Tuple

from web3 import AsyncWeb3

from ..bases import FacilitatorAdapter
from .chain_state import ChainStateChecker
from .constants import (
    SUPPORTED_SCHEME,
    SettlementAssetConfig,
    USDC_MAINNET,
    get_relay_private_key_from_env,
    get_request_timeout_from_env,
    get_rpc_url_from_env,
    get_submit_rpc_url_from_env,
    require_env,
)
from .relay import LedgerPort, RelayAccount, SettlementRelay, Web3LedgerPort
from .schemas import ValidatedAuthorization
from .verifies import validate_authorization, verify_authorization_signature
from ...engine.exceptions import BlockchainInteractionError
from ...schemas.bases import (
    ErrorCategory,
    InvalidReason,
    SettlementResult,
    SettlementState,
    VerificationResult,
)
from ...schemas.https import PaymentPayload, PaymentRequirements, SupportedKind, SupportedResponse
from ...schemas.versions import CURRENT_VERSION


logger = logging.getLogger(__name__)


class EVMFacilitator(FacilitatorAdapter):
    """
    Facilitator for the ``exact`` scheme on a single EVM network and token.

    Configuration is resolved from arguments first and the environment
    second (``RELAY_PRIVATE_KEY``, ``RPC_URL``, ``SUBMIT_RPC_URL``,
    ``FACILITATOR_REQUEST_TIMEOUT``).

    Args:
        private_key: Relay account key.
        rpc_url: Endpoint for ledger reads.
        submit_rpc_url: Endpoint for the relay's pending nonce and for
            submission; defaults to ``rpc_url``.
        request_timeout: Outbound RPC timeout in seconds.
        asset: Settlement network and token.
        chain_state: Pre-built checker (tests); built from ``rpc_url`` otherwise.
        ledger: Pre-built ledger port (tests); built from the RPC URLs otherwise.
        clock: Wall clock returning unix seconds, used as ``now`` for validity windows.

    Raises:
        ConfigurationError: If the relay key or a needed RPC URL is missing.

    Example:
        facilitator = EVMFacilitator()
        verdict = await facilitator.verify(payload, requirements)
        if verdict.is_success():
            outcome = await facilitator.settle(payload, requirements)
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        rpc_url: Optional[str] = None,
        submit_rpc_url: Optional[str] = None,
        request_timeout: Optional[float] = None,
        asset: SettlementAssetConfig = USDC_MAINNET,
        *,
        chain_state: Optional[ChainStateChecker] = None,
        ledger: Optional[LedgerPort] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.asset = asset
        self._clock = clock
        self._request_timeout = request_timeout or get_request_timeout_from_env()

        self.account = RelayAccount(
            require_env(private_key or get_relay_private_key_from_env(), "RELAY_PRIVATE_KEY")
        )

        if chain_state is None or ledger is None:
            read_url = require_env(rpc_url or get_rpc_url_from_env(), "RPC_URL")
            submit_url = submit_rpc_url or get_submit_rpc_url_from_env() or read_url
            read_w3 = self._get_web3_instance(read_url)
            submit_w3 = read_w3 if submit_url == read_url else self._get_web3_instance(submit_url)
            if chain_state is None:
                chain_state = ChainStateChecker(read_w3, asset.address)
            if ledger is None:
                ledger = Web3LedgerPort(read_w3, submit_w3)

        self.chain_state = chain_state
        self.relay = SettlementRelay(self.account, ledger, asset=asset)

    def _get_web3_instance(self, rpc_url: str) -> AsyncWeb3:
        """AsyncWeb3 over HTTP with the configured request timeout."""
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": self._request_timeout},
        ))

    @property
    def relay_address(self) -> str:
        return self.account.address

    async def _run_pipeline(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> Tuple[VerificationResult, Optional[ValidatedAuthorization]]:
        now = int(self._clock())

        outcome = validate_authorization(payload, requirements, now, self.asset)
        if isinstance(outcome, VerificationResult):
            return outcome, None
        authorization = outcome

        if not verify_authorization_signature(authorization, self.asset):
            return VerificationResult.invalid(InvalidReason.INVALID_SIGNATURE, payer=authorization.authorizer), None

        try:
            reason, blockchain_state = await self.chain_state.check(authorization)
        except BlockchainInteractionError:
            logger.exception("chain state check failed for %s", authorization.authorizer)
            return VerificationResult.invalid(InvalidReason.INTERNAL_ERROR, payer=authorization.authorizer), None

        if reason is not None:
            return VerificationResult.invalid(
                reason, payer=authorization.authorizer, blockchain_state=blockchain_state
            ), None
        return VerificationResult.valid(authorization.authorizer, blockchain_state=blockchain_state), authorization

    async def verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerificationResult:
        result, _ = await self._run_pipeline(payload, requirements)
        if result.is_valid:
            logger.info("verified payment from %s", result.payer)
        else:
            logger.info("rejected payment from %s: %s", result.payer, result.invalid_reason.value)
        return result

    async def settle(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementResult:
        result, authorization = await self._run_pipeline(payload, requirements)
        if authorization is None:
            logger.info("settlement rejected for %s: %s", result.payer, result.invalid_reason.value)
            return SettlementResult(
                success=False,
                state=SettlementState.REJECTED,
                payer=result.payer,
                error=result.invalid_reason.value,
                error_category=result.error_category,
            )

        try:
            return await self.relay.settle(authorization)
        except Exception:
            logger.exception("unexpected settlement failure for %s", authorization.authorizer)
            return SettlementResult(
                success=False,
                state=SettlementState.FAILED,
                payer=authorization.authorizer,
                error=InvalidReason.INTERNAL_ERROR.value,
                error_category=ErrorCategory.INFRASTRUCTURE,
            )

    def supported(self) -> SupportedResponse:
        return SupportedResponse(
            kinds=[
                SupportedKind(
                    x402Version=int(CURRENT_VERSION),
                    scheme=SUPPORTED_SCHEME,
                    network=self.asset.caip2,
                )
            ],
            extensions=[],
            signers={"eip155:*": [self.relay_address]},
        )

    def asset_symbols(self) -> List[str]:
        return [self.asset.symbol]
