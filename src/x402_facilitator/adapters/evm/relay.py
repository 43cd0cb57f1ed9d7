"""
Settlement relay: submits verified ERC-3009 authorizations on-chain.

The relay signs a ``transferWithAuthorization`` call with its own gas-paying
account and broadcasts it.  Confirmation is fire-and-forget: a transaction
accepted by the node is reported as submitted without waiting for a receipt.

Several settlements may run at once against the same relay account, without
any in-process lock.  Each attempt therefore reads the account's *pending*
transaction nonce from the submission endpoint, and a submission rejected
because that nonce was taken in the meantime is retried with a freshly read
nonce, up to ``MAX_NONCE_RETRIES`` attempts in total.  The ledger rejects
stale nonces atomically, so concurrent settlements converge.

Classes:
    - RelayAccount: The relay's signing key and address.
    - LedgerPort: Abstract ledger operations the relay needs.
    - Web3LedgerPort: ``AsyncWeb3`` implementation of ``LedgerPort``.
    - SettlementRelay: Bounded sign-submit-retry state machine.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import Web3RPCError

from .constants import (
    FEE_BUFFER_DENOMINATOR,
    FEE_BUFFER_NUMERATOR,
    MAX_NONCE_RETRIES,
    NONCE_CONFLICT_MARKERS,
    REVERT_MARKERS,
    SETTLEMENT_GAS_LIMIT,
    SettlementAssetConfig,
    USDC_MAINNET,
)
from .ERC20_ABI import encode_transfer_with_authorization
from .schemas import EVMECDSASignature, ValidatedAuthorization
from ...engine.exceptions import (
    BlockchainInteractionError,
    ConfigurationError,
    SubmissionRejectedError,
    SubmissionTimeoutError,
)
from ...schemas.bases import ErrorCategory, InvalidReason, SettlementResult, SettlementState


logger = logging.getLogger(__name__)


def _to_hex(value: Any) -> str:
    """Normalize HexBytes/bytes/str hashes to a 0x-prefixed lowercase string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


class RelayAccount:
    """
    The facilitator's gas-paying account.

    Args:
        private_key: 0x-prefixed hex private key.

    Raises:
        ConfigurationError: If the key is missing or malformed.
    """

    def __init__(self, private_key: str):
        if not private_key:
            raise ConfigurationError("Relay private key not provided (set RELAY_PRIVATE_KEY)")
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:
            raise ConfigurationError("Relay private key is malformed") from exc
        self.address: str = AsyncWeb3.to_checksum_address(self._account.address)

    def sign_transaction(self, tx: Dict[str, Any]) -> Tuple[bytes, str]:
        """Sign ``tx`` and return ``(raw_transaction, tx_hash)``."""
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction), _to_hex(signed.hash)

    def __repr__(self) -> str:
        return f"RelayAccount(address={self.address!r})"


class LedgerPort(ABC):
    """Ledger operations used by ``SettlementRelay``."""

    @abstractmethod
    async def get_pending_nonce(self, address: str) -> int:
        """Transaction count of ``address`` including pending transactions."""

    @abstractmethod
    async def get_gas_price(self) -> int:
        """Current gas price in wei."""

    @abstractmethod
    async def send_raw_transaction(self, raw_transaction: bytes, tx_hash: str) -> str:
        """
        Broadcast a signed transaction and return its hash.

        Raises:
            SubmissionRejectedError: The node answered with an error.
            SubmissionTimeoutError: The request timed out after signing.
            BlockchainInteractionError: Any other transport failure.
        """


def rpc_error_message(exc: Exception) -> str:
    """
    Extract the node's error text from a web3 RPC exception.

    Prefers ``rpc_response["error"]["message"]``; falls back to the
    exception's message.
    """
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict):
        error = response.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    message = getattr(exc, "message", None)
    if message:
        return str(message)
    return str(exc)


class Web3LedgerPort(LedgerPort):
    """
    ``LedgerPort`` over ``AsyncWeb3``.

    Args:
        read_w3: Instance used for gas price reads.
        submit_w3: Instance used for the pending nonce and for submission.
            Both must hit the same node so the pending nonce reflects the
            relay's own in-flight transactions.  Defaults to ``read_w3``.
    """

    def __init__(self, read_w3: AsyncWeb3, submit_w3: Optional[AsyncWeb3] = None):
        self._read_w3 = read_w3
        self._submit_w3 = submit_w3 or read_w3

    async def get_pending_nonce(self, address: str) -> int:
        try:
            return int(await self._submit_w3.eth.get_transaction_count(address, "pending"))
        except Exception as exc:
            raise BlockchainInteractionError(
                f"Failed to fetch pending nonce: {exc}", rpc_method="eth_getTransactionCount"
            ) from exc

    async def get_gas_price(self) -> int:
        try:
            return int(await self._read_w3.eth.gas_price)
        except Exception as exc:
            raise BlockchainInteractionError(f"Failed to fetch gas price: {exc}", rpc_method="eth_gasPrice") from exc

    async def send_raw_transaction(self, raw_transaction: bytes, tx_hash: str) -> str:
        try:
            returned = await self._submit_w3.eth.send_raw_transaction(raw_transaction)
        except Web3RPCError as exc:
            raise SubmissionRejectedError(rpc_error_message(exc), tx_hash=tx_hash) from exc
        except asyncio.TimeoutError as exc:
            raise SubmissionTimeoutError("Transaction submission timed out", tx_hash=tx_hash) from exc
        except Exception as exc:
            raise BlockchainInteractionError(
                f"Failed to broadcast transaction: {exc}", rpc_method="eth_sendRawTransaction"
            ) from exc
        return _to_hex(returned)


def is_nonce_conflict(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in NONCE_CONFLICT_MARKERS)


def is_revert(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in REVERT_MARKERS)


class SettlementRelay:
    """
    Signs and submits ``transferWithAuthorization`` transactions.

    ``settle`` never raises; every outcome is a ``SettlementResult`` whose
    ``state`` is ``SUBMITTED`` or ``FAILED``.  The relay assumes the
    authorization was verified immediately before the call.

    Args:
        account: Relay signing account.
        ledger: Ledger operations (``Web3LedgerPort`` in production).
        asset: Token and chain the transaction targets.
        max_attempts: Total attempts, including the first.
        clock: Monotonic clock used to measure ``execution_time``.
    """

    def __init__(
        self,
        account: RelayAccount,
        ledger: LedgerPort,
        asset: SettlementAssetConfig = USDC_MAINNET,
        max_attempts: int = MAX_NONCE_RETRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.account = account
        self.ledger = ledger
        self.asset = asset
        self.max_attempts = max_attempts
        self._clock = clock
        self._token_address = AsyncWeb3.to_checksum_address(asset.address)

    def build_transaction(
        self, authorization: ValidatedAuthorization, nonce: int, gas_price: int
    ) -> Dict[str, Any]:
        """EIP-1559 transaction dict calling ``transferWithAuthorization``."""
        signature = EVMECDSASignature.from_hex(authorization.signature)
        data = encode_transfer_with_authorization(
            authorization.authorizer,
            authorization.recipient,
            authorization.value,
            authorization.valid_after,
            authorization.valid_before,
            authorization.nonce_bytes,
            signature.v,
            signature.r_bytes,
            signature.s_bytes,
        )
        return {
            "type": 2,
            "chainId": self.asset.chain_id,
            "nonce": nonce,
            "to": self._token_address,
            "data": "0x" + data.hex(),
            "gas": SETTLEMENT_GAS_LIMIT,
            "maxFeePerGas": gas_price * FEE_BUFFER_NUMERATOR // FEE_BUFFER_DENOMINATOR,
            "maxPriorityFeePerGas": 0,
            "value": 0,
        }

    async def settle(self, authorization: ValidatedAuthorization) -> SettlementResult:
        """
        Sign and submit ``authorization``, retrying on relay nonce conflicts.

        Outcomes:
            * accepted -> ``SUBMITTED`` with the transaction hash
            * nonce conflict on every attempt -> ``nonce_conflict_retries_exhausted``
            * revert-class rejection -> ``transaction_reverted``
            * any other rejection -> the node message, verbatim
            * submission timeout -> ``submission_timeout`` with the local hash
            * transport failure -> ``internal_error``
        """
        started = self._clock()
        payer = authorization.authorizer
        network = self.asset.caip2
        last_error: Optional[str] = None

        def _done(**fields: Any) -> SettlementResult:
            fields.setdefault("payer", payer)
            fields.setdefault("last_error", last_error)
            return SettlementResult(execution_time=max(self._clock() - started, 0.0), **fields)

        def _failed(error: str, category: ErrorCategory, attempts: int, **fields: Any) -> SettlementResult:
            return _done(
                success=False,
                state=SettlementState.FAILED,
                error=error,
                error_category=category,
                attempts=attempts,
                **fields,
            )

        attempt = 0
        for attempt in range(1, self.max_attempts + 1):
            tx_hash: Optional[str] = None
            try:
                gas_price, nonce = await asyncio.gather(
                    self.ledger.get_gas_price(),
                    self.ledger.get_pending_nonce(self.account.address),
                )
                tx = self.build_transaction(authorization, nonce, gas_price)
                raw_transaction, tx_hash = self.account.sign_transaction(tx)
                logger.debug("settlement attempt %d for %s: relay nonce %d", attempt, payer, nonce)
                returned_hash = await self.ledger.send_raw_transaction(raw_transaction, tx_hash)

            except SubmissionRejectedError as exc:
                last_error = exc.node_message
                if is_nonce_conflict(exc.node_message):
                    logger.warning(
                        "relay nonce conflict on attempt %d/%d for %s: %s",
                        attempt, self.max_attempts, payer, exc.node_message,
                    )
                    continue
                if is_revert(exc.node_message):
                    logger.error("settlement for %s reverted: %s", payer, exc.node_message)
                    return _failed(
                        InvalidReason.TRANSACTION_REVERTED.value, ErrorCategory.SETTLEMENT, attempt, network=network
                    )
                logger.error("settlement for %s rejected: %s", payer, exc.node_message)
                return _failed(exc.node_message, ErrorCategory.SETTLEMENT, attempt, network=network)

            except SubmissionTimeoutError as exc:
                last_error = str(exc)
                logger.error("settlement submission for %s timed out; tx %s may be pending", payer, exc.tx_hash)
                return _failed(
                    InvalidReason.SUBMISSION_TIMEOUT.value,
                    ErrorCategory.SETTLEMENT,
                    attempt,
                    network=network,
                    transaction=exc.tx_hash or tx_hash,
                )

            except BlockchainInteractionError as exc:
                last_error = str(exc)
                logger.exception("settlement for %s failed on %s", payer, exc.rpc_method)
                return _failed(InvalidReason.INTERNAL_ERROR.value, ErrorCategory.INFRASTRUCTURE, attempt)

            logger.info("settlement for %s submitted: %s (attempt %d)", payer, returned_hash, attempt)
            return _done(
                success=True,
                state=SettlementState.SUBMITTED,
                transaction=returned_hash,
                network=network,
                attempts=attempt,
            )

        logger.error(
            "settlement for %s gave up after %d nonce conflicts; last error: %s",
            payer, attempt, last_error,
        )
        return _failed(
            InvalidReason.NONCE_CONFLICT_RETRIES_EXHAUSTED.value, ErrorCategory.SETTLEMENT, attempt, network=network
        )
