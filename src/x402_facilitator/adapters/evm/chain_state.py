"""
Read-only ledger checks for a validated authorization.

``ChainStateChecker`` issues two independent ``eth_call`` reads against the
token contract, concurrently:

* ``balanceOf(from)`` must cover ``value``           -> ``insufficient_funds``
* ``authorizationState(from, nonce)`` must be false  -> ``nonce_already_used``

When both fail, the balance reason is reported.  Transport or RPC failures
raise ``BlockchainInteractionError``; they are never turned into a
validation verdict here.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from web3 import AsyncWeb3

from .ERC20_ABI import get_token_abi
from .schemas import ValidatedAuthorization
from ...engine.exceptions import BlockchainInteractionError
from ...schemas.bases import InvalidReason


logger = logging.getLogger(__name__)


class ChainStateChecker:
    """
    Ledger reads needed before an authorization can be executed.

    Args:
        w3: ``AsyncWeb3`` instance connected to the read endpoint.
        token_address: Token contract implementing ERC-3009.

    Example:
        checker = ChainStateChecker(w3, USDC_MAINNET.address)
        reason, state = await checker.check(validated)
        if reason is None:
            ...  # executable
    """

    def __init__(self, w3: AsyncWeb3, token_address: str):
        self._w3 = w3
        self._token_address = AsyncWeb3.to_checksum_address(token_address)
        self._contract = w3.eth.contract(address=self._token_address, abi=get_token_abi())

    async def get_balance(self, owner: str) -> int:
        """Token balance of ``owner`` in smallest units."""
        try:
            return int(await self._contract.functions.balanceOf(
                AsyncWeb3.to_checksum_address(owner)
            ).call())
        except Exception as exc:
            raise BlockchainInteractionError(f"balanceOf call failed: {exc}", rpc_method="eth_call") from exc

    async def is_nonce_used(self, authorizer: str, nonce: bytes) -> bool:
        """Whether ``nonce`` has already been consumed (or cancelled) by ``authorizer``."""
        try:
            return bool(await self._contract.functions.authorizationState(
                AsyncWeb3.to_checksum_address(authorizer), nonce
            ).call())
        except Exception as exc:
            raise BlockchainInteractionError(f"authorizationState call failed: {exc}", rpc_method="eth_call") from exc

    async def check(
        self, authorization: ValidatedAuthorization
    ) -> Tuple[Optional[InvalidReason], Dict[str, Any]]:
        """
        Run both reads concurrently and derive the ledger verdict.

        Returns:
            ``(reason, blockchain_state)`` where ``reason`` is ``None`` when the
            authorization is executable, and ``blockchain_state`` records the
            observed balance and nonce state.

        Raises:
            BlockchainInteractionError: If either read fails.
        """
        balance, nonce_used = await asyncio.gather(
            self.get_balance(authorization.authorizer),
            self.is_nonce_used(authorization.authorizer, authorization.nonce_bytes),
        )
        state = {"balance": str(balance), "nonce_used": nonce_used}
        logger.debug(
            "chain state for %s: balance=%s nonce_used=%s",
            authorization.authorizer, balance, nonce_used,
        )

        if balance < authorization.value:
            return InvalidReason.INSUFFICIENT_FUNDS, state
        if nonce_used:
            return InvalidReason.NONCE_ALREADY_USED, state
        return None, state
