"""
Abstract Base Class for Facilitator Adapters

Defines the interface a chain-specific facilitator implements.  The HTTP
server and the event executors depend only on this interface, so tests and
alternative chains can plug in their own implementation.

Core Classes:
    - FacilitatorAdapter: verify / settle / supported operations
"""

from abc import ABC, abstractmethod
from typing import List

from ..schemas.bases import VerificationResult, SettlementResult
from ..schemas.https import PaymentPayload, PaymentRequirements, SupportedResponse


class FacilitatorAdapter(ABC):
    """
    Abstract Base Class for server-side facilitator adapters.

    Key Responsibilities:
    1. verify: Check a payment payload against requirements without side effects
    2. settle: Re-verify, then execute the payment on-chain and report the outcome
    3. supported: Advertise the (scheme, network) pairs and settlement signers

    Implementations must not raise from ``verify`` or ``settle``; every
    failure, including infrastructure failures, is reported in the returned
    result.
    """

    @abstractmethod
    async def verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerificationResult:
        """
        Verify a payment payload.

        Args:
            payload: Payer's signed payment payload
            requirements: Merchant's payment requirements

        Returns:
            VerificationResult: ``is_valid`` with ``payer``, or the first
            violated rule in ``invalid_reason``.
        """
        pass

    @abstractmethod
    async def settle(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementResult:
        """
        Settle a payment payload on-chain.

        The payload is verified again first; a negative verdict ends the
        settlement in the ``REJECTED`` state without touching the ledger.

        Returns:
            SettlementResult: Transaction hash on success, reason code or
            node message on failure.
        """
        pass

    @abstractmethod
    def supported(self) -> SupportedResponse:
        """Return the supported payment kinds and settlement signer addresses."""
        pass

    def asset_symbols(self) -> List[str]:
        """Symbols of the settlement assets, for the discovery document."""
        return []
