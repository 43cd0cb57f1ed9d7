"""
HTTP Request/Response Schema Models for the x402 Facilitator

This module defines the Pydantic models exchanged with resource servers over
HTTP.  Field names follow the x402 wire format (camelCase), so every model
serializes with ``by_alias=True`` / the literal field name.

The facilitator flow consists of:
1. A resource server receives a ``PaymentPayload`` from a payer and forwards it,
   together with its own ``PaymentRequirements``, to ``POST /verify``.
2. On a positive verdict it calls ``POST /settle`` with the same body.
3. ``GET /supported`` advertises the single (scheme, network) pair and the
   facilitator's settlement account.
4. ``GET /agent.json`` serves the same facts as a discovery document for
   agents and directories.

The payload models are deliberately lenient: authorization fields are kept
as received (strings, or integers for numeric fields) and only parsed by the
authorization validator, which reports the precise reason code on failure.
"""

from typing import Optional, List, Dict, Any, Union

from pydantic import BaseModel, Field, ConfigDict


# ============================================================================
# Payment payload (signed by the payer)
# ============================================================================

class Authorization(BaseModel):
    """EIP-3009 ``TransferWithAuthorization`` fields as sent by the payer.

    Attributes:
        from_: Payer address (wire name ``from``).
        to: Recipient address.
        value: Amount in the asset's smallest unit.
        validAfter: Unix timestamp, inclusive lower bound of validity.
        validBefore: Unix timestamp, exclusive upper bound of validity.
        nonce: 32-byte hex replay-protection token.
    """
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from", description="Payer address")
    to: str = Field(..., description="Recipient address")
    value: Union[str, int] = Field(..., description="Amount in smallest units")
    validAfter: Union[str, int] = Field(..., description="Validity start (unix seconds)")
    validBefore: Union[str, int] = Field(..., description="Validity end, exclusive (unix seconds)")
    nonce: str = Field(..., description="bytes32 hex nonce")


class ExactPayload(BaseModel):
    """Scheme-specific body of an ``exact`` payment: signature + authorization."""
    signature: str = Field(..., description="65-byte hex ECDSA signature (r || s || v)")
    authorization: Authorization


class PaymentPayload(BaseModel):
    """Signed payment created client-side; read-only for the facilitator."""
    x402Version: int = Field(default=2, description="x402 protocol version")
    scheme: str = Field(..., description="Payment scheme (only 'exact' is supported)")
    network: str = Field(..., description="CAIP-2 network identifier")
    payload: ExactPayload

    @property
    def authorization(self) -> Authorization:
        return self.payload.authorization

    @property
    def signature(self) -> str:
        return self.payload.signature


# ============================================================================
# Payment requirements (authored by the merchant)
# ============================================================================

class PaymentRequirements(BaseModel):
    """What the merchant asks to be paid, independent of any payload.

    Attributes:
        scheme: Payment scheme.
        network: CAIP-2 network identifier.
        amount: Minimum amount in the asset's smallest unit.
        asset: Token contract address.
        payTo: Recipient that ``authorization.to`` must equal.
        maxTimeoutSeconds: Merchant's timeout hint.
        extra: Optional scheme metadata (EIP-712 ``name`` / ``version``).
    """
    scheme: str
    network: str
    amount: Union[str, int]
    asset: str
    payTo: str
    maxTimeoutSeconds: int = Field(default=60, ge=0)
    extra: Optional[Dict[str, Any]] = None


class VerifyRequest(BaseModel):
    """Body shared by ``POST /verify`` and ``POST /settle``."""
    paymentPayload: PaymentPayload
    paymentRequirements: PaymentRequirements


# ============================================================================
# Responses
# ============================================================================

class VerifyResponse(BaseModel):
    """Wire verdict of ``POST /verify``."""
    isValid: bool
    invalidReason: Optional[str] = None
    payer: Optional[str] = None


class SettleResponse(BaseModel):
    """Wire outcome of ``POST /settle``."""
    success: bool
    payer: Optional[str] = None
    transaction: Optional[str] = None
    network: Optional[str] = None
    error: Optional[str] = None


class SupportedKind(BaseModel):
    x402Version: int = 2
    scheme: str
    network: str


class SupportedResponse(BaseModel):
    """Body of ``GET /supported``.

    Attributes:
        kinds: Supported (version, scheme, network) combinations.
        extensions: Protocol extensions understood by this facilitator.
        signers: CAIP-2 pattern -> addresses that submit settlements.
    """
    kinds: List[SupportedKind]
    extensions: List[str] = Field(default_factory=list)
    signers: Dict[str, List[str]] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str = "healthy"


class AgentEndpoints(BaseModel):
    verify: str = "/verify"
    settle: str = "/settle"
    supported: str = "/supported"
    health: str = "/health"


class AgentX402Info(BaseModel):
    """x402 section of the discovery document."""
    version: int = 2
    scheme: str
    network: str
    baseUrl: Optional[str] = None
    endpoints: AgentEndpoints = Field(default_factory=AgentEndpoints)
    assets: List[str] = Field(default_factory=list)
    fees: str = "0"


class AgentCard(BaseModel):
    """Body of ``GET /agent.json``, the facilitator's discovery document.

    Attributes:
        name: Display name of the facilitator.
        description: Human-readable summary.
        version: Service version.
        type: Always ``facilitator``.
        protocol: Always ``x402``.
        x402: Protocol version, scheme, network, endpoints, assets and fees.
        relayAddress: Account that submits settlements and pays gas.
    """
    name: str = "x402 facilitator"
    description: str = (
        "Fee-free x402 payment facilitator settling USDC via EIP-3009 transferWithAuthorization."
    )
    version: str = "0.1.0"
    type: str = "facilitator"
    protocol: str = "x402"
    x402: AgentX402Info
    relayAddress: Optional[str] = None
