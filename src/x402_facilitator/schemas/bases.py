"""
Base Schema Models for the x402 Facilitator

This module defines the canonical base model and the closed, tagged result
types every pipeline stage returns.  Verification and settlement never raise
across the pipeline boundary; they hand back one of the models below and the
caller branches on its enum fields instead of on exception types or message
text.

Core Classes:
    - CanonicalModel: RFC8785-style Pydantic base model with canonical JSON
    - InvalidReason: Closed set of reason codes returned on the wire
    - ErrorCategory: Error taxonomy (input shape, semantic, ledger state, ...)
    - VerificationResult: Outcome of the verification pipeline
    - SettlementState: States of a single settlement attempt
    - SettlementResult: Outcome of a settlement attempt

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from .https import VerifyResponse, SettleResponse


class CanonicalModel(BaseModel):
    """
    RFC8785-compliant Pydantic base model with canonical JSON serialization.

    Ensures a deterministic JSON representation (sorted keys, no extra
    whitespace) suitable for logging, hashing and comparing results.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        canonical_json = model.to_canonical_json()  # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to RFC8785-compliant canonical JSON string.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json")
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump()


class ErrorCategory(str, Enum):
    """
    Error taxonomy used to map reason codes onto HTTP status classes.

    Attributes:
        INPUT_SHAPE: Malformed field or missing payload, detected before I/O.
        SEMANTIC: Well-formed but invalid (wrong network, expired, bad signature).
        LEDGER_STATE: Invalid given current chain state (funds, used nonce).
        INFRASTRUCTURE: RPC transport failure or timeout.
        SETTLEMENT: The on-chain submission itself failed.
    """
    INPUT_SHAPE = "input_shape"
    SEMANTIC = "semantic"
    LEDGER_STATE = "ledger_state"
    INFRASTRUCTURE = "infrastructure"
    SETTLEMENT = "settlement"

    @property
    def http_status(self) -> int:
        """HTTP status code for a response carrying an error of this category."""
        return 500 if self is ErrorCategory.INFRASTRUCTURE else 400


class InvalidReason(str, Enum):
    """
    Reason codes returned in ``invalidReason`` / ``error``.

    Consumers match on these literal string values, never on human-readable
    text.  The verification codes are listed in the order the validator
    checks them.
    """
    # Request envelope
    INVALID_JSON = "invalid_json"
    MISSING_PAYLOAD_OR_REQUIREMENTS = "missing_payload_or_requirements"
    INVALID_PAYLOAD = "invalid_payload"

    # Authorization validator, in check order
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    UNSUPPORTED_NETWORK = "unsupported_network"
    NETWORK_MISMATCH = "network_mismatch"
    UNSUPPORTED_ASSET = "unsupported_asset"
    INVALID_FROM_ADDRESS = "invalid_from_address"
    INVALID_TO_ADDRESS = "invalid_to_address"
    INVALID_NONCE_FORMAT = "invalid_nonce_format"
    FROM_IS_ZERO_ADDRESS = "from_is_zero_address"
    INVALID_NUMERIC_FIELD = "invalid_numeric_field"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    INSUFFICIENT_PAYMENT = "insufficient_payment"
    AUTHORIZATION_NOT_YET_VALID = "authorization_not_yet_valid"
    AUTHORIZATION_EXPIRED = "authorization_expired"

    # Signature verifier
    INVALID_SIGNATURE = "invalid_signature"

    # Chain state checker
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NONCE_ALREADY_USED = "nonce_already_used"

    # Infrastructure
    INTERNAL_ERROR = "internal_error"

    # Settlement relay
    TRANSACTION_REVERTED = "transaction_reverted"
    NONCE_CONFLICT_RETRIES_EXHAUSTED = "nonce_conflict_retries_exhausted"
    SUBMISSION_TIMEOUT = "submission_timeout"

    @property
    def category(self) -> ErrorCategory:
        return _REASON_CATEGORIES[self]


_REASON_CATEGORIES: Dict[InvalidReason, ErrorCategory] = {
    InvalidReason.INVALID_JSON: ErrorCategory.INPUT_SHAPE,
    InvalidReason.MISSING_PAYLOAD_OR_REQUIREMENTS: ErrorCategory.INPUT_SHAPE,
    InvalidReason.INVALID_PAYLOAD: ErrorCategory.INPUT_SHAPE,
    InvalidReason.UNSUPPORTED_SCHEME: ErrorCategory.SEMANTIC,
    InvalidReason.UNSUPPORTED_NETWORK: ErrorCategory.SEMANTIC,
    InvalidReason.NETWORK_MISMATCH: ErrorCategory.SEMANTIC,
    InvalidReason.UNSUPPORTED_ASSET: ErrorCategory.SEMANTIC,
    InvalidReason.INVALID_FROM_ADDRESS: ErrorCategory.INPUT_SHAPE,
    InvalidReason.INVALID_TO_ADDRESS: ErrorCategory.INPUT_SHAPE,
    InvalidReason.INVALID_NONCE_FORMAT: ErrorCategory.INPUT_SHAPE,
    InvalidReason.FROM_IS_ZERO_ADDRESS: ErrorCategory.INPUT_SHAPE,
    InvalidReason.INVALID_NUMERIC_FIELD: ErrorCategory.INPUT_SHAPE,
    InvalidReason.RECIPIENT_MISMATCH: ErrorCategory.SEMANTIC,
    InvalidReason.INSUFFICIENT_PAYMENT: ErrorCategory.SEMANTIC,
    InvalidReason.AUTHORIZATION_NOT_YET_VALID: ErrorCategory.SEMANTIC,
    InvalidReason.AUTHORIZATION_EXPIRED: ErrorCategory.SEMANTIC,
    InvalidReason.INVALID_SIGNATURE: ErrorCategory.SEMANTIC,
    InvalidReason.INSUFFICIENT_FUNDS: ErrorCategory.LEDGER_STATE,
    InvalidReason.NONCE_ALREADY_USED: ErrorCategory.LEDGER_STATE,
    InvalidReason.INTERNAL_ERROR: ErrorCategory.INFRASTRUCTURE,
    InvalidReason.TRANSACTION_REVERTED: ErrorCategory.SETTLEMENT,
    InvalidReason.NONCE_CONFLICT_RETRIES_EXHAUSTED: ErrorCategory.SETTLEMENT,
    InvalidReason.SUBMISSION_TIMEOUT: ErrorCategory.SETTLEMENT,
}


class VerificationResult(CanonicalModel):
    """
    Terminal, side-effect-free verdict of the verification pipeline.

    Attributes:
        is_valid: Whether every check passed.
        invalid_reason: First violated rule, ``None`` when valid.
        payer: Claimed signer (``authorization.from``) once it is well formed,
            populated on failures too so rejected attempts stay attributable.
        blockchain_state: Optional snapshot of the ledger reads (balance,
            nonce state) when the chain-state stage ran.
        verified_at: Timestamp when the verdict was produced.
    """

    is_valid: bool = Field(..., description="Whether the payload passed every check")
    invalid_reason: Optional[InvalidReason] = Field(None, description="First violated rule")
    payer: Optional[str] = Field(None, description="Authorization signer, once well formed")
    blockchain_state: Optional[Dict[str, Any]] = Field(None, description="Ledger reads used for the verdict")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    @classmethod
    def valid(cls, payer: str, blockchain_state: Optional[Dict[str, Any]] = None) -> "VerificationResult":
        return cls(is_valid=True, payer=payer, blockchain_state=blockchain_state)

    @classmethod
    def invalid(
        cls,
        reason: InvalidReason,
        payer: Optional[str] = None,
        blockchain_state: Optional[Dict[str, Any]] = None,
    ) -> "VerificationResult":
        return cls(is_valid=False, invalid_reason=reason, payer=payer, blockchain_state=blockchain_state)

    def is_success(self) -> bool:
        return self.is_valid and self.invalid_reason is None

    @property
    def error_category(self) -> Optional[ErrorCategory]:
        return self.invalid_reason.category if self.invalid_reason else None

    def to_response(self) -> VerifyResponse:
        """Project onto the wire-level ``VerifyResponse``."""
        return VerifyResponse(
            isValid=self.is_valid,
            invalidReason=self.invalid_reason.value if self.invalid_reason else None,
            payer=self.payer,
        )


class SettlementState(str, Enum):
    """
    States of one settlement attempt.

    Attributes:
        IDLE: Invoked, re-verification not finished yet.
        RETRYING: Verified; fetching nonce, signing and submitting.
        SUBMITTED: Accepted by the network (terminal).
        REJECTED: Re-verification failed (terminal).
        FAILED: Submission failed or retries were exhausted (terminal).
    """
    IDLE = "idle"
    RETRYING = "retrying"
    SUBMITTED = "submitted"
    REJECTED = "rejected"
    FAILED = "failed"


class SettlementResult(CanonicalModel):
    """
    Outcome of a settlement attempt.

    ``error`` is either an ``InvalidReason`` value or, for submission failures
    the relay cannot classify, the node's message verbatim.  ``last_error``
    always keeps the last raw node message for diagnostics; it is not sent on
    the wire.
    """

    success: bool = Field(..., description="Whether the transaction was accepted by the network")
    state: SettlementState = Field(..., description="Terminal state of the attempt")
    payer: Optional[str] = Field(None, description="Authorization signer")
    transaction: Optional[str] = Field(None, description="Transaction hash (0x-prefixed)")
    network: Optional[str] = Field(None, description="CAIP-2 network of the transaction")
    error: Optional[str] = Field(None, description="Reason code or verbatim submission error")
    error_category: Optional[ErrorCategory] = Field(None, description="Taxonomy of the error")
    attempts: int = Field(default=0, ge=0, description="Number of signing/submission attempts made")
    last_error: Optional[str] = Field(None, description="Last raw error message observed from the node")
    execution_time: Optional[float] = Field(None, ge=0, description="Seconds spent in the relay")

    def is_success(self) -> bool:
        return self.success and self.state == SettlementState.SUBMITTED

    def to_response(self) -> SettleResponse:
        """Project onto the wire-level ``SettleResponse``."""
        return SettleResponse(
            success=self.success,
            payer=self.payer,
            transaction=self.transaction,
            network=self.network,
            error=self.error,
        )
