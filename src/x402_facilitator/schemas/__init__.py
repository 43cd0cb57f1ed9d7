from .bases import CanonicalModel, ErrorCategory, InvalidReason, VerificationResult, SettlementState, SettlementResult
from .https import (
    Authorization,
    ExactPayload,
    PaymentPayload,
    PaymentRequirements,
    VerifyRequest,
    VerifyResponse,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    HealthResponse,
    AgentCard,
)
from .versions import ProtocolVersion

__all__ = [
    "CanonicalModel",
    "ErrorCategory",
    "InvalidReason",
    "VerificationResult",
    "SettlementState",
    "SettlementResult",
    "Authorization",
    "ExactPayload",
    "PaymentPayload",
    "PaymentRequirements",
    "VerifyRequest",
    "VerifyResponse",
    "SettleResponse",
    "SupportedKind",
    "SupportedResponse",
    "HealthResponse",
    "AgentCard",
    "ProtocolVersion",
]
