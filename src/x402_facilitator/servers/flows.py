"""
Built-in event handlers for the facilitator workflow.

Implements the two request flows: payload verification and settlement.
Handlers delegate to the injected ``FacilitatorAdapter`` and turn its
tagged results into result events carrying the HTTP status code.
"""

from ..engine.events import (
    EventBus,
    Dependencies,
    VerifyRequestEvent,
    SettleRequestEvent,
    VerifiedEvent,
    VerifyRejectedEvent,
    SettledEvent,
    SettleFailedEvent,
)
from ..schemas.bases import VerificationResult, SettlementResult


# ==================== Event Handlers ====================

async def handle_verify_request(
    event: VerifyRequestEvent,
    deps: Dependencies
) -> VerifiedEvent | VerifyRejectedEvent:
    """Run the verification pipeline."""
    result: VerificationResult = await deps.facilitator.verify(event.payload, event.requirements)

    if result.is_success():
        return VerifiedEvent(result=result)
    return VerifyRejectedEvent(result=result, status_code=result.error_category.http_status)


async def handle_settle_request(
    event: SettleRequestEvent,
    deps: Dependencies
) -> SettledEvent | SettleFailedEvent:
    """Re-verify and settle on-chain."""
    result: SettlementResult = await deps.facilitator.settle(event.payload, event.requirements)

    if result.is_success():
        return SettledEvent(result=result)
    status_code = result.error_category.http_status if result.error_category else 400
    return SettleFailedEvent(result=result, status_code=status_code)


# ==================== Event Bus Setup ====================

def setup_event_bus() -> EventBus:
    """Initialize event bus with built-in handlers."""
    event_bus = EventBus()

    event_bus.subscribe(VerifyRequestEvent, handle_verify_request)
    event_bus.subscribe(SettleRequestEvent, handle_settle_request)

    return event_bus
