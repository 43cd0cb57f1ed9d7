"""
Test suite for the EventBus and the EventChain execution engine.
Tests: 1) Event execution order 2) Hooks and early termination 3) Built-in request flows
"""
import asyncio

import pytest

from x402_facilitator.engine.events import (
    BreakEvent,
    Dependencies,
    EventBus,
    SettledEvent,
    SettleFailedEvent,
    SettleRequestEvent,
    VerifiedEvent,
    VerifyRejectedEvent,
    VerifyRequestEvent,
)
from x402_facilitator.engine.executors import EventChain
from x402_facilitator.schemas.bases import (
    ErrorCategory,
    InvalidReason,
    SettlementResult,
    SettlementState,
    VerificationResult,
)
from x402_facilitator.schemas.https import PaymentPayload, PaymentRequirements
from x402_facilitator.servers.flows import setup_event_bus


@pytest.fixture
def verify_event(make_payload, requirements) -> VerifyRequestEvent:
    return VerifyRequestEvent(
        payload=PaymentPayload.model_validate(make_payload()),
        requirements=PaymentRequirements.model_validate(requirements),
    )


@pytest.fixture
def settle_event(make_payload, requirements) -> SettleRequestEvent:
    return SettleRequestEvent(
        payload=PaymentPayload.model_validate(make_payload()),
        requirements=PaymentRequirements.model_validate(requirements),
    )


async def handle_verify(event, deps):
    return VerifiedEvent(result=VerificationResult.valid(event.payload.authorization.from_))


async def handle_verified(event, deps):
    return BreakEvent(break_reason="done")


# ========================================================================
# EventBus / EventChain
# ========================================================================

@pytest.mark.asyncio
async def test_events_yield_in_production_order(verify_event):
    event_bus = EventBus()
    event_bus.subscribe(VerifyRequestEvent, handle_verify)
    event_bus.subscribe(VerifiedEvent, handle_verified)

    chain = EventChain(event_bus, Dependencies())
    produced = [event async for event in chain.execute(verify_event)]

    assert [type(event) for event in produced] == [VerifiedEvent, BreakEvent]
    assert produced[1].break_reason == "done"


@pytest.mark.asyncio
async def test_break_event_stops_the_chain(verify_event):
    calls = []

    async def after_break(event, deps):
        calls.append(event)

    event_bus = EventBus()
    event_bus.subscribe(VerifyRequestEvent, handle_verify)
    event_bus.subscribe(VerifiedEvent, handle_verified)
    event_bus.subscribe(BreakEvent, after_break)

    chain = EventChain(event_bus, Dependencies())
    [event async for event in chain.execute(verify_event)]

    assert calls == []


@pytest.mark.asyncio
async def test_hooks_run_before_subscribers(verify_event):
    order = []

    async def hook(event, deps):
        await asyncio.sleep(0)
        order.append("hook")

    async def handler(event, deps):
        order.append("handler")
        return None

    event_bus = EventBus()
    event_bus.hook(VerifyRequestEvent, hook)
    event_bus.subscribe(VerifyRequestEvent, handler)

    produced = [event async for event in EventChain(event_bus, Dependencies()).execute(verify_event)]

    assert produced == []
    assert order == ["hook", "handler"]


def test_non_coroutine_handlers_are_refused():
    event_bus = EventBus()
    with pytest.raises(TypeError):
        event_bus.subscribe(VerifyRequestEvent, lambda event, deps: None)
    with pytest.raises(TypeError):
        event_bus.hook(VerifyRequestEvent, lambda event, deps: None)


@pytest.mark.asyncio
async def test_run_until_returns_first_terminal_event(verify_event):
    event_bus = EventBus()
    event_bus.subscribe(VerifyRequestEvent, handle_verify)
    event_bus.subscribe(VerifiedEvent, handle_verified)

    event = await EventChain(event_bus, Dependencies()).run_until(
        verify_event, (VerifiedEvent, VerifyRejectedEvent)
    )
    assert isinstance(event, VerifiedEvent)


@pytest.mark.asyncio
async def test_run_until_without_terminal_event_returns_none(verify_event):
    event = await EventChain(EventBus(), Dependencies()).run_until(verify_event, (VerifiedEvent,))
    assert event is None


@pytest.mark.asyncio
async def test_handler_exception_reaches_consumer(verify_event):
    async def failing(event, deps):
        raise RuntimeError("handler failed")

    event_bus = EventBus()
    event_bus.subscribe(VerifyRequestEvent, failing)

    with pytest.raises(RuntimeError, match="handler failed"):
        await EventChain(event_bus, Dependencies()).run_until(verify_event, (VerifiedEvent,))


@pytest.mark.asyncio
async def test_handler_returning_non_event_is_an_error(verify_event):
    async def wrong(event, deps):
        return {"isValid": True}

    event_bus = EventBus()
    event_bus.subscribe(VerifyRequestEvent, wrong)

    with pytest.raises(TypeError):
        [event async for event in EventChain(event_bus, Dependencies()).execute(verify_event)]


# ========================================================================
# Built-in flows
# ========================================================================

@pytest.mark.asyncio
async def test_verify_flow_valid(verify_event, stub_facilitator):
    chain = EventChain(setup_event_bus(), Dependencies(facilitator=stub_facilitator))
    event = await chain.run_until(verify_event, (VerifiedEvent, VerifyRejectedEvent))

    assert isinstance(event, VerifiedEvent)
    assert event.status_code == 200
    assert stub_facilitator.calls == ["verify"]


@pytest.mark.parametrize(
    "reason, status_code",
    [
        (InvalidReason.INVALID_SIGNATURE, 400),
        (InvalidReason.INSUFFICIENT_FUNDS, 400),
        (InvalidReason.INTERNAL_ERROR, 500),
    ],
)
@pytest.mark.asyncio
async def test_verify_flow_rejection_status(verify_event, make_stub_facilitator, reason, status_code):
    facilitator = make_stub_facilitator(verify_result=VerificationResult.invalid(reason))
    chain = EventChain(setup_event_bus(), Dependencies(facilitator=facilitator))
    event = await chain.run_until(verify_event, (VerifiedEvent, VerifyRejectedEvent))

    assert isinstance(event, VerifyRejectedEvent)
    assert event.status_code == status_code
    assert event.result.invalid_reason == reason


@pytest.mark.asyncio
async def test_settle_flow_success(settle_event, stub_facilitator):
    chain = EventChain(setup_event_bus(), Dependencies(facilitator=stub_facilitator))
    event = await chain.run_until(settle_event, (SettledEvent, SettleFailedEvent))

    assert isinstance(event, SettledEvent)
    assert event.status_code == 200
    assert stub_facilitator.calls == ["settle"]


@pytest.mark.asyncio
async def test_settle_flow_infrastructure_failure(settle_event, make_stub_facilitator):
    facilitator = make_stub_facilitator(settle_result=SettlementResult(
        success=False,
        state=SettlementState.FAILED,
        error="internal_error",
        error_category=ErrorCategory.INFRASTRUCTURE,
    ))
    chain = EventChain(setup_event_bus(), Dependencies(facilitator=facilitator))
    event = await chain.run_until(settle_event, (SettledEvent, SettleFailedEvent))

    assert isinstance(event, SettleFailedEvent)
    assert event.status_code == 500
