"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data.

Flow:
    VerifyRequestEvent -> VerifiedEvent | VerifyRejectedEvent
    SettleRequestEvent -> SettledEvent  | SettleFailedEvent
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Callable, Optional, Awaitable, AsyncGenerator

from pydantic import BaseModel, ConfigDict

from ..adapters.bases import FacilitatorAdapter
from ..schemas.bases import VerificationResult, SettlementResult
from ..schemas.https import PaymentPayload, PaymentRequirements

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Trigger Events (External) ====================

class VerifyRequestEvent(BaseModel, BaseEvent):
    """External trigger: ``POST /verify`` with a parsed body."""
    payload: PaymentPayload
    requirements: PaymentRequirements

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifyRequestEvent(network={self.payload.network}, payer={self.payload.authorization.from_})"


class SettleRequestEvent(BaseModel, BaseEvent):
    """External trigger: ``POST /settle`` with a parsed body."""
    payload: PaymentPayload
    requirements: PaymentRequirements

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SettleRequestEvent(network={self.payload.network}, payer={self.payload.authorization.from_})"


# ==================== Result Events ====================

class VerifiedEvent(BaseModel, BaseEvent):
    """Result: the payload passed every check."""
    result: VerificationResult
    status_code: int = 200

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifiedEvent(payer={self.result.payer})"


class VerifyRejectedEvent(BaseModel, BaseEvent):
    """Result: verification failed; ``status_code`` follows the error category."""
    result: VerificationResult
    status_code: int = 400

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifyRejectedEvent(reason={self.result.invalid_reason})"


class SettledEvent(BaseModel, BaseEvent):
    """Result: the settlement transaction was accepted by the network."""
    result: SettlementResult
    status_code: int = 200

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SettledEvent(transaction={self.result.transaction})"


class SettleFailedEvent(BaseModel, BaseEvent):
    """Result: settlement was rejected or failed."""
    result: SettlementResult
    status_code: int = 400

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SettleFailedEvent(error={self.result.error})"


class BreakEvent(BaseModel, BaseEvent):
    """Internal event to break the event chain."""
    break_reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return "BreakEvent()"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only)."""
    facilitator: Optional[FacilitatorAdapter] = None


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Event dispatcher for publishing and subscribing to events."""

    def __init__(self) -> None:
        """Initialize with empty subscribers and hooks."""
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Register an async handler for the given event class.
        Multiple handlers can be subscribed to the same event type and run in parallel.

        Args:
            event_class: The event class to subscribe to.
            handler: The async handler function to call when the event is published.

        Raises:
            TypeError: If handler is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        self._subscribers.setdefault(event_class, []).append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """
        Register a hook for the given event class.
        Hooks are executed before subscribers when the event is dispatched.

        Raises:
            TypeError: If hook_func is not a coroutine function.
        """
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Hook must be a coroutine function, got {type(hook_func).__name__}")

        self._hooks.setdefault(event_class, []).append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Dispatch an event to all registered hooks and subscribers.
        Hooks run first (concurrently), then all subscribers run in parallel.

        Yields:
            Results from all subscribers as they complete. Yields nothing if no subscribers are registered.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        tasks = [handler(event, deps) for handler in handlers]
        for coro in asyncio.as_completed(tasks):
            result = await coro
            yield result
