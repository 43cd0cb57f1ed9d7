"""
Event chain execution engine.

Provides workflow orchestration on top of EventBus, processing events
recursively until no handler produces a further event.
"""

import asyncio
from typing import AsyncGenerator, Optional, Tuple, Type

from .events import BaseEvent, BreakEvent, EventBus, Dependencies


class EventChain:
    """Executes event-driven workflows by chaining event handler results.

    Events are yielded to the caller as soon as they are produced, so a route
    can answer on the first terminal event.  A handler exception ends the
    chain and is re-raised to the consumer.
    """

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
    ) -> None:
        """
        Args:
            event_bus: The event bus to dispatch events through.
            deps: Dependencies container to pass to handlers.
        """
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute the event chain starting from ``initial_event``.

        Yields:
            Every event produced along the chain, in production order.
        """
        events_queue: asyncio.Queue = asyncio.Queue()
        done = object()

        async def producer():
            try:
                async for event in self._process_event(initial_event):
                    await events_queue.put(event)
            except Exception as exc:
                await events_queue.put(exc)
            finally:
                await events_queue.put(done)

        task = asyncio.create_task(producer())

        try:
            while True:
                item = await events_queue.get()
                if item is done:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if not task.done():
                await task

    async def run_until(
        self,
        initial_event: BaseEvent,
        terminal: Tuple[Type[BaseEvent], ...],
    ) -> Optional[BaseEvent]:
        """Return the first produced event that is an instance of ``terminal``, or ``None``."""
        events = self.execute(initial_event)
        try:
            async for event in events:
                if isinstance(event, terminal):
                    return event
            return None
        finally:
            await events.aclose()

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        if isinstance(event, BreakEvent):
            return

        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if not isinstance(result, BaseEvent):
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
            yield result
            async for e in self._process_event(result):
                yield e
