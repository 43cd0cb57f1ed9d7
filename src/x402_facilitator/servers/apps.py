"""
x402 Facilitator Server - Event-driven FastAPI wrapper.

Exposes the facilitator over HTTP:

    POST /verify     VerifyRequest -> VerifyResponse
    POST /settle     VerifyRequest -> SettleResponse
    GET  /supported  SupportedResponse
    GET  /health     HealthResponse
    GET  /agent.json AgentCard (discovery document)
    GET  /           service banner

Status codes: 200 on a valid verdict or accepted settlement, 400 for input,
semantic, ledger-state and settlement failures, 500 for infrastructure
failures.  Every request runs through the typed event chain, so hooks can
observe verdicts and settlements.  Cross-origin requests are allowed from
any origin unless ``allow_origins`` says otherwise.
"""

import json
import os
import logging
from typing import Optional, Callable, Dict, Any, Sequence, Tuple, Union

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..adapters.bases import FacilitatorAdapter
from ..engine.events import (
    EventBus,
    Dependencies,
    BaseEvent,
    VerifyRequestEvent,
    SettleRequestEvent,
    VerifiedEvent,
    VerifyRejectedEvent,
    SettledEvent,
    SettleFailedEvent,
)
from ..engine.executors import EventChain
from ..schemas.bases import InvalidReason
from ..schemas.https import (
    AgentCard,
    AgentX402Info,
    HealthResponse,
    SettleResponse,
    VerifyRequest,
    VerifyResponse,
)
from .flows import setup_event_bus


logger = logging.getLogger(__name__)


class FacilitatorServer(FastAPI):
    """FastAPI server exposing the x402 facilitator endpoints."""

    def __init__(
        self,
        facilitator: Optional[FacilitatorAdapter] = None,
        public_url: Optional[str] = None,
        allow_origins: Sequence[str] = ("*",),
        **fastapi_kwargs
    ):
        """Initialize the facilitator server.

        Args:
            facilitator: Adapter serving verify/settle/supported (default:
                ``EVMFacilitator`` configured from the environment)
            public_url: Externally reachable base URL advertised in
                ``/agent.json`` (default: ``FACILITATOR_PUBLIC_URL``)
            allow_origins: Origins allowed by the CORS middleware
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)

        Raises:
            ConfigurationError: If no facilitator is given and the
                environment is incomplete.
        """
        if facilitator is None:
            from ..adapters.evm.adapter import EVMFacilitator
            facilitator = EVMFacilitator()

        self.facilitator = facilitator
        self.depends = Dependencies(facilitator=facilitator)
        self.event_bus: EventBus = setup_event_bus()

        self.public_url = public_url or os.getenv("FACILITATOR_PUBLIC_URL")

        fastapi_kwargs.setdefault("title", "x402 facilitator")
        super().__init__(**fastapi_kwargs)

        self.add_middleware(
            CORSMiddleware,
            allow_origins=list(allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_routes()

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]
        """
        self.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Example:
            ```python
            async def audit(event, deps):
                await store(event.result.to_canonical_json())

            app.add_hook(SettledEvent, audit)
            ```
        """
        self.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(VerifyRejectedEvent)
            async def on_rejected(event, deps):
                await alert(event.result.invalid_reason)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    @staticmethod
    async def _parse_body(request: Request) -> Union[VerifyRequest, InvalidReason]:
        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError:
            return InvalidReason.INVALID_JSON

        if not isinstance(body, dict) or body.get("paymentPayload") is None or body.get("paymentRequirements") is None:
            return InvalidReason.MISSING_PAYLOAD_OR_REQUIREMENTS

        try:
            return VerifyRequest.model_validate(body)
        except ValidationError as exc:
            logger.info("rejected malformed payload: %d validation errors", exc.error_count())
            return InvalidReason.INVALID_PAYLOAD

    def agent_card(self) -> AgentCard:
        """Discovery document built from the adapter's supported kinds and signers."""
        supported = self.facilitator.supported()
        kind = supported.kinds[0]
        relay_addresses = next(iter(supported.signers.values()), [])
        return AgentCard(
            x402=AgentX402Info(
                version=kind.x402Version,
                scheme=kind.scheme,
                network=kind.network,
                baseUrl=self.public_url,
                assets=self.facilitator.asset_symbols(),
            ),
            relayAddress=relay_addresses[0] if relay_addresses else None,
        )

    async def _run(self, event: BaseEvent, terminal: Tuple[type, ...]) -> Optional[BaseEvent]:
        chain = EventChain(self.event_bus, self.depends)
        return await chain.run_until(event, terminal)

    def _setup_routes(self) -> None:
        @self.get("/")
        async def index() -> Dict[str, Any]:
            return {"message": "x402 facilitator api"}

        @self.get("/health")
        async def health() -> Dict[str, Any]:
            return HealthResponse().model_dump()

        @self.get("/agent.json")
        async def agent_json():
            try:
                return self.agent_card().model_dump()
            except Exception:
                logger.exception("agent card unavailable")
                return JSONResponse(status_code=500, content={"error": InvalidReason.INTERNAL_ERROR.value})

        @self.get("/supported")
        async def supported() -> Dict[str, Any]:
            return self.facilitator.supported().model_dump(mode="json")

        @self.post("/verify")
        async def verify(request: Request):
            parsed = await self._parse_body(request)
            if isinstance(parsed, InvalidReason):
                return JSONResponse(
                    status_code=400,
                    content=VerifyResponse(isValid=False, invalidReason=parsed.value).model_dump(),
                )

            try:
                event = await self._run(
                    VerifyRequestEvent(payload=parsed.paymentPayload, requirements=parsed.paymentRequirements),
                    (VerifiedEvent, VerifyRejectedEvent),
                )
            except Exception:
                logger.exception("verify request failed")
                event = None

            if event is None:
                return JSONResponse(
                    status_code=500,
                    content=VerifyResponse(isValid=False, invalidReason=InvalidReason.INTERNAL_ERROR.value).model_dump(),
                )
            return JSONResponse(status_code=event.status_code, content=event.result.to_response().model_dump())

        @self.post("/settle")
        async def settle(request: Request):
            parsed = await self._parse_body(request)
            if isinstance(parsed, InvalidReason):
                return JSONResponse(
                    status_code=400,
                    content=SettleResponse(success=False, error=parsed.value).model_dump(),
                )

            try:
                event = await self._run(
                    SettleRequestEvent(payload=parsed.paymentPayload, requirements=parsed.paymentRequirements),
                    (SettledEvent, SettleFailedEvent),
                )
            except Exception:
                logger.exception("settle request failed")
                event = None

            if event is None:
                return JSONResponse(
                    status_code=500,
                    content=SettleResponse(success=False, error=InvalidReason.INTERNAL_ERROR.value).model_dump(),
                )
            return JSONResponse(status_code=event.status_code, content=event.result.to_response().model_dump())
