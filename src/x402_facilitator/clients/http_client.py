"""
Facilitator HTTP Client

Typed client for the facilitator's HTTP API, built on ``httpx.AsyncClient``.
Verdicts are data: a ``400`` carrying a ``VerifyResponse`` or
``SettleResponse`` body is returned as that model.  Only failures to obtain
a verdict raise ``FacilitatorClientError``.
"""

import os
from typing import Any, Literal, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from ..schemas.https import (
    HealthResponse,
    SettleResponse,
    SupportedResponse,
    VerifyRequest,
    VerifyResponse,
)


DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT_MS = 10_000

FacilitatorClientErrorCode = Literal["timeout", "http_error", "network_error", "invalid_response"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class FacilitatorClientError(Exception):
    """
    Raised when a facilitator call produced no usable response.

    Attributes:
        code: ``timeout``, ``http_error``, ``network_error`` or ``invalid_response``
        path: Request path
        status: HTTP status, when a response was received
        details: Parsed body or raw text, when available
    """

    def __init__(
        self,
        message: str,
        *,
        code: FacilitatorClientErrorCode,
        path: str,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.path = path
        self.status = status
        self.details = details


def _resolve_timeout_ms(timeout_ms: Optional[float]) -> float:
    raw = timeout_ms if timeout_ms is not None else os.getenv("FACILITATOR_TIMEOUT_MS")
    try:
        parsed = float(raw) if raw is not None else DEFAULT_TIMEOUT_MS
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT_MS
    return parsed if parsed > 0 else DEFAULT_TIMEOUT_MS


class FacilitatorClient(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient with typed facilitator calls.

    Fully compatible with httpx.AsyncClient and usable as an async context
    manager.

    Usage:
        ```python
        async with FacilitatorClient(base_url="https://facilitator.example") as client:
            verdict = await client.verify(request)
            if verdict.isValid:
                outcome = await client.settle(request)
        ```
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_ms: Optional[float] = None,
        **kwargs
    ):
        """
        Args:
            base_url: Facilitator URL; ``FACILITATOR_BASE_URL`` or a local
                default when omitted
            timeout_ms: Request timeout in milliseconds; ``FACILITATOR_TIMEOUT_MS``
                or 10 s when omitted or not positive
            **kwargs: All standard httpx.AsyncClient arguments (transport, headers, etc.)
        """
        resolved_url = (base_url or os.getenv("FACILITATOR_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout_ms = _resolve_timeout_ms(timeout_ms)
        kwargs.setdefault("timeout", self.timeout_ms / 1000)
        super().__init__(base_url=resolved_url, **kwargs)

    async def health(self) -> HealthResponse:
        return await self._call("GET", "/health", HealthResponse)

    async def supported(self) -> SupportedResponse:
        return await self._call("GET", "/supported", SupportedResponse)

    async def verify(self, request: Union[VerifyRequest, dict]) -> VerifyResponse:
        """POST /verify; a rejected payload is returned, not raised."""
        return await self._call("POST", "/verify", VerifyResponse, request, accept_verdict=True)

    async def settle(self, request: Union[VerifyRequest, dict]) -> SettleResponse:
        """POST /settle; a failed settlement is returned, not raised."""
        return await self._call("POST", "/settle", SettleResponse, request, accept_verdict=True)

    async def _call(
        self,
        method: str,
        path: str,
        model: Type[ModelT],
        body: Union[BaseModel, dict, None] = None,
        accept_verdict: bool = False,
    ) -> ModelT:
        if isinstance(body, BaseModel):
            body = body.model_dump(mode="json", by_alias=True)

        try:
            response = await super().request(method, path, json=body)
        except httpx.TimeoutException as exc:
            raise FacilitatorClientError(
                f"Facilitator request timed out after {self.timeout_ms:g}ms at {path}",
                code="timeout",
                path=path,
            ) from exc
        except httpx.HTTPError as exc:
            raise FacilitatorClientError(
                f"Facilitator request failed due to network error at {path}",
                code="network_error",
                path=path,
                details=str(exc),
            ) from exc

        try:
            parsed = response.json()
        except ValueError:
            parsed = None

        verdict = accept_verdict and response.status_code == 400
        if not response.is_success and not verdict:
            raise FacilitatorClientError(
                f"Facilitator request failed ({response.status_code}) at {path}",
                code="http_error",
                path=path,
                status=response.status_code,
                details=parsed if parsed is not None else response.text,
            )

        if parsed is None:
            raise FacilitatorClientError(
                f"Expected JSON response at {path}",
                code="invalid_response",
                path=path,
                status=response.status_code,
                details=response.text,
            )

        try:
            return model.model_validate(parsed)
        except ValidationError as exc:
            raise FacilitatorClientError(
                f"Unexpected response shape at {path}",
                code="invalid_response",
                path=path,
                status=response.status_code,
                details=parsed,
            ) from exc
