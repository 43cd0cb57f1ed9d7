"""
Client module for the x402 facilitator.

Provides a typed async HTTP client for resource servers that delegate
payment verification and settlement to a facilitator.
"""

from .http_client import FacilitatorClient, FacilitatorClientError

__all__ = ["FacilitatorClient", "FacilitatorClientError"]
