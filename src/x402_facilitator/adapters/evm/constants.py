"""
EVM Settlement Configuration

Holds the single supported settlement target (network, asset and its EIP-712
domain), the fixed protocol constants of the verification pipeline and the
settlement relay, and the environment-aware loaders for the facilitator's
own configuration (relay key, RPC endpoints, timeouts).
"""

import os
from typing import Optional

from pydantic import BaseModel, Field
import dotenv

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


class SettlementAssetConfig(BaseModel):
    """Token and network the facilitator settles on.

    ``name`` and ``version`` must equal the token contract's EIP-712 domain
    exactly; any difference changes every digest and makes all signatures
    fail recovery.
    """
    caip2: str = Field(..., description='CAIP-2 network identifier (e.g. "eip155:1")')
    chain_id: int = Field(..., ge=1, description="EIP-155 chain id")
    symbol: str
    address: str = Field(..., description="Token contract address (EIP-712 verifyingContract)")
    name: str = Field(..., description="EIP-712 domain name")
    version: str = Field(..., description="EIP-712 domain version")
    decimals: int = Field(..., ge=0)


#: The one (network, asset) pair this facilitator verifies and settles.
USDC_MAINNET = SettlementAssetConfig(
    caip2="eip155:1",
    chain_id=1,
    symbol="USDC",
    address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    name="USD Coin",
    version="2",
    decimals=6,
)

#: x402 scheme implemented here.
SUPPORTED_SCHEME: str = "exact"

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

MAX_UINT256: int = 2**256 - 1

#: Authorizations expiring within this many seconds are rejected, to absorb
#: clock drift between this host and the block timestamp.
TIME_BUFFER_SECONDS: int = 60

# ---------------------------------------------------------------------------
# Settlement relay
# ---------------------------------------------------------------------------

#: Total signing/submission attempts per settlement, including the first.
MAX_NONCE_RETRIES: int = 3

#: Gas limit for a single ``transferWithAuthorization`` call.
SETTLEMENT_GAS_LIMIT: int = 120_000

#: ``maxFeePerGas = gasPrice * NUMERATOR // DENOMINATOR`` (20% headroom).
FEE_BUFFER_NUMERATOR: int = 120
FEE_BUFFER_DENOMINATOR: int = 100

#: Node error fragments meaning "this relay nonce is taken".
NONCE_CONFLICT_MARKERS = (
    "nonce too low",
    "already known",
    "replacement transaction underpriced",
)

#: Node error fragments meaning the token contract rejected the call.
REVERT_MARKERS = ("reverted",)

DEFAULT_REQUEST_TIMEOUT: float = 30.0


def get_relay_private_key_from_env() -> Optional[str]:
    """
    Load the relay account's private key from the environment.

    Environment Variable:
        - RELAY_PRIVATE_KEY: 0x-prefixed hex private key of the account that
          pays gas for settlements.

    Returns:
        str: Private key from environment, or None if not configured

    Note:
        The key should be stored securely and never committed to version control.
    """
    return os.getenv("RELAY_PRIVATE_KEY")


def get_rpc_url_from_env() -> Optional[str]:
    """
    Load the JSON-RPC endpoint used for ledger reads (balances, nonce state,
    gas price).

    Environment Variable:
        - RPC_URL
    """
    return os.getenv("RPC_URL")


def get_submit_rpc_url_from_env() -> Optional[str]:
    """
    Load the JSON-RPC endpoint used for the relay's pending nonce and for
    transaction submission.

    The pending nonce must come from the same endpoint that receives the
    transactions, so that it reflects the relay's own in-flight submissions.
    Falls back to ``RPC_URL`` when ``SUBMIT_RPC_URL`` is unset.

    Environment Variables:
        - SUBMIT_RPC_URL (optional)
        - RPC_URL
    """
    return os.getenv("SUBMIT_RPC_URL") or get_rpc_url_from_env()


def get_request_timeout_from_env() -> float:
    """
    Load the outbound RPC timeout in seconds.

    Environment Variable:
        - FACILITATOR_REQUEST_TIMEOUT (default 30)

    Raises:
        ConfigurationError: If the value is not a positive number.
    """
    raw = os.getenv("FACILITATOR_REQUEST_TIMEOUT")
    if raw is None or not raw.strip():
        return DEFAULT_REQUEST_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"FACILITATOR_REQUEST_TIMEOUT must be a number, got {raw!r}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"FACILITATOR_REQUEST_TIMEOUT must be positive, got {timeout}")
    return timeout


def require_env(value: Optional[str], name: str) -> str:
    """Return ``value`` or raise ``ConfigurationError`` naming the missing variable."""
    if not value or not value.strip():
        raise ConfigurationError(f"Missing env var: {name}")
    return value.strip()
