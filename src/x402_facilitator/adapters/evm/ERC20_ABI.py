"""
USDC ERC20 + ERC-3009 Smart Contract ABI Module

Simplified ABI definitions for the three token calls the facilitator makes:
``balanceOf`` and ``authorizationState`` (read-only, used by the chain state
checker) and ``transferWithAuthorization`` (the settlement call).

Usage:
    from .ERC20_ABI import get_token_abi, encode_transfer_with_authorization

    contract = web3.eth.contract(address=token_address, abi=get_token_abi())
    balance = await contract.functions.balanceOf(owner).call()

    calldata = encode_transfer_with_authorization(
        from_addr, to_addr, value, valid_after, valid_before,
        nonce_bytes32, v, r_bytes32, s_bytes32,
    )
"""

from typing import Dict, Any, List

from eth_abi import encode
from eth_utils import keccak


TRANSFER_WITH_AUTHORIZATION_SIGNATURE = (
    "transferWithAuthorization(address,address,uint256,uint256,uint256,bytes32,uint8,bytes32,bytes32)"
)
TRANSFER_WITH_AUTHORIZATION_SELECTOR: bytes = keccak(text=TRANSFER_WITH_AUTHORIZATION_SIGNATURE)[:4]


def get_balance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for querying USDC token balance.

    Returns:
        List[Dict[str, Any]]: ABI for balanceOf function

    Example:
        abi = get_balance_abi()
        # Use with web3.py: web3.eth.contract(address=token_address, abi=abi)
        # Call: contract.functions.balanceOf(address).call()
    """
    return [
        {
            "name": "balanceOf",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_authorization_state_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-3009 ``authorizationState(authorizer, nonce)``.

    Returns ``True`` once ``nonce`` has been used (or cancelled) by
    ``authorizer``.
    """
    return [
        {
            "name": "authorizationState",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "authorizer", "type": "address"},
                {"name": "nonce", "type": "bytes32"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        }
    ]


def get_erc3009_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-3009 ``transferWithAuthorization``.

    Returns:
        List[Dict[str, Any]]: ABI containing the ``transferWithAuthorization``
        function entry.
    """
    return [
        {
            "name": "transferWithAuthorization",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "from",        "type": "address"},
                {"name": "to",          "type": "address"},
                {"name": "value",       "type": "uint256"},
                {"name": "validAfter",  "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce",       "type": "bytes32"},
                {"name": "v",           "type": "uint8"},
                {"name": "r",           "type": "bytes32"},
                {"name": "s",           "type": "bytes32"},
            ],
            "outputs": [],
        },
    ]


def get_token_abi() -> List[Dict[str, Any]]:
    """Combined ABI of every token function the facilitator calls."""
    return get_balance_abi() + get_authorization_state_abi() + get_erc3009_abi()


def encode_transfer_with_authorization(
    authorizer: str,
    recipient: str,
    value: int,
    valid_after: int,
    valid_before: int,
    nonce: bytes,
    v: int,
    r: bytes,
    s: bytes,
) -> bytes:
    """
    ABI-encode a ``transferWithAuthorization`` call (selector + arguments).

    Args:
        authorizer: ``from`` address.
        recipient: ``to`` address.
        value, valid_after, valid_before: uint256 arguments.
        nonce: 32-byte authorization nonce.
        v: Signature recovery id (27 or 28).
        r, s: 32-byte signature components.

    Returns:
        bytes: Calldata for the token contract.
    """
    return TRANSFER_WITH_AUTHORIZATION_SELECTOR + encode(
        ["address", "address", "uint256", "uint256", "uint256", "bytes32", "uint8", "bytes32", "bytes32"],
        [authorizer, recipient, value, valid_after, valid_before, nonce, v, r, s],
    )
