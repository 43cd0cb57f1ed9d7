"""
EVM Off-Chain Signing Utilities

Local EIP-712 signing helpers for ERC-3009 ``transferWithAuthorization``.
This is the payer side of the protocol: the facilitator never signs
authorizations itself, but clients, examples and tests build payment
payloads with these helpers.  All cryptographic operations are performed
in-process using ``eth_account``; no RPC calls are made.

Exported helpers
----------------
sign_erc3009_authorization
    Build the EIP-712 payload, sign with a private key, and return the wire
    ``ExactPayload`` (packed signature + authorization fields).

build_erc3009_typed_data
    Low-level helper that wraps raw authorization fields in an
    ``ERC3009TypedData`` envelope without signing.
"""

import os
from typing import Optional

from eth_account import Account
from eth_utils import to_checksum_address

from .standards import EIP712Domain, TransferWithAuthorizationMessage, ERC3009TypedData
from .schemas import EVMECDSASignature
from .constants import SettlementAssetConfig, USDC_MAINNET
from ...schemas.https import Authorization, ExactPayload, PaymentPayload


def generate_nonce() -> str:
    """Return a random bytes32 hex nonce."""
    return "0x" + os.urandom(32).hex()


def build_erc3009_typed_data(
    *,
    asset: SettlementAssetConfig,
    authorizer: str,
    recipient: str,
    value: int,
    valid_after: int,
    valid_before: int,
    nonce: str,
) -> ERC3009TypedData:
    """
    Wrap authorization fields in an EIP-712 ``ERC3009TypedData`` envelope
    without signing.

    Use this when signing is handled externally (e.g. a hardware wallet or
    MPC service).

    Returns:
        ``ERC3009TypedData`` whose ``to_dict()`` is compatible with
        ``eth_account.Account.sign_typed_data`` and ``eth_signTypedData_v4``.
    """
    return ERC3009TypedData(
        domain=EIP712Domain.from_asset(asset),
        message=TransferWithAuthorizationMessage(
            authorizer=to_checksum_address(authorizer),
            recipient=to_checksum_address(recipient),
            value=value,
            validAfter=valid_after,
            validBefore=valid_before,
            nonce=nonce,
        ),
    )


def sign_erc3009_authorization(
    *,
    private_key: str,
    recipient: str,
    value: int,
    valid_after: int,
    valid_before: int,
    nonce: Optional[str] = None,
    asset: SettlementAssetConfig = USDC_MAINNET,
) -> ExactPayload:
    """
    Sign an ERC-3009 ``transferWithAuthorization`` and return the ``exact``
    scheme payload.

    The authorizer (``from``) is the address derived from ``private_key``.

    Args:
        private_key:  Hex-encoded secp256k1 private key of the payer.
        recipient:    Address that will receive the tokens.
        value:        Amount in the token's smallest unit.
        valid_after:  Unix timestamp after which the authorization is valid.
        valid_before: Unix timestamp before which it must be submitted.
        nonce:        Optional bytes32 hex nonce; random when omitted.
        asset:        Token and EIP-712 domain to sign for.

    Returns:
        ``ExactPayload`` with a 65-byte ``r || s || v`` hex signature.

    Raises:
        ValueError: If ``valid_after >= valid_before``.

    Example::

        payload = sign_erc3009_authorization(
            private_key="0xYOUR_PRIVATE_KEY",
            recipient="0xRecipientAddress",
            value=1_000_000,            # 1 USDC (6 decimals)
            valid_after=0,
            valid_before=1_900_000_000,
        )
    """
    if valid_after >= valid_before:
        raise ValueError(
            f"valid_after ({valid_after}) must be strictly less than "
            f"valid_before ({valid_before})"
        )

    account = Account.from_key(private_key)
    resolved_nonce = nonce if nonce is not None else generate_nonce()

    typed_data = build_erc3009_typed_data(
        asset=asset,
        authorizer=account.address,
        recipient=recipient,
        value=value,
        valid_after=valid_after,
        valid_before=valid_before,
        nonce=resolved_nonce,
    )
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())

    signature = EVMECDSASignature(
        v=signed.v,
        r="0x" + signed.r.to_bytes(32, "big").hex(),
        s="0x" + signed.s.to_bytes(32, "big").hex(),
    )

    return ExactPayload(
        signature=signature.to_packed_hex(),
        authorization=Authorization(
            from_=account.address,
            to=to_checksum_address(recipient),
            value=str(value),
            validAfter=str(valid_after),
            validBefore=str(valid_before),
            nonce=resolved_nonce,
        ),
    )


def build_payment_payload(exact_payload: ExactPayload, asset: SettlementAssetConfig = USDC_MAINNET) -> PaymentPayload:
    """Wrap a signed ``ExactPayload`` in the x402 v2 envelope for ``asset``'s network."""
    return PaymentPayload(scheme="exact", network=asset.caip2, payload=exact_payload)
