"""
EVM Authorization Verification Helpers

Off-chain, side-effect-free stages of the verification pipeline:

validate_authorization
    Ordered, short-circuiting structural and semantic checks of an ``exact``
    payment payload against the merchant's requirements and a supplied
    ``now``.  Returns a typed ``ValidatedAuthorization`` on success or an
    invalid ``VerificationResult`` naming the first violated rule.

verify_authorization_signature
    Recomputes the EIP-712 digest of a validated authorization, recovers the
    signer from its (v, r, s) signature with ``eth_account`` and confirms it
    matches ``from``.

Neither function performs I/O or reads the clock; the caller supplies
``now`` so results are reproducible.
"""

import re
from typing import Any, Optional, Union

from eth_account import Account
from eth_account.messages import SignableMessage

from .constants import (
    MAX_UINT256,
    SUPPORTED_SCHEME,
    TIME_BUFFER_SECONDS,
    ZERO_ADDRESS,
    SettlementAssetConfig,
    USDC_MAINNET,
)
from .schemas import EVMECDSASignature, ValidatedAuthorization
from ...schemas.bases import InvalidReason, VerificationResult
from ...schemas.https import PaymentPayload, PaymentRequirements


ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")
NONCE_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")
DECIMAL_PATTERN = re.compile(r"[0-9]+")


def is_valid_address(addr: Any) -> bool:
    return isinstance(addr, str) and ADDRESS_PATTERN.fullmatch(addr) is not None


def parse_uint256(raw: Any) -> Optional[int]:
    """
    Parse a non-negative integer received as a decimal string or JSON integer.

    Returns ``None`` for anything else: signs, whitespace, hex, floats,
    booleans, or values above 2**256 - 1.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and DECIMAL_PATTERN.fullmatch(raw):
        value = int(raw)
    else:
        return None
    if value < 0 or value > MAX_UINT256:
        return None
    return value


def validate_authorization(
    payload: PaymentPayload,
    requirements: PaymentRequirements,
    now: int,
    asset: SettlementAssetConfig = USDC_MAINNET,
) -> Union[ValidatedAuthorization, VerificationResult]:
    """
    Run the structural and semantic checks in a fixed order.

    The first failing check decides the reason; later checks are not
    evaluated.  Order:

    1. scheme is ``exact``
    2. payload network is the configured network, then equals the
       requirements' network
    3. requirements asset is the configured token (case-insensitive)
    4. ``from`` then ``to`` are 20-byte hex addresses
    5. nonce is 32-byte hex
    6. ``from`` is not the zero address
    7. value, validAfter, validBefore and the required amount are uint256
    8. ``to`` equals ``payTo`` (case-insensitive)
    9. value covers the required amount (overpayment allowed)
    10. ``now >= validAfter``
    11. ``now + 60 < validBefore``

    ``payer`` is reported on every failure from step 4 on, as soon as
    ``from`` is well formed.

    Args:
        payload: Payer's signed payment payload.
        requirements: Merchant's payment requirements.
        now: Current unix time in seconds.
        asset: Configured settlement asset.

    Returns:
        ``ValidatedAuthorization`` when every check passes, otherwise an
        invalid ``VerificationResult``.
    """
    if payload.scheme != SUPPORTED_SCHEME:
        return VerificationResult.invalid(InvalidReason.UNSUPPORTED_SCHEME)

    if payload.network != asset.caip2:
        return VerificationResult.invalid(InvalidReason.UNSUPPORTED_NETWORK)
    if payload.network != requirements.network:
        return VerificationResult.invalid(InvalidReason.NETWORK_MISMATCH)

    if not isinstance(requirements.asset, str) or requirements.asset.lower() != asset.address.lower():
        return VerificationResult.invalid(InvalidReason.UNSUPPORTED_ASSET)

    authorization = payload.authorization

    if not is_valid_address(authorization.from_):
        return VerificationResult.invalid(InvalidReason.INVALID_FROM_ADDRESS)
    payer = authorization.from_

    def _fail(reason: InvalidReason) -> VerificationResult:
        return VerificationResult.invalid(reason, payer=payer)

    if not is_valid_address(authorization.to):
        return _fail(InvalidReason.INVALID_TO_ADDRESS)

    if not NONCE_PATTERN.fullmatch(authorization.nonce):
        return _fail(InvalidReason.INVALID_NONCE_FORMAT)

    if payer.lower() == ZERO_ADDRESS:
        return _fail(InvalidReason.FROM_IS_ZERO_ADDRESS)

    value = parse_uint256(authorization.value)
    valid_after = parse_uint256(authorization.validAfter)
    valid_before = parse_uint256(authorization.validBefore)
    required = parse_uint256(requirements.amount)
    if value is None or valid_after is None or valid_before is None or required is None:
        return _fail(InvalidReason.INVALID_NUMERIC_FIELD)

    if authorization.to.lower() != str(requirements.payTo).lower():
        return _fail(InvalidReason.RECIPIENT_MISMATCH)

    if value < required:
        return _fail(InvalidReason.INSUFFICIENT_PAYMENT)

    if now < valid_after:
        return _fail(InvalidReason.AUTHORIZATION_NOT_YET_VALID)

    if now + TIME_BUFFER_SECONDS >= valid_before:
        return _fail(InvalidReason.AUTHORIZATION_EXPIRED)

    return ValidatedAuthorization.build(
        asset=asset,
        authorizer=payer,
        recipient=authorization.to,
        value=value,
        valid_after=valid_after,
        valid_before=valid_before,
        nonce=authorization.nonce,
        signature=payload.signature,
    )


def verify_authorization_signature(
    authorization: ValidatedAuthorization,
    asset: SettlementAssetConfig = USDC_MAINNET,
) -> bool:
    """
    Check that ``authorization.signature`` was produced by ``authorization.authorizer``.

    The digest is ``keccak256(0x1901 || domainSeparator || structHash)``
    for ``asset``'s EIP-712 domain.  Malformed signatures (wrong length,
    non-hex, recovery id other than 27/28), failed recovery and a signer
    mismatch all return ``False``; the caller reports them with the single
    code ``invalid_signature``.
    """
    try:
        signature = EVMECDSASignature.from_hex(authorization.signature)
    except ValueError:
        return False

    typed_data = authorization.to_typed_data(asset)
    signable = SignableMessage(
        version=b"\x01",
        header=typed_data.domain.separator(),
        body=typed_data.message.struct_hash(),
    )
    try:
        recovered = Account.recover_message(signable, vrs=signature.vrs)
    except Exception:
        return False
    return recovered.lower() == authorization.authorizer.lower()
