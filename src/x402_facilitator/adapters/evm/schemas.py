"""
EVM Adapter Schema Models

Typed counterparts of the untrusted wire models.  Nothing here is built from
raw request data directly: ``ValidatedAuthorization`` is produced only by the
authorization validator, and ``EVMECDSASignature`` only by parsing a
signature string that already passed the format check.

Classes:
    - EVMECDSASignature: v/r/s components of a 65-byte ``r || s || v`` signature.
    - ValidatedAuthorization: Authorization whose every field has been parsed
      (ints, checksum addresses, 32-byte nonce).
"""

import re
from typing import Literal

from eth_utils import to_bytes, to_checksum_address
from pydantic import Field

from ...schemas.bases import CanonicalModel
from .standards import EIP712Domain, TransferWithAuthorizationMessage, ERC3009TypedData
from .constants import SettlementAssetConfig


SIGNATURE_PATTERN = re.compile(r"0x[0-9a-fA-F]{130}")


class EVMECDSASignature(CanonicalModel):
    """
    EVM ECDSA signature (v, r, s).

    Attributes:
        signature_type: Signing standard; only ``"ERC3009"`` is produced here.
        v: ECDSA recovery ID (27 or 28).
        r: r component, 0x-prefixed 64-char hex.
        s: s component, 0x-prefixed 64-char hex.

    Example::

        sig = EVMECDSASignature.from_hex("0x" + "ab" * 64 + "1b")
        sig.to_packed_hex()
    """

    signature_type: Literal["ERC3009"] = Field(default="ERC3009", description="Signing standard")
    v: int = Field(..., ge=27, le=28, description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$", description="Signature r component")
    s: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$", description="Signature s component")

    @classmethod
    def from_hex(cls, signature: str) -> "EVMECDSASignature":
        """
        Split a packed 65-byte signature into its components.

        Raises:
            ValueError: If ``signature`` is not 0x + 130 hex chars or its
                recovery id is not 27/28 (pydantic's ``ValidationError`` is a
                ``ValueError`` subclass).
        """
        if not isinstance(signature, str) or not SIGNATURE_PATTERN.fullmatch(signature):
            raise ValueError("signature must be 0x followed by 130 hex characters")
        body = signature[2:]
        return cls(r="0x" + body[:64], s="0x" + body[64:128], v=int(body[128:], 16))

    def to_packed_hex(self) -> str:
        """Encode v/r/s into a packed 65-byte hex string (``r || s || v``)."""
        return "0x" + self.r[2:] + self.s[2:] + format(self.v, "02x")

    @property
    def r_bytes(self) -> bytes:
        return to_bytes(hexstr=self.r)

    @property
    def s_bytes(self) -> bytes:
        return to_bytes(hexstr=self.s)

    @property
    def vrs(self):
        return self.v, int(self.r, 16), int(self.s, 16)


class ValidatedAuthorization(CanonicalModel):
    """
    ERC-3009 authorization that passed every structural and semantic check.

    Addresses are EIP-55 checksummed, numeric fields are Python ints within
    uint256 range, and ``nonce`` is a 0x-prefixed 64-char hex string.  The
    original packed signature is carried unchanged; it is parsed by the
    signature verifier and again by the relay when encoding calldata.

    Attributes:
        token: Token contract address (EIP-712 ``verifyingContract``).
        chain_id: Chain id of the configured network.
        network: CAIP-2 network identifier.
        authorizer: ``from``, the payer.
        recipient: ``to``, equal to the merchant's ``payTo``.
        value: Authorized amount in smallest units.
        valid_after: Inclusive validity start (unix seconds).
        valid_before: Exclusive validity end (unix seconds).
        nonce: bytes32 authorization nonce.
        signature: Packed ``r || s || v`` hex signature as received.
    """

    token: str
    chain_id: int = Field(..., ge=1)
    network: str
    authorizer: str
    recipient: str
    value: int = Field(..., ge=0)
    valid_after: int = Field(..., ge=0)
    valid_before: int = Field(..., ge=0)
    nonce: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$")
    signature: str

    @property
    def nonce_bytes(self) -> bytes:
        return to_bytes(hexstr=self.nonce)

    def to_message(self) -> TransferWithAuthorizationMessage:
        return TransferWithAuthorizationMessage(
            authorizer=self.authorizer,
            recipient=self.recipient,
            value=self.value,
            validAfter=self.valid_after,
            validBefore=self.valid_before,
            nonce=self.nonce,
        )

    def to_typed_data(self, asset: SettlementAssetConfig) -> ERC3009TypedData:
        """Wrap in the EIP-712 envelope of ``asset``'s domain."""
        return ERC3009TypedData(domain=EIP712Domain.from_asset(asset), message=self.to_message())

    @classmethod
    def build(
        cls,
        *,
        asset: SettlementAssetConfig,
        authorizer: str,
        recipient: str,
        value: int,
        valid_after: int,
        valid_before: int,
        nonce: str,
        signature: str,
    ) -> "ValidatedAuthorization":
        return cls(
            token=to_checksum_address(asset.address),
            chain_id=asset.chain_id,
            network=asset.caip2,
            authorizer=to_checksum_address(authorizer),
            recipient=to_checksum_address(recipient),
            value=value,
            valid_after=valid_after,
            valid_before=valid_before,
            nonce=nonce.lower(),
            signature=signature,
        )
