"""
EIP-712 / EIP-3009 typed-data structures and digest computation.

The dataclasses below mirror the typed definitions of the EIP-712 domain and
the EIP-3009 ``TransferWithAuthorization`` message.  Besides the plain-dict
envelope consumed by ``eth_account`` signing routines (``to_dict()``), they
compute the hashes a token contract computes on-chain:

    domainSeparator = keccak256(abi.encode(DOMAIN_TYPEHASH, keccak(name),
                                           keccak(version), chainId,
                                           verifyingContract))
    structHash      = keccak256(abi.encode(TRANSFER_WITH_AUTHORIZATION_TYPEHASH,
                                           from, to, value, validAfter,
                                           validBefore, nonce))
    digest          = keccak256(0x1901 || domainSeparator || structHash)

Both paths must agree byte for byte; a single changed character in a type
string changes every digest.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Union

from eth_abi import encode
from eth_utils import keccak, to_bytes

from .constants import SettlementAssetConfig


EIP712_DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
TRANSFER_WITH_AUTHORIZATION_TYPE = (
    "TransferWithAuthorization(address from,address to,uint256 value,"
    "uint256 validAfter,uint256 validBefore,bytes32 nonce)"
)

DOMAIN_TYPEHASH: bytes = keccak(text=EIP712_DOMAIN_TYPE)
TRANSFER_WITH_AUTHORIZATION_TYPEHASH: bytes = keccak(text=TRANSFER_WITH_AUTHORIZATION_TYPE)

EIP712_PREFIX = b"\x19\x01"


def _nonce_bytes(nonce: Union[str, bytes]) -> bytes:
    if isinstance(nonce, bytes):
        return nonce.rjust(32, b"\x00")
    return to_bytes(hexstr=nonce).rjust(32, b"\x00")


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass
class EIP712Domain:
    """
    Signing domain of the settlement token (name, version, chain, contract).
    Binds a signature to one token deployment on one chain.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    @classmethod
    def from_asset(cls, asset: SettlementAssetConfig) -> "EIP712Domain":
        return cls(
            name=asset.name,
            version=asset.version,
            chainId=asset.chain_id,
            verifyingContract=asset.address,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }

    def separator(self) -> bytes:
        """Return the 32-byte EIP-712 domain separator."""
        return keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [
                    DOMAIN_TYPEHASH,
                    keccak(text=self.name),
                    keccak(text=self.version),
                    self.chainId,
                    self.verifyingContract,
                ],
            )
        )


# -----------------------------
# EIP-3009: Transfer With Authorization
# -----------------------------

@dataclass
class TransferWithAuthorizationMessage:
    """
    Message body of an EIP-3009 ``TransferWithAuthorization``.

    The EIP defines the field name ``from``, which is a Python reserved word;
    this class uses ``authorizer`` as the attribute name and maps it to
    ``from`` in ``to_dict()``.

    Attributes:
        authorizer: Payer, serialized as ``from``.
        recipient: Payee, serialized as ``to``.
        value: Amount in the token's smallest unit.
        validAfter: Inclusive start of validity (unix seconds).
        validBefore: Exclusive end of validity (unix seconds).
        nonce: bytes32 hex replay-protection token.
    """
    authorizer: str
    recipient: str
    value: int
    validAfter: int
    validBefore: int
    nonce: str

    def to_dict(self) -> Dict[str, Any]:
        """Return a dictionary representation compatible with EIP-712 signing."""
        return {
            "from": self.authorizer,
            "to": self.recipient,
            "value": self.value,
            "validAfter": self.validAfter,
            "validBefore": self.validBefore,
            "nonce": self.nonce,
        }

    def struct_hash(self) -> bytes:
        """Return ``hashStruct(message)`` for the ``TransferWithAuthorization`` type."""
        return keccak(
            encode(
                ["bytes32", "address", "address", "uint256", "uint256", "uint256", "bytes32"],
                [
                    TRANSFER_WITH_AUTHORIZATION_TYPEHASH,
                    self.authorizer,
                    self.recipient,
                    self.value,
                    self.validAfter,
                    self.validBefore,
                    _nonce_bytes(self.nonce),
                ],
            )
        )


@dataclass
class ERC3009TypedData:
    """
    Full EIP-712 envelope of a ``TransferWithAuthorization``.

    ``to_dict()`` produces the ``{types, primaryType, domain, message}``
    layout accepted by ``eth_account``; ``digest()`` produces the 32-byte
    hash that layout signs.

    Attributes:
        domain: Token signing domain.
        message: Authorization body.
        primary_type: Always ``TransferWithAuthorization``.
        types: Type definitions matching the two type strings above.
    """
    domain: EIP712Domain
    message: TransferWithAuthorizationMessage

    primary_type: str = "TransferWithAuthorization"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "TransferWithAuthorization": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "validAfter", "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce", "type": "bytes32"},
            ],
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        """Return a dictionary compatible with EIP-712 structured signing."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }

    def digest(self) -> bytes:
        """Return ``keccak256(0x1901 || domainSeparator || structHash)``."""
        return keccak(EIP712_PREFIX + self.domain.separator() + self.message.struct_hash())
