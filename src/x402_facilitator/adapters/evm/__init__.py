from .adapter import EVMFacilitator
from .chain_state import ChainStateChecker
from .constants import SettlementAssetConfig, USDC_MAINNET
from .relay import SettlementRelay, RelayAccount, LedgerPort, Web3LedgerPort
from .schemas import EVMECDSASignature, ValidatedAuthorization
from .signatures import sign_erc3009_authorization, build_erc3009_typed_data, build_payment_payload
from .standards import EIP712Domain, TransferWithAuthorizationMessage, ERC3009TypedData
from .verifies import validate_authorization, verify_authorization_signature

__all__ = [
    "EVMFacilitator",
    "ChainStateChecker",
    "SettlementAssetConfig",
    "USDC_MAINNET",
    "SettlementRelay",
    "RelayAccount",
    "LedgerPort",
    "Web3LedgerPort",
    "EVMECDSASignature",
    "ValidatedAuthorization",
    "sign_erc3009_authorization",
    "build_erc3009_typed_data",
    "build_payment_payload",
    "EIP712Domain",
    "TransferWithAuthorizationMessage",
    "ERC3009TypedData",
    "validate_authorization",
    "verify_authorization_signature",
]
