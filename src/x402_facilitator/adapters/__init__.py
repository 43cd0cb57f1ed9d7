from .bases import FacilitatorAdapter
from .evm import (
    EVMFacilitator,
    ChainStateChecker,
    SettlementRelay,
    RelayAccount,
    LedgerPort,
    Web3LedgerPort,
    ValidatedAuthorization,
)

__all__ = [
    "FacilitatorAdapter",
    "EVMFacilitator",
    "ChainStateChecker",
    "SettlementRelay",
    "RelayAccount",
    "LedgerPort",
    "Web3LedgerPort",
    "ValidatedAuthorization",
]
