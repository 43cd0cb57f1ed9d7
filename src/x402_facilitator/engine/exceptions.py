"""
Exception and Error Definitions Module

Defines the exception hierarchy used inside the facilitator.  These are raised
by the ledger-facing ports and by configuration loading; the verification and
settlement pipelines catch them at their boundary and convert them into
structured results, so none of them reaches an HTTP caller.

Exception Hierarchy:
    FacilitatorError (root)
    ├── ConfigurationError
    └── BlockchainInteractionError
        └── TransactionExecutionError
            ├── SubmissionRejectedError
            └── SubmissionTimeoutError
"""

from typing import Optional


class FacilitatorError(Exception):
    """
    Root exception class for all project-specific exceptions.

    All custom exceptions inherit from this class to enable unified
    exception handling.
    """
    pass


class ConfigurationError(FacilitatorError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing ``RELAY_PRIVATE_KEY`` or ``RPC_URL``
    - Malformed relay private key
    - Non-numeric timeout settings
    """
    pass


class BlockchainInteractionError(FacilitatorError):
    """
    Raised when a ledger read or write cannot be completed.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Malformed RPC responses

    Always an infrastructure failure, never a verdict about the payload.

    Attributes:
        rpc_method: RPC method that was called (e.g. ``eth_call``)
    """

    def __init__(self, message: str, *, rpc_method: Optional[str] = None):
        super().__init__(message)
        self.rpc_method = rpc_method


class TransactionExecutionError(BlockchainInteractionError):
    """
    Base class for failures of ``eth_sendRawTransaction``.

    Attributes:
        tx_hash: Locally computed hash of the signed transaction, if known
    """

    def __init__(self, message: str, *, tx_hash: Optional[str] = None, rpc_method: Optional[str] = "eth_sendRawTransaction"):
        super().__init__(message, rpc_method=rpc_method)
        self.tx_hash = tx_hash


class SubmissionRejectedError(TransactionExecutionError):
    """
    Raised when the node answers the submission with a JSON-RPC error.

    ``node_message`` carries the node's error text unchanged; the relay
    classifies it (nonce conflict, revert, other).
    """

    def __init__(self, node_message: str, *, tx_hash: Optional[str] = None):
        super().__init__(node_message, tx_hash=tx_hash)
        self.node_message = node_message


class SubmissionTimeoutError(TransactionExecutionError):
    """
    Raised when the submission request timed out after the transaction was
    signed.  The transaction may still be pending; ``tx_hash`` identifies it.
    """
    pass
