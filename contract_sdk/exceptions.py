"""
Exceptions for the Contract Interaction SDK.
"""
from enum import Enum
from typing import Any, Optional


class InteractionErrorKind(str, Enum):
    """
    Error kinds reported by the SDK.

    These are the values stored in ``error_kind`` of a failed CallResult or
    QueryResult.
    """
    INVALID_CONTRACT_ADDRESS = "INVALID_CONTRACT_ADDRESS"
    INVALID_FUNCTION_NAME = "INVALID_FUNCTION_NAME"
    INVALID_DATA_KEY = "INVALID_DATA_KEY"
    ENCODING_ERROR = "ENCODING_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    NODE_ERROR = "NODE_ERROR"
    DECODING_ERROR = "DECODING_ERROR"
    DATA_KEY_NOT_FOUND = "DATA_KEY_NOT_FOUND"


class NetworkErrorKind(str, Enum):
    """Failure modes of the transport layer."""
    CONNECTION = "CONNECTION"
    TIMEOUT = "TIMEOUT"


class InteractionError(Exception):
    """Base exception for all contract interaction errors."""
    kind = InteractionErrorKind.NODE_ERROR


class InvalidContractAddress(InteractionError):
    """Raised when a contract address is empty or malformed."""
    kind = InteractionErrorKind.INVALID_CONTRACT_ADDRESS


class InvalidFunctionName(InteractionError):
    """Raised when a function name is empty or malformed."""
    kind = InteractionErrorKind.INVALID_FUNCTION_NAME


class InvalidDataKey(InteractionError):
    """Raised when a data key is empty or malformed."""
    kind = InteractionErrorKind.INVALID_DATA_KEY


class EncodingError(InteractionError):
    """Raised when call parameters cannot be ABI-encoded."""
    kind = InteractionErrorKind.ENCODING_ERROR


class NetworkError(InteractionError):
    """Raised when the node endpoint cannot be reached."""
    kind = InteractionErrorKind.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        network_kind: NetworkErrorKind = NetworkErrorKind.CONNECTION,
        endpoint: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        self.network_kind = network_kind
        self.endpoint = endpoint
        # Set when a transaction may already have been submitted
        self.tx_hash = tx_hash
        super().__init__(message)


class NetworkTimeoutError(NetworkError):
    """
    Raised when a request to the node times out.

    The remote outcome is unknown: a mutating call may or may not have been
    executed. Reconcile with a follow-up query before resending.
    """
    kind = InteractionErrorKind.NETWORK_TIMEOUT

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message, NetworkErrorKind.TIMEOUT, endpoint=endpoint, tx_hash=tx_hash)


class NodeError(InteractionError):
    """
    Raised when the node rejects a request or execution reverts.

    Attributes:
        reason: The node's reported reason, verbatim when available
        code: JSON-RPC or HTTP error code, if any
        data: Raw error data returned by the node, if any
        tx_hash: Transaction hash when the failure happened after submission
    """
    kind = InteractionErrorKind.NODE_ERROR

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        code: Optional[int] = None,
        data: Any = None,
        tx_hash: Optional[str] = None,
    ):
        self.reason = reason
        self.code = code
        self.data = data
        self.tx_hash = tx_hash
        super().__init__(message)


class DecodingError(InteractionError):
    """Raised when a node response does not match the expected schema."""
    kind = InteractionErrorKind.DECODING_ERROR


class DataKeyNotFound(DecodingError):
    """Raised when a query returns no data for the requested key."""
    kind = InteractionErrorKind.DATA_KEY_NOT_FOUND
