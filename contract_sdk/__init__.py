"""
Contract Interaction SDK - invoke and query smart contracts on EVM nodes.
"""
from .client import ContractClient, Signer
from .config import ClientConfig, NetworkConfig, load_config
from .decoding import ResponseDecoder, decode_revert_reason
from .encoding import AbiFunction, CallEncoder, ContractAbi, EncodedCall, function_selector
from .exceptions import (
    DataKeyNotFound, DecodingError, EncodingError, InteractionError,
    InteractionErrorKind, InvalidContractAddress, InvalidDataKey,
    InvalidFunctionName, NetworkError, NetworkErrorKind, NetworkTimeoutError,
    NodeError
)
from .models import CallRequest, CallResult, QueryRequest, QueryResult, TxReceipt
from .stub_transport import SimulatedNodeTransport
from .transport import JsonRpcTransport, NodeTransport, get_transport
from .types import ContractAddress, DataKey, FunctionName, Param
from .version import __version__

__all__ = [
    "ContractClient",
    "Signer",
    "ClientConfig",
    "NetworkConfig",
    "load_config",
    "ResponseDecoder",
    "decode_revert_reason",
    "AbiFunction",
    "CallEncoder",
    "ContractAbi",
    "EncodedCall",
    "function_selector",
    "InteractionError",
    "InteractionErrorKind",
    "InvalidContractAddress",
    "InvalidFunctionName",
    "InvalidDataKey",
    "EncodingError",
    "NetworkError",
    "NetworkErrorKind",
    "NetworkTimeoutError",
    "NodeError",
    "DecodingError",
    "DataKeyNotFound",
    "CallRequest",
    "CallResult",
    "QueryRequest",
    "QueryResult",
    "TxReceipt",
    "SimulatedNodeTransport",
    "JsonRpcTransport",
    "NodeTransport",
    "get_transport",
    "ContractAddress",
    "FunctionName",
    "DataKey",
    "Param",
    "__version__",
]
