"""
Data models for the Contract Interaction SDK.
"""
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import InteractionError, InteractionErrorKind
from .types import ContractAddress, DataKey, FunctionName


class CallRequest(BaseModel):
    """A mutating contract call, built per invocation"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    contract_address: ContractAddress
    function_name: FunctionName
    params: Tuple[Any, ...] = ()
    gas_limit: int = Field(..., ge=0)
    value: int = Field(0, ge=0)


class QueryRequest(BaseModel):
    """A read-only contract query, built per invocation"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    contract_address: ContractAddress
    data_key: DataKey
    params: Tuple[Any, ...] = ()
    block: str = "latest"


class _ResultBase(BaseModel):
    success: bool
    error_kind: Optional[InteractionErrorKind] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_variant(self):
        if self.success and self.error_kind is not None:
            raise ValueError(f"Invalid result: success=True with error kind {self.error_kind}")
        if not self.success and self.error_kind is None:
            raise ValueError("Invalid result: failure without an error kind")
        return self

    @property
    def ok(self) -> bool:
        return self.success


class CallResult(_ResultBase):
    """Outcome of a mutating call"""
    payload: Any = None
    raw_payload: Optional[str] = None
    gas_used: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None

    @property
    def pending(self) -> bool:
        """True when the transaction was submitted but not waited for"""
        return self.success and self.tx_hash is not None and self.block_number is None

    @classmethod
    def failure(cls, error: InteractionError) -> "CallResult":
        return cls(
            success=False,
            error_kind=error.kind,
            error=str(error),
            tx_hash=getattr(error, "tx_hash", None),
        )


class QueryResult(_ResultBase):
    """Outcome of a read-only query"""
    value: Any = None
    raw: Optional[bytes] = None
    output_types: List[str] = Field(default_factory=list)
    block: Optional[str] = None

    @classmethod
    def failure(cls, error: InteractionError) -> "QueryResult":
        return cls(success=False, error_kind=error.kind, error=str(error))


class RpcErrorObject(BaseModel):
    """JSON-RPC 2.0 error member"""
    code: Optional[int] = None
    message: str = ""
    data: Any = None


class RpcResponse(BaseModel):
    """JSON-RPC 2.0 response envelope"""
    jsonrpc: str = "2.0"
    id: Any = None
    result: Any = None
    error: Optional[RpcErrorObject] = None

    @model_validator(mode="before")
    @classmethod
    def _require_result_or_error(cls, data: Any) -> Any:
        if isinstance(data, dict) and "result" not in data and "error" not in data:
            raise ValueError("response has neither 'result' nor 'error'")
        return data


class TxReceipt(BaseModel):
    """Transaction receipt from the node"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: Optional[str] = Field(None, alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Any] = Field(default_factory=list)
