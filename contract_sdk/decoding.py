"""
Decoding of node responses into call and query results.
"""
import logging
from typing import Any, Dict, Optional, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError as AbiDecodingError
from pydantic import ValidationError

from .exceptions import DataKeyNotFound, DecodingError, NodeError
from .models import CallResult, QueryRequest, QueryResult, RpcResponse, TxReceipt
from .types import checksum_addresses

# Error(string) and Panic(uint256) selectors emitted by Solidity
ERROR_STRING_SELECTOR = "08c379a0"
PANIC_SELECTOR = "4e487b71"

PANIC_CODES = {
    0x00: "generic compiler panic",
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum value",
    0x22: "invalid storage byte array encoding",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to zero-initialized function",
}


def _hex_body(value: Any) -> Optional[str]:
    """Lowercase hex digits of a 0x-prefixed string, or None"""
    if not isinstance(value, str) or not value.startswith("0x"):
        return None
    body = value[2:].lower()
    if len(body) % 2 or any(c not in "0123456789abcdef" for c in body):
        return None
    return body


def decode_revert_reason(data: Any) -> Optional[str]:
    """
    Extract a revert reason from error data.

    Handles ``Error(string)`` and ``Panic(uint256)`` payloads. Some nodes nest
    the payload in a dict under ``data``.

    Returns:
        The reason string, or None if the data carries no known payload
    """
    if isinstance(data, dict):
        data = data.get("data")
    body = _hex_body(data)
    if body is None or len(body) < 8:
        return None
    selector, payload = body[:8], bytes.fromhex(body[8:])
    try:
        if selector == ERROR_STRING_SELECTOR:
            (reason,) = abi_decode(["string"], payload)
            return reason
        if selector == PANIC_SELECTOR:
            (code,) = abi_decode(["uint256"], payload)
            description = PANIC_CODES.get(code, "unknown panic code")
            return f"Panic(0x{code:02x}): {description}"
    except (AbiDecodingError, UnicodeDecodeError, ValueError):
        return None
    return None


def _quantity(value: Any, name: str) -> int:
    """Parse a JSON-RPC hex quantity"""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.startswith("0x"):
        try:
            return int(value, 16)
        except ValueError:
            pass
    raise DecodingError(f"Invalid quantity for {name}: {value!r}")


class ResponseDecoder:
    """
    Interprets raw JSON-RPC responses.

    Failures encoded in a response (JSON-RPC errors, reverted receipts) are
    raised as NodeError with the node's reason. Responses that do not match
    the expected schema raise DecodingError.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def parse_envelope(self, raw: Any) -> RpcResponse:
        """
        Validate the JSON-RPC 2.0 response shape.

        Raises:
            DecodingError: If the response is not a JSON-RPC response object
        """
        if not isinstance(raw, dict):
            raise DecodingError(f"Unexpected JSON-RPC response (non-object): {type(raw).__name__}")
        try:
            return RpcResponse.model_validate(raw)
        except ValidationError as e:
            raise DecodingError(f"Unexpected JSON-RPC response: {e}") from e

    def unwrap(self, raw: Any, tx_hash: Optional[str] = None) -> Any:
        """
        Return the ``result`` member of a response.

        Raises:
            NodeError: If the response carries an error object
            DecodingError: If the response shape is invalid
        """
        envelope = self.parse_envelope(raw)
        if envelope.error is not None:
            err = envelope.error
            revert_reason = decode_revert_reason(err.data)
            reason = revert_reason or err.message or None
            parts = []
            if err.code is not None:
                parts.append(f"code {err.code}")
            if err.message:
                parts.append(err.message)
            if revert_reason and revert_reason != err.message:
                parts.append(revert_reason)
            detail = ": ".join(parts) if parts else "unknown error"
            raise NodeError(
                f"Node error: {detail}",
                reason=reason,
                code=err.code,
                data=err.data,
                tx_hash=tx_hash,
            )
        return envelope.result

    def decode_return_data(self, data: Any, output_types: Sequence[str]) -> Any:
        """
        ABI-decode return data.

        A single output is returned bare, several as a tuple, none as None.
        Addresses come back in EIP-55 checksum form.

        Raises:
            DecodingError: If the data is not hex or does not match the types
        """
        body = _hex_body(data)
        if body is None:
            raise DecodingError(f"Expected 0x-prefixed hex return data, got {data!r}")
        if not output_types:
            return None
        try:
            values = abi_decode(list(output_types), bytes.fromhex(body))
        except (AbiDecodingError, TypeError, ValueError) as e:
            raise DecodingError(f"Failed to decode return data as ({','.join(output_types)}): {e}") from e
        values = [checksum_addresses(t, v) for t, v in zip(output_types, values)]
        if len(values) == 1:
            return values[0]
        return tuple(values)

    def decode_query(self, raw: Any, request: QueryRequest,
                     output_types: Sequence[str] = ()) -> QueryResult:
        """
        Turn an ``eth_call`` response into a QueryResult.

        Without output types the value is the raw return bytes.

        Raises:
            NodeError: If the node reported an error
            DataKeyNotFound: If no data came back for a key with known outputs
            DecodingError: If the response cannot be decoded
        """
        result = self.unwrap(raw)
        body = _hex_body(result)
        if body is None:
            raise DecodingError(f"Expected 0x-prefixed hex from eth_call, got {result!r}")
        raw_bytes = bytes.fromhex(body)

        if output_types and not raw_bytes:
            raise DataKeyNotFound(
                f"No data returned for '{request.data_key}' on {request.contract_address}"
            )
        value = self.decode_return_data(result, output_types) if output_types else raw_bytes
        self.logger.debug(f"Decoded query result for '{request.data_key}' ({len(raw_bytes)} bytes)")
        return QueryResult(
            success=True,
            value=value,
            raw=raw_bytes,
            output_types=list(output_types),
            block=request.block,
        )

    def decode_receipt(self, raw: Any, payload: Any = None,
                       raw_payload: Optional[str] = None,
                       tx_hash: Optional[str] = None) -> Optional[CallResult]:
        """
        Turn an ``eth_getTransactionReceipt`` response into a CallResult.

        Returns:
            CallResult, or None if the transaction is not mined yet

        Raises:
            NodeError: If the node reported an error or execution reverted
            DecodingError: If the receipt is malformed
        """
        result = self.unwrap(raw, tx_hash=tx_hash)
        if result is None:
            return None
        if not isinstance(result, dict):
            raise DecodingError(f"Unexpected receipt (non-object): {result!r}")

        receipt = self._parse_receipt(result)
        if receipt.status != 1:
            raise NodeError(
                f"Transaction {receipt.tx_hash} reverted in block {receipt.block_number}",
                reason="execution reverted",
                tx_hash=receipt.tx_hash,
            )
        return CallResult(
            success=True,
            payload=payload,
            raw_payload=raw_payload,
            gas_used=receipt.gas_used,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )

    def _parse_receipt(self, result: Dict[str, Any]) -> TxReceipt:
        fields = dict(result)
        for key in ("blockNumber", "gasUsed", "status"):
            if key not in fields:
                raise DecodingError(f"Receipt is missing '{key}'")
            fields[key] = _quantity(fields[key], key)
        try:
            return TxReceipt.model_validate(fields)
        except ValidationError as e:
            raise DecodingError(f"Malformed receipt: {e}") from e
