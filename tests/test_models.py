"""
Tests for request and result models.
"""
import pytest
from pydantic import ValidationError

from contract_sdk.exceptions import (
    DataKeyNotFound, InteractionErrorKind, NetworkTimeoutError, NodeError
)
from contract_sdk.models import CallRequest, CallResult, QueryRequest, QueryResult, TxReceipt
from contract_sdk.types import ContractAddress, DataKey, FunctionName, Param
from tests.conftest import TEST_CONTRACT


def test_call_request_is_frozen():
    request = CallRequest(
        contract_address=ContractAddress(TEST_CONTRACT),
        function_name=FunctionName("transfer"),
        params=(Param("uint256", 1),),
        gas_limit=21000,
    )
    with pytest.raises(ValidationError):
        request.gas_limit = 1
    assert request.value == 0


def test_call_request_rejects_negative_gas():
    with pytest.raises(ValidationError):
        CallRequest(
            contract_address=ContractAddress(TEST_CONTRACT),
            function_name=FunctionName("transfer"),
            gas_limit=-1,
        )


def test_query_request_defaults():
    request = QueryRequest(contract_address=ContractAddress(TEST_CONTRACT), data_key=DataKey("owner"))
    assert request.params == ()
    assert request.block == "latest"


@pytest.mark.parametrize("kwargs", [
    {"success": True, "error_kind": InteractionErrorKind.NODE_ERROR},
    {"success": False},
])
def test_result_variant_consistency(kwargs):
    with pytest.raises(ValidationError):
        CallResult(**kwargs)
    with pytest.raises(ValidationError):
        QueryResult(**kwargs)


def test_call_failure_keeps_tx_hash():
    error = NetworkTimeoutError("not mined", tx_hash="0xabc")
    result = CallResult.failure(error)

    assert not result.success
    assert result.error_kind == InteractionErrorKind.NETWORK_TIMEOUT
    assert result.error == "not mined"
    assert result.tx_hash == "0xabc"
    assert not result.pending


def test_call_failure_without_tx_hash():
    result = CallResult.failure(NodeError("rejected", reason="nonce too low"))
    assert result.error_kind == InteractionErrorKind.NODE_ERROR
    assert result.tx_hash is None


def test_query_failure():
    result = QueryResult.failure(DataKeyNotFound("nothing there"))
    assert result.error_kind == InteractionErrorKind.DATA_KEY_NOT_FOUND
    assert result.value is None
    assert not result.ok


def test_error_kind_serializes_as_string():
    result = QueryResult.failure(DataKeyNotFound("nothing there"))
    assert result.model_dump(mode="json")["error_kind"] == "DATA_KEY_NOT_FOUND"


def test_pending_call_result():
    assert CallResult(success=True, tx_hash="0xabc").pending
    assert not CallResult(success=True, tx_hash="0xabc", block_number=3).pending


def test_receipt_aliases():
    receipt = TxReceipt.model_validate({
        "transactionHash": "0xabc",
        "blockNumber": 3,
        "status": 1,
        "gasUsed": 21000,
        "from": TEST_CONTRACT,
        "cumulativeGasUsed": 42000,
    })
    assert receipt.tx_hash == "0xabc"
    assert receipt.from_address == TEST_CONTRACT
    assert receipt.to_address is None
    assert receipt.logs == []
