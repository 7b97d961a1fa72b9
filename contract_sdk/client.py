"""
ContractClient - Main client for invoking and querying smart contracts.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from .config import ClientConfig, NetworkConfig
from .decoding import ResponseDecoder, _quantity
from .encoding import CallEncoder, ContractAbi, EncodedCall, ParamLike
from .exceptions import (
    DecodingError, EncodingError, InteractionError, NetworkError, NetworkTimeoutError
)
from .models import CallRequest, CallResult, QueryRequest, QueryResult
from .transport import JsonRpcTransport, NodeTransport
from .types import (
    AddressLike, ContractAddress, DataKey, DataKeyLike, FunctionName,
    FunctionNameLike, validate_gas_limit
)

AbiLike = Union[ContractAbi, List[Dict[str, Any]]]


class Signer(Protocol):
    """Protocol for transaction signers, e.g. an eth_account LocalAccount"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


class ContractClient:
    """
    Client for calling and querying smart contracts on an EVM node.

    Every invocation runs Validate -> Encode -> Send -> Decode, in that order,
    and stops at the first failing stage with a typed InteractionError.
    Mutating calls are never retried by the client; a timed-out call may
    still have been executed and should be reconciled with a query.

    To use this client, you'll need:
    - A node endpoint (rpc_url) or a NodeTransport
    - For mutating calls: a signer, or a node-managed from_address
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        transport: Optional[NodeTransport] = None,
        signer: Optional[Signer] = None,
        from_address: Optional[str] = None,
        abi: Optional[AbiLike] = None,
        timeout: float = 30,
        receipt_timeout: float = 120,
        poll_interval: float = 0.5,
        connect_retries: int = 3,
        chain_id: Optional[int] = None,
        insecure_rpc: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the ContractClient

        Args:
            rpc_url: Node endpoint URL (e.g., "https://sepolia.era.zksync.dev")
            transport: Transport to use instead of building one from rpc_url
            signer: Signer for mutating calls (optional)
            from_address: Node-managed sender used when no signer is given
            abi: Default contract ABI for encoding and decoding
            timeout: Default per-request timeout in seconds
            receipt_timeout: How long to wait for a transaction to be mined
            poll_interval: Seconds between receipt polls
            connect_retries: Retries for failed connection attempts
            chain_id: Chain id for signing; fetched from the node if None
            insecure_rpc: Accept a plain http:// rpc_url on a remote host
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If neither rpc_url nor transport is provided
            ValueError: If rpc_url is not a secure URL
        """
        if transport is None and not rpc_url:
            raise ValueError("Either rpc_url or transport must be provided")

        self.logger = logger or logging.getLogger(__name__)
        self.transport = transport or JsonRpcTransport(
            rpc_url,
            timeout=timeout,
            connect_retries=connect_retries,
            allow_insecure=insecure_rpc,
            logger=self.logger,
        )
        self.rpc_url = rpc_url or self.transport.endpoint
        self.signer = signer
        self.from_address = str(ContractAddress(from_address)) if from_address else None
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.chain_id = chain_id

        self.encoder = CallEncoder(abi, logger=self.logger)
        self.decoder = ResponseDecoder(logger=self.logger)

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs) -> "ContractClient":
        """Build a client from a ClientConfig; keyword arguments win."""
        options = {
            "rpc_url": config.resolve_rpc_url(),
            "timeout": config.timeout,
            "receipt_timeout": config.receipt_timeout,
            "poll_interval": config.poll_interval,
            "connect_retries": config.connect_retries,
            "chain_id": config.resolve_chain_id(),
            "from_address": config.from_address,
            "insecure_rpc": config.insecure_rpc,
        }
        options.update(kwargs)
        return cls(**options)

    @classmethod
    def from_network(cls, network: str, rpc_url: Optional[str] = None, **kwargs) -> "ContractClient":
        """Build a client for a bundled network preset."""
        kwargs.setdefault("chain_id", NetworkConfig.get_chain_id(network))
        return cls(rpc_url=NetworkConfig.get_rpc_url(network, override=rpc_url), **kwargs)

    @property
    def address(self) -> str:
        """
        Sender address for mutating calls

        Raises:
            ValueError: If neither a signer nor a from_address is available
        """
        if self.signer is not None:
            return self.signer.address
        if self.from_address:
            return self.from_address
        raise ValueError("No signer or from_address available")

    def call(
        self,
        contract_address: AddressLike,
        function_name: FunctionNameLike,
        params: Sequence[ParamLike] = (),
        gas_limit: int = 300000,
        value: int = 0,
        abi: Optional[AbiLike] = None,
        timeout: Optional[float] = None,
        simulate: bool = True,
        wait_for_receipt: bool = True,
        raise_on_error: bool = True
    ) -> CallResult:
        """
        Invoke a mutating contract function as a transaction.

        Args:
            contract_address: Address of the deployed contract
            function_name: Bare function name or canonical signature
            params: Ordered typed parameters (Param or (type, value)); bare
                values are allowed when an ABI is available
            gas_limit: Upper bound on execution cost
            value: Wei sent along with the call
            abi: ABI overriding the client's default
            timeout: Per-request timeout in seconds
            simulate: Run eth_call first to get the return payload and catch
                reverts before submitting
            wait_for_receipt: Wait for the transaction to be mined
            raise_on_error: If False, return a failed CallResult instead of raising

        Returns:
            CallResult with payload, gas used and transaction hash

        Raises:
            InvalidContractAddress: If the address is malformed
            InvalidFunctionName: If the function name is malformed
            EncodingError: If parameters do not match their types
            NetworkError: If the node cannot be reached or times out
            NodeError: If the node rejects the transaction or it reverts
            EncodingError: If the client has neither a signer nor a from_address
            DecodingError: If a node response is malformed
        """
        try:
            return self._call(contract_address, function_name, params, gas_limit, value,
                              abi, timeout, simulate, wait_for_receipt)
        except InteractionError as e:
            self.logger.error(f"Call {function_name!r} on {contract_address!r} failed: {e}")
            if raise_on_error:
                raise
            return CallResult.failure(e)

    def query(
        self,
        contract_address: AddressLike,
        data_key: DataKeyLike,
        params: Sequence[ParamLike] = (),
        output_types: Optional[Sequence[str]] = None,
        abi: Optional[AbiLike] = None,
        block: Union[str, int] = "latest",
        timeout: Optional[float] = None,
        raise_on_error: bool = True
    ) -> QueryResult:
        """
        Fetch a keyed value from a contract with a read-only call.

        Args:
            contract_address: Address of the deployed contract
            data_key: Public getter or view function name (or signature)
            params: Arguments of the view function, if any
            output_types: ABI types of the returned value; taken from the
                ABI when omitted. Without either, the raw bytes are returned.
            abi: ABI overriding the client's default
            block: Block tag or number to read at
            timeout: Per-request timeout in seconds
            raise_on_error: If False, return a failed QueryResult instead of raising

        Returns:
            QueryResult with the decoded value

        Raises:
            InvalidContractAddress: If the address is malformed
            InvalidDataKey: If the data key is malformed
            EncodingError: If parameters do not match their types
            NetworkError: If the node cannot be reached or times out
            NodeError: If the node rejects the call or it reverts
            DataKeyNotFound: If the contract returns no data for the key
            DecodingError: If the response cannot be decoded
        """
        try:
            return self._query(contract_address, data_key, params, output_types, abi, block, timeout)
        except InteractionError as e:
            self.logger.error(f"Query {data_key!r} on {contract_address!r} failed: {e}")
            if raise_on_error:
                raise
            return QueryResult.failure(e)

    def _call(self, contract_address, function_name, params, gas_limit, value,
              abi, timeout, simulate, wait_for_receipt) -> CallResult:
        # 1. Validate
        request = CallRequest(
            contract_address=ContractAddress(contract_address),
            function_name=FunctionName(function_name),
            params=tuple(params),
            gas_limit=validate_gas_limit(gas_limit),
            value=validate_gas_limit(value, "Value"),
        )
        if self.signer is None and not self.from_address:
            raise EncodingError("Cannot build a transaction: no signer or from_address configured")
        sender = self.address
        self.logger.info(
            f"Calling function '{request.function_name}' on contract "
            f"'{request.contract_address}' with gas limit {request.gas_limit}"
        )

        # 2. Encode
        encoded = self.encoder.encode_call(request.function_name, request.params, abi=self._abi(abi))

        call_object = {
            "from": sender,
            "to": str(request.contract_address),
            "data": encoded.data_hex,
            "gas": hex(request.gas_limit),
            "value": hex(request.value),
        }

        # 3. Simulate to obtain the return payload and surface reverts early
        payload, raw_payload = None, None
        if simulate:
            raw_payload = self.decoder.unwrap(self.transport.send_query(call_object, "latest", timeout))
            if encoded.output_types:
                payload = self.decoder.decode_return_data(raw_payload, encoded.output_types)
            else:
                payload = raw_payload

        # 4. Send
        tx_hash = self._submit(request, encoded, call_object, timeout)
        self.logger.info(f"Transaction sent: {tx_hash}")
        if not wait_for_receipt:
            return CallResult(success=True, payload=payload, raw_payload=raw_payload, tx_hash=tx_hash)

        # 5. Decode
        result = self._wait_for_receipt(tx_hash, payload, raw_payload, timeout)
        self.logger.info(f"Transaction {tx_hash} mined in block {result.block_number}, gas used {result.gas_used}")
        return result

    def _query(self, contract_address, data_key, params, output_types, abi, block, timeout) -> QueryResult:
        # 1. Validate
        if isinstance(block, int) and not isinstance(block, bool):
            block = hex(block)
        request = QueryRequest(
            contract_address=ContractAddress(contract_address),
            data_key=DataKey(data_key),
            params=tuple(params),
            block=block,
        )
        self.logger.info(f"Fetching data '{request.data_key}' from contract '{request.contract_address}'")

        # 2. Encode
        encoded = self.encoder.encode_call(request.data_key.as_function_name(), request.params,
                                           abi=self._abi(abi))
        types = tuple(output_types) if output_types is not None else encoded.output_types

        # 3. Send
        call_object = {"to": str(request.contract_address), "data": encoded.data_hex}
        raw = self.transport.send_query(call_object, request.block, timeout)

        # 4. Decode
        return self.decoder.decode_query(raw, request, types)

    def _abi(self, abi: Optional[AbiLike]) -> Optional[ContractAbi]:
        if abi is None:
            return self.encoder.abi
        return abi if isinstance(abi, ContractAbi) else ContractAbi(abi)

    def _submit(self, request: CallRequest, encoded: EncodedCall,
                call_object: Dict[str, Any], timeout: Optional[float]) -> str:
        if self.signer is None:
            tx_hash = self.decoder.unwrap(self.transport.send_transaction(call_object, timeout))
        else:
            nonce = _quantity(
                self.decoder.unwrap(self.transport.get_transaction_count(self.signer.address, "pending", timeout)),
                "nonce",
            )
            gas_price = _quantity(self.decoder.unwrap(self.transport.get_gas_price(timeout)), "gasPrice")
            chain_id = self.chain_id
            if chain_id is None:
                chain_id = _quantity(self.decoder.unwrap(self.transport.get_chain_id(timeout)), "chainId")
            tx = {
                "to": str(request.contract_address),
                "data": encoded.data_hex,
                "gas": request.gas_limit,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": chain_id,
                "value": request.value,
            }
            try:
                signed = self.signer.sign_transaction(tx)
            except Exception as e:
                raise EncodingError(f"Failed to sign transaction: {e}") from e
            raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
            if raw_tx is None:
                raise EncodingError("Signer returned an object without raw_transaction")
            tx_hash = self.decoder.unwrap(self.transport.send_raw_transaction(raw_tx, timeout))

        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            raise DecodingError(f"Unexpected transaction hash from node: {tx_hash!r}")
        return tx_hash

    def _wait_for_receipt(self, tx_hash: str, payload: Any, raw_payload: Optional[str],
                          timeout: Optional[float]) -> CallResult:
        deadline = time.monotonic() + self.receipt_timeout
        while True:
            try:
                raw = self.transport.get_transaction_receipt(tx_hash, timeout)
            except NetworkError as e:
                # The transaction is already submitted; keep its hash on the error
                e.tx_hash = tx_hash
                raise
            result = self.decoder.decode_receipt(raw, payload, raw_payload, tx_hash=tx_hash)
            if result is not None:
                return result
            if time.monotonic() >= deadline:
                raise NetworkTimeoutError(
                    f"Transaction {tx_hash} not mined within {self.receipt_timeout}s",
                    endpoint=self.rpc_url,
                    tx_hash=tx_hash,
                )
            self.logger.debug(f"Waiting for receipt of {tx_hash}")
            time.sleep(self.poll_interval)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
