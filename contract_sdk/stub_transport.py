"""
Simulated node transport.

This module provides an in-process stand-in for a blockchain node. It answers
JSON-RPC requests from canned responses, mines submitted transactions into
receipts, and records every request, for testing and development without a
live node.
"""
import hashlib
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import NetworkError, NetworkErrorKind, NetworkTimeoutError
from .transport import NodeTransport

DEFAULT_CHAIN_ID = 31337
DEFAULT_GAS_PRICE = 1_000_000_000  # 1 gwei
DEFAULT_GAS_USED = 21000

Handler = Callable[[List[Any]], Any]


class SimulatedNodeTransport(NodeTransport):
    """
    A simple simulated node for the transport interface.

    Canned behaviour is configured per JSON-RPC method:

    - ``set_result(method, value)``: reply with ``{"result": value}``
    - ``set_error(method, code, message, data)``: reply with an error object
    - ``set_handler(method, fn)``: compute the result from the params
    - ``hang(method)``: raise NetworkTimeoutError as a silent node would
    - ``refuse_connections()``: raise NetworkError for every request

    Without configuration, ``eth_chainId``, ``eth_gasPrice``,
    ``eth_getTransactionCount``, ``eth_call`` (returns ``0x``),
    ``eth_sendTransaction``, ``eth_sendRawTransaction`` and
    ``eth_getTransactionReceipt`` behave like a dev node that mines every
    transaction immediately.
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        gas_price: int = DEFAULT_GAS_PRICE,
        gas_used: int = DEFAULT_GAS_USED,
        receipt_delay_polls: int = 0,
        endpoint: str = "simulated://node",
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the simulated node.

        Args:
            chain_id: Chain id reported by eth_chainId
            gas_price: Gas price reported by eth_gasPrice
            gas_used: Gas used recorded in every receipt
            receipt_delay_polls: Receipt polls answered with null before a
                transaction shows up as mined
            endpoint: Label used in logs and errors
            logger: Optional logger instance
        """
        self.endpoint = endpoint
        self.chain_id = chain_id
        self.gas_price = gas_price
        self.gas_used = gas_used
        self.receipt_delay_polls = receipt_delay_polls
        self.logger = logger or logging.getLogger(__name__)

        self.requests: List[Tuple[str, List[Any]]] = []
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self._responses: Dict[str, Dict[str, Any]] = {}
        self._handlers: Dict[str, Handler] = {}
        self._hanging: Dict[str, float] = {}
        self._refuse = False
        self._revert_receipts = False
        self._nonces: Dict[str, int] = {}
        self._block_number = 1
        self._receipt_polls: Dict[str, int] = {}
        self._lock = threading.RLock()
        self.closed = False

    def is_available(self) -> bool:
        """
        Check if the simulated node is available.

        Returns:
            Always True since the simulated node has no dependencies
        """
        return True

    def set_result(self, method: str, value: Any) -> None:
        with self._lock:
            self._handlers.pop(method, None)
            self._responses[method] = {"result": value}

    def set_error(self, method: str, code: int = -32000, message: str = "execution reverted",
                  data: Any = None) -> None:
        error: Dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        with self._lock:
            self._handlers.pop(method, None)
            self._responses[method] = {"error": error}

    def set_handler(self, method: str, handler: Handler) -> None:
        with self._lock:
            self._responses.pop(method, None)
            self._handlers[method] = handler

    def set_raw_response(self, method: str, response: Any) -> None:
        """Reply to ``method`` with ``response`` as is, valid or not."""
        with self._lock:
            self._handlers.pop(method, None)
            self._responses[method] = {"__raw__": response}

    def hang(self, method: str, delay: float = 0.0) -> None:
        """Make ``method`` time out, optionally after sleeping ``delay`` seconds."""
        with self._lock:
            self._hanging[method] = delay

    def refuse_connections(self, refuse: bool = True) -> None:
        self._refuse = refuse

    def revert_transactions(self, revert: bool = True) -> None:
        """Mine subsequent transactions with status 0."""
        self._revert_receipts = revert

    def calls_to(self, method: str) -> List[List[Any]]:
        """Params of every recorded request for ``method``"""
        with self._lock:
            return [params for m, params in self.requests if m == method]

    def request(self, method: str, params: Optional[List[Any]] = None,
                timeout: Optional[float] = None) -> Dict[str, Any]:
        params = list(params or [])
        with self._lock:
            self.requests.append((method, params))
            request_id = len(self.requests)

        if self._refuse:
            raise NetworkError(
                f"Connection refused by {self.endpoint}",
                NetworkErrorKind.CONNECTION,
                endpoint=self.endpoint,
            )
        if method in self._hanging:
            delay = self._hanging[method]
            if delay:
                time.sleep(delay)
            raise NetworkTimeoutError(f"{method} timed out after {timeout}s", endpoint=self.endpoint)

        self.logger.debug(f"Simulated node handling {method}")
        with self._lock:
            canned = self._responses.get(method)
            handler = self._handlers.get(method)

        if canned is not None:
            if "__raw__" in canned:
                return canned["__raw__"]
            response = {"jsonrpc": "2.0", "id": request_id}
            response.update(canned)
            if method in ("eth_sendTransaction", "eth_sendRawTransaction") \
                    and isinstance(canned.get("result"), str):
                self._mine(canned["result"], params)
            return response
        if handler is not None:
            return {"jsonrpc": "2.0", "id": request_id, "result": handler(params)}
        return {"jsonrpc": "2.0", "id": request_id, "result": self._default(method, params)}

    def _default(self, method: str, params: List[Any]) -> Any:
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_blockNumber":
            return hex(self._block_number)
        if method == "eth_getTransactionCount":
            address = str(params[0]).lower() if params else ""
            return hex(self._nonces.get(address, 0))
        if method == "eth_call":
            return "0x"
        if method in ("eth_sendTransaction", "eth_sendRawTransaction"):
            tx_hash = self._tx_hash(params)
            self._mine(tx_hash, params)
            return tx_hash
        if method == "eth_getTransactionReceipt":
            return self._receipt(params[0] if params else "")
        return None

    @staticmethod
    def _tx_hash(params: List[Any]) -> str:
        seed = repr(params).encode() + str(time.time_ns()).encode()
        return "0x" + hashlib.sha256(seed).hexdigest()

    def _mine(self, tx_hash: str, params: List[Any]) -> None:
        with self._lock:
            self._block_number += 1
            tx = params[0] if params and isinstance(params[0], dict) else {}
            sender = str(tx.get("from", "")).lower()
            if sender:
                self._nonces[sender] = self._nonces.get(sender, 0) + 1
            self.transactions[tx_hash] = {
                "transactionHash": tx_hash,
                "blockNumber": hex(self._block_number),
                "blockHash": "0x" + hashlib.sha256(tx_hash.encode()).hexdigest(),
                "status": "0x0" if self._revert_receipts else "0x1",
                "gasUsed": hex(self.gas_used),
                "from": tx.get("from"),
                "to": tx.get("to"),
                "logs": [],
            }
            self._receipt_polls[tx_hash] = 0

    def _receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            if tx_hash not in self.transactions:
                return None
            polls = self._receipt_polls.get(tx_hash, 0)
            self._receipt_polls[tx_hash] = polls + 1
            if polls < self.receipt_delay_polls:
                return None
            return dict(self.transactions[tx_hash])

    def close(self) -> None:
        """Close the simulated node (no-op)."""
        self.closed = True
