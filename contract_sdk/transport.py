"""
Transport layer for node communication.

This module provides an abstraction over the protocol used to talk to a
blockchain node, with a JSON-RPC over HTTP(S) implementation. The transport is
the only part of the SDK that performs I/O. It returns raw JSON-RPC response
envelopes; interpreting them is left to the response decoder.
"""
import itertools
import logging
import os
import threading
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, NewConnectionError, ReadTimeoutError
from urllib3.util.retry import Retry

from .exceptions import NetworkError, NetworkErrorKind, NetworkTimeoutError, NodeError

# Configure logger
logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


class ConnectRetry(Retry):
    """
    Retry policy that only retries connections which failed outright.

    A connect timeout is treated as a timeout of the whole request and
    fails at once, so a slow endpoint is not hit again behind the caller's
    back. Refused or unresolvable connections are retried as usual.
    """

    def increment(self, method=None, url=None, response=None, error=None,
                  _pool=None, _stacktrace=None):
        if isinstance(error, ConnectTimeoutError) and not isinstance(error, NewConnectionError):
            raise MaxRetryError(_pool, url, error) from error
        return super().increment(
            method=method, url=url, response=response, error=error,
            _pool=_pool, _stacktrace=_stacktrace,
        )


def _is_timeout(error: requests.RequestException) -> bool:
    """Whether a requests failure was caused by a connect or read timeout."""
    if isinstance(error, requests.Timeout):
        return True
    reason = error.args[0] if error.args else None
    if isinstance(reason, MaxRetryError):
        reason = reason.reason
    if isinstance(reason, ReadTimeoutError):
        return True
    return isinstance(reason, ConnectTimeoutError) and not isinstance(reason, NewConnectionError)



class NodeTransport(ABC):
    """
    Abstract base class for node transport implementations.

    Implementations send a JSON-RPC method call and return the raw response
    envelope. They raise NetworkError when the node cannot be reached and
    NetworkTimeoutError when it does not answer in time.
    """

    endpoint: Optional[str] = None

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this transport is available for use.

        Returns:
            True if transport is available, False otherwise
        """
        pass

    @abstractmethod
    def request(self, method: str, params: Optional[List[Any]] = None,
                timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Send one JSON-RPC request.

        Args:
            method: JSON-RPC method name
            params: Positional parameters
            timeout: Request timeout in seconds (defaults to the transport's)

        Returns:
            The raw JSON-RPC response envelope

        Raises:
            NetworkError: If the node cannot be reached
            NetworkTimeoutError: If the node does not answer in time
            NodeError: If the node rejects the request without a JSON-RPC body
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close any open connections or resources."""
        pass

    def send_query(self, call_object: Dict[str, Any], block: str = "latest",
                   timeout: Optional[float] = None) -> Dict[str, Any]:
        """Execute a read-only call (``eth_call``)."""
        return self.request("eth_call", [call_object, block], timeout=timeout)

    def send_raw_transaction(self, raw_tx: Union[bytes, str],
                             timeout: Optional[float] = None) -> Dict[str, Any]:
        """Submit a signed transaction (``eth_sendRawTransaction``)."""
        if isinstance(raw_tx, (bytes, bytearray)):
            raw_tx = "0x" + bytes(raw_tx).hex()
        return self.request("eth_sendRawTransaction", [raw_tx], timeout=timeout)

    def send_transaction(self, tx: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Submit a transaction signed by a node-managed account (``eth_sendTransaction``)."""
        return self.request("eth_sendTransaction", [tx], timeout=timeout)

    def get_transaction_receipt(self, tx_hash: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.request("eth_getTransactionReceipt", [tx_hash], timeout=timeout)

    def get_transaction_count(self, address: str, block: str = "pending",
                              timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.request("eth_getTransactionCount", [address, block], timeout=timeout)

    def get_chain_id(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.request("eth_chainId", [], timeout=timeout)

    def get_gas_price(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self.request("eth_gasPrice", [], timeout=timeout)

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager, ensuring the transport is closed."""
        self.close()


def validate_endpoint_url(url: str, allow_insecure: bool = False) -> None:
    """
    Validate that a node endpoint URL is secure.

    Plain http is accepted for local hosts, or anywhere when
    ``allow_insecure`` is set or CONTRACT_SDK_INSECURE_RPC=1.

    Raises:
        ValueError: If URL is invalid or uses insecure HTTP
    """
    if not isinstance(url, str) or not url.strip():
        raise ValueError("Node endpoint must be a non-empty string")
    parsed = urllib.parse.urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid node endpoint '{url}': expected an http(s) URL")

    host = parsed.hostname or ""
    is_local = host in LOCAL_HOSTS
    if parsed.scheme != "https" and not is_local:
        if not allow_insecure and os.environ.get("CONTRACT_SDK_INSECURE_RPC") != "1":
            raise ValueError(
                f"Node endpoint must use https:// for security (got: {parsed.scheme}://). "
                "Set CONTRACT_SDK_INSECURE_RPC=1 to allow HTTP for development."
            )
        logger.warning(f"Using insecure HTTP node endpoint {host}")


class JsonRpcTransport(NodeTransport):
    """
    JSON-RPC 2.0 transport over HTTP(S).

    A single instance may be shared across threads: each thread gets its own
    ``requests.Session`` and request ids are drawn from a locked counter.

    Only refused or failed connections are retried. Nothing has reached the
    node at that point, so this holds for mutating calls too. Connect and
    read timeouts fail at once as NetworkTimeoutError, and error statuses
    are never retried.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30,
        connect_retries: int = 3,
        backoff_factor: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        verify_ssl: bool = True,
        allow_insecure: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the JSON-RPC transport.

        Args:
            endpoint: Node URL (e.g., "https://sepolia.infura.io/v3/<key>")
            timeout: Default request timeout in seconds
            connect_retries: Retries for failed connection attempts
            backoff_factor: Backoff factor between connection retries
            headers: Extra HTTP headers (e.g., authorization)
            verify_ssl: Whether to verify TLS certificates
            allow_insecure: Accept a plain http:// endpoint on a remote host
            logger: Optional logger instance

        Raises:
            ValueError: If the endpoint is invalid or insecure
        """
        validate_endpoint_url(endpoint, allow_insecure=allow_insecure)
        self.endpoint = endpoint.strip()
        self.timeout = timeout
        self.connect_retries = max(0, int(connect_retries))
        self.backoff_factor = backoff_factor
        self.headers = {"Content-Type": "application/json"}
        if headers:
            self.headers.update(dict(headers))
        self.verify_ssl = verify_ssl
        self.logger = logger or logging.getLogger(__name__)

        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        self._closed = False

    def is_available(self) -> bool:
        return not self._closed

    @property
    def session(self) -> requests.Session:
        """The calling thread's HTTP session"""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._create_session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(self.headers)
        retries = ConnectRetry(
            total=self.connect_retries,
            connect=self.connect_retries,
            read=0,
            status=0,
            other=0,
            backoff_factor=self.backoff_factor,
            # POST is not in the defaults, so JSON-RPC reads are never retried
            allowed_methods=Retry.DEFAULT_ALLOWED_METHODS,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def request(self, method: str, params: Optional[List[Any]] = None,
                timeout: Optional[float] = None) -> Dict[str, Any]:
        if self._closed:
            raise NetworkError("Transport is closed", NetworkErrorKind.CONNECTION, endpoint=self.endpoint)
        if not isinstance(method, str) or not method.strip():
            raise ValueError("method must be a non-empty string.")
        if params is None:
            params = []

        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params,
        }
        current_timeout = timeout if timeout is not None else self.timeout
        self.logger.debug(f"JSON-RPC {method} -> {self.endpoint} (id={payload['id']}, timeout={current_timeout}s)")

        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                timeout=current_timeout,
                verify=self.verify_ssl,
            )
        except requests.RequestException as e:
            if _is_timeout(e):
                self.logger.error(f"JSON-RPC {method} timed out after {current_timeout}s: {e}")
                raise NetworkTimeoutError(
                    f"{method} timed out after {current_timeout}s", endpoint=self.endpoint
                ) from e
            self.logger.error(f"JSON-RPC {method} connection failed: {e}")
            raise NetworkError(
                f"Failed to reach node for {method}: {e}",
                NetworkErrorKind.CONNECTION,
                endpoint=self.endpoint,
            ) from e

        # JSON-RPC errors may come with a non-2xx status; let the decoder see them
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and ("result" in data or "error" in data):
            return data

        if response.status_code >= 400:
            body = (response.text or "")[:500]
            self.logger.error(f"Node rejected {method}: HTTP {response.status_code} {body}")
            raise NodeError(
                f"Node rejected {method}: HTTP {response.status_code}",
                reason=body or None,
                code=response.status_code,
            )
        if data is None:
            return {"jsonrpc": "2.0", "id": payload["id"], "_invalid": response.text}
        return data

    def close(self) -> None:
        """Close all HTTP sessions."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            try:
                session.close()
            except Exception as e:
                # Log warning but don't prevent cleanup
                self.logger.warning(f"Error closing HTTP session: {e}")
        self._local = threading.local()
        self._closed = True
        self.logger.debug(f"Closed transport for {self.endpoint}")


# Transport provider functions
def get_json_rpc_transport(endpoint: str, **kwargs) -> NodeTransport:
    """Get a JSON-RPC over HTTP(S) transport."""
    return JsonRpcTransport(endpoint, **kwargs)


def get_simulated_transport(**kwargs) -> NodeTransport:
    """
    Get an in-process simulated node.

    This always returns a valid transport since the simulated node has no
    external dependencies.
    """
    from .stub_transport import SimulatedNodeTransport
    return SimulatedNodeTransport(**kwargs)


def get_transport(endpoint: Optional[str] = None, simulated: bool = False, **kwargs) -> NodeTransport:
    """
    Get a transport implementation.

    Args:
        endpoint: Node URL; required unless simulated
        simulated: Return an in-process simulated node

    Raises:
        ValueError: If no endpoint is given for a real transport
    """
    if simulated:
        logger.info("Using simulated node transport")
        return get_simulated_transport(**kwargs)
    if not endpoint:
        raise ValueError("A node endpoint is required unless simulated=True")
    logger.info("Using JSON-RPC transport")
    return get_json_rpc_transport(endpoint, **kwargs)
