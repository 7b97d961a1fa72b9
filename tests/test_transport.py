"""
Tests for the JSON-RPC transport.
"""
import logging
import socket
import threading
import time

import pytest
import requests
import urllib3.connection
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, NewConnectionError, ReadTimeoutError

from contract_sdk.exceptions import (
    NetworkError, NetworkErrorKind, NetworkTimeoutError, NodeError
)
from contract_sdk.stub_transport import SimulatedNodeTransport
from contract_sdk.transport import (
    JsonRpcTransport, get_transport, validate_endpoint_url
)
from tests.conftest import TEST_CONTRACT, TEST_RPC_URL


@pytest.fixture
def transport():
    t = JsonRpcTransport(TEST_RPC_URL, timeout=5)
    yield t
    t.close()


class TestEndpointValidation:

    @pytest.mark.parametrize("url", [
        "https://rpc.example.com",
        "https://mainnet.infura.io/v3/abc",
        "http://localhost:8545",
        "http://127.0.0.1:8545",
    ])
    def test_accepted(self, url, monkeypatch):
        monkeypatch.delenv("CONTRACT_SDK_INSECURE_RPC", raising=False)
        validate_endpoint_url(url)

    @pytest.mark.parametrize("url", ["", "   ", None, "ftp://rpc.example.com", "rpc.example.com", "https://"])
    def test_malformed(self, url):
        with pytest.raises(ValueError):
            validate_endpoint_url(url)

    def test_plain_http_rejected(self, monkeypatch):
        monkeypatch.delenv("CONTRACT_SDK_INSECURE_RPC", raising=False)
        with pytest.raises(ValueError, match="https://"):
            validate_endpoint_url("http://rpc.example.com")

    def test_plain_http_allowed_with_override(self, monkeypatch, caplog):
        monkeypatch.setenv("CONTRACT_SDK_INSECURE_RPC", "1")
        with caplog.at_level(logging.WARNING):
            validate_endpoint_url("http://rpc.example.com")
        assert "insecure HTTP" in caplog.text

    def test_constructor_validates(self, monkeypatch):
        monkeypatch.delenv("CONTRACT_SDK_INSECURE_RPC", raising=False)
        with pytest.raises(ValueError):
            JsonRpcTransport("http://rpc.example.com")

    def test_allow_insecure_argument(self, monkeypatch, caplog):
        monkeypatch.delenv("CONTRACT_SDK_INSECURE_RPC", raising=False)
        with caplog.at_level(logging.WARNING):
            t = JsonRpcTransport("http://rpc.example.com", allow_insecure=True)
        t.close()

        assert t.endpoint == "http://rpc.example.com"
        assert "insecure HTTP" in caplog.text


class TestRequest:

    def test_payload_shape(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"})

        response = transport.request("eth_chainId")

        assert response["result"] == "0x1"
        body = requests_mock.last_request.json()
        assert body == {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []}
        assert requests_mock.last_request.headers["Content-Type"] == "application/json"

    def test_ids_increment(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 0, "result": None})

        transport.request("eth_blockNumber")
        transport.request("eth_blockNumber")

        ids = [r.json()["id"] for r in requests_mock.request_history]
        assert ids == [1, 2]

    def test_ids_unique_across_threads(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 0, "result": None})

        threads = [
            threading.Thread(target=lambda: [transport.request("eth_blockNumber") for _ in range(10)])
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ids = [r.json()["id"] for r in requests_mock.request_history]
        assert sorted(ids) == list(range(1, 41))

    def test_extra_headers(self, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"})
        transport = JsonRpcTransport(TEST_RPC_URL, headers={"Authorization": "Bearer token"})

        transport.request("eth_chainId")

        assert requests_mock.last_request.headers["Authorization"] == "Bearer token"

    def test_send_query_params(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0x"})
        call_object = {"to": TEST_CONTRACT, "data": "0x18160ddd"}

        transport.send_query(call_object, block="0x10")

        body = requests_mock.last_request.json()
        assert body["method"] == "eth_call"
        assert body["params"] == [call_object, "0x10"]

    def test_send_raw_transaction_hex_encodes_bytes(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, json={"jsonrpc": "2.0", "id": 1, "result": "0xabc"})

        transport.send_raw_transaction(b"\x01\x02")

        assert requests_mock.last_request.json()["params"] == ["0x0102"]

    def test_json_rpc_error_with_error_status(self, transport, requests_mock):
        """Error envelopes are returned even with a non-2xx status"""
        envelope = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "boom"}}
        requests_mock.post(TEST_RPC_URL, json=envelope, status_code=500)

        assert transport.request("eth_call", [{}]) == envelope

    def test_http_error_without_json(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, text="Bad Gateway", status_code=502)

        with pytest.raises(NodeError) as exc_info:
            transport.request("eth_chainId")

        assert exc_info.value.code == 502
        assert exc_info.value.reason == "Bad Gateway"

    def test_non_json_success_passed_on(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, text="<html>ok</html>")

        response = transport.request("eth_chainId")

        assert "result" not in response and "error" not in response

    def test_connection_error(self, transport, requests_mock):
        requests_mock.post(TEST_RPC_URL, exc=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(NetworkError) as exc_info:
            transport.request("eth_chainId")

        assert exc_info.value.network_kind == NetworkErrorKind.CONNECTION
        assert exc_info.value.endpoint == TEST_RPC_URL

    @pytest.mark.parametrize("exc", [requests.exceptions.ConnectTimeout, requests.exceptions.ReadTimeout])
    def test_timeout(self, transport, requests_mock, exc):
        requests_mock.post(TEST_RPC_URL, exc=exc("slow"))

        with pytest.raises(NetworkTimeoutError) as exc_info:
            transport.request("eth_chainId", timeout=0.5)

        assert exc_info.value.network_kind == NetworkErrorKind.TIMEOUT
        assert "0.5s" in str(exc_info.value)

    def test_empty_method(self, transport):
        with pytest.raises(ValueError):
            transport.request("")

    def test_closed_transport(self, transport):
        transport.close()

        assert not transport.is_available()
        with pytest.raises(NetworkError, match="closed"):
            transport.request("eth_chainId")


@pytest.mark.parametrize("connect_retries", [0, 3])
def test_silent_node_times_out(connect_retries):
    """A node that accepts the connection but never answers yields a timeout, not a hang"""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    transport = JsonRpcTransport(f"http://127.0.0.1:{port}", timeout=0.001, connect_retries=connect_retries)

    start = time.monotonic()
    try:
        with pytest.raises(NetworkTimeoutError) as exc_info:
            transport.request("eth_chainId")
    finally:
        transport.close()
        server.close()

    assert exc_info.value.network_kind == NetworkErrorKind.TIMEOUT
    assert time.monotonic() - start < 2


class TestConnectRetries:

    @pytest.fixture
    def attempts(self, monkeypatch):
        """Replace socket creation with a failure and count the attempts"""
        state = {"count": 0, "error": None}

        def fail(conn):
            state["count"] += 1
            raise state["error"](conn, "simulated connect failure")

        monkeypatch.setattr(urllib3.connection.HTTPConnection, "_new_conn", fail)
        return state

    def test_connect_timeout_is_not_retried(self, attempts):
        attempts["error"] = ConnectTimeoutError
        transport = JsonRpcTransport("http://127.0.0.1:8545", connect_retries=3)

        try:
            with pytest.raises(NetworkTimeoutError):
                transport.request("eth_chainId")
        finally:
            transport.close()

        assert attempts["count"] == 1

    def test_refused_connection_is_retried(self, attempts):
        attempts["error"] = NewConnectionError
        transport = JsonRpcTransport("http://127.0.0.1:8545", connect_retries=2)

        try:
            with pytest.raises(NetworkError) as exc_info:
                transport.request("eth_chainId")
        finally:
            transport.close()

        assert attempts["count"] == 3
        assert exc_info.value.network_kind == NetworkErrorKind.CONNECTION
        assert not isinstance(exc_info.value, NetworkTimeoutError)

    def test_wrapped_read_timeout_maps_to_timeout(self, transport, requests_mock):
        reason = MaxRetryError(None, TEST_RPC_URL, ReadTimeoutError(None, TEST_RPC_URL, "read timed out"))
        requests_mock.post(TEST_RPC_URL, exc=requests.exceptions.ConnectionError(reason))

        with pytest.raises(NetworkTimeoutError):
            transport.request("eth_chainId")


def test_sessions_are_per_thread(transport):
    main_session = transport.session
    other = {}

    thread = threading.Thread(target=lambda: other.setdefault("session", transport.session))
    thread.start()
    thread.join()

    assert transport.session is main_session
    assert other["session"] is not main_session


def test_close_closes_every_session(transport):
    sessions = [transport.session]
    thread = threading.Thread(target=lambda: sessions.append(transport.session))
    thread.start()
    thread.join()

    closed = []
    for session in sessions:
        session.close = lambda s=session: closed.append(s)

    transport.close()

    assert len(closed) == 2


def test_context_manager_closes():
    with JsonRpcTransport(TEST_RPC_URL) as t:
        assert t.is_available()
    assert not t.is_available()


class TestGetTransport:

    def test_simulated(self):
        assert isinstance(get_transport(simulated=True, chain_id=5), SimulatedNodeTransport)

    def test_json_rpc(self):
        transport = get_transport(TEST_RPC_URL, timeout=3)
        assert isinstance(transport, JsonRpcTransport)
        assert transport.timeout == 3

    def test_requires_endpoint(self):
        with pytest.raises(ValueError, match="endpoint is required"):
            get_transport()
