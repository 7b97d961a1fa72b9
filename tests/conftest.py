"""
Pytest fixtures for the Contract Interaction SDK tests.
"""
import time

import pytest
from eth_account import Account

from contract_sdk import ContractClient, SimulatedNodeTransport

# Constants for testing
TEST_RPC_URL = "https://rpc.example.com"
TEST_CONTRACT = "0x1234567890123456789012345678901234567890"
TEST_FROM = "0x2345678901234567890123456789012345678901"
TEST_RECIPIENT = "0x3456789012345678901234567890123456789012"
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"

ERC20_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "value", "type": "uint256"}],
        "name": "setValue",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "string", "name": "value", "type": "string"}],
        "name": "setValue",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"}
        ],
        "name": "Transfer",
        "type": "event"
    }
]


# Make time.sleep instantaneous so receipt polling doesn't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture
def erc20_abi():
    return ERC20_ABI


@pytest.fixture
def simulated_node():
    """A fresh simulated node for each test"""
    return SimulatedNodeTransport()


@pytest.fixture
def client(simulated_node):
    """Client wired to the simulated node, sending from a node-managed account"""
    return ContractClient(
        transport=simulated_node,
        from_address=TEST_FROM,
        abi=ERC20_ABI,
        receipt_timeout=1,
        poll_interval=0,
    )


@pytest.fixture
def signer():
    """Deterministic local account used as an external signer"""
    return Account.from_key(TEST_PRIV_KEY)
