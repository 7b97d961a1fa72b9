"""
Configuration for the Contract Interaction SDK.

Client settings come from environment variables (``load_config``); network
presets come from the bundled ``networks.json`` (``NetworkConfig``).
"""
import importlib.resources
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_TIMEOUT = 30.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_CONNECT_RETRIES = 3


@dataclass
class ClientConfig:
    rpc_url: Optional[str] = None
    network: Optional[str] = None
    chain_id: Optional[int] = None
    timeout: float = DEFAULT_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    connect_retries: int = DEFAULT_CONNECT_RETRIES
    from_address: Optional[str] = None
    insecure_rpc: bool = False

    def resolve_rpc_url(self) -> str:
        """Explicit rpc_url, else the network preset"""
        if self.rpc_url:
            return self.rpc_url
        if self.network:
            return NetworkConfig.get_rpc_url(self.network)
        raise ValueError("Either CONTRACT_SDK_RPC_URL or CONTRACT_SDK_NETWORK must be set")

    def resolve_chain_id(self) -> Optional[int]:
        if self.chain_id is not None:
            return self.chain_id
        if self.network:
            return NetworkConfig.get_chain_id(self.network)
        return None


def _env_number(name: str, default: Any, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}")


def load_config() -> ClientConfig:
    """Load configuration from environment variables."""
    rpc_url = os.getenv("CONTRACT_SDK_RPC_URL")
    network = os.getenv("CONTRACT_SDK_NETWORK")
    chain_id_raw = os.getenv("CONTRACT_SDK_CHAIN_ID")

    chain_id = None
    if chain_id_raw and chain_id_raw.strip():
        text = chain_id_raw.strip()
        try:
            chain_id = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise ValueError(f"CONTRACT_SDK_CHAIN_ID must be an integer, got: {chain_id_raw!r}")

    return ClientConfig(
        rpc_url=rpc_url.strip() if rpc_url else None,
        network=network.strip().lower() if network else None,
        chain_id=chain_id,
        timeout=_env_number("CONTRACT_SDK_TIMEOUT", DEFAULT_TIMEOUT, float),
        receipt_timeout=_env_number("CONTRACT_SDK_RECEIPT_TIMEOUT", DEFAULT_RECEIPT_TIMEOUT, float),
        poll_interval=_env_number("CONTRACT_SDK_POLL_INTERVAL", DEFAULT_POLL_INTERVAL, float),
        connect_retries=_env_number("CONTRACT_SDK_CONNECT_RETRIES", DEFAULT_CONNECT_RETRIES, int),
        from_address=os.getenv("CONTRACT_SDK_FROM_ADDRESS") or None,
        insecure_rpc=os.getenv("CONTRACT_SDK_INSECURE_RPC") == "1",
    )


class NetworkConfig:
    """Network presets bundled with the SDK."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network presets, caching them after the first call.

        Returns:
            Mapping of network name to its preset
        """
        if cls._networks_cache is not None:
            return cls._networks_cache
        resource = importlib.resources.files("contract_sdk").joinpath("networks.json")
        with resource.open("r", encoding="utf-8") as f:
            cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        """
        Get a network preset by name.

        Raises:
            ValueError: If the network is unknown
        """
        networks = cls.load_networks()
        key = (name or "").strip().lower()
        if key not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{name}'. Available networks: {available}")
        return networks[key]

    @classmethod
    def get_rpc_url(cls, name: str, override: Optional[str] = None) -> str:
        """
        RPC URL for a network.

        Precedence: ``override``, then the ``<NAME>_RPC_URL`` environment
        variable, then the preset.
        """
        if override:
            return override
        env_var = f"{name.strip().upper().replace('-', '_')}_RPC_URL"
        from_env = os.getenv(env_var)
        if from_env:
            return from_env
        return cls.get_network(name)["rpc"]

    @classmethod
    def get_chain_id(cls, name: str) -> int:
        return int(cls.get_network(name)["chainId"])
