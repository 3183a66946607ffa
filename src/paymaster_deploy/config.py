"""
Configuration management for paymaster-deploy.

Provides centralized configuration for:
- Network presets (RPC endpoint, chain ID, address derivation scheme)
- Confirmation timeouts and finality
- Paymaster defaults (address, gas per pubdata)
- Logging

Values can be overridden from environment variables with the
PAYMASTER_DEPLOY_ prefix.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "PAYMASTER_DEPLOY_"

# Fee-accounting constant used by zksync-ethers (utils.DEFAULT_GAS_PER_PUBDATA_LIMIT)
DEFAULT_GAS_PER_PUBDATA_LIMIT = 50_000


class AddressDerivation(str, Enum):
    """How a deployed contract's address follows from sender and nonce."""
    CREATE = "create"  # keccak(rlp([sender, nonce]))[12:]
    ZKSYNC = "zksync"  # keccak(keccak("zksyncCreate") ++ sender ++ deployment nonce)[12:]


class Finality(str, Enum):
    """What counts as a confirmed deployment."""
    CONFIRMED = "confirmed"  # Receipt present with N confirmations
    FINALIZED = "finalized"  # Receipt block at or below the "finalized" tag


@dataclass
class NetworkConfig:
    """Configuration for a target network."""
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str = ""
    address_derivation: AddressDerivation = AddressDerivation.CREATE

    # Confirmation requirements
    confirmations_required: int = 1
    confirmation_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 2.0
    finality: Finality = Finality.CONFIRMED

    # HTTP
    request_timeout_seconds: float = 30.0
    validate_chain_id: bool = True
    is_testnet: bool = False

    def explorer_address_url(self, address: str) -> str:
        """Block explorer link for an address, or empty if unknown."""
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url.rstrip('/')}/address/{address}"


@dataclass
class LoggingConfig:
    """Configuration for deployment logging."""
    level: str = "INFO"
    json_format: bool = False
    rpc_call_level: str = "DEBUG"
    transaction_level: str = "INFO"
    error_level: str = "ERROR"
    mask_addresses: bool = False


@dataclass
class DeployConfig:
    """
    Master configuration for paymaster-deploy.

    Supports loading from environment variables with prefix PAYMASTER_DEPLOY_.
    """
    network: NetworkConfig
    paymaster_address: Optional[str] = None
    gas_per_pubdata: int = DEFAULT_GAS_PER_PUBDATA_LIMIT
    gas_limit_buffer_percent: int = 20
    artifacts_dir: str = "artifacts-zk"
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_env(key: str, default: Any = None, prefix: str = ENV_PREFIX) -> Any:
    """Get environment variable with prefix."""
    return os.getenv(f"{prefix}{key}", default)


def _build_network_config(
    name: str,
    chain_id: int,
    default_rpc: str,
    explorer_url: str,
    address_derivation: AddressDerivation,
    is_testnet: bool = False,
    confirmation_timeout: float = 120.0,
    poll_interval: float = 2.0,
) -> NetworkConfig:
    """Build a NetworkConfig with environment variable overrides."""
    env_key = f"{name.upper()}_RPC_URL"
    custom_rpc = os.getenv(env_key) or _get_env(env_key)

    return NetworkConfig(
        name=name,
        chain_id=chain_id,
        rpc_url=custom_rpc or default_rpc,
        explorer_url=explorer_url,
        address_derivation=address_derivation,
        confirmation_timeout_seconds=confirmation_timeout,
        poll_interval_seconds=poll_interval,
        is_testnet=is_testnet,
    )


def build_network_presets() -> Dict[str, NetworkConfig]:
    """Build the built-in network presets."""
    networks = {}

    networks["zksync_era"] = _build_network_config(
        name="zksync_era",
        chain_id=324,
        default_rpc="https://mainnet.era.zksync.io",
        explorer_url="https://explorer.zksync.io",
        address_derivation=AddressDerivation.ZKSYNC,
    )

    networks["zksync_sepolia"] = _build_network_config(
        name="zksync_sepolia",
        chain_id=300,
        default_rpc="https://sepolia.era.zksync.dev",
        explorer_url="https://sepolia.explorer.zksync.io",
        address_derivation=AddressDerivation.ZKSYNC,
        is_testnet=True,
    )

    # anvil-zksync / era-test-node
    networks["localhost"] = _build_network_config(
        name="localhost",
        chain_id=260,
        default_rpc="http://127.0.0.1:8011",
        explorer_url="",
        address_derivation=AddressDerivation.ZKSYNC,
        is_testnet=True,
        confirmation_timeout=30.0,
        poll_interval=0.5,
    )

    return networks


NETWORK_PRESETS: Dict[str, NetworkConfig] = build_network_presets()


def get_network_config(name: str) -> NetworkConfig:
    """Get a copy of a preset network configuration."""
    if name not in NETWORK_PRESETS:
        raise ValueError(
            f"Unknown network: {name}. Known networks: {sorted(NETWORK_PRESETS)}"
        )
    return replace(NETWORK_PRESETS[name])


def build_default_config() -> DeployConfig:
    """Build default configuration, applying environment overrides."""
    network = get_network_config(_get_env("NETWORK", "zksync_sepolia"))

    rpc_url = _get_env("RPC_URL")
    if rpc_url:
        network.rpc_url = rpc_url

    timeout = _get_env("CONFIRMATION_TIMEOUT")
    if timeout:
        network.confirmation_timeout_seconds = float(timeout)

    return DeployConfig(
        network=network,
        paymaster_address=_get_env("PAYMASTER_ADDRESS"),
        gas_per_pubdata=int(_get_env("GAS_PER_PUBDATA", DEFAULT_GAS_PER_PUBDATA_LIMIT)),
        artifacts_dir=_get_env("ARTIFACTS_DIR", "artifacts-zk"),
        logging=LoggingConfig(
            level=_get_env("LOG_LEVEL", "INFO"),
            json_format=_get_env("LOG_JSON", "false").lower() in ("1", "true", "yes"),
        ),
    )


# Global configuration instance
_global_config: Optional[DeployConfig] = None


def get_config() -> DeployConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = build_default_config()
    return _global_config


def set_config(config: Optional[DeployConfig]) -> None:
    """Set (or reset, with None) the global configuration instance."""
    global _global_config
    _global_config = config
