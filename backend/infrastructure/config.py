"""
Configuration Management for Repay Claims
Environment-based configuration for the claim query pipeline

Features:
- Environment-based config (.env honoured)
- Pinned simulation endpoint
- Discovery limits and decimal defaults
- Validation of required on-chain identifiers
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Config")


# Simulations always run here, whatever SUI_RPC_URL says
MAINNET_RPC_URL = "https://fullnode.mainnet.sui.io:443"

MARKET_FACTORY_PACKAGE_ID = "0x2b71664477755b90f9fb71c9c944d5d0d3832fec969260e3f18efc7d855f57c4"

DEFAULT_DECIMALS = 9
EVENT_PAGE_SIZE = 50
EVENT_PAGE_CAP = 500


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEVNET = "devnet"


@dataclass
class SuiConfig:
    """Sui node configuration"""
    network: Network = Network.MAINNET
    rpc_url: str = MAINNET_RPC_URL
    request_timeout: float = 30.0

    @property
    def simulation_rpc_url(self) -> str:
        return MAINNET_RPC_URL


@dataclass
class RepayConfig:
    """On-chain identifiers of the claim registry and market factory"""
    claim_package_id: str = ""
    claim_registry_id: str = ""
    claim_module: str = "repay"
    claim_function: str = "get_claim_amount"
    market_factory_package_id: str = MARKET_FACTORY_PACKAGE_ID
    asset_types: List[str] = field(default_factory=list)

    @property
    def reward_asset_type(self) -> str:
        return f"{self.claim_package_id}::neom::NEOM"


@dataclass
class DiscoveryConfig:
    """Market and decimal discovery limits"""
    default_decimals: int = DEFAULT_DECIMALS
    event_page_size: int = EVENT_PAGE_SIZE
    event_page_cap: int = EVENT_PAGE_CAP
    market_factory_module: str = "market_factory"
    market_created_event: str = "MarketCreatedEvent"


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"


@dataclass
class ClaimsConfig:
    """Main application configuration"""
    sui: SuiConfig = field(default_factory=SuiConfig)
    repay: RepayConfig = field(default_factory=RepayConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "ClaimsConfig":
        """Create configuration from environment variables"""
        network = os.environ.get("SUI_NETWORK", "mainnet").lower()

        config = cls()
        config.sui = SuiConfig(
            network=Network(network) if network in [n.value for n in Network] else Network.MAINNET,
            rpc_url=os.environ.get("SUI_RPC_URL") or MAINNET_RPC_URL,
            request_timeout=float(os.environ.get("SUI_RPC_TIMEOUT", "30")),
        )

        asset_types = os.environ.get("REPAY_ASSET_TYPES", "")
        config.repay = RepayConfig(
            claim_package_id=os.environ.get("REPAY_PACKAGE_ID", ""),
            claim_registry_id=os.environ.get("REPAY_REGISTRY_ID", ""),
            asset_types=[a.strip() for a in asset_types.split(",") if a.strip()],
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

        return config

    def validate(self) -> "ClaimsConfig":
        """Raise ConfigurationError naming every missing identifier"""
        missing = []
        if not self.repay.claim_package_id:
            missing.append("REPAY_PACKAGE_ID")
        if not self.repay.claim_registry_id:
            missing.append("REPAY_REGISTRY_ID")
        if not self.repay.market_factory_package_id:
            missing.append("market_factory_package_id")

        if missing:
            raise ConfigurationError(
                f"Missing on-chain identifiers: {', '.join(missing)}",
                {"missing": missing}
            )
        return self

    def to_dict(self) -> Dict:
        return {
            "sui": {
                "network": self.sui.network.value,
                "rpc_url": self.sui.rpc_url,
                "simulation_rpc_url": self.sui.simulation_rpc_url,
                "request_timeout": self.sui.request_timeout,
            },
            "repay": {
                "claim_package_id": self.repay.claim_package_id,
                "claim_registry_id": self.repay.claim_registry_id,
                "market_factory_package_id": self.repay.market_factory_package_id,
                "reward_asset_type": self.repay.reward_asset_type,
                "asset_types": list(self.repay.asset_types),
            },
            "discovery": {
                "default_decimals": self.discovery.default_decimals,
                "event_page_size": self.discovery.event_page_size,
                "event_page_cap": self.discovery.event_page_cap,
            },
            "monitoring": {"log_level": self.monitoring.log_level},
        }


# ============================================
# GLOBAL INSTANCE
# ============================================

config: Optional[ClaimsConfig] = None


def get_config() -> ClaimsConfig:
    """Get the global configuration (loaded on first use)"""
    global config
    if config is None:
        config = ClaimsConfig.from_env()
        logging.getLogger().setLevel(config.monitoring.log_level)
        logger.info(f"Configuration loaded for network: {config.sui.network.value}")
    return config


def reload_config() -> ClaimsConfig:
    """Reload configuration from environment"""
    global config
    config = None
    reloaded = get_config()
    logger.info("Configuration reloaded")
    return reloaded
