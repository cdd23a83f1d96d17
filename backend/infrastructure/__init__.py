"""
Repay Claims Infrastructure Module
Configuration, error handling and the Sui RPC client
"""

from .errors import (
    RepayError,
    ValidationError,
    ConfigurationError,
    RpcError,
    SimulationError,
    MalformedDataError,
    ErrorCode,
    FetchFailure,
    FetchResult,
    ErrorTracker,
    error_tracker,
    register_exception_handlers,
)

from .config import (
    ClaimsConfig,
    SuiConfig,
    RepayConfig,
    DiscoveryConfig,
    MonitoringConfig,
    Network,
    MAINNET_RPC_URL,
    MARKET_FACTORY_PACKAGE_ID,
    DEFAULT_DECIMALS,
    EVENT_PAGE_SIZE,
    EVENT_PAGE_CAP,
    get_config,
    reload_config,
)

from .rpc import (
    EventPage,
    SuiRpcClient,
    get_rpc_client,
    get_simulation_client,
)

__all__ = [
    # Errors
    "RepayError",
    "ValidationError",
    "ConfigurationError",
    "RpcError",
    "SimulationError",
    "MalformedDataError",
    "ErrorCode",
    "FetchFailure",
    "FetchResult",
    "ErrorTracker",
    "error_tracker",
    "register_exception_handlers",

    # Config
    "ClaimsConfig",
    "SuiConfig",
    "RepayConfig",
    "DiscoveryConfig",
    "MonitoringConfig",
    "Network",
    "MAINNET_RPC_URL",
    "MARKET_FACTORY_PACKAGE_ID",
    "DEFAULT_DECIMALS",
    "EVENT_PAGE_SIZE",
    "EVENT_PAGE_CAP",
    "get_config",
    "reload_config",

    # RPC
    "EventPage",
    "SuiRpcClient",
    "get_rpc_client",
    "get_simulation_client",
]
