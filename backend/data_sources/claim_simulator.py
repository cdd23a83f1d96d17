"""
Claim Simulator - batch every claim lookup for one address into ONE
dev-inspect call against the claim registry.

Sub-calls:
    [0]     repay::get_claim_amount<REWARD>(registry, address)
    [1..n]  repay::get_claim_amount<ASSET_i>(registry, address)

Each return is tied back to the request that produced it, so callers
never index results by position.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from infrastructure.config import MAINNET_RPC_URL, RepayConfig
from infrastructure.errors import ConfigurationError, MalformedDataError, RpcError, SimulationError
from infrastructure.rpc import get_simulation_client
from data_sources.bcs import ProgrammableTransactionBuilder, normalize_address

logger = logging.getLogger("ClaimSimulator")


@dataclass(frozen=True)
class ClaimRequest:
    asset_type: str
    is_reward: bool = False


@dataclass(frozen=True)
class ClaimReturn:
    """raw is the first return value's BCS bytes, None when the call returned nothing"""
    request: ClaimRequest
    raw: Optional[List[int]] = None

    @property
    def asset_type(self) -> str:
        return self.request.asset_type


def _first_return_bytes(call_result: Optional[Dict[str, Any]]) -> Optional[List[int]]:
    if not call_result:
        return None
    return_values = call_result.get("returnValues") or []
    if not return_values or not return_values[0]:
        return None
    data = return_values[0][0]
    return list(data) if data else None


def _execution_error(result: Dict[str, Any]) -> Optional[str]:
    if result.get("error"):
        return str(result["error"])
    status = ((result.get("effects") or {}).get("status")) or {}
    if status.get("status") == "failure":
        return str(status.get("error") or "execution failed")
    return None


class ClaimSimulator:
    """
    Read-only claim queries. Always runs against MAINNET_RPC_URL: claim
    amounts only mean something against that chain state.
    """

    def __init__(self, repay: RepayConfig, client=None):
        self.repay = repay
        self.client = client or get_simulation_client()
        if getattr(self.client, "endpoint", None) != MAINNET_RPC_URL:
            raise ConfigurationError(
                f"Claim simulations must use {MAINNET_RPC_URL}",
                {"endpoint": getattr(self.client, "endpoint", None)}
            )
        self._registry_version: Optional[int] = None

    def build_requests(self, selected_assets: Iterable[str], reward_asset: str = None) -> List[ClaimRequest]:
        reward = reward_asset or self.repay.reward_asset_type
        requests = [ClaimRequest(reward, is_reward=True)]
        requests.extend(ClaimRequest(asset) for asset in dict.fromkeys(selected_assets))
        return requests

    async def registry_shared_version(self) -> int:
        """initial_shared_version of the claim registry (read once)"""
        if self._registry_version is not None:
            return self._registry_version

        registry_id = self.repay.claim_registry_id
        obj = await self.client.get_object(registry_id, show_content=False, show_owner=True)
        owner = (obj or {}).get("owner")
        shared = owner.get("Shared") if isinstance(owner, dict) else None
        if not shared or "initial_shared_version" not in shared:
            raise MalformedDataError(registry_id, f"Claim registry {registry_id} is not a shared object")

        self._registry_version = int(shared["initial_shared_version"])
        return self._registry_version

    def build_transaction(self, address: str, requests: List[ClaimRequest], registry_version: int) -> str:
        ptb = ProgrammableTransactionBuilder()
        registry = ptb.shared_object(self.repay.claim_registry_id, registry_version, mutable=False)
        owner = ptb.pure_address(address)

        for request in requests:
            ptb.move_call(
                self.repay.claim_package_id,
                self.repay.claim_module,
                self.repay.claim_function,
                type_arguments=[request.asset_type],
                arguments=[registry, owner],
            )
        return ptb.to_base64()

    async def simulate_claim(self, address: str, selected_assets: Iterable[str],
                             reward_asset: str = None) -> List[ClaimReturn]:
        """
        One dev-inspect call with 1 + len(selected_assets) sub-calls.
        Raises SimulationError if the batch as a whole fails.
        """
        requests = self.build_requests(selected_assets, reward_asset)

        try:
            sender = normalize_address(address)
            version = await self.registry_shared_version()
            tx_bytes = self.build_transaction(sender, requests, version)
            result = await self.client.dev_inspect_transaction_block(sender, tx_bytes)
        except (RpcError, MalformedDataError, ValueError) as e:
            raise SimulationError(address, f"Claim simulation failed for {address}: {e}") from e

        error = _execution_error(result)
        if error:
            raise SimulationError(address, f"Claim simulation aborted for {address}: {error}")

        call_results = result.get("results") or []
        logger.debug(f"{address[:10]}... {len(requests)} calls, {len(call_results)} results")

        return [
            ClaimReturn(request, _first_return_bytes(call_results[i] if i < len(call_results) else None))
            for i, request in enumerate(requests)
        ]
