"""
Claim Aggregator - claimable LP and its underlying value per address

Per address:
1. One batched claim simulation (reward asset + selected assets)
2. Reward row: amount only, no underlying decomposition
3. Other assets in parallel: decode -> market lookup -> pro-rata value
4. Rows published under the address, replacing any earlier result

Addresses run one at a time; a failed address is logged and left out of
the result, the rest carry on.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from infrastructure.config import ClaimsConfig, DEFAULT_DECIMALS, get_config
from infrastructure.errors import ValidationError, error_tracker
from infrastructure.rpc import get_rpc_client, get_simulation_client
from data_sources.asset_registry import AssetRegistry, RegistrySnapshot
from data_sources.bcs import normalize_type
from data_sources.claim_simulator import ClaimReturn, ClaimSimulator
from data_sources.fixed_point import asset_name, decode_u64_le, format_scaled, format_value, scale_amount
from data_sources.market_state import MarketRecord, MarketStateReader

logger = logging.getLogger("ClaimAggregator")

ZERO_VALUE = format_value(0.0)


@dataclass(frozen=True)
class ClaimRow:
    asset_type: str
    claimable_amount: str
    underlying_value: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.asset_type,
            "name": asset_name(self.asset_type),
            "amount": self.claimable_amount,
            "underlying": self.underlying_value,
        }


QueryResult = Dict[str, List[ClaimRow]]


@dataclass
class AssetOutcome:
    """Result of one fan-out branch; row is None when nothing is claimable"""
    asset_type: str
    row: Optional[ClaimRow] = None
    error: Optional[BaseException] = None


def compute_underlying_value(raw_lp: int, market: Optional[MarketRecord], decimals: int) -> str:
    """
    user_sy = L * total_sy // lp_supply
    user_pt = L * total_pt // lp_supply
    value   = (user_sy * yield_index + user_pt) / 10^decimals
    """
    if market is None or market.lp_supply == 0:
        return ZERO_VALUE

    user_underlying = raw_lp * market.total_underlying_balance // market.lp_supply
    user_principal = raw_lp * market.total_principal_balance // market.lp_supply
    appreciated = user_underlying * market.yield_index + user_principal
    return format_value(appreciated / 10 ** decimals)


def _raw_amount(claim: ClaimReturn) -> int:
    return decode_u64_le(claim.raw) if claim.raw else 0


def _is_positive(amount: str) -> bool:
    return Decimal(amount) > 0


class ClaimAggregator:
    """
    Usage:
        aggregator = create_claim_aggregator()
        aggregator.registry.start_warmup()
        results = await aggregator.query(["0x..."], cfg.repay.asset_types)
    """

    def __init__(self, simulator: ClaimSimulator, market_reader: MarketStateReader,
                 registry: AssetRegistry = None, default_decimals: int = DEFAULT_DECIMALS):
        self.simulator = simulator
        self.market_reader = market_reader
        self.registry = registry
        self.default_decimals = default_decimals
        self.results: QueryResult = {}

    async def close(self):
        """Close the RPC clients this aggregator was wired with"""
        clients = {id(c): c for c in (self.simulator.client, self.market_reader.client)}
        for client in clients.values():
            await client.close()

    def current_snapshot(self) -> RegistrySnapshot:
        return self.registry.snapshot if self.registry else RegistrySnapshot()

    async def query(self, addresses: Iterable[str], selected_assets: Iterable[str],
                    snapshot: RegistrySnapshot = None) -> QueryResult:
        """Query every address in order; raises ValidationError on an empty list."""
        addresses = [a.strip() for a in addresses if a and a.strip()]
        if not addresses:
            raise ValidationError("Please enter at least one address")

        selected = list(dict.fromkeys(selected_assets))
        logger.info(f"Querying {len(addresses)} addresses for {len(selected)} assets")

        results: QueryResult = {}
        for address in addresses:
            rows = await self.query_address(address, selected, snapshot)
            if rows is not None:
                results[address] = rows

        self.results = results
        return dict(results)

    async def query_address(self, address: str, selected_assets: List[str],
                            snapshot: RegistrySnapshot = None) -> Optional[List[ClaimRow]]:
        """Rows for one address, or None if its simulation failed."""
        try:
            claims = await self.simulator.simulate_claim(address, selected_assets)
        except Exception as e:
            logger.error(f"Claim query failed for {address}: {e}")
            error_tracker.track(e, address)
            return None

        snap = snapshot or self.current_snapshot()
        rows: List[ClaimRow] = []

        reward = next((c for c in claims if c.request.is_reward), None)
        reward_key = normalize_type(reward.asset_type) if reward else None
        if reward is not None:
            reward_row = self._reward_row(reward, snap)
            if reward_row:
                rows.append(reward_row)

        others = [
            c for c in claims
            if not c.request.is_reward and normalize_type(c.asset_type) != reward_key
        ]
        outcomes = await asyncio.gather(
            *(self._asset_outcome(c, snap) for c in others),
            return_exceptions=True,
        )

        for claim, outcome in zip(others, outcomes):
            if isinstance(outcome, BaseException):
                outcome = AssetOutcome(claim.asset_type, error=outcome)
            if outcome.error is not None:
                logger.error(f"Error querying {outcome.asset_type}: {outcome.error}")
                continue
            if outcome.row is not None:
                rows.append(outcome.row)

        logger.info(f"{address[:10]}... {len(rows)} claimable assets")
        return rows

    def _reward_row(self, claim: ClaimReturn, snap: RegistrySnapshot) -> Optional[ClaimRow]:
        try:
            raw = _raw_amount(claim)
        except ValueError as e:
            logger.error(f"Bad reward return for {claim.asset_type}: {e}")
            return None

        decimals = snap.decimals_for(claim.asset_type, self.default_decimals)
        if scale_amount(raw, decimals) <= 0:
            return None
        return ClaimRow(claim.asset_type, format_scaled(raw, decimals), ZERO_VALUE)

    async def _asset_outcome(self, claim: ClaimReturn, snap: RegistrySnapshot) -> AssetOutcome:
        asset_type = claim.asset_type
        try:
            raw = _raw_amount(claim)
        except ValueError as e:
            return AssetOutcome(asset_type, error=e)

        decimals = snap.decimals_for(asset_type, self.default_decimals)
        amount = format_scaled(raw, decimals)
        if not _is_positive(amount):
            return AssetOutcome(asset_type)

        market = None
        market_id = snap.market_for(asset_type)
        if market_id:
            market = await self.market_reader.get_market_record(market_id)
        else:
            logger.debug(f"No market known for {asset_name(asset_type)}")

        underlying = compute_underlying_value(raw, market, decimals)
        return AssetOutcome(asset_type, row=ClaimRow(asset_type, amount, underlying))


# ============================================
# FACTORY
# ============================================

def create_claim_aggregator(cfg: ClaimsConfig = None, read_client=None,
                            simulation_client=None) -> ClaimAggregator:
    """Wire simulator, market reader and registry from configuration."""
    cfg = (cfg or get_config()).validate()
    read_client = read_client or get_rpc_client()

    registry = AssetRegistry(read_client, cfg.repay, cfg.discovery)
    simulator = ClaimSimulator(cfg.repay, simulation_client or get_simulation_client())
    return ClaimAggregator(
        simulator,
        MarketStateReader(read_client),
        registry,
        default_decimals=cfg.discovery.default_decimals,
    )


_aggregator: Optional[ClaimAggregator] = None


def get_claim_aggregator() -> ClaimAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = create_claim_aggregator()
    return _aggregator
