"""
Asset Registry - asset type -> market id, asset type -> decimals

Markets come from MarketCreatedEvent<T> emitted by the market factory;
decimals come from coin metadata. Both are best-effort: a query that runs
before (or without) a refresh just falls back to no market / 9 decimals.

Snapshots are immutable. refresh() builds a new one and merges it over the
current one, last fetch wins per asset.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from infrastructure.config import DEFAULT_DECIMALS, DiscoveryConfig, RepayConfig
from infrastructure.errors import RpcError
from data_sources.bcs import normalize_type, split_type_params

logger = logging.getLogger("AssetRegistry")


def _frozen(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read-only lookup tables keyed by canonical asset type"""
    markets: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    decimals: Mapping[str, int] = field(default_factory=lambda: _frozen({}))

    @classmethod
    def from_maps(cls, markets: Mapping[str, str] = None,
                  decimals: Mapping[str, int] = None) -> "RegistrySnapshot":
        return cls(
            markets=_frozen({normalize_type(k): v for k, v in (markets or {}).items()}),
            decimals=_frozen({normalize_type(k): int(v) for k, v in (decimals or {}).items()}),
        )

    def market_for(self, asset_type: str) -> Optional[str]:
        return self.markets.get(normalize_type(asset_type))

    def decimals_for(self, asset_type: str, default: int = DEFAULT_DECIMALS) -> int:
        return self.decimals.get(normalize_type(asset_type), default)

    def merged_with(self, other: "RegistrySnapshot") -> "RegistrySnapshot":
        return RegistrySnapshot(
            markets=_frozen({**self.markets, **other.markets}),
            decimals=_frozen({**self.decimals, **other.decimals}),
        )

    def to_dict(self) -> Dict[str, Dict]:
        return {"markets": dict(self.markets), "decimals": dict(self.decimals)}


class AssetRegistry:
    """
    Builds RegistrySnapshots from chain data.

    Usage:
        registry = AssetRegistry(client, cfg.repay, cfg.discovery)
        registry.start_warmup(cfg.repay.asset_types)   # not awaited
        ...
        registry.snapshot.market_for(asset_type)
    """

    def __init__(self, client, repay: RepayConfig, discovery: DiscoveryConfig = None,
                 snapshot: RegistrySnapshot = None):
        self.client = client
        self.repay = repay
        self.discovery = discovery or DiscoveryConfig()
        self._snapshot = snapshot or RegistrySnapshot()
        self._warmup: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    # =========================================================================
    # MARKETS
    # =========================================================================

    async def _collect_market_events(self) -> List[dict]:
        """Factory events up to the cap; pages read before a failure are kept"""
        events: List[dict] = []
        cursor = None
        cap = self.discovery.event_page_cap

        while True:
            try:
                page = await self.client.query_events(
                    self.repay.market_factory_package_id,
                    self.discovery.market_factory_module,
                    cursor=cursor,
                    limit=self.discovery.event_page_size,
                )
            except RpcError as e:
                logger.warning(f"Market discovery stopped after {len(events)} events: {e}")
                return events[:cap]
            events.extend(page.data)

            if not page.has_next_page or page.next_cursor is None:
                return events[:cap]
            if len(events) >= cap:
                logger.warning(f"Market event cap {cap} reached, market map may be incomplete")
                return events[:cap]
            cursor = page.next_cursor

    def _market_entry(self, event: dict) -> Optional[Tuple[str, str]]:
        event_type = event.get("type") or ""
        marker = f"::{self.discovery.market_factory_module}::{self.discovery.market_created_event}<"
        if marker not in event_type:
            return None

        try:
            params = split_type_params(event_type)
        except ValueError as e:
            logger.debug(f"Unparseable event type {event_type}: {e}")
            return None
        if len(params) != 1:
            return None

        payload = event.get("parsedJson") or {}
        market_id = payload.get("market_id")
        if not market_id:
            return None
        return params[0], market_id

    async def discover_markets(self) -> Dict[str, str]:
        """asset type -> market id from MarketCreatedEvent history"""
        logger.info("Fetching all market definitions...")
        events = await self._collect_market_events()

        markets: Dict[str, str] = {}
        for event in events:
            entry = self._market_entry(event)
            if entry:
                asset_type, market_id = entry
                markets[asset_type] = market_id

        logger.info(f"Found {len(markets)} markets in {len(events)} factory events")
        return markets

    # =========================================================================
    # DECIMALS
    # =========================================================================

    async def _fetch_decimals(self, asset_type: str) -> Optional[int]:
        try:
            metadata = await self.client.get_coin_metadata(asset_type)
        except RpcError as e:
            logger.warning(f"Failed to fetch metadata for {asset_type}: {e}")
            return None

        if not isinstance(metadata, dict):
            logger.warning(f"No metadata for {asset_type}")
            return None

        try:
            decimals = int(metadata.get("decimals"))
        except (TypeError, ValueError):
            logger.warning(f"Metadata for {asset_type} has no usable decimals")
            return None
        if decimals < 0:
            logger.warning(f"Negative decimals for {asset_type}: {decimals}")
            return None
        return decimals

    async def discover_decimals(self, candidates: Iterable[str]) -> Dict[str, int]:
        """asset type -> decimals; the reward asset is always included"""
        assets = list(dict.fromkeys([*candidates, self.repay.reward_asset_type]))
        results = await asyncio.gather(*(self._fetch_decimals(a) for a in assets))
        return {a: d for a, d in zip(assets, results) if d is not None}

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    async def build_snapshot(self, candidates: Iterable[str] = None) -> RegistrySnapshot:
        """Fresh snapshot from chain, independent of the current one"""
        candidates = list(self.repay.asset_types if candidates is None else candidates)
        markets = await self.discover_markets()
        decimals = await self.discover_decimals(candidates)
        return RegistrySnapshot.from_maps(markets, decimals)

    async def refresh(self, candidates: Iterable[str] = None) -> RegistrySnapshot:
        fresh = await self.build_snapshot(candidates)
        self._snapshot = self._snapshot.merged_with(fresh)
        logger.info(
            f"Registry refreshed: {len(self._snapshot.markets)} markets, "
            f"{len(self._snapshot.decimals)} decimals"
        )
        return self._snapshot

    async def initialize(self, candidates: Iterable[str] = None) -> Tuple[Dict[str, str], Dict[str, int]]:
        """Refresh and return (asset -> market, asset -> decimals)"""
        snapshot = await self.refresh(candidates)
        return dict(snapshot.markets), dict(snapshot.decimals)

    def start_warmup(self, candidates: Iterable[str] = None) -> asyncio.Task:
        """Schedule a refresh in the background; queries never wait for it."""
        if self._warmup is None or self._warmup.done():
            self._warmup = asyncio.create_task(self._run_warmup(candidates))
        return self._warmup

    async def _run_warmup(self, candidates: Iterable[str] = None):
        try:
            await self.refresh(candidates)
        except Exception as e:
            logger.error(f"Failed to init market data: {e}")
