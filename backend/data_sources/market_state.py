"""
Market State Reader
Reads a MarketState object and its linked PyState for pro-rata math.

MarketState fields used: lp_supply, total_sy, total_pt, expiry, py_state_id
PyState fields used:     py_index_stored (FixedPoint64, raw / 2^64)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from infrastructure.errors import FetchFailure, FetchResult, RpcError
from data_sources.fixed_point import to_yield_index

logger = logging.getLogger("MarketState")

DEFAULT_YIELD_INDEX = 1.0


@dataclass(frozen=True)
class MarketRecord:
    """Snapshot of one market, re-read on every query"""
    lp_supply: int
    total_underlying_balance: int   # total_sy
    total_principal_balance: int    # total_pt
    yield_index: float
    expiry: int


def _move_fields(obj: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Fields of a Move object, or None if it is not a structured record."""
    if not obj:
        return None
    content = obj.get("content") or {}
    if content.get("dataType") != "moveObject":
        return None
    fields = content.get("fields")
    return fields if isinstance(fields, dict) else None


def _balance_value(raw: Any) -> int:
    """Balance<T> renders either as a plain number or as {"fields": {"value": ...}}"""
    if isinstance(raw, dict):
        raw = (raw.get("fields") or raw).get("value")
    return int(raw)


def _raw_fixed_point(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        raw = (raw.get("fields") or raw).get("value")
    if raw is None or raw == "":
        return None
    return int(raw)


class MarketStateReader:
    """
    Best-effort reader: every failure comes back as a FetchResult failure,
    never as an exception.
    """

    def __init__(self, client):
        self.client = client

    async def fetch_market_state(self, market_id: str) -> FetchResult[MarketRecord]:
        try:
            market_obj = await self.client.get_object(market_id, show_content=True)
        except RpcError as e:
            logger.warning(f"Market {market_id[:10]}... fetch failed: {e}")
            return FetchResult.fail(FetchFailure.TRANSPORT, str(e))

        fields = _move_fields(market_obj)
        if fields is None:
            if market_obj is None:
                return FetchResult.fail(FetchFailure.NOT_FOUND, f"market {market_id} not found")
            return FetchResult.fail(FetchFailure.MALFORMED, f"market {market_id} is not a Move object")

        py_state_id = fields.get("py_state_id")
        if not py_state_id:
            return FetchResult.fail(FetchFailure.MALFORMED, f"market {market_id} has no py_state_id")

        try:
            py_obj = await self.client.get_object(py_state_id, show_content=True)
        except RpcError as e:
            logger.warning(f"PyState {py_state_id[:10]}... fetch failed: {e}")
            return FetchResult.fail(FetchFailure.TRANSPORT, str(e))

        yield_index = DEFAULT_YIELD_INDEX
        py_fields = _move_fields(py_obj)
        try:
            if py_fields is not None:
                raw_index = _raw_fixed_point(py_fields.get("py_index_stored"))
                if raw_index is not None:
                    yield_index = to_yield_index(raw_index)

            record = MarketRecord(
                lp_supply=_balance_value(fields["lp_supply"]),
                total_underlying_balance=_balance_value(fields["total_sy"]),
                total_principal_balance=_balance_value(fields["total_pt"]),
                yield_index=float(yield_index),
                expiry=int(fields.get("expiry") or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Market {market_id[:10]}... has unexpected fields: {e}")
            return FetchResult.fail(FetchFailure.MALFORMED, str(e))

        logger.debug(f"Market {market_id[:10]}... lp={record.lp_supply} index={record.yield_index:.6f}")
        return FetchResult.success(record)

    async def get_market_record(self, market_id: str) -> Optional[MarketRecord]:
        """MarketRecord or None; the failure kind is only logged."""
        result = await self.fetch_market_state(market_id)
        if not result.ok:
            logger.debug(f"Market {market_id[:10]}... absent ({result.failure.value}): {result.detail}")
        return result.value
