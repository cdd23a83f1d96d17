# infrastructure/rpc.py
"""
Sui JSON-RPC client for Repay Claims.
Covers the four reads the claim pipeline needs: objects, events,
coin metadata and dev-inspect simulation.
"""
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .config import MAINNET_RPC_URL, get_config
from .errors import RpcError

logger = logging.getLogger("SuiRPC")


@dataclass
class EventPage:
    """One page of suix_queryEvents"""
    data: List[Dict[str, Any]] = field(default_factory=list)
    has_next_page: bool = False
    next_cursor: Optional[Dict[str, Any]] = None


class SuiRpcClient:
    """
    Minimal async Sui JSON-RPC client.

    Usage:
        async with SuiRpcClient(MAINNET_RPC_URL) as client:
            obj = await client.get_object("0x...")
    """

    def __init__(self, endpoint: str = MAINNET_RPC_URL, timeout: float = 30.0,
                 http: Optional[httpx.AsyncClient] = None):
        self.endpoint = endpoint
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SuiRpcClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def call(self, method: str, params: list) -> Any:
        """Send one JSON-RPC request and return its `result` member"""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await self._http.post(self.endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise RpcError(method, f"{method} transport error: {e}") from e
        except ValueError as e:
            raise RpcError(method, f"{method} returned invalid JSON: {e}") from e

        if body.get("error"):
            err = body["error"]
            raise RpcError(method, f"{method} failed: {err.get('message', err)}", err.get("code"))

        return body.get("result")

    async def get_object(self, object_id: str, show_content: bool = True,
                         show_owner: bool = False) -> Optional[Dict[str, Any]]:
        """
        Fetch an object. Returns the `data` member, or None when the node
        answers with an error object (notExists, deleted, ...).
        """
        result = await self.call("sui_getObject", [
            object_id,
            {"showContent": show_content, "showOwner": show_owner, "showType": True},
        ])
        if not result or result.get("error"):
            logger.debug(f"Object {object_id} unavailable: {(result or {}).get('error')}")
            return None
        return result.get("data")

    async def query_events(self, package: str, module: str, cursor: Optional[Dict] = None,
                           limit: int = 50) -> EventPage:
        """Page through events emitted by one Move module"""
        result = await self.call("suix_queryEvents", [
            {"MoveModule": {"package": package, "module": module}},
            cursor,
            limit,
            False,
        ]) or {}
        return EventPage(
            data=result.get("data") or [],
            has_next_page=bool(result.get("hasNextPage")),
            next_cursor=result.get("nextCursor"),
        )

    async def get_coin_metadata(self, coin_type: str) -> Optional[Dict[str, Any]]:
        """Coin metadata (decimals, symbol, ...) or None if unregistered"""
        return await self.call("suix_getCoinMetadata", [coin_type])

    async def dev_inspect_transaction_block(self, sender: str, tx_bytes: str) -> Dict[str, Any]:
        """Execute a base64 TransactionKind read-only against current state"""
        result = await self.call("sui_devInspectTransactionBlock", [sender, tx_bytes, None, None])
        return result or {}


# Shared read client (lazy initialization)
_client: Optional[SuiRpcClient] = None


def get_rpc_client() -> SuiRpcClient:
    """Get cached read client for objects, events and metadata."""
    global _client
    if _client is None:
        cfg = get_config()
        _client = SuiRpcClient(cfg.sui.rpc_url, cfg.sui.request_timeout)
    return _client


def get_simulation_client() -> SuiRpcClient:
    """Client for claim simulations, always on the pinned mainnet endpoint."""
    return SuiRpcClient(MAINNET_RPC_URL, get_config().sui.request_timeout)
