"""
Pytest Configuration for Repay Claims Tests

Run all tests: python -m pytest tests/ -v
"""

import pytest
import sys
from pathlib import Path
from typing import Dict, List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from infrastructure.config import DiscoveryConfig, MAINNET_RPC_URL, RepayConfig
from infrastructure.errors import RpcError
from infrastructure.rpc import EventPage
from data_sources.bcs import normalize_address


PACKAGE_ID = "0x" + "ab" * 32
REGISTRY_ID = "0x" + "cd" * 32
FACTORY_ID = "0x" + "fa" * 32
MARKET_ID = "0x" + "11" * 32
PY_STATE_ID = "0x" + "22" * 32

REWARD_TYPE = f"{PACKAGE_ID}::neom::NEOM"
ASSET_X = "0x" + "33" * 32 + "::lp_x::LP_X"
ASSET_Y = "0x" + "44" * 32 + "::lp_y::LP_Y"


def u64_bytes(value: int) -> List[int]:
    return list(value.to_bytes(8, "little"))


def move_object(fields: Dict, type_: str = "0x2::object::Object") -> Dict:
    return {"objectId": "0x0", "content": {"dataType": "moveObject", "type": type_, "fields": fields}}


class FakeSuiClient:
    """
    In-memory stand-in for SuiRpcClient.

    claims maps a normalized sender to the u64 (or None) each sub-call
    returns, in call order. Senders in failing_senders raise RpcError.
    Values in objects / metadata that are exceptions are raised.
    """

    def __init__(self, endpoint: str = MAINNET_RPC_URL):
        self.endpoint = endpoint
        self.objects: Dict[str, object] = {}
        self.metadata: Dict[str, object] = {}
        self.event_pages: List[EventPage] = []
        self.claims: Dict[str, List[Optional[int]]] = {}
        self.failing_senders: set = set()
        self.inspected: List[tuple] = []
        self.event_calls: List[tuple] = []
        self.closed = False

    async def close(self):
        self.closed = True

    async def get_object(self, object_id, show_content=True, show_owner=False):
        value = self.objects.get(object_id)
        if isinstance(value, Exception):
            raise value
        return value

    async def query_events(self, package, module, cursor=None, limit=50):
        self.event_calls.append((package, module, cursor, limit))
        index = cursor["page"] if cursor else 0
        if index >= len(self.event_pages):
            return EventPage()
        return self.event_pages[index]

    async def get_coin_metadata(self, coin_type):
        value = self.metadata.get(coin_type)
        if isinstance(value, Exception):
            raise value
        return value

    async def dev_inspect_transaction_block(self, sender, tx_bytes):
        self.inspected.append((sender, tx_bytes))
        if sender in self.failing_senders:
            raise RpcError("sui_devInspectTransactionBlock", "node unavailable")

        results = []
        for amount in self.claims.get(sender, []):
            if amount is None:
                results.append({"mutableReferenceOutputs": []})
            else:
                results.append({"returnValues": [[u64_bytes(amount), "u64"]]})
        return {"effects": {"status": {"status": "success"}}, "results": results}

    def set_claims(self, address: str, amounts: List[Optional[int]]):
        self.claims[normalize_address(address)] = amounts

    def fail_sender(self, address: str):
        self.failing_senders.add(normalize_address(address))

    def add_registry(self, version: int = 7):
        self.objects[REGISTRY_ID] = {
            "objectId": REGISTRY_ID,
            "owner": {"Shared": {"initial_shared_version": version}},
        }

    def add_market(self, market_id=MARKET_ID, py_state_id=PY_STATE_ID, lp_supply=100,
                   total_sy=150, total_pt=50, yield_index=1.2, expiry=1735689600000):
        self.objects[market_id] = move_object({
            "lp_supply": str(lp_supply),
            "total_sy": str(total_sy),
            "total_pt": str(total_pt),
            "expiry": str(expiry),
            "py_state_id": py_state_id,
        })
        self.objects[py_state_id] = move_object({
            "py_index_stored": {
                "type": "0x1::fixed_point64::FixedPoint64",
                "fields": {"value": str(int(yield_index * 2 ** 64))},
            },
        })


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def ids():
    """On-chain identifiers used across tests"""
    return {
        "package": PACKAGE_ID,
        "registry": REGISTRY_ID,
        "factory": FACTORY_ID,
        "market": MARKET_ID,
        "py_state": PY_STATE_ID,
        "reward": REWARD_TYPE,
        "x": ASSET_X,
        "y": ASSET_Y,
    }


@pytest.fixture
def repay_config():
    return RepayConfig(
        claim_package_id=PACKAGE_ID,
        claim_registry_id=REGISTRY_ID,
        market_factory_package_id=FACTORY_ID,
        asset_types=[ASSET_X, ASSET_Y],
    )


@pytest.fixture
def discovery_config():
    return DiscoveryConfig()


@pytest.fixture
def fake_client():
    client = FakeSuiClient()
    client.add_registry()
    return client


@pytest.fixture
def u64():
    """Encode an int the way dev-inspect returns a u64"""
    return u64_bytes


@pytest.fixture
def make_client():
    """Build a FakeSuiClient, optionally on another endpoint"""
    def factory(endpoint: str = MAINNET_RPC_URL) -> FakeSuiClient:
        client = FakeSuiClient(endpoint)
        client.add_registry()
        return client
    return factory
