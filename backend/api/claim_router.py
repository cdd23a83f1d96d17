"""
Claim Query Router
Exposes claimable LP and underlying values per address via REST API
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional

from infrastructure.config import get_config
from infrastructure.errors import error_tracker
from services.claim_aggregator import ClaimAggregator, get_claim_aggregator

router = APIRouter(prefix="/api/claims", tags=["Claims"])


class ClaimQueryRequest(BaseModel):
    addresses: List[str] = Field(default_factory=list, description="Sui addresses, one per entry")
    assets: Optional[List[str]] = Field(None, description="Asset types to query; all configured types if omitted")


class RegistryRefreshRequest(BaseModel):
    assets: Optional[List[str]] = None


@router.post("/query")
async def query_claims(
    request: ClaimQueryRequest,
    aggregator: ClaimAggregator = Depends(get_claim_aggregator)
):
    """
    Claimable amounts for every address.

    Returns:
        {
            "results": {address: [{type, name, amount, underlying}, ...]},
            "markets": {...},    # asset type -> market id
            "decimals": {...}    # asset type -> decimals
        }
    """
    assets = request.assets if request.assets is not None else get_config().repay.asset_types
    results = await aggregator.query(request.addresses, assets)
    snapshot = aggregator.current_snapshot()

    return {
        "success": True,
        "results": {address: [row.to_dict() for row in rows] for address, rows in results.items()},
        "markets": dict(snapshot.markets),
        "decimals": dict(snapshot.decimals),
    }


@router.get("/registry")
async def get_registry(aggregator: ClaimAggregator = Depends(get_claim_aggregator)):
    """Current asset -> market and asset -> decimals maps"""
    return {"success": True, **aggregator.current_snapshot().to_dict()}


@router.post("/registry/refresh")
async def refresh_registry(
    request: Optional[RegistryRefreshRequest] = None,
    aggregator: ClaimAggregator = Depends(get_claim_aggregator)
):
    """Re-read market events and coin metadata"""
    snapshot = await aggregator.registry.refresh(request.assets if request else None)

    return {
        "success": True,
        "markets": len(snapshot.markets),
        "decimals": len(snapshot.decimals),
        "message": "Registry refreshed from chain"
    }


@router.get("/errors/stats")
async def get_error_stats():
    """Failures tracked while querying, including per-address simulation errors"""
    return {"success": True, **error_tracker.get_stats()}
