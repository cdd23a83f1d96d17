"""
Claim Services
Claim aggregation over the claim registry, market state and asset registry
"""

from .claim_aggregator import (
    ClaimAggregator,
    ClaimRow,
    QueryResult,
    compute_underlying_value,
    create_claim_aggregator,
    get_claim_aggregator,
)

__all__ = [
    "ClaimAggregator",
    "ClaimRow",
    "QueryResult",
    "compute_underlying_value",
    "create_claim_aggregator",
    "get_claim_aggregator",
]
