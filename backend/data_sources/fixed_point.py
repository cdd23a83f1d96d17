"""
Fixed-point helpers for Move return values.

dev-inspect hands back BCS bytes; a u64 is 8 little-endian bytes.
Yield indices are stored as FixedPoint64 (raw / 2^64).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

FIXED_POINT_64_SCALE = 1 << 64

_FOUR_PLACES = Decimal("0.0001")


def decode_u64_le(data: Sequence[int]) -> int:
    """
    Decode a little-endian unsigned 64-bit integer.

    >>> decode_u64_le([1, 0, 0, 0, 0, 0, 0, 0])
    1
    >>> decode_u64_le([0, 0, 0, 0, 0, 0, 0, 1])
    72057594037927936
    """
    if not data:
        raise ValueError("Cannot decode u64 from empty byte sequence")
    if len(data) > 8:
        raise ValueError(f"u64 is at most 8 bytes, got {len(data)}")
    return int.from_bytes(bytes(data), "little")


def to_yield_index(raw: int) -> float:
    """FixedPoint64 raw value -> float ratio."""
    return int(raw) / FIXED_POINT_64_SCALE


def scale_amount(raw: int, decimals: int) -> Decimal:
    """Exact raw / 10^decimals."""
    return Decimal(int(raw)).scaleb(-int(decimals))


def format_scaled(raw: int, decimals: int) -> str:
    """raw / 10^decimals rendered to 4 decimal places."""
    return str(scale_amount(raw, decimals).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP))


def format_value(value: float) -> str:
    return f"{value:.4f}"


def asset_name(asset_type: str) -> str:
    """Last path segment: 0x..::scallop_sui::SCALLOP_SUI -> SCALLOP_SUI"""
    return asset_type.split("::")[-1]
