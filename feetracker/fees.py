"""Fee snapshot types and response validation."""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional
from .constants import PRIORITIES, PRIORITY_FASTEST, PRIORITY_HALF_HOUR, PRIORITY_HOUR


def is_positive_number(value: Any) -> bool:
    """True for finite int/float values strictly above zero (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


@dataclass(frozen=True)
class FeeSnapshot:
    """Recommended fee rates (sat/vB) for the three priority tiers."""
    fastest_fee: float    # next block
    half_hour_fee: float  # ~3 blocks
    hour_fee: float       # ~6 blocks

    def __post_init__(self):
        for name in ("fastest_fee", "half_hour_fee", "hour_fee"):
            if not is_positive_number(getattr(self, name)):
                raise ValueError(f"{name} must be a positive number, got {getattr(self, name)!r}")

    def value_for(self, priority: str) -> float:
        """
        Get the fee rate for a priority tier.

        Args:
            priority: One of fastestFee, halfHourFee, hourFee

        Returns:
            Fee rate in sat/vB
        """
        if priority == PRIORITY_FASTEST:
            return self.fastest_fee
        if priority == PRIORITY_HALF_HOUR:
            return self.half_hour_fee
        if priority == PRIORITY_HOUR:
            return self.hour_fee
        raise ValueError(f"Unknown priority: {priority}")

    def to_dict(self) -> Dict[str, float]:
        return {
            PRIORITY_FASTEST: self.fastest_fee,
            PRIORITY_HALF_HOUR: self.half_hour_fee,
            PRIORITY_HOUR: self.hour_fee,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FeeSnapshot":
        """
        Build a snapshot from a /fees/recommended style mapping.

        Raises:
            ValueError: If the mapping is missing a tier or a value is not positive
        """
        if not is_valid_fee_data(data):
            raise ValueError(f"Invalid fee data: {data!r}")
        return cls(
            fastest_fee=data[PRIORITY_FASTEST],
            half_hour_fee=data[PRIORITY_HALF_HOUR],
            hour_fee=data[PRIORITY_HOUR],
        )


def is_valid_fee_data(data: Any) -> bool:
    """Check that data carries all three tiers as positive numbers."""
    if not isinstance(data, dict):
        return False
    return all(is_positive_number(data.get(key)) for key in PRIORITIES)


@dataclass(frozen=True)
class FeeRange:
    """Fee range (sat/vB) of the next projected block."""
    min: float
    max: float


@dataclass(frozen=True)
class BlockHeight:
    """Current chain tip height."""
    height: int


def parse_fee_range(data: Any) -> Optional[FeeRange]:
    """
    Extract the next block fee range from a /fees/mempool-blocks response.

    The first projected block's feeRange is ordered low to high.

    Returns:
        FeeRange, or None if the response does not have the expected shape
    """
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    fee_range = data[0].get("feeRange")
    if not isinstance(fee_range, list) or not fee_range:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in fee_range):
        return None
    return FeeRange(min=fee_range[0], max=fee_range[-1])


def round_fee(value: float) -> int:
    """Round a fee rate half-up (2.5 -> 3) for display."""
    return int(math.floor(value + 0.5))
