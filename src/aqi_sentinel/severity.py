"""Severity tiers for AQI readings."""

import math
from bisect import bisect_left
from dataclasses import dataclass


@dataclass(frozen=True)
class SeverityTier:
    """One bucket of the AQI scale."""

    rank: int  # 0 is least severe
    label: str  # Human readable name
    color_tag: str  # Color used by the alert and feed formatting
    upper_bound: float  # Inclusive upper bound, inf for the last tier


# Tier table: (upper_bound, label, color_tag). Must stay sorted by upper_bound.
_TIER_TABLE: list[tuple[float, str, str]] = [
    (50, "Good", "green"),
    (100, "Moderate", "yellow"),
    (150, "Unhealthy for Sensitive Groups", "orange"),
    (200, "Unhealthy", "red"),
    (300, "Very Unhealthy", "purple"),
    (math.inf, "Hazardous", "maroon"),
]

TIERS: tuple[SeverityTier, ...] = tuple(
    SeverityTier(rank=rank, label=label, color_tag=color, upper_bound=float(bound))
    for rank, (bound, label, color) in enumerate(_TIER_TABLE)
)

_UPPER_BOUNDS = [tier.upper_bound for tier in TIERS]


def classify(value: float) -> SeverityTier:
    """Map an AQI value to its severity tier.

    A value equal to a tier's upper bound belongs to that tier, not the next.

    Args:
        value: Non-negative AQI reading

    Returns:
        The tier containing value

    Raises:
        ValueError: If value is negative or NaN
    """
    if math.isnan(value) or value < 0:
        raise ValueError(f"AQI value must be a non-negative number, got {value!r}")
    return TIERS[bisect_left(_UPPER_BOUNDS, value)]


def tier_for_rank(rank: int) -> SeverityTier:
    """Return the tier with the given rank."""
    if not 0 <= rank < len(TIERS):
        raise ValueError(f"No severity tier with rank {rank} (0-{len(TIERS) - 1})")
    return TIERS[rank]


def lower_bound(tier: SeverityTier) -> float:
    """Return the exclusive lower bound of a tier (0 for the first one)."""
    return 0.0 if tier.rank == 0 else TIERS[tier.rank - 1].upper_bound
