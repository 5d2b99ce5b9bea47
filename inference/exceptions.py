"""
Exceptions for the Building Detection Orchestrator.

Author: Building Detection Team
Date: 2026-02-14
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from inference.data_models import SubRegionFailure


class BuildingDetectionError(Exception):
    """Base class for all orchestration errors."""


class InvalidInputError(BuildingDetectionError, ValueError):
    """
    Raised when the caller supplies unusable input.

    Covers a missing or malformed region, a threshold outside (0, 1],
    and an empty sub-region sequence or endpoint pool.
    """


class RegionTooLargeError(BuildingDetectionError):
    """
    Raised when the undivided region exceeds the hard tile ceiling.

    Attributes:
        tile_count: Estimated tile count of the whole region.
        limit: Configured hard ceiling.
    """

    def __init__(self, tile_count: int, limit: int) -> None:
        self.tile_count = tile_count
        self.limit = limit
        super().__init__(
            f"Region too large: {tile_count} tiles (maximum {limit}). "
            f"Draw a smaller region."
        )


class TotalFailureError(BuildingDetectionError):
    """
    Raised when every sub-region request failed.

    Attributes:
        failures: SubRegionFailure records, one per sub-region.
    """

    def __init__(self, failures: Optional[List["SubRegionFailure"]] = None) -> None:
        self.failures = list(failures or [])
        super().__init__(
            f"All {len(self.failures)} sub-region requests failed"
        )
