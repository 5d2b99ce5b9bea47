"""
Region Partitioning Module for the Building Detection Orchestrator.

Splits a drawn region into a uniform grid of rectangular sub-regions so each
detection request stays within a workable number of tiles. The grid follows
the region's bounding box, not its outline: sub-regions of a non-rectangular
polygon may cover area outside it, which the detection service accepts.

Author: Building Detection Team
Date: 2026-02-14
"""

import logging
from typing import List, Optional, Sequence, Tuple

from inference.config import DEFAULT_PARTITION_BANDS
from inference.data_models import BoundingBox, SubRegion
from preprocessing.tile_math import (
    DEFAULT_TILES_PER_GROUP,
    DEFAULT_ZOOM,
    bbox_tile_count,
    validate_ring,
)

logger = logging.getLogger(__name__)


def choose_grid(
    tile_count: int,
    bands: Optional[Sequence[Tuple[int, int, int]]] = None,
) -> Tuple[int, int]:
    """
    Pick the grid shape for a tile count.

    Args:
        tile_count: Estimated tiles of the undivided region.
        bands: (min tile count, cols, rows) triples. A band applies when
            tile_count is strictly above its minimum; the largest matching
            minimum wins. Defaults to 3x2 above 36, 2x2 above 16 and
            2x1 above 4.

    Returns:
        Tuple[int, int]: (cols, rows); (1, 1) when no band applies.
    """
    if bands is None:
        bands = DEFAULT_PARTITION_BANDS

    for min_tiles, cols, rows in sorted(bands, key=lambda b: b[0], reverse=True):
        if tile_count > min_tiles:
            return cols, rows
    return 1, 1


def _edges(start: float, end: float, parts: int) -> List[float]:
    """Equally spaced edges whose first and last values are exactly start/end."""
    step = (end - start) / parts
    return [start + i * step for i in range(parts)] + [end]


def split_bbox(bbox: BoundingBox, cols: int, rows: int) -> List[SubRegion]:
    """
    Cut a bounding box into a cols x rows grid.

    Sub-regions are ordered row by row from the southern edge, west to east
    within a row. Neighbours share their edges exactly.
    """
    if cols < 1 or rows < 1:
        raise ValueError(f"grid must be at least 1x1, got {cols}x{rows}")

    lng_edges = _edges(bbox.min_lng, bbox.max_lng, cols)
    lat_edges = _edges(bbox.min_lat, bbox.max_lat, rows)

    sub_regions = []
    for row in range(rows):
        for col in range(cols):
            cell = BoundingBox(
                min_lng=lng_edges[col],
                min_lat=lat_edges[row],
                max_lng=lng_edges[col + 1],
                max_lat=lat_edges[row + 1],
            )
            sub_regions.append(
                SubRegion(index=len(sub_regions), row=row, col=col, ring=cell.to_ring())
            )
    return sub_regions


class RegionPartitioner:
    """
    Splits oversized regions into bounded sub-regions.

    Example:
        >>> partitioner = RegionPartitioner()
        >>> partitioner.estimate_tiles(ring)
        9
        >>> sub_regions = partitioner.partition(ring)
    """

    def __init__(
        self,
        zoom: int = DEFAULT_ZOOM,
        tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
        bands: Optional[Sequence[Tuple[int, int, int]]] = None,
    ):
        """
        Initialize the partitioner.

        Args:
            zoom: Zoom level for tile estimates
            tiles_per_group: Tiles per side of one service image
            bands: Grid bands, see `choose_grid`
        """
        self.zoom = zoom
        self.tiles_per_group = tiles_per_group
        self.bands = list(bands) if bands is not None else list(DEFAULT_PARTITION_BANDS)

    @classmethod
    def from_config(cls, config) -> "RegionPartitioner":
        """Create a partitioner from an OrchestratorConfig."""
        return cls(
            zoom=config.zoom,
            tiles_per_group=config.tiles_per_group,
            bands=config.partition_bands,
        )

    def estimate_tiles(self, ring: Sequence[Sequence[float]]) -> int:
        """Tile count of the undivided region, as used for partitioning."""
        bbox = BoundingBox.from_ring(validate_ring(ring, min_points=1))
        return bbox_tile_count(bbox, self.zoom, self.tiles_per_group)

    def partition(self, ring: Sequence[Sequence[float]]) -> List[SubRegion]:
        """
        Split a ring's bounding box into sub-regions.

        Args:
            ring: Region outline with at least 3 (lng, lat) vertices

        Returns:
            List of SubRegion objects covering the bounding box

        Raises:
            InvalidInputError: If the ring is malformed
        """
        bbox = BoundingBox.from_ring(validate_ring(ring, min_points=3))
        total_tiles = bbox_tile_count(bbox, self.zoom, self.tiles_per_group)
        cols, rows = choose_grid(total_tiles, self.bands)

        sub_regions = split_bbox(bbox, cols, rows)
        logger.info(f"{total_tiles} tiles -> {len(sub_regions)} sub-regions ({cols}x{rows})")
        return sub_regions


def partition(
    ring: Sequence[Sequence[float]],
    zoom: int = DEFAULT_ZOOM,
    tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
) -> List[SubRegion]:
    """Partition a ring with the default bands."""
    return RegionPartitioner(zoom, tiles_per_group).partition(ring)


def estimate_tiles(
    ring: Sequence[Sequence[float]],
    zoom: int = DEFAULT_ZOOM,
    tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
) -> int:
    """Tile count of the undivided region with the given grid parameters."""
    return RegionPartitioner(zoom, tiles_per_group).estimate_tiles(ring)
