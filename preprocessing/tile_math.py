"""
Tile Math Module for the Building Detection Orchestrator.
==========================================================

Converts WGS84 coordinates to the Web Mercator (slippy map) tile grid and
estimates how many service images a region covers.

The detection service reads imagery in groups of `tiles_per_group` x
`tiles_per_group` tiles at zoom 18, so the workload of a region is the
number of tile groups its bounding box touches:

    tileX(lon) = ((lon + 180) / 360) * 2^zoom
    tileY(lat) = (1 - ln(tan(lat) + sec(lat)) / pi) / 2 * 2^zoom
    group      = floor(tile / tiles_per_group)
    count      = (|maxGX - minGX| + 1) * (|maxGY - minGY| + 1)

Known limitation:
    Rings crossing the antimeridian (180 degrees longitude) are not
    supported; their bounding box wraps the wrong way around the globe.

Author: Building Detection Team
Date: 2026-02-14
"""

# =============================================================================
# IMPORTS
# =============================================================================

import math
from typing import Any, List, Sequence, Tuple

from inference.data_models import BoundingBox, Coordinate, TileGridAddress
from inference.exceptions import InvalidInputError

DEFAULT_ZOOM = 18
DEFAULT_TILES_PER_GROUP = 2

# Web Mercator latitude limit; the tile grid ends here
MAX_LATITUDE = 85.05112878


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def validate_ring(ring: Any, min_points: int = 3) -> List[Coordinate]:
    """
    Validate a ring of (longitude, latitude) pairs.

    Args:
        ring: Sequence of coordinate pairs. Extra values (altitude) are ignored.
        min_points: Minimum number of vertices required.

    Returns:
        List[Coordinate]: The ring as (lng, lat) float tuples.

    Raises:
        InvalidInputError: If the ring is missing, too short, or contains
            malformed or out-of-range coordinates.
    """
    if ring is None:
        raise InvalidInputError("No region given")
    if isinstance(ring, (str, bytes)) or not isinstance(ring, Sequence):
        raise InvalidInputError(f"Region must be a sequence of coordinates, got {type(ring).__name__}")
    if len(ring) < min_points:
        raise InvalidInputError(
            f"Region needs at least {min_points} coordinates, got {len(ring)}"
        )

    coordinates = []
    for i, point in enumerate(ring):
        if isinstance(point, (str, bytes)) or not isinstance(point, Sequence) or len(point) < 2:
            raise InvalidInputError(f"Coordinate {i} is not a (lng, lat) pair: {point!r}")
        try:
            lng, lat = float(point[0]), float(point[1])
        except (TypeError, ValueError):
            raise InvalidInputError(f"Coordinate {i} is not numeric: {point!r}")

        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise InvalidInputError(f"Coordinate {i} is not finite: {point!r}")
        if not -180.0 <= lng <= 180.0:
            raise InvalidInputError(f"Coordinate {i} longitude out of range: {lng}")
        if not -MAX_LATITUDE <= lat <= MAX_LATITUDE:
            raise InvalidInputError(
                f"Coordinate {i} latitude out of range: {lat} "
                f"(map tiles cover +/-{MAX_LATITUDE})"
            )

        coordinates.append((lng, lat))

    return coordinates


def bounding_box(ring: Sequence[Sequence[float]]) -> BoundingBox:
    """Bounding box of a ring (validated, at least one vertex)."""
    return BoundingBox.from_ring(validate_ring(ring, min_points=1))


# =============================================================================
# TILE GRID CONVERSION
# =============================================================================

def lon_to_tile_x(lon: float, zoom: int = DEFAULT_ZOOM) -> float:
    """Fractional tile X of a longitude."""
    return (lon + 180.0) / 360.0 * 2.0 ** zoom


def lat_to_tile_y(lat: float, zoom: int = DEFAULT_ZOOM) -> float:
    """Fractional tile Y of a latitude (Y grows southwards)."""
    lat_rad = math.radians(lat)
    return (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * 2.0 ** zoom


def deg2num(lat_deg: float, lon_deg: float, zoom: int) -> Tuple[int, int]:
    """Convert Lat/Lng to tile X/Y."""
    return int(lon_to_tile_x(lon_deg, zoom)), int(lat_to_tile_y(lat_deg, zoom))


def tile_group_address(
    coordinate: Sequence[float],
    zoom: int = DEFAULT_ZOOM,
    tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
) -> TileGridAddress:
    """
    Tile-group address of a (lng, lat) coordinate.

    Example:
        >>> tile_group_address((0.0, 0.0), zoom=1, tiles_per_group=1)
        TileGridAddress(x=1, y=1)
    """
    # Tile indices are non-negative inside the Mercator range, so integer
    # division matches floor(tile / tiles_per_group)
    xtile, ytile = deg2num(float(coordinate[1]), float(coordinate[0]), zoom)
    return TileGridAddress(x=xtile // tiles_per_group, y=ytile // tiles_per_group)


# =============================================================================
# TILE COUNT ESTIMATION
# =============================================================================

def bbox_tile_count(
    bbox: BoundingBox,
    zoom: int = DEFAULT_ZOOM,
    tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
) -> int:
    """Number of tile groups a bounding box touches."""
    # North-west and south-east corners bound the grid span
    north_west = tile_group_address((bbox.min_lng, bbox.max_lat), zoom, tiles_per_group)
    south_east = tile_group_address((bbox.max_lng, bbox.min_lat), zoom, tiles_per_group)

    tiles_x = abs(south_east.x - north_west.x) + 1
    tiles_y = abs(south_east.y - north_west.y) + 1
    return tiles_x * tiles_y


def tile_count(
    ring: Sequence[Sequence[float]],
    zoom: int = DEFAULT_ZOOM,
    tiles_per_group: int = DEFAULT_TILES_PER_GROUP,
) -> int:
    """
    Estimate how many service images a ring covers.

    Args:
        ring: (lng, lat) vertices. A single point is accepted and counts as 1.
        zoom: Web Mercator zoom level. Defaults to 18.
        tiles_per_group: Tiles per side of one service image. Defaults to 2.

    Returns:
        int: Product of the tile-group spans on both axes.

    Raises:
        InvalidInputError: If the ring is empty or malformed.

    Example:
        >>> tile_count([(31.2400, 30.0400)])
        1
    """
    return bbox_tile_count(bounding_box(ring), zoom, tiles_per_group)
