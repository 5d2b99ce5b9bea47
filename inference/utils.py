"""
Utility Functions for the Building Detection Orchestrator.

Author: Building Detection Team
Date: 2026-02-14
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Union

from inference.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


def extract_ring(document: Any) -> List[List[float]]:
    """
    Extract the outer ring of a region from a JSON document.

    Accepted shapes:
        - bare ring: [[lng, lat], ...]
        - Polygon geometry: {"type": "Polygon", "coordinates": [ring, ...]}
        - Feature: {"type": "Feature", "geometry": {...}}
        - FeatureCollection: the first feature is used

    Args:
        document: Parsed JSON.

    Returns:
        List[List[float]]: Outer ring as given (not validated).

    Raises:
        InvalidInputError: If no polygon ring can be found.
    """
    if isinstance(document, list):
        return document

    if not isinstance(document, dict):
        raise InvalidInputError(f"Unsupported region document: {type(document).__name__}")

    kind = document.get("type")
    if kind == "FeatureCollection":
        features = document.get("features") or []
        if not features:
            raise InvalidInputError("FeatureCollection has no features")
        if len(features) > 1:
            logger.warning(f"FeatureCollection has {len(features)} features, using the first")
        return extract_ring(features[0])
    if kind == "Feature":
        return extract_ring(document.get("geometry"))
    if kind == "Polygon":
        rings = document.get("coordinates") or []
        if not rings:
            raise InvalidInputError("Polygon has no coordinates")
        return rings[0]

    raise InvalidInputError(f"Unsupported geometry type: {kind!r}")


def load_region(region_path: Union[str, Path]) -> List[List[float]]:
    """
    Load a region ring from a JSON or GeoJSON file.

    Args:
        region_path: Path to the region file.

    Returns:
        Outer ring of the region, without a repeated closing vertex.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        InvalidInputError: If the file is not valid JSON or holds no polygon.
    """
    region_path = Path(region_path)

    if not region_path.exists():
        raise FileNotFoundError(f"Region file not found: {region_path}")

    try:
        with open(region_path, "r") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Region file is not valid JSON: {e}")

    ring = strip_closing_vertex(extract_ring(document))
    logger.debug(f"Loaded region with {len(ring)} vertices from: {region_path}")
    return ring


def strip_closing_vertex(ring: List[List[float]]) -> List[List[float]]:
    """Drop a repeated closing vertex (GeoJSON rings repeat the first point)."""
    if len(ring) > 1 and list(ring[0]) == list(ring[-1]):
        return ring[:-1]
    return ring
