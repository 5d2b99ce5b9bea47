"""
Postprocessing Module for the Building Detection Orchestrator.
===============================================================

This module merges per-sub-region detection results into one result and
removes buildings that were detected twice along sub-region borders.

Key Functions:
    - merge: Concatenate features and combine statistics
    - feature_centroid: Unweighted vertex mean of a feature's outer ring
    - dedup: Drop features whose centroid is within epsilon of a kept one
    - finalize: Dedup an aggregated result and set its building count
    - export_geojson: Write the merged FeatureCollection to disk

Statistics:
    tiles_processed          sum over sub-regions
    duplicates_removed       sum of per-sub-region service counts
    processing_time_seconds  max over sub-regions (they ran in parallel)
    buildings_detected       feature count after border deduplication

Dependencies:
    - numpy: Centroid arithmetic

Author: Building Detection Team
Date: 2026-02-14
Version: 1.0.0
"""

# =============================================================================
# IMPORTS
# =============================================================================

import json              # JSON data handling
import logging           # Logging functionality
from datetime import date
from pathlib import Path # Cross-platform file path handling
from typing import Iterable, List, Optional, Union

import numpy as np       # NumPy for array operations

from inference.data_models import AggregatedResult, DetectionResult, Feature

logger = logging.getLogger(__name__)  # Get logger for this module

DEFAULT_EPSILON_DEGREES = 0.0001
POLYGON_TYPES = ("Polygon", "MultiPolygon")


# =============================================================================
# RESULT AGGREGATION
# =============================================================================

def merge(
    results: Iterable[DetectionResult],
    threshold: Optional[float] = None,
    regions_total: Optional[int] = None,
) -> AggregatedResult:
    """
    Merge successful sub-region results.

    Results are concatenated in sub-region index order, so the output does
    not depend on which request finished first. Features inside one result
    keep their relative order.

    Args:
        results: Successful DetectionResults.
        threshold (optional): Threshold the requests were sent with.
        regions_total (optional): Number of sub-regions dispatched.
            Defaults to the number of results.

    Returns:
        AggregatedResult: Combined features and statistics, with
            `buildings_detected` still unset.
    """
    ordered = sorted(results, key=lambda r: r.region_index)

    merged = AggregatedResult(threshold=threshold)
    for result in ordered:
        merged.features.extend(result.features)
        merged.tiles_processed += result.tiles_processed
        merged.duplicates_removed += result.duplicates_removed
        merged.processing_time_seconds = max(
            merged.processing_time_seconds, result.processing_time_seconds
        )

    merged.regions_succeeded = len(ordered)
    merged.regions_total = regions_total if regions_total is not None else len(ordered)

    logger.info(
        f"Merged {len(merged.features)} feature(s) from "
        f"{merged.regions_succeeded}/{merged.regions_total} sub-region(s)"
    )
    return merged


# =============================================================================
# BORDER DEDUPLICATION
# =============================================================================

def _outer_ring(feature: Feature) -> Optional[list]:
    """Outer ring of a Polygon or of the first polygon of a MultiPolygon."""
    geometry = feature.get("geometry") or {}
    kind = geometry.get("type")
    if kind not in POLYGON_TYPES:
        return None

    coordinates = geometry.get("coordinates")
    if kind == "MultiPolygon" and isinstance(coordinates, list) and coordinates:
        coordinates = coordinates[0]
    if not isinstance(coordinates, list) or not coordinates:
        return None

    ring = coordinates[0]
    if not isinstance(ring, list) or not ring:
        return None
    return ring


def feature_centroid(feature: Feature) -> Optional[np.ndarray]:
    """
    Unweighted mean of a feature's outer ring vertices.

    Every vertex counts once as given, including a repeated closing vertex.

    Returns:
        np.ndarray: [lng, lat], or None if the feature has no polygon.
    """
    ring = _outer_ring(feature)
    if ring is None:
        return None
    try:
        vertices = np.asarray([point[:2] for point in ring], dtype=float)
    except (TypeError, ValueError):
        # Ragged or non-numeric vertices
        return None
    if vertices.ndim != 2 or vertices.shape[1] != 2:
        return None
    return vertices.mean(axis=0)


def dedup(
    features: List[Feature],
    epsilon_degrees: float = DEFAULT_EPSILON_DEGREES,
) -> List[Feature]:
    """
    Remove border duplicates, keeping the first occurrence.

    A feature is a duplicate of an already kept feature when its centroid
    differs by less than `epsilon_degrees` on BOTH axes (per-axis degree
    check, not a geographic distance).

    Complexity is O(n * k) for n features and k kept features, which is
    fine for the tens to low hundreds of buildings in one region. Large
    result sets would need a spatial index.

    Args:
        features: GeoJSON features in merge order.
        epsilon_degrees: Per-axis proximity threshold. Defaults to 0.0001.

    Returns:
        List[Feature]: Kept features in input order. Features without
            polygon coordinates are kept but never match anything.
    """
    kept: List[Feature] = []
    centroids = np.empty((0, 2), dtype=float)

    for feature in features:
        centroid = feature_centroid(feature)
        if centroid is None:
            logger.warning("Feature without polygon coordinates kept without dedup check")
            kept.append(feature)
            continue

        if len(centroids):
            close = np.abs(centroids - centroid) < epsilon_degrees
            if np.any(np.all(close, axis=1)):
                continue

        kept.append(feature)
        centroids = np.vstack([centroids, centroid])

    return kept


def finalize(
    aggregated: AggregatedResult,
    epsilon_degrees: float = DEFAULT_EPSILON_DEGREES,
) -> AggregatedResult:
    """Apply border deduplication and set `buildings_detected`."""
    before = len(aggregated.features)
    aggregated.features = dedup(aggregated.features, epsilon_degrees)
    aggregated.border_duplicates_removed = before - len(aggregated.features)
    aggregated.buildings_detected = len(aggregated.features)

    if aggregated.border_duplicates_removed:
        logger.info(f"Removed {aggregated.border_duplicates_removed} border duplicate(s)")
    return aggregated


# =============================================================================
# EXPORT
# =============================================================================

def default_export_name(day: Optional[date] = None) -> str:
    """File name offered for downloads, e.g. buildings_2026-02-14.geojson."""
    day = day or date.today()
    return f"buildings_{day.isoformat()}.geojson"


def export_geojson(
    result: AggregatedResult,
    output_path: Union[str, Path],
) -> Path:
    """
    Save the merged buildings as a GeoJSON FeatureCollection.

    Args:
        result: Aggregated detection result.
        output_path: Destination file path. Parent folders are created.

    Returns:
        Path: The written file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        json.dump(result.geojson, f, indent=2)

    logger.info(f"Exported {len(result.features)} building(s) to: {output_path}")
    return output_path
