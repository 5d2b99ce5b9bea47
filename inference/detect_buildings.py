"""
Building Detection Script for the Building Detection Orchestrator.
===================================================================

This module is the entry point of the orchestrator: it takes a region
outline, checks its size, splits it into sub-regions, sends them to the
detection service replicas in parallel and returns the merged, border
deduplicated buildings.

Pipeline:
    ring -> tile estimate -> hard limit gate -> partition -> dispatch
         -> merge -> border dedup -> AggregatedResult

The entry point is stateless: everything it needs arrives as arguments and
everything it produces is returned.

Usage:
    # Detect buildings in a drawn region
    python -m inference.detect_buildings --region region.geojson

    # Only show the tile estimate
    python -m inference.detect_buildings --region region.geojson --estimate-only

    # Custom threshold and export
    python -m inference.detect_buildings --region region.geojson --threshold 0.6 \\
        --output buildings.geojson

Author: Building Detection Team
Date: 2026-02-14
Version: 1.0.0
"""

# =============================================================================
# IMPORTS
# =============================================================================

import argparse          # Command-line argument parsing
import logging           # Logging functionality
import math
import sys               # Exit codes
from pathlib import Path # Cross-platform file path handling
from typing import Any, Dict, Optional, Sequence

from inference.config import OrchestratorConfig, load_config
from inference.data_models import AggregatedResult
from inference.detection_dispatcher import DetectionDispatcher, ProgressCallback
from inference.exceptions import (
    BuildingDetectionError,
    InvalidInputError,
    RegionTooLargeError,
    TotalFailureError,
)
from inference.postprocessing import default_export_name, export_geojson, finalize, merge
from inference.utils import load_region
from preprocessing.region_partitioner import RegionPartitioner
from preprocessing.tile_math import validate_ring

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logging.basicConfig(
    level=logging.INFO,                                    # Log INFO and above
    format="[%(asctime)s] [%(levelname)s] %(message)s",   # Log message format
    datefmt="%Y-%m-%d %H:%M:%S"                           # Timestamp format
)
logger = logging.getLogger(__name__)  # Get logger for this module

NEAR_LIMIT_RATIO = 0.7


# =============================================================================
# INPUT HELPERS
# =============================================================================

def resolve_threshold(value: Any, default: float = 0.5) -> float:
    """
    Turn a caller-supplied threshold into a usable one.

    None, empty text, non-numeric text and 0 fall back to `default`, the way
    the threshold field of the map frontend behaves.

    Args:
        value: Raw threshold (number, numeric string or None).
        default: Fallback threshold. Defaults to 0.5.

    Returns:
        float: Threshold in (0, 1].

    Raises:
        InvalidInputError: If a numeric value lies outside (0, 1].

    Example:
        >>> resolve_threshold("0.7")
        0.7
        >>> resolve_threshold("")
        0.5
    """
    if value is None or isinstance(value, bool):
        return default

    try:
        threshold = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid threshold {value!r}, using {default}")
        return default

    if math.isnan(threshold) or threshold == 0:
        return default
    if not 0.0 < threshold <= 1.0:
        raise InvalidInputError(f"Threshold must be in (0, 1], got {threshold}")
    return threshold


def describe_estimate(tile_count: int, config: Optional[OrchestratorConfig] = None) -> Dict[str, Any]:
    """
    Tile estimate feedback for the map frontend.

    Levels:
        over_limit       above the hard ceiling, detection will be refused
        near_limit       above 70% of the hard ceiling
        over_soft_limit  above the soft (estimate-only) ceiling
        ok               everything else

    Returns:
        Dict with tile_count, level, within_limit, over_soft_limit and message.
    """
    config = config or OrchestratorConfig()
    hard_limit = config.hard_tile_limit

    if tile_count > hard_limit:
        level = "over_limit"
        message = f"{tile_count} tiles - maximum {hard_limit}"
    elif tile_count > config.soft_tile_limit:
        level = "over_soft_limit"
        message = f"{tile_count} tiles (maximum {config.soft_tile_limit})"
    elif tile_count > hard_limit * NEAR_LIMIT_RATIO:
        level = "near_limit"
        message = f"{tile_count} tiles (approaching the limit)"
    else:
        level = "ok"
        message = f"~{tile_count} tiles"

    return {
        "tile_count": tile_count,
        "level": level,
        "within_limit": tile_count <= hard_limit,
        "over_soft_limit": tile_count > config.soft_tile_limit,
        "message": message,
    }


# =============================================================================
# ORCHESTRATION
# =============================================================================

def detect_buildings(
    ring: Sequence[Sequence[float]],
    threshold: Any = None,
    config: Optional[OrchestratorConfig] = None,
    dispatcher: Optional[DetectionDispatcher] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> AggregatedResult:
    """
    Detect buildings inside a drawn region.

    Args:
        ring: Region outline as (lng, lat) vertices, at least 3.
        threshold (optional): Confidence threshold, see `resolve_threshold`.
        config (optional): Orchestrator settings. Defaults to built-in values.
        dispatcher (optional): Dispatcher to use. Defaults to one built
            from `config`.
        progress_callback (optional): Receives ProcessingProgress updates.

    Returns:
        AggregatedResult: Deduplicated buildings and statistics of the
            successful sub-regions.

    Raises:
        InvalidInputError: If the ring or threshold is unusable.
        RegionTooLargeError: If the undivided region exceeds the hard limit.
        TotalFailureError: If every sub-region request failed.
    """
    config = config or OrchestratorConfig()
    coordinates = validate_ring(ring, min_points=3)
    threshold = resolve_threshold(threshold, config.default_threshold)

    # -------------------------------------------------------------------
    # STEP 1: Gate on the undivided tile count
    # -------------------------------------------------------------------
    partitioner = RegionPartitioner.from_config(config)
    total_tiles = partitioner.estimate_tiles(coordinates)
    if total_tiles > config.hard_tile_limit:
        logger.error(f"Region too large: {total_tiles} tiles (limit {config.hard_tile_limit})")
        raise RegionTooLargeError(total_tiles, config.hard_tile_limit)

    # -------------------------------------------------------------------
    # STEP 2: Partition and fan out
    # -------------------------------------------------------------------
    sub_regions = partitioner.partition(coordinates)
    dispatcher = dispatcher or DetectionDispatcher.from_config(config)
    report = dispatcher.dispatch_all(
        sub_regions, threshold, config.endpoints, progress_callback
    )

    if report.all_failed:
        logger.error(f"All {report.regions_total} sub-region requests failed")
        raise TotalFailureError(report.failures)

    # -------------------------------------------------------------------
    # STEP 3: Merge and remove border duplicates
    # -------------------------------------------------------------------
    aggregated = merge(report.results, threshold=threshold, regions_total=report.regions_total)
    aggregated.failures = list(report.failures)
    aggregated = finalize(aggregated, config.dedup_epsilon_degrees)

    if not aggregated.is_complete:
        logger.warning(
            f"Partial result: only {aggregated.regions_succeeded} of "
            f"{aggregated.regions_total} sub-regions succeeded"
        )
    logger.info(f"Detected {aggregated.buildings_detected} building(s)")
    return aggregated


# =============================================================================
# COMMAND LINE INTERFACE
# =============================================================================

def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Detect building footprints inside a region"
    )
    parser.add_argument(
        "--region",
        type=str,
        required=True,
        help="JSON/GeoJSON file with the region outline"
    )
    parser.add_argument(
        "--threshold",
        type=str,
        default=None,
        help="Confidence threshold in (0, 1] (default: from config)"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to orchestrator configuration file"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Export the buildings as GeoJSON to this file "
             "(a directory gets a dated file name)"
    )
    parser.add_argument(
        "--estimate-only",
        action="store_true",
        help="Print the tile estimate and exit"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns the process exit status."""
    args = parse_arguments(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1

    logging.getLogger().setLevel(logging.DEBUG if args.verbose else config.log_level)

    try:
        ring = load_region(args.region)
        if args.estimate_only:
            partitioner = RegionPartitioner.from_config(config)
            estimate = describe_estimate(partitioner.estimate_tiles(ring), config)
            logger.info(f"Tile estimate: {estimate['message']} [{estimate['level']}]")
            return 0

        result = detect_buildings(ring, args.threshold, config)
    except (BuildingDetectionError, FileNotFoundError) as e:
        logger.error(f"Detection failed: {e}")
        return 1

    stats = result.to_dict()["stats"]
    logger.info(
        f"Buildings: {stats['buildings_detected']} | tiles: {stats['tiles_processed']} | "
        f"duplicates: {stats['duplicates_removed']} | time: {stats['processing_time_seconds']}s | "
        f"sub-regions: {stats['regions_succeeded']}/{stats['regions_total']}"
    )

    if args.output:
        output_path = Path(args.output)
        if output_path.is_dir():
            output_path = output_path / default_export_name()
        export_geojson(result, output_path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
