"""
Data structures for the Building Detection Orchestrator.

Coordinates are (longitude, latitude) pairs in WGS84 degrees, matching the
GeoJSON axis order used by the detection service and the map frontend.
Detected buildings travel as plain GeoJSON Feature dictionaries.

Author: Building Detection Team
Date: 2026-02-14
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from inference.exceptions import InvalidInputError

Coordinate = Tuple[float, float]
Ring = List[Coordinate]
Feature = Dict[str, Any]


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned geographic bounding box.

    Attributes:
        min_lng: Western edge (degrees)
        min_lat: Southern edge (degrees)
        max_lng: Eastern edge (degrees)
        max_lat: Northern edge (degrees)
    """
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @classmethod
    def from_ring(cls, ring: Sequence[Sequence[float]]) -> "BoundingBox":
        """Build the bounding box enclosing every vertex of a ring."""
        lngs = [float(c[0]) for c in ring]
        lats = [float(c[1]) for c in ring]
        return cls(min(lngs), min(lats), max(lngs), max(lats))

    @property
    def width(self) -> float:
        """East-west extent in degrees."""
        return self.max_lng - self.min_lng

    @property
    def height(self) -> float:
        """North-south extent in degrees."""
        return self.max_lat - self.min_lat

    def contains(self, other: "BoundingBox") -> bool:
        """True if `other` lies entirely inside this box (edges inclusive)."""
        return (
            self.min_lng <= other.min_lng
            and self.min_lat <= other.min_lat
            and other.max_lng <= self.max_lng
            and other.max_lat <= self.max_lat
        )

    def to_ring(self) -> List[List[float]]:
        """Corners as [[w, s], [w, n], [e, n], [e, s]]."""
        return [
            [self.min_lng, self.min_lat],
            [self.min_lng, self.max_lat],
            [self.max_lng, self.max_lat],
            [self.max_lng, self.min_lat],
        ]

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "min_lng": self.min_lng,
            "min_lat": self.min_lat,
            "max_lng": self.max_lng,
            "max_lat": self.max_lat,
        }


@dataclass(frozen=True)
class TileGridAddress:
    """Integer tile-group indices at a fixed zoom and group size."""
    x: int
    y: int


@dataclass
class SubRegion:
    """
    One rectangular piece of a partitioned region.

    Attributes:
        index: Position in the partition order (row-major from the south edge)
        row: Grid row, 0 at the southern edge
        col: Grid column, 0 at the western edge
        ring: Corner coordinates [[w, s], [w, n], [e, n], [e, s]]
    """
    index: int
    row: int
    col: int
    ring: List[List[float]]

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_ring(self.ring)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "index": self.index,
            "row": self.row,
            "col": self.col,
            "coordinates": [list(c) for c in self.ring],
        }


@dataclass
class DetectionRequest:
    """
    A single sub-region request bound to one endpoint of the pool.

    Attributes:
        sub_region: Region to run detection on
        threshold: Confidence threshold in (0, 1]
        endpoint_index: Index into the endpoint pool
    """
    sub_region: SubRegion
    threshold: float
    endpoint_index: int

    def __post_init__(self) -> None:
        if not 0.0 < self.threshold <= 1.0:
            raise InvalidInputError(
                f"threshold must be in (0, 1], got {self.threshold}"
            )

    def to_payload(self, use_v51: bool = True) -> Dict[str, Any]:
        """JSON body expected by the detection service's /detect route."""
        return {
            "coordinates": [list(c) for c in self.sub_region.ring],
            "threshold": self.threshold,
            "use_v51": use_v51,
        }


@dataclass
class DetectionResult:
    """
    Successful response for one sub-region.

    Attributes:
        region_index: Index of the originating sub-region
        endpoint: Endpoint that served the request
        features: Detected building Features, in service order
        tiles_processed: Tiles the service read for this sub-region
        duplicates_removed: Duplicates the service dropped internally
        processing_time_seconds: Service-side processing time
    """
    region_index: int
    endpoint: str
    features: List[Feature] = field(default_factory=list)
    tiles_processed: int = 0
    duplicates_removed: int = 0
    processing_time_seconds: float = 0.0

    @classmethod
    def from_response(
        cls,
        region_index: int,
        endpoint: str,
        payload: Any,
    ) -> "DetectionResult":
        """
        Parse a detection service response body.

        Missing `geojson` or `stats` sections count as empty/zero.

        Raises:
            ValueError: If the body is not a JSON object, the features
                are not a list, or a feature is not an object with an
                object (or null) geometry.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected response body: {type(payload).__name__}")

        geojson = payload.get("geojson") or {}
        features = geojson.get("features") or []
        if not isinstance(features, list):
            raise ValueError("geojson.features is not a list")
        for i, feature in enumerate(features):
            if not isinstance(feature, dict):
                raise ValueError(f"feature {i} is not an object: {feature!r}")
            geometry = feature.get("geometry")
            if geometry is not None and not isinstance(geometry, dict):
                raise ValueError(f"feature {i} has a malformed geometry: {geometry!r}")

        stats = payload.get("stats") or {}
        return cls(
            region_index=region_index,
            endpoint=endpoint,
            features=list(features),
            tiles_processed=int(stats.get("tiles_processed") or 0),
            duplicates_removed=int(stats.get("duplicates_removed") or 0),
            processing_time_seconds=float(stats.get("processing_time_seconds") or 0.0),
        )


@dataclass
class SubRegionFailure:
    """A sub-region request that ended without a result."""
    region_index: int
    endpoint: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "region_index": self.region_index,
            "endpoint": self.endpoint,
            "reason": self.reason,
        }


@dataclass
class DispatchReport:
    """
    Outcome of one fan-out.

    Attributes:
        results: Successful results, ordered by sub-region index
        failures: Failed sub-regions, ordered by sub-region index
        regions_total: Number of sub-regions dispatched
    """
    results: List[DetectionResult] = field(default_factory=list)
    failures: List[SubRegionFailure] = field(default_factory=list)
    regions_total: int = 0

    @property
    def all_failed(self) -> bool:
        return not self.results


@dataclass
class ProcessingProgress:
    """Progress snapshot handed to a dispatch progress callback."""
    total_regions: int
    completed_regions: int = 0
    failed_regions: int = 0
    status: str = "pending"  # pending, processing, completed, failed
    current_region: Optional[int] = None

    @property
    def percent(self) -> float:
        if self.total_regions == 0:
            return 0.0
        return 100.0 * self.completed_regions / self.total_regions


@dataclass
class AggregatedResult:
    """
    Merged detection output for a whole region.

    `buildings_detected` stays None until border deduplication has run.
    """
    features: List[Feature] = field(default_factory=list)
    tiles_processed: int = 0
    duplicates_removed: int = 0
    processing_time_seconds: float = 0.0
    buildings_detected: Optional[int] = None
    border_duplicates_removed: int = 0
    threshold: Optional[float] = None
    regions_total: int = 0
    regions_succeeded: int = 0
    failures: List[SubRegionFailure] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """True when every dispatched sub-region contributed."""
        return self.regions_succeeded == self.regions_total

    @property
    def geojson(self) -> Dict[str, Any]:
        return {"type": "FeatureCollection", "features": list(self.features)}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the {geojson, stats} document served to the frontend."""
        return {
            "geojson": self.geojson,
            "stats": {
                "buildings_detected": self.buildings_detected,
                "duplicates_removed": self.duplicates_removed,
                "border_duplicates_removed": self.border_duplicates_removed,
                "tiles_processed": self.tiles_processed,
                "processing_time_seconds": self.processing_time_seconds,
                "threshold": self.threshold,
                "regions_total": self.regions_total,
                "regions_succeeded": self.regions_succeeded,
                "failures": [f.to_dict() for f in self.failures],
            },
        }
