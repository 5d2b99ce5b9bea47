from datetime import datetime
from pathlib import Path
from typing import Optional

from inference.data_models import AggregatedResult
from inference.exceptions import (
    BuildingDetectionError,
    InvalidInputError,
    RegionTooLargeError,
    TotalFailureError,
)
from inference.postprocessing import export_geojson

EXPORT_FILENAME = "detections.geojson"


def error_status(error: BuildingDetectionError) -> int:
    """HTTP status code for an orchestration error."""
    if isinstance(error, InvalidInputError):
        return 422
    if isinstance(error, RegionTooLargeError):
        return 413
    if isinstance(error, TotalFailureError):
        return 502
    return 500


def make_run_name(now: Optional[datetime] = None) -> str:
    """Folder name for one exported detection, e.g. buildings_20260214_153045."""
    now = now or datetime.now()
    return f"buildings_{now.strftime('%Y%m%d_%H%M%S')}"


def export_run(result: AggregatedResult, output_dir: Path, run_name: Optional[str] = None) -> str:
    """
    Write a result to <output_dir>/<run_name>/detections.geojson.

    An existing run folder is never overwritten: a second export with the
    same name (e.g. within the same second) gets a numeric suffix.

    Returns the run name, which is what the /api/detections routes list.
    """
    output_dir = Path(output_dir)
    base_name = run_name or make_run_name()
    run_name = base_name
    suffix = 2
    while True:
        try:
            (output_dir / run_name).mkdir(parents=True, exist_ok=False)
            break
        except FileExistsError:
            run_name = f"{base_name}_{suffix}"
            suffix += 1

    export_geojson(result, output_dir / run_name / EXPORT_FILENAME)
    return run_name
