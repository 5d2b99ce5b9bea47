from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import sys
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

# Add project root to path so we can import modules
sys.path.append(str(Path(__file__).resolve().parent.parent))

from inference.config import OrchestratorConfig, load_config
from inference.detect_buildings import describe_estimate, detect_buildings
from inference.detection_dispatcher import DetectionDispatcher
from inference.exceptions import BuildingDetectionError
from preprocessing.region_partitioner import RegionPartitioner, choose_grid
from api.utils import EXPORT_FILENAME, error_status, export_run

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("BuildingAPI")

app = FastAPI(title="Building Detection API")

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class EstimateRequest(BaseModel):
    coordinates: List[List[float]] = Field(..., min_length=1, description="Vertices drawn so far as [lng, lat] pairs")


class DetectRequest(BaseModel):
    coordinates: List[List[float]] = Field(..., min_length=3, description="Region ring as [lng, lat] pairs")
    threshold: Optional[Union[float, str]] = None
    export: bool = False


@lru_cache(maxsize=1)
def get_config() -> OrchestratorConfig:
    config = load_config()
    logging.getLogger().setLevel(config.log_level)
    return config


def get_dispatcher(config: OrchestratorConfig = Depends(get_config)) -> DetectionDispatcher:
    return DetectionDispatcher.from_config(config)


@app.get("/api/health")
async def health(config: OrchestratorConfig = Depends(get_config)):
    return {
        "status": "healthy",
        "endpoints": len(config.endpoints),
        "hard_tile_limit": config.hard_tile_limit,
        "soft_tile_limit": config.soft_tile_limit,
        "timeout_seconds": config.timeout_seconds,
    }


@app.post("/api/estimate")
def estimate(req: EstimateRequest, config: OrchestratorConfig = Depends(get_config)) -> Dict:
    """Tile estimate and planned grid for a region being drawn."""
    partitioner = RegionPartitioner.from_config(config)
    try:
        tile_count = partitioner.estimate_tiles(req.coordinates)
    except BuildingDetectionError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))

    cols, rows = choose_grid(tile_count, config.partition_bands)
    return {
        **describe_estimate(tile_count, config),
        "sub_regions": cols * rows,
        "grid": {"cols": cols, "rows": rows},
    }


@app.post("/api/detect")
def detect(
    req: DetectRequest,
    config: OrchestratorConfig = Depends(get_config),
    dispatcher: DetectionDispatcher = Depends(get_dispatcher),
) -> Dict:
    """
    Detect buildings in a drawn region.

    The region is split into sub-regions that run in parallel on the
    detection service replicas; the merged, border deduplicated buildings
    come back as {geojson, stats}.
    """
    logger.info(f"Detection requested for a {len(req.coordinates)}-point region")
    try:
        result = detect_buildings(req.coordinates, req.threshold, config, dispatcher)
    except BuildingDetectionError as e:
        logger.error(f"Detection failed: {e}")
        raise HTTPException(status_code=error_status(e), detail=str(e))

    response = result.to_dict()
    if req.export:
        response["export"] = export_run(result, config.output_dir)
    return response


@app.get("/api/detections")
async def list_detections(config: OrchestratorConfig = Depends(get_config)) -> List[str]:
    output_dir = config.output_dir
    if not output_dir.exists():
        return []
    detections = []
    for item in output_dir.iterdir():
        if item.is_dir() and (item / EXPORT_FILENAME).exists():
            detections.append(item.name)
    return sorted(detections)


@app.get("/api/detections/{run_name}/geojson")
async def get_geojson(run_name: str, config: OrchestratorConfig = Depends(get_config)) -> Dict:
    """Read and return the GeoJSON of an exported detection."""
    geojson_path = config.output_dir / run_name / EXPORT_FILENAME

    if ".." in run_name or not geojson_path.exists():
        raise HTTPException(status_code=404, detail="GeoJSON not found for this detection")

    try:
        with open(geojson_path, "r") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Error reading GeoJSON: {str(e)}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
