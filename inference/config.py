"""
Configuration Module for the Building Detection Orchestrator.

Loads `config/orchestrator_config.yaml` into an `OrchestratorConfig`
dataclass. Every value has a default, so the orchestrator also runs with no
configuration file at all.

Environment overrides (read after an optional `.env` file is loaded):
    BUILDING_API_ENDPOINTS: Comma separated endpoint pool
    BUILDING_API_TIMEOUT: Per-request timeout in seconds

Author: Building Detection Team
Date: 2026-02-14
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "orchestrator_config.yaml"

# Hugging Face Space replicas of the detection service
DEFAULT_ENDPOINTS: List[str] = [
    "https://yusef75-building-detection.hf.space",
    "https://yusef75-building-detection-2.hf.space",
    "https://yusef75-building-detection-3.hf.space",
    "https://yusef75-building-detection-4.hf.space",
]

# (minimum exclusive tile count, columns, rows), largest band first
DEFAULT_PARTITION_BANDS: List[Tuple[int, int, int]] = [
    (36, 3, 2),
    (16, 2, 2),
    (4, 2, 1),
]


@dataclass
class OrchestratorConfig:
    """
    Orchestrator settings.

    Attributes:
        zoom: Web Mercator zoom level used for tile estimates
        tiles_per_group: Tiles per side of one service image
        hard_tile_limit: Undivided regions above this are rejected
        soft_tile_limit: Estimate-only warning level
        partition_bands: (min tile count, cols, rows), largest band first
        endpoints: Interchangeable detection service replicas
        timeout_seconds: Deadline of each sub-region request
        use_v51: Forwarded to the service as `use_v51`
        default_threshold: Threshold used when the caller gives none
        dedup_epsilon_degrees: Per-axis centroid proximity for border duplicates
        output_dir: Where exported FeatureCollections are written
        log_level: Root logging level applied by entry points
    """
    zoom: int = 18
    tiles_per_group: int = 2
    hard_tile_limit: int = 12
    soft_tile_limit: int = 60
    partition_bands: List[Tuple[int, int, int]] = field(
        default_factory=lambda: list(DEFAULT_PARTITION_BANDS)
    )
    endpoints: List[str] = field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    timeout_seconds: float = 500.0
    use_v51: bool = True
    default_threshold: float = 0.5
    dedup_epsilon_degrees: float = 0.0001
    output_dir: Path = PROJECT_ROOT / "output"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.partition_bands = sorted(
            (tuple(int(v) for v in band) for band in self.partition_bands),
            key=lambda band: band[0],
            reverse=True,
        )
        if not self.endpoints:
            raise ValueError("endpoints must not be empty")
        if self.tiles_per_group < 1:
            raise ValueError(f"tiles_per_group must be >= 1, got {self.tiles_per_group}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    def unreachable_bands(self) -> List[Tuple[int, int, int]]:
        """Partition bands that the hard tile limit rejects before they apply."""
        return [band for band in self.partition_bands if band[0] >= self.hard_tile_limit]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """
        Build a config from the nested YAML layout.

        Args:
            data: Parsed YAML with optional `tiles`, `partition`, `dispatch`,
                `dedup`, `output` and `logging` sections.

        Returns:
            OrchestratorConfig with defaults for anything missing.
        """
        tiles = data.get("tiles") or {}
        partition = data.get("partition") or {}
        dispatch = data.get("dispatch") or {}
        dedup = data.get("dedup") or {}
        output = data.get("output") or {}
        logging_cfg = data.get("logging") or {}

        kwargs: Dict[str, Any] = {}
        if "zoom" in tiles:
            kwargs["zoom"] = int(tiles["zoom"])
        if "tiles_per_group" in tiles:
            kwargs["tiles_per_group"] = int(tiles["tiles_per_group"])
        if "hard_limit" in tiles:
            kwargs["hard_tile_limit"] = int(tiles["hard_limit"])
        if "soft_limit" in tiles:
            kwargs["soft_tile_limit"] = int(tiles["soft_limit"])
        if "bands" in partition:
            kwargs["partition_bands"] = [
                (int(b["min_tiles"]), int(b["cols"]), int(b["rows"]))
                for b in partition["bands"]
            ]
        if "endpoints" in dispatch:
            kwargs["endpoints"] = [str(e) for e in dispatch["endpoints"]]
        if "timeout_seconds" in dispatch:
            kwargs["timeout_seconds"] = float(dispatch["timeout_seconds"])
        if "use_v51" in dispatch:
            kwargs["use_v51"] = bool(dispatch["use_v51"])
        if "default_threshold" in dispatch:
            kwargs["default_threshold"] = float(dispatch["default_threshold"])
        if "epsilon_degrees" in dedup:
            kwargs["dedup_epsilon_degrees"] = float(dedup["epsilon_degrees"])
        if "dir" in output:
            output_dir = Path(output["dir"])
            kwargs["output_dir"] = output_dir if output_dir.is_absolute() else PROJECT_ROOT / output_dir
        if "level" in logging_cfg:
            kwargs["log_level"] = str(logging_cfg["level"]).upper()

        return cls(**kwargs)


def _apply_environment(config: OrchestratorConfig) -> OrchestratorConfig:
    """Override endpoint pool and timeout from the environment."""
    endpoints = os.environ.get("BUILDING_API_ENDPOINTS")
    if endpoints:
        pool = [e.strip() for e in endpoints.split(",") if e.strip()]
        if pool:
            config.endpoints = pool
            logger.info(f"Endpoint pool overridden from environment ({len(pool)} endpoints)")

    timeout = os.environ.get("BUILDING_API_TIMEOUT")
    if timeout:
        try:
            seconds = float(timeout)
        except ValueError:
            seconds = None
        if seconds is None or not math.isfinite(seconds) or seconds <= 0:
            logger.warning(f"Ignoring invalid BUILDING_API_TIMEOUT: {timeout!r}")
        else:
            config.timeout_seconds = seconds

    return config


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_path: Optional[Union[str, Path]] = None,
) -> OrchestratorConfig:
    """
    Load the orchestrator configuration.

    Args:
        config_path: YAML file to read. If None, the default file is used
            when present, otherwise built-in defaults apply.
        env_path: Optional .env file loaded before environment overrides.
            Defaults to `.env` in the project root.

    Returns:
        OrchestratorConfig: Loaded configuration.

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist.
        yaml.YAMLError: If the configuration file is invalid.
    """
    env_path = Path(env_path) if env_path is not None else PROJECT_ROOT / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded environment from: {env_path}")

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
        if not config_path.exists():
            logger.info("No configuration file found, using defaults")
            return _apply_environment(OrchestratorConfig())

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from: {config_path}")
    config = _apply_environment(OrchestratorConfig.from_dict(data))

    unreachable = config.unreachable_bands()
    if unreachable:
        # The ceiling gates the undivided region, so these bands never apply
        logger.warning(
            f"Hard tile limit {config.hard_tile_limit} rejects regions before "
            f"partition bands {[b[0] for b in unreachable]} can apply"
        )

    return config
