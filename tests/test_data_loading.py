"""
Tests for Configuration and Region Loading.

Author: Building Detection Team
Date: 2026-02-14
"""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from inference.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_ENDPOINTS,
    OrchestratorConfig,
    load_config,
)
from inference.exceptions import InvalidInputError
from inference.utils import extract_ring, load_region, strip_closing_vertex


RING = [[31.24, 30.04], [31.25, 30.04], [31.25, 30.05], [31.24, 30.05]]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep environment overrides out of the tests, including ones a .env file sets."""
    for name in ("BUILDING_API_ENDPOINTS", "BUILDING_API_TIMEOUT"):
        # setenv records the original state, so teardown restores it
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestOrchestratorConfig:
    """Tests for configuration loading."""

    def _write_config(self, tmpdir: str, data) -> Path:
        path = Path(tmpdir) / "config.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(data, f)
        return path

    def test_defaults(self) -> None:
        """Test the built-in defaults."""
        config = OrchestratorConfig()

        assert config.zoom == 18
        assert config.tiles_per_group == 2
        assert config.hard_tile_limit == 12
        assert config.soft_tile_limit == 60
        assert config.partition_bands == [(36, 3, 2), (16, 2, 2), (4, 2, 1)]
        assert config.endpoints == DEFAULT_ENDPOINTS
        assert config.timeout_seconds == 500.0
        assert config.dedup_epsilon_degrees == 0.0001

    def test_repository_config_loads(self) -> None:
        """Test that the shipped YAML file matches the defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(DEFAULT_CONFIG_PATH, env_path=Path(tmpdir) / ".env")

        assert config.hard_tile_limit == 12
        assert len(config.endpoints) == 4
        assert config.partition_bands == OrchestratorConfig().partition_bands

    def test_load_from_yaml(self) -> None:
        """Test nested YAML sections."""
        data = {
            "tiles": {"zoom": 17, "hard_limit": 40},
            "partition": {"bands": [{"min_tiles": 8, "cols": 2, "rows": 1},
                                    {"min_tiles": 20, "cols": 2, "rows": 2}]},
            "dispatch": {"endpoints": ["http://a.test", "http://b.test"],
                         "timeout_seconds": 90, "use_v51": False},
            "dedup": {"epsilon_degrees": 0.0002},
            "logging": {"level": "debug"},
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(self._write_config(tmpdir, data), env_path=Path(tmpdir) / ".env")

        assert config.zoom == 17
        assert config.tiles_per_group == 2
        assert config.hard_tile_limit == 40
        assert config.partition_bands == [(20, 2, 2), (8, 2, 1)]
        assert config.endpoints == ["http://a.test", "http://b.test"]
        assert config.timeout_seconds == 90.0
        assert config.use_v51 is False
        assert config.dedup_epsilon_degrees == 0.0002
        assert config.log_level == "DEBUG"

    def test_empty_yaml(self) -> None:
        """Test that an empty file falls back to defaults."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.yaml"
            path.write_text("")
            config = load_config(path, env_path=Path(tmpdir) / ".env")

        assert config.hard_tile_limit == 12

    def test_missing_file(self) -> None:
        """Test that an explicit missing file raises."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                load_config(Path(tmpdir) / "missing.yaml")

    def test_environment_override(self, monkeypatch) -> None:
        """Test endpoint pool and timeout from the environment."""
        monkeypatch.setenv("BUILDING_API_ENDPOINTS", "http://x.test, http://y.test,")
        monkeypatch.setenv("BUILDING_API_TIMEOUT", "30")

        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(self._write_config(tmpdir, {}), env_path=Path(tmpdir) / ".env")

        assert config.endpoints == ["http://x.test", "http://y.test"]
        assert config.timeout_seconds == 30.0

    @pytest.mark.parametrize("value", ["soon", "0", "-5", "nan", "inf"])
    def test_invalid_timeout_override_ignored(self, monkeypatch, value) -> None:
        """Test that an unusable timeout override keeps the configured value."""
        monkeypatch.setenv("BUILDING_API_TIMEOUT", value)

        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(self._write_config(tmpdir, {}), env_path=Path(tmpdir) / ".env")

        assert config.timeout_seconds == 500.0

    def test_dotenv_file(self) -> None:
        """Test that a .env file feeds the environment overrides."""
        with tempfile.TemporaryDirectory() as tmpdir:
            env_path = Path(tmpdir) / ".env"
            env_path.write_text("BUILDING_API_ENDPOINTS=http://dotenv.test\n")
            config = load_config(self._write_config(tmpdir, {}), env_path=env_path)

        assert config.endpoints == ["http://dotenv.test"]

    def test_unreachable_bands(self) -> None:
        """Test detection of bands above the hard ceiling."""
        assert OrchestratorConfig().unreachable_bands() == [(36, 3, 2), (16, 2, 2)]
        assert OrchestratorConfig(hard_tile_limit=100).unreachable_bands() == []

    @pytest.mark.parametrize("kwargs", [
        {"endpoints": []},
        {"tiles_per_group": 0},
        {"timeout_seconds": 0},
    ])
    def test_invalid_values(self, kwargs) -> None:
        """Test that unusable settings are refused."""
        with pytest.raises(ValueError):
            OrchestratorConfig(**kwargs)


class TestRegionLoading:
    """Tests for region file loading."""

    @pytest.mark.parametrize("document", [
        RING,
        {"type": "Polygon", "coordinates": [RING]},
        {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon", "coordinates": [RING]}},
        {"type": "FeatureCollection", "features": [
            {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [RING]}},
        ]},
    ])
    def test_extract_ring_shapes(self, document) -> None:
        """Test every accepted document shape."""
        assert extract_ring(document) == RING

    @pytest.mark.parametrize("document", [
        "region",
        {"type": "Point", "coordinates": [31.24, 30.04]},
        {"type": "Polygon", "coordinates": []},
        {"type": "FeatureCollection", "features": []},
    ])
    def test_extract_ring_errors(self, document) -> None:
        """Test unsupported documents."""
        with pytest.raises(InvalidInputError):
            extract_ring(document)

    def test_load_region_strips_closing_vertex(self) -> None:
        """Test that a closed GeoJSON ring loads open."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "region.geojson"
            with open(path, "w") as f:
                json.dump({"type": "Polygon", "coordinates": [RING + [RING[0]]]}, f)

            assert load_region(path) == RING

    def test_load_region_missing(self) -> None:
        """Test a missing region file."""
        with pytest.raises(FileNotFoundError):
            load_region("does/not/exist.geojson")

    def test_load_region_invalid_json(self) -> None:
        """Test a region file that is not JSON."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "region.json"
            path.write_text("{not json")

            with pytest.raises(InvalidInputError):
                load_region(path)

    def test_strip_closing_vertex_open_ring(self) -> None:
        """Test that an open ring is unchanged."""
        assert strip_closing_vertex(RING) == RING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
