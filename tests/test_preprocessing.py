"""
Tests for Preprocessing Module (tile math and region partitioning).

Author: Building Detection Team
Date: 2026-02-14
"""

import math

import pytest

from inference.data_models import BoundingBox
from inference.exceptions import InvalidInputError
from preprocessing.region_partitioner import (
    RegionPartitioner,
    choose_grid,
    estimate_tiles,
    partition,
    split_bbox,
)
from preprocessing.tile_math import (
    MAX_LATITUDE,
    bounding_box,
    deg2num,
    lat_to_tile_y,
    lon_to_tile_x,
    tile_count,
    tile_group_address,
    validate_ring,
)
from tests.fixtures.fake_service import (
    CAIRO,
    box_ring,
    cairo_group,
    group_center,
    num2deg,
    single_group_ring,
)


class TestTileConversion:
    """Tests for Web Mercator tile conversion."""

    def test_lon_to_tile_x_edges(self) -> None:
        """Test that the antimeridian maps to the grid edges."""
        assert lon_to_tile_x(-180.0, 1) == 0.0
        assert lon_to_tile_x(180.0, 1) == 2.0
        assert lon_to_tile_x(0.0, 18) == 2 ** 17

    def test_lat_to_tile_y_equator(self) -> None:
        """Test that the equator sits in the middle of the grid."""
        assert lat_to_tile_y(0.0, 1) == pytest.approx(1.0)

    def test_lat_to_tile_y_grows_southwards(self) -> None:
        """Test that tile Y increases towards the south."""
        assert lat_to_tile_y(-10.0) > lat_to_tile_y(0.0) > lat_to_tile_y(10.0)

    def test_deg2num_num2deg_corner(self) -> None:
        """Test that num2deg returns the north-west corner of a tile."""
        x, y = deg2num(CAIRO[1], CAIRO[0], 18)
        north, west = num2deg(x, y, 18)

        assert west <= CAIRO[0]
        assert north >= CAIRO[1]
        assert deg2num(north - 1e-9, west + 1e-9, 18) == (x, y)

    def test_tile_group_address(self) -> None:
        """Test grouping of tiles by tiles_per_group."""
        x, y = deg2num(CAIRO[1], CAIRO[0], 18)
        address = tile_group_address(CAIRO, zoom=18, tiles_per_group=2)

        assert address.x == x // 2
        assert address.y == y // 2

    def test_tile_group_address_origin(self) -> None:
        """Test the address of (0, 0) at zoom 1."""
        address = tile_group_address((0.0, 0.0), zoom=1, tiles_per_group=1)
        assert (address.x, address.y) == (1, 1)


class TestTileCount:
    """Tests for tile count estimation."""

    def test_single_point(self) -> None:
        """Test that a single point covers one tile group."""
        assert tile_count([CAIRO]) == 1

    def test_box_inside_one_group(self) -> None:
        """Test a region that stays inside one tile group."""
        assert tile_count(single_group_ring()) == 1

    def test_box_spanning_groups(self) -> None:
        """Test a box reaching 3 groups east and 2 groups south."""
        gx, gy = cairo_group()
        west, north = group_center(gx, gy)
        east, south = group_center(gx + 2, gy + 1)

        assert tile_count(box_ring(west, south, east, north)) == 6

    def test_tiles_per_group_one(self) -> None:
        """Test that smaller groups yield more tiles."""
        gx, gy = cairo_group()
        west, north = group_center(gx, gy)
        east, south = group_center(gx + 2, gy + 1)
        ring = box_ring(west, south, east, north)

        assert tile_count(ring, tiles_per_group=1) > tile_count(ring, tiles_per_group=2)

    def test_vertex_order_irrelevant(self) -> None:
        """Test that the count only depends on the bounding box."""
        ring = box_ring(31.2400, 30.0400, 31.2450, 30.0430)
        assert tile_count(ring) == tile_count(list(reversed(ring)))

    def test_monotonic_under_scaling(self) -> None:
        """Test that scaling a ring up never lowers the tile count."""
        base = [(-1.0, -1.0), (0.5, -0.8), (1.0, 1.0), (-0.6, 0.9)]
        cx, cy = CAIRO

        counts = []
        for k in [1.0, 1.5, 2.0, 3.0, 5.0, 8.0, 13.0]:
            scale = 0.001 * k
            ring = [(cx + x * scale, cy + y * scale) for x, y in base]
            counts.append(tile_count(ring))

        assert counts == sorted(counts)
        assert counts[-1] > counts[0]

    def test_empty_ring_rejected(self) -> None:
        """Test that an empty ring is invalid."""
        with pytest.raises(InvalidInputError):
            tile_count([])


class TestRingValidation:
    """Tests for ring validation."""

    def test_valid_ring(self) -> None:
        """Test that a valid ring is normalized to float tuples."""
        ring = validate_ring([[31, 30], [31.1, 30], [31.1, 30.1]])
        assert ring == [(31.0, 30.0), (31.1, 30.0), (31.1, 30.1)]

    def test_altitude_ignored(self) -> None:
        """Test that a third coordinate value is dropped."""
        ring = validate_ring([[31, 30, 12.5], [31.1, 30, 0], [31.1, 30.1, 0]])
        assert ring[0] == (31.0, 30.0)

    @pytest.mark.parametrize("ring", [
        None,
        "31,30",
        [[31, 30], [31.1, 30]],
        [[31, 30], [31.1], [31.1, 30.1]],
        [[31, 30], ["a", 30], [31.1, 30.1]],
        [[31, 30], [190, 30], [31.1, 30.1]],
        [[31, 30], [31, -91], [31.1, 30.1]],
        [[0, -90], [0.001, -90], [0.001, -89.999]],
        [[31, 30], [31, 85.1], [31.1, 30.1]],
        [[31, 30], [float("nan"), 30], [31.1, 30.1]],
    ])
    def test_invalid_rings(self, ring) -> None:
        """Test that malformed rings raise InvalidInputError."""
        with pytest.raises(InvalidInputError):
            validate_ring(ring)

    def test_mercator_limit_accepted(self) -> None:
        """Test that the last latitude of the tile grid still counts tiles."""
        ring = [[0.0, -MAX_LATITUDE], [0.001, -MAX_LATITUDE], [0.001, -85.05]]

        assert validate_ring(ring)[0] == (0.0, -MAX_LATITUDE)
        assert tile_count(ring) >= 1

    def test_pole_rejected_by_tile_count(self) -> None:
        """Test that a pole vertex is invalid input, not a math error."""
        with pytest.raises(InvalidInputError):
            tile_count([[0, -90], [0.001, -90], [0.001, -89.999]])

    def test_bounding_box(self) -> None:
        """Test bounding box extraction."""
        bbox = bounding_box([[31.3, 30.0], [31.1, 30.2], [31.2, 29.9]])
        assert bbox == BoundingBox(31.1, 29.9, 31.3, 30.2)
        assert bbox.width == pytest.approx(0.2)
        assert bbox.height == pytest.approx(0.3)


class TestGridChoice:
    """Tests for grid band selection."""

    @pytest.mark.parametrize("tiles,expected", [
        (1, (1, 1)),
        (4, (1, 1)),
        (5, (2, 1)),
        (16, (2, 1)),
        (17, (2, 2)),
        (36, (2, 2)),
        (37, (3, 2)),
        (500, (3, 2)),
    ])
    def test_default_bands(self, tiles, expected) -> None:
        """Test the default threshold bands."""
        assert choose_grid(tiles) == expected

    def test_custom_bands_any_order(self) -> None:
        """Test that custom bands are matched largest minimum first."""
        bands = [(2, 2, 1), (10, 4, 4)]
        assert choose_grid(3, bands) == (2, 1)
        assert choose_grid(11, bands) == (4, 4)
        assert choose_grid(2, bands) == (1, 1)


class TestRegionPartitioner:
    """Tests for RegionPartitioner class."""

    def test_single_sub_region(self) -> None:
        """Test that a small region is not split."""
        ring = single_group_ring()
        sub_regions = partition(ring)

        assert len(sub_regions) == 1
        assert sub_regions[0].ring == BoundingBox.from_ring(ring).to_ring()

    def test_estimate_matches_tile_count(self) -> None:
        """Test that estimate_tiles agrees with tile_count."""
        ring = box_ring(31.2400, 30.0400, 31.2500, 30.0480)
        assert estimate_tiles(ring) == tile_count(ring)
        assert RegionPartitioner(tiles_per_group=1).estimate_tiles(ring) == tile_count(ring, tiles_per_group=1)

    def test_grid_follows_tile_count(self) -> None:
        """Test that the number of sub-regions follows the bands."""
        ring = box_ring(31.2400, 30.0400, 31.2600, 30.0600)
        cols, rows = choose_grid(tile_count(ring))

        assert len(partition(ring)) == cols * rows

    def test_partition_order(self) -> None:
        """Test row-major order from the south-west corner."""
        partitioner = RegionPartitioner(bands=[(0, 3, 2)])
        sub_regions = partitioner.partition(box_ring(31.0, 30.0, 31.3, 30.2))

        assert [(s.row, s.col) for s in sub_regions] == [
            (0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)
        ]
        assert [s.index for s in sub_regions] == list(range(6))
        first = sub_regions[0].bbox
        assert first.min_lng == 31.0
        assert first.min_lat == 30.0
        assert first.max_lng == pytest.approx(31.1)
        assert first.max_lat == pytest.approx(30.1)

    def test_sub_region_ring_shape(self) -> None:
        """Test that each sub-region is a [sw, nw, ne, se] rectangle."""
        sub_region = RegionPartitioner(bands=[(0, 2, 1)]).partition(
            box_ring(31.0, 30.0, 31.2, 30.1)
        )[1]
        w, s, e, n = 31.1, 30.0, 31.2, 30.1

        assert sub_region.ring[0] == pytest.approx([w, s])
        assert sub_region.ring[1] == pytest.approx([w, n])
        assert sub_region.ring[2] == pytest.approx([e, n])
        assert sub_region.ring[3] == pytest.approx([e, s])

    @pytest.mark.parametrize("cols,rows", [(1, 1), (2, 1), (2, 2), (3, 2)])
    def test_partition_covers_bbox(self, cols, rows) -> None:
        """Test that sub-regions tile the bounding box without gaps or overlaps."""
        # Non-rectangular polygon; the grid only follows its bounding box
        ring = [(31.2401, 30.0403), (31.2587, 30.0411), (31.2533, 30.0529), (31.2450, 30.0571)]
        bbox = BoundingBox.from_ring(ring)
        sub_regions = RegionPartitioner(bands=[(0, cols, rows)]).partition(ring)

        assert len(sub_regions) == cols * rows
        boxes = [s.bbox for s in sub_regions]

        for box in boxes:
            assert bbox.contains(box)

        # Outer edges are exact
        assert min(b.min_lng for b in boxes) == bbox.min_lng
        assert max(b.max_lng for b in boxes) == bbox.max_lng
        assert min(b.min_lat for b in boxes) == bbox.min_lat
        assert max(b.max_lat for b in boxes) == bbox.max_lat

        # Neighbours share edges exactly
        grid = {(s.row, s.col): s.bbox for s in sub_regions}
        for (row, col), box in grid.items():
            if (row, col + 1) in grid:
                assert box.max_lng == grid[(row, col + 1)].min_lng
                assert box.min_lat == grid[(row, col + 1)].min_lat
            if (row + 1, col) in grid:
                assert box.max_lat == grid[(row + 1, col)].min_lat
                assert box.min_lng == grid[(row + 1, col)].min_lng

        total_area = sum(b.width * b.height for b in boxes)
        assert math.isclose(total_area, bbox.width * bbox.height, rel_tol=1e-9)

    def test_partition_rejects_short_ring(self) -> None:
        """Test that fewer than 3 vertices cannot be partitioned."""
        with pytest.raises(InvalidInputError):
            partition([(31.24, 30.04), (31.25, 30.05)])

    def test_split_bbox_rejects_empty_grid(self) -> None:
        """Test that a 0-column grid is refused."""
        with pytest.raises(ValueError):
            split_bbox(BoundingBox(31.0, 30.0, 31.1, 30.1), 0, 1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
